"""Rule engine behavior: filtering, gating, ordering, isolation, and auditing."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from app.services import automation_conditions
from app.services.automation_engine import build_engine
from app.services.automation_types import AutomationContext
from app.tests.utils import (
    CallRecorder,
    StubMailer,
    audit_rows,
    build_test_engine,
    make_member,
    make_rule,
    make_task,
    make_tenant,
    notifications_for,
    tasks_for,
    utcnow,
)


def _action(kind: str, **config) -> dict:
    return {"kind": kind, "config": config}


@pytest.mark.asyncio
async def test_only_rules_for_the_fired_trigger_are_evaluated(session, monkeypatch):
    tenant = await make_tenant(session)
    await make_rule(session, tenant.id, trigger="task_completed", actions=[_action("completed")])
    await make_rule(session, tenant.id, trigger="member_added", actions=[_action("welcome")])

    evaluated: list[dict] = []
    original = automation_conditions.evaluate

    def _spy(conditions, context):
        evaluated.append(conditions)
        return original(conditions, context)

    monkeypatch.setattr(automation_conditions, "evaluate", _spy)
    recorder = CallRecorder()
    engine = build_test_engine(
        session,
        handlers={"completed": recorder.handler("completed"), "welcome": recorder.handler("welcome")},
    )

    firings = await engine.execute_trigger("task_completed", AutomationContext(tenant_id=tenant.id))

    assert [firing["trigger"] for firing in firings] == ["task_completed"]
    assert recorder.calls == ["completed"]
    assert len(evaluated) == 1


@pytest.mark.asyncio
async def test_disabled_rules_never_load_or_fire(session):
    tenant = await make_tenant(session)
    disabled = await make_rule(
        session, tenant.id, trigger="task_completed", actions=[_action("noop")], enabled=False
    )
    recorder = CallRecorder()
    engine = build_test_engine(session, handlers={"noop": recorder.handler("noop")})

    assert disabled.id not in {rule.id for rule in await engine.load_rules(tenant.id)}
    firings = await engine.execute_trigger("task_completed", AutomationContext(tenant_id=tenant.id))

    assert firings == []
    assert recorder.calls == []
    assert await audit_rows(session, tenant.id) == []


@pytest.mark.asyncio
@pytest.mark.parametrize(("days_overdue", "fires"), [(2, False), (3, True), (5, True)])
async def test_conditions_gate_action_execution(session, days_overdue, fires):
    tenant = await make_tenant(session)
    await make_rule(
        session,
        tenant.id,
        trigger="task_overdue",
        conditions={"daysOverdue": 3},
        actions=[_action("escalate_stub")],
    )
    recorder = CallRecorder()
    engine = build_test_engine(session, handlers={"escalate_stub": recorder.handler("escalate_stub")})

    context = AutomationContext(tenant_id=tenant.id, metadata={"daysOverdue": days_overdue})
    firings = await engine.execute_trigger("task_overdue", context)

    assert bool(firings) is fires
    assert recorder.calls == (["escalate_stub"] if fires else [])


@pytest.mark.asyncio
async def test_actions_run_in_declared_order(session):
    tenant = await make_tenant(session)
    await make_rule(
        session,
        tenant.id,
        trigger="task_created",
        actions=[_action("a"), _action("b"), _action("c")],
    )
    recorder = CallRecorder()
    engine = build_test_engine(
        session, handlers={label: recorder.handler(label) for label in ("a", "b", "c")}
    )

    await engine.execute_trigger("task_created", AutomationContext(tenant_id=tenant.id))

    assert recorder.calls == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_failing_action_does_not_stop_siblings_and_audit_counts_declared_actions(session):
    tenant = await make_tenant(session)
    rule = await make_rule(
        session,
        tenant.id,
        trigger="task_created",
        actions=[_action("a"), _action("b"), _action("c")],
    )
    recorder = CallRecorder()
    engine = build_test_engine(
        session,
        handlers={
            "a": recorder.handler("a"),
            "b": recorder.handler("b", fail=True),
            "c": recorder.handler("c"),
        },
    )

    firings = await engine.execute_trigger("task_created", AutomationContext(tenant_id=tenant.id))

    assert recorder.calls == ["a", "b", "c"]
    firing = firings[0]
    assert firing["status"] == "partial"
    assert [action["status"] for action in firing["actions"]] == ["completed", "failed", "completed"]
    assert "b exploded" in firing["actions"][1]["error"]

    rows = await audit_rows(session, tenant.id)
    assert len(rows) == 1
    assert rows[0].entity_id == str(rule.id)
    assert rows[0].details["actionsCount"] == 3
    assert rows[0].details["actionsFailed"] == 1
    assert rows[0].actor_kind == "system"


@pytest.mark.asyncio
async def test_slow_action_times_out_and_next_action_runs(session):
    tenant = await make_tenant(session)
    await make_rule(session, tenant.id, trigger="task_created", actions=[_action("slow"), _action("fast")])
    recorder = CallRecorder()

    async def _slow(deps, config, context, rule):
        await asyncio.sleep(1)
        return {"status": "late"}

    engine = build_test_engine(
        session,
        handlers={"slow": _slow, "fast": recorder.handler("fast")},
        action_timeout_seconds=0.05,
    )

    firings = await engine.execute_trigger("task_created", AutomationContext(tenant_id=tenant.id))

    assert firings[0]["actions"][0] == {"kind": "slow", "status": "failed", "error": "action_timeout"}
    assert recorder.calls == ["fast"]


@pytest.mark.asyncio
async def test_unsupported_action_kind_fails_without_raising(session):
    tenant = await make_tenant(session)
    await make_rule(session, tenant.id, trigger="task_created", actions=[_action("teleport")])
    engine = build_engine(session, mailer=StubMailer())

    firings = await engine.execute_trigger("task_created", AutomationContext(tenant_id=tenant.id))

    assert firings[0]["status"] == "failed"
    assert firings[0]["actions"][0]["error"] == "unsupported_action:teleport"
    rows = await audit_rows(session, tenant.id)
    assert rows[0].details["actionsCount"] == 1


@pytest.mark.asyncio
async def test_rule_without_actions_is_not_audited(session):
    tenant = await make_tenant(session)
    await make_rule(session, tenant.id, trigger="task_created", actions=[])
    engine = build_engine(session, mailer=StubMailer())

    firings = await engine.execute_trigger("task_created", AutomationContext(tenant_id=tenant.id))

    assert firings[0]["audited"] is False
    assert await audit_rows(session, tenant.id) == []


@pytest.mark.asyncio
async def test_rule_edits_apply_to_the_next_trigger(session):
    tenant = await make_tenant(session)
    rule = await make_rule(session, tenant.id, trigger="task_created", actions=[_action("noop")])
    recorder = CallRecorder()
    engine = build_test_engine(session, handlers={"noop": recorder.handler("noop")})
    context = AutomationContext(tenant_id=tenant.id)

    await engine.execute_trigger("task_created", context)
    rule.enabled = False
    await session.commit()
    await engine.execute_trigger("task_created", context)

    assert recorder.calls == ["noop"]


@pytest.mark.asyncio
async def test_trigger_for_one_tenant_never_runs_another_tenants_rules(session):
    tenant_x = await make_tenant(session, name="Tenant X")
    tenant_y = await make_tenant(session, name="Tenant Y")
    await make_rule(session, tenant_x.id, trigger="member_added", actions=[_action("x_action")])
    await make_rule(session, tenant_y.id, trigger="member_added", actions=[_action("y_action")])
    recorder = CallRecorder()
    engine = build_test_engine(
        session,
        handlers={"x_action": recorder.handler("x_action"), "y_action": recorder.handler("y_action")},
    )

    await engine.execute_trigger("member_added", AutomationContext(tenant_id=tenant_x.id))

    assert recorder.calls == ["x_action"]
    assert await audit_rows(session, tenant_y.id) == []


@pytest.mark.asyncio
async def test_escalation_only_reaches_admins_of_the_firing_tenant(session):
    tenant_x = await make_tenant(session, name="Tenant X")
    tenant_y = await make_tenant(session, name="Tenant Y")
    x_admin = await make_member(session, tenant_x.id, role="admin")
    y_owner = await make_member(session, tenant_y.id, role="owner")
    await make_rule(
        session, tenant_x.id, trigger="task_overdue", actions=[_action("escalate", title="Overdue")]
    )
    engine = build_engine(session, mailer=StubMailer())

    await engine.execute_trigger("task_overdue", AutomationContext(tenant_id=tenant_x.id))

    x_notifications = await notifications_for(session, tenant_x.id)
    assert [note.user_id for note in x_notifications] == [x_admin.user_id]
    assert await notifications_for(session, tenant_y.id) == []
    assert y_owner.user_id not in {note.user_id for note in x_notifications}


@pytest.mark.asyncio
async def test_certificate_expiring_notifies_owner_and_creates_renewal_task(session):
    tenant = await make_tenant(session)
    owner = await make_member(session, tenant.id, role="member")
    rule = await make_rule(
        session,
        tenant.id,
        trigger="certificate_expiring",
        actions=[
            _action("send_notification", title="Cert expiring"),
            _action("create_task", title="Renew Certificate", priority="high"),
        ],
    )
    engine = build_engine(session, mailer=StubMailer())
    context = AutomationContext(
        tenant_id=tenant.id,
        actor_user_id=owner.user_id,
        resource={"id": "cert-1", "expiry_date": (utcnow() + timedelta(days=10)).isoformat()},
        metadata={"daysUntilExpiry": 10},
    )

    firings = await engine.execute_trigger("certificate_expiring", context)

    assert firings[0]["status"] == "completed"
    notifications = await notifications_for(session, tenant.id)
    assert len(notifications) == 1
    assert notifications[0].user_id == owner.user_id
    assert notifications[0].title == "Cert expiring"

    created = await tasks_for(session, tenant.id, source_rule_id=rule.id)
    assert len(created) == 1
    assert created[0].assigned_to == owner.user_id
    assert created[0].status == "pending"
    assert created[0].priority == "high"

    rows = await audit_rows(session, tenant.id)
    assert len(rows) == 1
    assert rows[0].details["actionsCount"] == 2


@pytest.mark.asyncio
async def test_escalation_fans_out_to_owner_and_admin_only(session):
    tenant = await make_tenant(session)
    owner = await make_member(session, tenant.id, role="owner")
    admin = await make_member(session, tenant.id, role="admin")
    member = await make_member(session, tenant.id, role="member")
    task = await make_task(session, tenant.id, assigned_to=member.user_id, due_date=utcnow() - timedelta(days=4))
    await make_rule(session, tenant.id, trigger="task_overdue", actions=[_action("escalate", title="Overdue")])
    engine = build_engine(session, mailer=StubMailer())

    firings = await engine.execute_trigger(
        "task_overdue",
        AutomationContext(tenant_id=tenant.id, actor_user_id=member.user_id, resource={"id": str(task.id)}),
    )

    assert len(firings) == 1
    notifications = await notifications_for(session, tenant.id)
    assert sorted(str(note.user_id) for note in notifications) == sorted([str(owner.user_id), str(admin.user_id)])
    assert all(note.type == "warning" for note in notifications)
    assert member.user_id not in {note.user_id for note in notifications}

class _HangingNotifier:
    """Notifier double whose delivery to one user never completes."""

    def __init__(self, stuck_user_id) -> None:
        self.stuck_user_id = stuck_user_id
        self.delivered: list = []

    async def notify(self, *, tenant_id, user_id, **kwargs):
        if user_id == self.stuck_user_id:
            await asyncio.sleep(60)
        self.delivered.append(user_id)
        return user_id


@pytest.mark.asyncio
async def test_escalation_still_reaches_later_admins_when_one_delivery_hangs(session):
    tenant = await make_tenant(session)
    owner = await make_member(session, tenant.id, role="owner")
    admin = await make_member(session, tenant.id, role="admin")
    await make_rule(session, tenant.id, trigger="task_overdue", actions=[_action("escalate", title="Overdue")])
    notifier = _HangingNotifier(owner.user_id)
    engine = build_test_engine(session, action_timeout_seconds=0.3)
    engine.deps.notifier = notifier

    firings = await engine.execute_trigger("task_overdue", AutomationContext(tenant_id=tenant.id))

    assert notifier.delivered == [admin.user_id]
    outcome = firings[0]["actions"][0]
    assert outcome["status"] == "completed"
    assert outcome["result"]["delivered"] == [str(admin.user_id)]
    assert outcome["result"]["failed"] == [{"user_id": str(owner.user_id), "error": "notify_timeout"}]


@pytest.mark.asyncio
async def test_timed_out_write_is_discarded_and_firing_is_still_audited(session, monkeypatch):
    tenant = await make_tenant(session)
    actor = await make_member(session, tenant.id, role="member")
    rule = await make_rule(
        session,
        tenant.id,
        trigger="task_created",
        actions=[_action("create_task", title="Timed out task"), _action("send_notification", title="Heads up")],
    )
    tenant_id, actor_id, rule_id = tenant.id, actor.user_id, rule.id

    original_commit = AsyncSession.commit
    stalled: list[bool] = []

    async def _stall_first_commit(self):
        if not stalled:
            stalled.append(True)
            await asyncio.sleep(5)
        return await original_commit(self)

    monkeypatch.setattr(AsyncSession, "commit", _stall_first_commit)
    engine = build_test_engine(session, action_timeout_seconds=0.2)

    firings = await engine.execute_trigger(
        "task_created", AutomationContext(tenant_id=tenant_id, actor_user_id=actor_id)
    )

    assert [outcome["status"] for outcome in firings[0]["actions"]] == ["failed", "completed"]
    assert firings[0]["actions"][0]["error"] == "action_timeout"
    assert await tasks_for(session, tenant_id, source_rule_id=rule_id) == []
    assert len(await notifications_for(session, tenant_id)) == 1
    rows = await audit_rows(session, tenant_id)
    assert len(rows) == 1
    assert rows[0].details["actionsCount"] == 2
    assert rows[0].details["actionsFailed"] == 1


@pytest.mark.asyncio
async def test_tenant_scope_violation_is_logged_as_error(session, caplog):
    tenant = await make_tenant(session, name="Home")
    other = await make_tenant(session, name="Elsewhere")
    outsider = await make_member(session, other.id, role="member")
    await make_rule(
        session,
        tenant.id,
        trigger="task_created",
        actions=[_action("send_notification", title="Hello", userId=str(outsider.user_id))],
    )
    engine = build_engine(session, mailer=StubMailer())

    caplog.set_level(logging.ERROR, logger="app.services.automation_engine")
    firings = await engine.execute_trigger("task_created", AutomationContext(tenant_id=tenant.id))

    assert firings[0]["actions"][0]["status"] == "failed"
    assert firings[0]["actions"][0]["error"].startswith("user_outside_tenant")
    assert "Tenant scope violation" in caplog.text
    assert await notifications_for(session, other.id) == []


def test_context_requires_tenant():
    with pytest.raises(ValueError):
        AutomationContext(tenant_id=None)
