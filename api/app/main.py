"""FastAPI application entrypoint and health reporting."""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.router import api_router
from app.core.config import settings
from app.jobs.schedule_registry import ensure_schedules
from app.services.task_queue import task_queue

logging.basicConfig(level=settings.log_level, format="%(asctime)s %(name)s [%(levelname)s] %(message)s")

app = FastAPI(title=settings.app_name)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(api_router, prefix=settings.api_prefix)


@app.on_event("startup")
async def _register_schedules() -> None:
    """Register scheduled scans on startup."""
    ensure_schedules()


@app.on_event("shutdown")
async def _drain_background_jobs() -> None:
    """Let automation runs detached from their requests finish before exit."""
    await task_queue.drain()


@app.get("/health", tags=["internal"])
@app.get(f"{settings.api_prefix}/health", tags=["internal"])
async def health() -> dict[str, str]:
    """Return service health; the trigger queue being offline degrades to inline execution."""
    queue_state = "online" if task_queue.enabled else "inline"
    return {"status": "ok", "queue": queue_state}
