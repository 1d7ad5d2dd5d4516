"""Background job modules for RQ workers and schedulers."""
