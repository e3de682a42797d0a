"""Scheduler module for ContestRadar."""

from apps.scheduler.tasks import get_scheduler, run_forever, start_scheduler, stop_scheduler

__all__ = ["get_scheduler", "run_forever", "start_scheduler", "stop_scheduler"]
