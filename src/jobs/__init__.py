"""Scheduled lifecycle jobs."""

from src.jobs.lifecycle import JobResult, LifecycleJobs

__all__ = ["JobResult", "LifecycleJobs"]
