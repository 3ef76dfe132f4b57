"""Periodic collection, alert evaluation and notification cleanup."""

from apr_finder.scheduler.service import CLEANUP_JOB, COLLECTION_JOB, Job, JobStatus, Scheduler

__all__ = ["CLEANUP_JOB", "COLLECTION_JOB", "Job", "JobStatus", "Scheduler"]
