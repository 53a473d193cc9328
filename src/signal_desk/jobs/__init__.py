"""Background jobs, their runner and the scheduler loop."""

from signal_desk.jobs.runner import JobRunner, JobStatus
from signal_desk.jobs.tasks import SignalJobs

__all__ = ["JobRunner", "JobStatus", "SignalJobs"]
