"""Request execution, routing, jobs and the fallback cascade."""

from polaris_orchestrator.orchestrator.cache import InFlightRegistry, ResponseCache, fingerprint
from polaris_orchestrator.orchestrator.executor import RequestConfig, RequestExecutor, RequestTarget
from polaris_orchestrator.orchestrator.jobs import Job, JobHandle, JobOrchestrator, JobRequest, JobSnapshot, JobStatus
from polaris_orchestrator.orchestrator.polling import PollOutcome, PollSchedule, PollStatus, poll_with_backoff
from polaris_orchestrator.orchestrator.result import Failure, Result, Success
from polaris_orchestrator.orchestrator.retry_handler import BackoffWait, RetryPolicy
from polaris_orchestrator.orchestrator.router import FALLBACK_TABLE, ProviderRouter

__all__ = [
    "InFlightRegistry",
    "ResponseCache",
    "fingerprint",
    "RequestConfig",
    "RequestExecutor",
    "RequestTarget",
    "Job",
    "JobHandle",
    "JobOrchestrator",
    "JobRequest",
    "JobSnapshot",
    "JobStatus",
    "PollOutcome",
    "PollSchedule",
    "PollStatus",
    "poll_with_backoff",
    "Failure",
    "Result",
    "Success",
    "BackoffWait",
    "RetryPolicy",
    "FALLBACK_TABLE",
    "ProviderRouter",
]
