"""Asynchronous job submission and polling with idempotency."""

import asyncio
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional

import httpx
import orjson
from pydantic import BaseModel, Field, field_validator

from polaris_orchestrator.exceptions import ClientFailure, PollTransportError
from polaris_orchestrator.orchestrator.cache import InFlightRegistry
from polaris_orchestrator.orchestrator.executor import RequestConfig, RequestExecutor, RequestTarget
from polaris_orchestrator.orchestrator.polling import PollOutcome, PollSchedule, PollStatus, poll_with_backoff
from polaris_orchestrator.orchestrator.result import Failure
from polaris_orchestrator.orchestrator.retry_handler import RetryPolicy
from polaris_orchestrator.telemetry.logger import get_logger
from polaris_orchestrator.telemetry.metrics import MetricsCollector

logger = get_logger(__name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)

    @property
    def rank(self) -> int:
        return {JobStatus.QUEUED: 0, JobStatus.RUNNING: 1}.get(self, 2)


class JobRequest(BaseModel):
    """Body of a job submission."""

    prompt: str
    model: str
    provider: Optional[str] = None
    temperature: float = 0.2
    max_tokens: int = Field(default=8096, gt=0)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class JobHandle(BaseModel):
    job_id: str
    status_url: str
    idempotency_key: str
    provider: Optional[str] = None
    model: str
    created_at: datetime


class JobSnapshot(BaseModel):
    """One status report from the job endpoint."""

    status: JobStatus
    percent: Optional[int] = Field(default=None, ge=0, le=100)
    eta_seconds: Optional[int] = Field(default=None, ge=0)
    result: Optional[str] = None
    error: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            return {"pending": "queued", "processing": "running", "completed": "succeeded"}.get(v, v)
        return v

    @field_validator("percent", mode="before")
    @classmethod
    def clamp_percent(cls, v):
        if v is None:
            return None
        return max(0, min(100, int(float(v))))

    @field_validator("result", mode="before")
    @classmethod
    def stringify_result(cls, v):
        if v is None or isinstance(v, str):
            return v
        return orjson.dumps(v).decode()


class Job(BaseModel):
    """Local mirror of a remote job. Changes only through snapshots."""

    id: str
    status: JobStatus = JobStatus.QUEUED
    provider: Optional[str] = None
    model: str
    prompt: str
    created_at: datetime
    percent_complete: Optional[int] = None
    eta_seconds: Optional[int] = None
    result: Optional[str] = None
    error_message: Optional[str] = None
    idempotency_key: str

    def apply(self, snapshot: JobSnapshot) -> bool:
        """Fold a snapshot into the job. Returns False when it was ignored."""
        if self.status.is_terminal:
            logger.info(
                "Ignoring snapshot for terminal job",
                job_id=self.id,
                status=self.status.value,
                snapshot_status=snapshot.status.value,
            )
            return False

        if snapshot.status.rank >= self.status.rank:
            self.status = snapshot.status
        if snapshot.percent is not None:
            self.percent_complete = max(self.percent_complete or 0, snapshot.percent)
        if snapshot.eta_seconds is not None:
            self.eta_seconds = snapshot.eta_seconds
        if snapshot.status == JobStatus.SUCCEEDED:
            self.result = snapshot.result
            self.percent_complete = 100
        elif snapshot.status == JobStatus.FAILED:
            self.error_message = snapshot.error or "Job failed"
        return True


class JobOutcome(BaseModel):
    """How a local wait on a job ended."""

    status: str
    job: Job
    polls: int = 0
    elapsed: float = 0.0
    error: Optional[str] = None

    @property
    def result(self) -> Optional[str]:
        return self.job.result if self.status == JobStatus.SUCCEEDED.value else None


ProgressCallback = Callable[[JobSnapshot], None]


class JobOrchestrator:
    """Submits long-running generations as durable jobs and polls them.

    A local registry maps each idempotency key to at most one job for the
    key's TTL. Stopping the local wait never cancels the remote job.
    """

    def __init__(
        self,
        executor: RequestExecutor,
        endpoint_url: str,
        schedule: Optional[PollSchedule] = None,
        idempotency_ttl: float = 86400.0,
        poll_timeout: float = 30.0,
        metrics: Optional[MetricsCollector] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.executor = executor
        self.endpoint_url = endpoint_url
        self.schedule = schedule or PollSchedule()
        self.poll_policy = RetryPolicy.single_attempt(timeout=poll_timeout)
        self.metrics = metrics
        self.sleep = sleep
        self.clock = clock
        self.jobs: Dict[str, Job] = {}
        self.registry: InFlightRegistry[JobHandle] = InFlightRegistry(
            retain_seconds=idempotency_ttl, clock=clock, on_expire=self._release_job
        )

    def _release_job(self, idempotency_key: str, handle: JobHandle) -> None:
        self.jobs.pop(handle.job_id, None)
        logger.debug("Job released", job_id=handle.job_id, key=idempotency_key)

    async def submit(self, request: JobRequest, idempotency_key: str) -> JobHandle:
        """Submit once per key; repeat calls return the existing handle."""
        return await self.registry.run(idempotency_key, lambda: self._submit(request, idempotency_key))

    async def _submit(self, request: JobRequest, idempotency_key: str) -> JobHandle:
        target = RequestTarget(
            url=self.endpoint_url,
            method="POST",
            headers={"Content-Type": "application/json", IDEMPOTENCY_HEADER: idempotency_key},
            json_body=request.model_dump(),
            label="job",
        )
        outcome = await self.executor.execute(target)
        if isinstance(outcome, Failure):
            raise outcome.error

        try:
            body = orjson.loads(outcome.value.content)
        except orjson.JSONDecodeError as e:
            raise ClientFailure("Job submission returned invalid JSON", provider="job") from e
        job_id = body.get("job_id") if isinstance(body, dict) else None
        if not job_id:
            raise ClientFailure("Job submission returned no job_id", provider="job")

        status_url = body.get("status_url")
        if status_url:
            status_url = str(httpx.URL(self.endpoint_url).join(status_url))
        else:
            status_url = str(httpx.URL(self.endpoint_url).copy_merge_params({"job_id": str(job_id)}))

        created_at = datetime.now(timezone.utc)
        handle = JobHandle(
            job_id=str(job_id),
            status_url=status_url,
            idempotency_key=idempotency_key,
            provider=request.provider,
            model=request.model,
            created_at=created_at,
        )
        self.jobs[handle.job_id] = Job(
            id=handle.job_id,
            provider=request.provider,
            model=request.model,
            prompt=request.prompt,
            created_at=created_at,
            idempotency_key=idempotency_key,
        )
        logger.info("Job submitted", job_id=handle.job_id, model=request.model, key=idempotency_key)
        return handle

    def job(self, handle: JobHandle) -> Job:
        return self.jobs[handle.job_id]

    async def poll(self, handle: JobHandle) -> JobSnapshot:
        """Fetch one status snapshot and fold it into the local job."""
        target = RequestTarget(url=handle.status_url, method="GET", label="job")
        outcome = await self.executor.execute(target, RequestConfig(policy=self.poll_policy))
        if isinstance(outcome, Failure):
            raise PollTransportError(
                f"Status poll failed: {outcome.error.message}", provider="job", status_code=outcome.error.http_status
            ) from outcome.error

        try:
            snapshot = JobSnapshot.model_validate(orjson.loads(outcome.value.content))
        except (orjson.JSONDecodeError, ValueError) as e:
            raise PollTransportError("Status poll returned an unreadable body", provider="job") from e

        if self.metrics:
            self.metrics.record_job_poll(snapshot.status.value)
        self.jobs[handle.job_id].apply(snapshot)
        return snapshot

    async def wait(
        self,
        handle: JobHandle,
        on_progress: Optional[ProgressCallback] = None,
        max_window: Optional[float] = None,
    ) -> JobOutcome:
        """Poll until the job is terminal, the window closes, or polling breaks."""
        schedule = self.schedule
        if max_window is not None:
            schedule = PollSchedule(schedule.base_delay, schedule.growth, schedule.cap, max_window)

        job = self.jobs[handle.job_id]
        if job.status.is_terminal:
            return JobOutcome(status=job.status.value, job=job, error=job.error_message)

        outcome: PollOutcome[JobSnapshot] = await poll_with_backoff(
            lambda: self.poll(handle),
            lambda snapshot: job.status.is_terminal,
            schedule,
            on_snapshot=on_progress,
            sleep=self.sleep,
            clock=self.clock,
        )

        if outcome.status == PollStatus.TERMINAL:
            status = job.status.value
            error = job.error_message
        elif outcome.status == PollStatus.TIMEOUT:
            status, error = "timeout", f"Job still {job.status.value} after {schedule.max_window:.0f}s"
        else:
            status, error = "transport_error", outcome.error.message if outcome.error else None

        logger.info("Job wait finished", job_id=job.id, outcome=status, polls=outcome.polls)
        return JobOutcome(status=status, job=job, polls=outcome.polls, elapsed=outcome.elapsed, error=error)

    async def run(
        self,
        request: JobRequest,
        idempotency_key: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> JobOutcome:
        handle = await self.submit(request, idempotency_key)
        return await self.wait(handle, on_progress=on_progress)
