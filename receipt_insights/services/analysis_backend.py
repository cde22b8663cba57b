"""Analysis backends: job submission and status query for the polling loop.

``DeterministicAnalysisBackend`` stands in for a real analysis service and
reports completion from a fixed attempt index onwards. ``HttpAnalysisBackend``
talks to a real service. Both raise BackendQueryFailedError on failure.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Sequence

import requests
from pydantic import ValidationError

from receipt_insights.core.errors import BackendQueryFailedError
from receipt_insights.core.models import ExpenseRecord, JobHandle, JobStatusReport
from receipt_insights.core.utils import get_logger

logger = get_logger("receipt-insights.backend")


class AnalysisBackend(ABC):
    """Abstract base class for analysis backends."""

    @abstractmethod
    async def submit_job(self, job_id: str, expenses: Sequence[ExpenseRecord]) -> JobHandle:
        """Submit an analysis job and return the handle used for polling."""

    @abstractmethod
    async def query_job_status(self, handle: JobHandle) -> JobStatusReport:
        """Ask whether the job identified by ``handle`` has completed."""

    def close(self) -> None:
        """Release resources held by the backend."""


class DeterministicAnalysisBackend(AnalysisBackend):
    """Backend without a server: the job is complete from ``complete_from_attempt`` onwards."""

    def __init__(self, complete_from_attempt: int = 1) -> None:
        """Initialize with the first attempt index that reports completion."""
        self.complete_from_attempt = complete_from_attempt

    async def submit_job(self, job_id: str, expenses: Sequence[ExpenseRecord]) -> JobHandle:
        """Accept the job locally."""
        return JobHandle(job_id=job_id)

    async def query_job_status(self, handle: JobHandle) -> JobStatusReport:
        """Report completion based on the attempt index only."""
        return JobStatusReport(complete=handle.attempt >= self.complete_from_attempt)


class HttpAnalysisBackend(AnalysisBackend):
    """Backend reached over HTTP: ``POST {base}/jobs`` and ``GET {base}/jobs/{job_id}``."""

    def __init__(self, base_url: str, timeout: float = 10.0, session: requests.Session | None = None) -> None:
        """Initialize with the service base URL and a requests session."""
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    async def submit_job(self, job_id: str, expenses: Sequence[ExpenseRecord]) -> JobHandle:
        """Submit the job and its expense ids."""
        payload = {"job_id": job_id, "expense_ids": [e.id for e in expenses]}
        await asyncio.to_thread(self._request, "POST", f"{self.base_url}/jobs", json=payload)
        logger.info(f"Submitted analysis job {job_id} with {len(expenses)} expenses")
        return JobHandle(job_id=job_id)

    async def query_job_status(self, handle: JobHandle) -> JobStatusReport:
        """Fetch the job status and decode ``{"complete": bool}``."""
        response = await asyncio.to_thread(self._request, "GET", f"{self.base_url}/jobs/{handle.job_id}")
        try:
            return JobStatusReport.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            msg = f"Invalid status response for job {handle.job_id}: {exc}"
            raise BackendQueryFailedError(msg) from exc

    def _request(self, method: str, url: str, **kwargs: object) -> requests.Response:
        try:
            response = self._session.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
        except requests.RequestException as exc:
            msg = f"Analysis backend request failed: {exc}"
            raise BackendQueryFailedError(msg) from exc
        return response

    def close(self) -> None:
        """Close the underlying requests session."""
        self._session.close()
