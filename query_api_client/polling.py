"""Waiting for query jobs to finish and collecting their results."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, TYPE_CHECKING

from .errors import JobTimeoutError
from .models import QueryJob

if TYPE_CHECKING:
    from .client import QueryClient

logger = logging.getLogger(__name__)


class JobPoller:
    """
    Polls a job's status until it reaches a terminal state or the deadline passes.

    States: polling -> completed | failed | canceled (returned to the caller),
    or timed out (raised as JobTimeoutError). Runs on the calling thread; the
    only way to stop it early is the deadline.
    """

    def __init__(
        self,
        client: "QueryClient",
        poll_interval_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.poll_interval_seconds = poll_interval_seconds
        self._sleep = sleep
        self._clock = clock

    def wait(self, job_id: str, max_wait_seconds: float) -> dict[str, Any]:
        """
        Block until the job is completed, failed or canceled.

        Args:
            job_id: Query job id
            max_wait_seconds: Deadline measured from the first poll

        Returns:
            Final job snapshot

        Raises:
            JobTimeoutError: If no terminal status was seen before the deadline

        No poll is issued once ``max_wait_seconds`` have elapsed; the last
        sleep is shortened so that a final poll lands on the deadline.
        """
        started = self._clock()
        polls = 0

        while True:
            snapshot = self.client.get_job_status(job_id)
            polls += 1
            job = QueryJob.from_dict(snapshot)
            logger.debug(f"Query job {job_id} poll {polls}: {job.status}")

            if job.is_terminal:
                return snapshot

            remaining = max_wait_seconds - (self._clock() - started)
            if remaining <= 0:
                raise self._timeout(job_id, max_wait_seconds, snapshot)

            self._sleep(min(self.poll_interval_seconds, remaining))

            if self._clock() - started > max_wait_seconds:
                raise self._timeout(job_id, max_wait_seconds, snapshot)

    @staticmethod
    def _timeout(job_id: str, max_wait_seconds: float, snapshot: dict[str, Any]) -> JobTimeoutError:
        return JobTimeoutError(
            f"Query job {job_id} did not complete within {max_wait_seconds:g} seconds",
            context=snapshot,
        )

    def collect_results(self, job_id: str, snapshot: dict[str, Any]) -> list[dict[str, Any]]:
        """Fetch every statement's results, in declaration order."""
        job = QueryJob.from_dict(snapshot)
        return [
            self.client.get_job_results(job_id, statement.id)
            for statement in job.statements
        ]

    def execute(self, job_id: str, max_wait_seconds: float) -> dict[str, Any]:
        """
        Wait for the job and assemble its results.

        Results are only fetched for completed jobs; a failed or canceled job
        comes back with an empty ``results`` list.
        """
        snapshot = self.wait(job_id, max_wait_seconds)
        job = QueryJob.from_dict(snapshot)

        if job.is_completed:
            results = self.collect_results(job_id, snapshot)
        else:
            logger.warning(f"Query job {job_id} finished with status '{job.status}', no results fetched")
            results = []

        return {
            "queryJobId": snapshot.get("queryJobId", job_id),
            "status": job.status,
            "statements": snapshot.get("statements", []),
            "results": results,
        }
