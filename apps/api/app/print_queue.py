"""Ordered print queue owning the jobs between upload and combine."""

import asyncio
import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Tuple

from errors import IngestError
from print_job import PrintJob, parse_3mf, release_job

logger = logging.getLogger(__name__)

MIN_COPIES = 1
MAX_COPIES = 99


@dataclass
class IngestReport:
    added: List[PrintJob] = field(default_factory=list)
    errors: List[IngestError] = field(default_factory=list)

    def to_dict(self):
        return {
            "added": [job.to_dict() for job in self.added],
            "errors": [
                {"filename": e.filename, "entry": e.entry, "message": str(e)}
                for e in self.errors
            ],
        }


class PrintQueue:
    """Thread-safe ordered list of print jobs.

    Queue order is the concatenation order. Every path that drops a job
    releases its preview image.
    """

    def __init__(self, max_copies: int = MAX_COPIES):
        self.max_copies = max_copies
        self._jobs: List[PrintJob] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def jobs(self) -> Tuple[PrintJob, ...]:
        """Immutable snapshot of the queue in order."""
        with self._lock:
            return tuple(self._jobs)

    def get(self, job_id: str) -> PrintJob:
        with self._lock:
            return self._jobs[self._index_of(job_id)]

    def add(self, job: PrintJob) -> PrintJob:
        with self._lock:
            self._jobs.append(job)
        logger.info(f"Queued {job.name} ({job.id})")
        return job

    def set_copies(self, job_id: str, copies: int) -> PrintJob:
        """Set a job's copy count.

        The queued job is replaced, never mutated, so snapshots taken by
        jobs() keep the counts they were taken with.

        Raises:
            KeyError: If the job is not queued
            ValueError: If copies is outside MIN_COPIES..max_copies
        """
        if not isinstance(copies, int) or isinstance(copies, bool):
            raise ValueError("copies must be an integer")
        if copies < MIN_COPIES or copies > self.max_copies:
            raise ValueError(f"copies must be between {MIN_COPIES} and {self.max_copies}")

        with self._lock:
            index = self._index_of(job_id)
            job = replace(self._jobs[index], copies=copies)
            self._jobs[index] = job
        return job

    def move(self, job_id: str, index: int) -> None:
        """Move a job to a new position (clamped to the queue bounds)."""
        with self._lock:
            job = self._jobs.pop(self._index_of(job_id))
            index = min(max(index, 0), len(self._jobs))
            self._jobs.insert(index, job)

    def reorder(self, job_ids: Sequence[str]) -> None:
        """Replace the queue order with job_ids, which must be a permutation of it."""
        with self._lock:
            by_id: Dict[str, PrintJob] = {job.id: job for job in self._jobs}
            if len(job_ids) != len(by_id) or set(job_ids) != set(by_id):
                raise ValueError("job_ids must contain every queued job exactly once")
            self._jobs = [by_id[job_id] for job_id in job_ids]

    def remove(self, job_id: str) -> PrintJob:
        with self._lock:
            job = self._jobs.pop(self._index_of(job_id))
        release_job(job)
        logger.info(f"Removed {job.name} ({job.id}) from queue")
        return job

    def clear(self) -> int:
        """Remove every job, releasing all previews. Returns how many were removed."""
        with self._lock:
            jobs, self._jobs = self._jobs, []
        for job in jobs:
            release_job(job)
        if jobs:
            logger.info(f"Cleared {len(jobs)} job(s) from queue")
        return len(jobs)

    async def ingest_many(self, files: Sequence[Tuple[str, bytes]]) -> IngestReport:
        """Parse uploaded files concurrently and queue those that succeed.

        Jobs are appended in submission order. A failing file is reported in
        the result and never stops the others.
        """
        results = await asyncio.gather(
            *(asyncio.to_thread(parse_3mf, content, filename) for filename, content in files),
            return_exceptions=True,
        )

        report = IngestReport()
        for (filename, _), result in zip(files, results):
            if isinstance(result, IngestError):
                logger.warning(str(result))
                report.errors.append(result)
            elif isinstance(result, Exception):
                logger.error(f"Unexpected error parsing {filename}: {result}")
                report.errors.append(IngestError(filename, str(result)))
            elif isinstance(result, BaseException):
                raise result
            else:
                report.added.append(self.add(result))

        return report

    def _index_of(self, job_id: str) -> int:
        for index, job in enumerate(self._jobs):
            if job.id == job_id:
                return index
        raise KeyError(job_id)


# Global queue instance
_print_queue: Optional[PrintQueue] = None


def init_print_queue(max_copies: int = MAX_COPIES) -> PrintQueue:
    """Create the process-wide queue."""
    global _print_queue

    _print_queue = PrintQueue(max_copies=max_copies)
    return _print_queue


def close_print_queue():
    """Tear down the queue, releasing every job's preview."""
    global _print_queue

    if _print_queue is not None:
        _print_queue.clear()
        _print_queue = None


def get_print_queue() -> Optional[PrintQueue]:
    """Get the queue (None before init_print_queue)."""
    return _print_queue
