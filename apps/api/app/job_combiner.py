"""Concatenate queued print jobs and compute copy-weighted totals."""

from __future__ import annotations

import re
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Sequence

from errors import MarkerNotFoundError
from plate_swap import ensure_swap_sequence

if TYPE_CHECKING:
    from print_job import PrintJob

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_NAME = "platecycler-output"


@dataclass(frozen=True)
class FilamentTotals:
    total_grams: float
    total_meters: float


@dataclass(frozen=True)
class JobStats:
    job_count: int
    total_time_seconds: int
    total_grams: float
    total_meters: float
    plate_swaps: int

    def to_dict(self):
        return {
            "job_count": self.job_count,
            "total_time_seconds": self.total_time_seconds,
            "total_weight_grams": self.total_grams,
            "total_length_meters": self.total_meters,
            "plate_swaps": self.plate_swaps,
            "formatted": {
                "time": format_time(self.total_time_seconds),
                "weight": format_weight(self.total_grams),
                "length": format_length(self.total_meters),
            },
        }


def combine_gcode(jobs: Sequence[PrintJob], swap_sequence: str) -> str:
    """Combine jobs into one G-code stream with a plate swap after every print.

    Each job's G-code gets the swap sequence injected once, then the result is
    repeated ``copies`` times. All copies of a job are contiguous and jobs keep
    their queue order.

    Raises:
        MarkerNotFoundError: If a job's G-code has no EXECUTABLE_BLOCK_END marker
    """
    parts: List[str] = []

    for job in jobs:
        try:
            gcode_with_swap = ensure_swap_sequence(job.gcode, swap_sequence)
        except MarkerNotFoundError as e:
            logger.warning(f"Job {job.name} ({job.id}) has no EXECUTABLE_BLOCK_END marker")
            raise MarkerNotFoundError(
                f"Could not find EXECUTABLE_BLOCK_END marker in gcode of '{job.name}'",
                job_name=job.name,
            ) from e

        for _ in range(job.copies):
            parts.append(gcode_with_swap)

    return "".join(parts)


def calculate_total_filament(jobs: Sequence[PrintJob]) -> FilamentTotals:
    """Total filament from each job's slice_info usage (not the G-code header)."""
    total_grams = 0.0
    total_meters = 0.0

    for job in jobs:
        total_grams += job.usage.used_g * job.copies
        total_meters += job.usage.used_m * job.copies

    return FilamentTotals(total_grams=total_grams, total_meters=total_meters)


def calculate_total_time(jobs: Sequence[PrintJob]) -> int:
    return sum(job.metadata.print_time_seconds * job.copies for job in jobs)


def calculate_plate_swaps(jobs: Sequence[PrintJob]) -> int:
    """One swap per physical copy printed."""
    return sum(job.copies for job in jobs)


def calculate_stats(jobs: Sequence[PrintJob]) -> JobStats:
    totals = calculate_total_filament(jobs)
    return JobStats(
        job_count=len(jobs),
        total_time_seconds=calculate_total_time(jobs),
        total_grams=totals.total_grams,
        total_meters=totals.total_meters,
        plate_swaps=calculate_plate_swaps(jobs),
    )


def suggested_filename(jobs: Sequence[PrintJob]) -> str:
    """Output name suggestion (without extension) based on the queue."""
    if not jobs:
        return DEFAULT_OUTPUT_NAME

    if len(jobs) == 1:
        base_name = re.sub(r"\.gcode$", "", jobs[0].name, flags=re.IGNORECASE)
        base_name = re.sub(r"\.3mf$", "", base_name, flags=re.IGNORECASE)
        return f"{base_name}-{jobs[0].copies}x-platecycler"

    total_copies = sum(job.copies for job in jobs)
    return f"batch-{total_copies}x-platecycler"


def output_filename(jobs: Sequence[PrintJob], custom: Optional[str] = None) -> str:
    """Final download name: custom name if given, else the suggestion, always .3mf."""
    name = (custom or "").strip() or suggested_filename(jobs)
    return name if name.endswith(".3mf") else f"{name}.3mf"


def format_time(seconds: int) -> str:
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)

    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_weight(grams: float) -> str:
    if grams >= 1000:
        return f"{grams / 1000:.2f}kg"
    return f"{grams:.1f}g"


def format_length(meters: float) -> str:
    return f"{meters:.2f}m"
