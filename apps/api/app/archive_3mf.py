"""Read and repackage Bambu single-plate 3MF archives.

An archive is handled as an immutable name -> bytes snapshot. Repackaging
overlays the combined G-code, its MD5 and the rewritten slice_info.config on
top of the base job's snapshot and serializes a brand new zip in memory, so
the caller's archive is never mutated and a failed write never leaks a
partial file.
"""

import io
import time
import hashlib
import logging
import zipfile
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from errors import EmptyQueueError, PackagingError
from gcode_parser import update_slice_info
from job_combiner import calculate_total_filament, combine_gcode

logger = logging.getLogger(__name__)

GCODE_ENTRY = "Metadata/plate_1.gcode"
GCODE_MD5_ENTRY = "Metadata/plate_1.gcode.md5"
SLICE_INFO_ENTRY = "Metadata/slice_info.config"
THUMBNAIL_ENTRY = "Metadata/plate_1.png"

GCODE_ENTRY_CANDIDATES = ("Metadata/plate_1.gcode", "metadata/plate_1.gcode", "Metadata/Plate_1.gcode")
SLICE_INFO_ENTRY_CANDIDATES = ("Metadata/slice_info.config", "metadata/slice_info.config")
THUMBNAIL_ENTRY_CANDIDATES = ("Metadata/plate_1.png", "metadata/plate_1.png")


def find_entry(names: Iterable[str], *candidates: str) -> Optional[str]:
    """Find an archive entry, trying exact names first, then ignoring case."""
    names = list(names)
    name_set = set(names)
    for candidate in candidates:
        if candidate in name_set:
            return candidate

    for candidate in candidates:
        lower = candidate.lower()
        match = next((n for n in names if n.lower() == lower), None)
        if match:
            return match

    return None


def read_entries(archive_bytes: bytes) -> Tuple[Dict[str, bytes], Dict[str, zipfile.ZipInfo]]:
    """Load every file entry of a zip archive.

    Returns:
        Tuple of (entries, infos)
        - entries: entry name -> content, in archive order
        - infos: entry name -> source ZipInfo (compression, timestamp)
    """
    entries: Dict[str, bytes] = {}
    infos: Dict[str, zipfile.ZipInfo] = {}
    with zipfile.ZipFile(io.BytesIO(archive_bytes), "r") as zf:
        for info in zf.infolist():
            if info.is_dir():
                continue
            entries[info.filename] = zf.read(info.filename)
            infos[info.filename] = info
    return entries, infos


def gcode_checksum(gcode: str) -> str:
    """MD5 of the G-code as stored in the archive (UTF-8), lowercase hex."""
    return hashlib.md5(gcode.encode("utf-8")).hexdigest()


def _entry_info(name: str, template: Optional[zipfile.ZipInfo]) -> zipfile.ZipInfo:
    # Fresh ZipInfo: only timestamp, compression and attributes carry over, never sizes or CRC.
    if template is None:
        info = zipfile.ZipInfo(name)
        info.compress_type = zipfile.ZIP_DEFLATED
        return info

    info = zipfile.ZipInfo(name, date_time=template.date_time)
    info.compress_type = template.compress_type
    info.external_attr = template.external_attr
    return info


def _write_archive(entries: Dict[str, bytes], infos: Dict[str, Optional[zipfile.ZipInfo]]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as dst_zf:
        for name, content in entries.items():
            dst_zf.writestr(_entry_info(name, infos.get(name)), content)
    return buffer.getvalue()


def create_3mf(base_job, combined_gcode: str, jobs: Sequence) -> bytes:
    """Create a new 3MF from the base job's archive with the combined G-code.

    Entries keep their source timestamps and compression, so the same inputs
    always produce byte-identical output.

    Args:
        base_job: PrintJob whose source archive is used as the template
        combined_gcode: Output of combine_gcode()
        jobs: All queued jobs, used for the filament totals

    Returns:
        The serialized 3MF archive

    Raises:
        PackagingError: If the base archive cannot be read or the output cannot be written
    """
    try:
        entries, infos = read_entries(base_job.source_archive)
    except Exception as e:
        logger.error(f"Failed to read base archive {base_job.filename}: {e}")
        raise PackagingError(f"Could not read base archive {base_job.filename}: {e}") from e

    totals = calculate_total_filament(jobs)
    updated_slice_info = update_slice_info(base_job.slice_info_xml, totals.total_grams, totals.total_meters)
    gcode_hash = gcode_checksum(combined_gcode)

    # Reuse the source's spelling of each entry so a case variant is replaced, not duplicated.
    gcode_name = find_entry(entries, *GCODE_ENTRY_CANDIDATES) or GCODE_ENTRY
    md5_name = find_entry(entries, GCODE_MD5_ENTRY, GCODE_MD5_ENTRY.lower()) or f"{gcode_name}.md5"
    slice_info_name = find_entry(entries, *SLICE_INFO_ENTRY_CANDIDATES) or SLICE_INFO_ENTRY

    overlay = {
        gcode_name: combined_gcode.encode("utf-8"),
        md5_name: gcode_hash.encode("ascii"),
        slice_info_name: updated_slice_info.encode("utf-8"),
    }

    output_entries = dict(entries)
    output_infos: Dict[str, Optional[zipfile.ZipInfo]] = dict(infos)
    for name, content in overlay.items():
        output_entries[name] = content
        output_infos.setdefault(name, infos.get(gcode_name))

    try:
        archive = _write_archive(output_entries, output_infos)
    except Exception as e:
        logger.error(f"Failed to write combined 3MF: {e}")
        raise PackagingError(f"Could not write combined 3MF: {e}") from e

    logger.info(
        f"Packaged 3MF from {base_job.filename}: {len(output_entries)} entries, "
        f"{totals.total_grams:.2f}g / {totals.total_meters:.2f}m, md5 {gcode_hash}"
    )
    return archive


def process_jobs(jobs: Sequence, swap_sequence: str) -> bytes:
    """Combine all queued jobs into one 3MF, using the first job as the base.

    Raises:
        EmptyQueueError: If no jobs are given
        MarkerNotFoundError: If any job's G-code lacks the marker
        PackagingError: If the output archive cannot be written
    """
    snapshot: List = list(jobs)
    if not snapshot:
        raise EmptyQueueError("No jobs to process")

    started = time.monotonic()
    combined_gcode = combine_gcode(snapshot, swap_sequence)
    archive = create_3mf(snapshot[0], combined_gcode, snapshot)

    total_copies = sum(max(job.copies, 0) for job in snapshot)
    logger.info(
        f"Combined {len(snapshot)} job(s), {total_copies} plate(s): "
        f"{len(combined_gcode) / 1024:.0f} KB G-code, {len(archive) / 1024:.0f} KB 3MF "
        f"in {time.monotonic() - started:.2f}s"
    )
    return archive
