"""Print jobs parsed from uploaded single-plate 3MF files."""

import io
import re
import uuid
import logging
import mimetypes
from dataclasses import dataclass, field
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from archive_3mf import (
    GCODE_ENTRY,
    GCODE_ENTRY_CANDIDATES,
    SLICE_INFO_ENTRY_CANDIDATES,
    THUMBNAIL_ENTRY_CANDIDATES,
    find_entry,
    read_entries,
)
from errors import IngestError
from gcode_parser import FilamentUsage, GcodeMetadata, parse_gcode_metadata, parse_slice_info

logger = logging.getLogger(__name__)

PLATE_GCODE_RE = re.compile(r"^metadata/plate_(\d+)\.gcode$", re.IGNORECASE)


class PreviewImage:
    """Preview image held for a queued job.

    The bytes are owned by the job and dropped by release(), which is safe to
    call any number of times.
    """

    def __init__(self, data: bytes, entry_name: str):
        self.entry_name = entry_name
        self._data: Optional[bytes] = data
        self.format: Optional[str] = None
        self.size: Optional[Tuple[int, int]] = None

        try:
            with Image.open(io.BytesIO(data)) as img:
                self.format = img.format
                self.size = img.size
        except (UnidentifiedImageError, OSError) as e:
            logger.warning(f"Could not identify preview image {entry_name}: {e}")

    @property
    def released(self) -> bool:
        return self._data is None

    @property
    def data(self) -> bytes:
        if self._data is None:
            raise RuntimeError(f"Preview image {self.entry_name} has been released")
        return self._data

    @property
    def media_type(self) -> str:
        if self.format and self.format in Image.MIME:
            return Image.MIME[self.format]
        guessed, _ = mimetypes.guess_type(self.entry_name)
        return guessed or "application/octet-stream"

    def release(self):
        self._data = None


@dataclass
class PrintJob:
    """One queued single-plate print."""
    id: str
    name: str
    filename: str
    gcode: str = field(repr=False)
    slice_info_xml: str = field(repr=False)
    metadata: GcodeMetadata
    usage: FilamentUsage
    source_archive: bytes = field(repr=False)
    thumbnail: Optional[PreviewImage] = field(default=None, repr=False)
    copies: int = 1

    def to_dict(self):
        """Convert to dictionary for JSON response."""
        return {
            "id": self.id,
            "name": self.name,
            "filename": self.filename,
            "copies": self.copies,
            "metadata": self.metadata.to_dict(),
            "usage": {"used_g": self.usage.used_g, "used_m": self.usage.used_m},
            "has_thumbnail": self.thumbnail is not None and not self.thumbnail.released,
        }


def generate_job_id() -> str:
    return uuid.uuid4().hex[:12]


def job_name_from_filename(filename: str) -> str:
    return re.sub(r"\.3mf$", "", filename, flags=re.IGNORECASE)


def parse_3mf(content: bytes, filename: str) -> PrintJob:
    """Parse an uploaded 3MF and extract everything needed to queue it.

    Args:
        content: Raw bytes of the uploaded 3MF
        filename: Original filename, used for the job name and error messages

    Returns:
        PrintJob with one copy

    Raises:
        IngestError: If the archive is unreadable, has no plate G-code or holds several plates
    """
    try:
        entries, _ = read_entries(content)
    except Exception as e:
        raise IngestError(filename, f"not a readable 3MF archive ({e})") from e

    names = list(entries)
    logger.debug(f"Entries in {filename}: {names}")

    plate_gcodes = [n for n in names if PLATE_GCODE_RE.match(n)]
    if len(plate_gcodes) > 1:
        raise IngestError(
            filename,
            f"multi-plate archives are not supported (found {len(plate_gcodes)} plates)",
        )

    gcode_entry = find_entry(names, *GCODE_ENTRY_CANDIDATES)
    if not gcode_entry:
        gcode_like = [n for n in names if "gcode" in n.lower()]
        raise IngestError(
            filename,
            f"No gcode found in 3MF file ({GCODE_ENTRY} missing). Found {len(names)} files, "
            f"gcode matches: {', '.join(gcode_like) or 'none'}",
            entry=GCODE_ENTRY,
        )

    gcode = entries[gcode_entry].decode("utf-8", errors="replace")

    slice_info_entry = find_entry(names, *SLICE_INFO_ENTRY_CANDIDATES)
    slice_info_xml = entries[slice_info_entry].decode("utf-8", errors="replace") if slice_info_entry else ""
    if not slice_info_entry:
        logger.warning(f"{filename} has no slice_info.config; filament usage will read as 0")

    thumbnail = None
    thumbnail_entry = find_entry(names, *THUMBNAIL_ENTRY_CANDIDATES)
    if thumbnail_entry:
        thumbnail = PreviewImage(entries[thumbnail_entry], thumbnail_entry)

    job = PrintJob(
        id=generate_job_id(),
        name=job_name_from_filename(filename),
        filename=filename,
        gcode=gcode,
        slice_info_xml=slice_info_xml,
        metadata=parse_gcode_metadata(gcode),
        usage=parse_slice_info(slice_info_xml),
        source_archive=content,
        thumbnail=thumbnail,
    )

    logger.info(
        f"Parsed {filename}: {job.metadata.print_time_seconds}s, "
        f"{job.metadata.layer_count} layers, {job.usage.used_g:.2f}g"
    )
    return job


def release_job(job: PrintJob):
    """Release the job's preview image. Safe to call more than once."""
    if job.thumbnail is not None:
        job.thumbnail.release()
