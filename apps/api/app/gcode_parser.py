"""Read print statistics out of Bambu-style G-code and slice_info.config.

Both parsers are tolerant: every field is matched independently and a field
that is missing (or unparsable) reads as zero instead of failing the job.
"""

import re
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

# ; total estimated time: 1h 21m 13s  /  ; model printing time: 13m 59s
PRINT_TIME_RE = re.compile(
    r';\s*(?:total estimated time|model printing time):\s*(?:(\d+)h\s*)?(\d+)m\s*(\d+)s',
    re.IGNORECASE,
)
FILAMENT_WEIGHT_RE = re.compile(r';\s*total filament weight \[g\]\s*:\s*([\d.]+)', re.IGNORECASE)
FILAMENT_LENGTH_RE = re.compile(r';\s*total filament length \[mm\]\s*:\s*([\d.]+)', re.IGNORECASE)
LAYER_COUNT_RE = re.compile(r';\s*total layer number:\s*(\d+)', re.IGNORECASE)
MAX_Z_HEIGHT_RE = re.compile(r';\s*max_z_height:\s*([\d.]+)', re.IGNORECASE)

# <filament id="1" ... used_m="2.06" used_g="6.53" />
USED_G_RE = re.compile(r'used_g="([\d.]+)"')
USED_M_RE = re.compile(r'used_m="([\d.]+)"')


@dataclass(frozen=True)
class GcodeMetadata:
    """Print statistics taken from the G-code header comments."""
    print_time_seconds: int = 0
    filament_weight_grams: float = 0.0
    filament_length_mm: float = 0.0
    layer_count: int = 0
    max_z_height: float = 0.0

    def to_dict(self):
        return {
            "print_time_seconds": self.print_time_seconds,
            "filament_weight_grams": self.filament_weight_grams,
            "filament_length_mm": self.filament_length_mm,
            "layer_count": self.layer_count,
            "max_z_height": self.max_z_height,
        }


@dataclass(frozen=True)
class FilamentUsage:
    """Filament usage as recorded in slice_info.config (grams, meters)."""
    used_g: float = 0.0
    used_m: float = 0.0


def _as_float(value: Optional[str]) -> float:
    try:
        return float(value) if value else 0.0
    except ValueError:
        return 0.0


def _as_int(value: Optional[str]) -> int:
    try:
        return int(value) if value else 0
    except ValueError:
        return 0


def _first_group(pattern: re.Pattern, text: str) -> Optional[str]:
    match = pattern.search(text)
    return match.group(1) if match else None


def parse_gcode_metadata(gcode: str) -> GcodeMetadata:
    """Parse G-code header comments into GcodeMetadata. Never raises."""
    print_time_seconds = 0
    time_match = PRINT_TIME_RE.search(gcode)
    if time_match:
        hours = _as_int(time_match.group(1))
        minutes = _as_int(time_match.group(2))
        seconds = _as_int(time_match.group(3))
        print_time_seconds = hours * 3600 + minutes * 60 + seconds

    metadata = GcodeMetadata(
        print_time_seconds=print_time_seconds,
        filament_weight_grams=_as_float(_first_group(FILAMENT_WEIGHT_RE, gcode)),
        filament_length_mm=_as_float(_first_group(FILAMENT_LENGTH_RE, gcode)),
        layer_count=_as_int(_first_group(LAYER_COUNT_RE, gcode)),
        max_z_height=_as_float(_first_group(MAX_Z_HEIGHT_RE, gcode)),
    )

    missing = [name for name, value in metadata.to_dict().items() if not value]
    if missing:
        logger.debug(f"G-code header fields not found, defaulting to 0: {', '.join(missing)}")

    return metadata


def parse_slice_info(xml: str) -> FilamentUsage:
    """Read used_g / used_m from slice_info.config text."""
    if not xml:
        return FilamentUsage()

    return FilamentUsage(
        used_g=_as_float(_first_group(USED_G_RE, xml)),
        used_m=_as_float(_first_group(USED_M_RE, xml)),
    )


def update_slice_info(xml: str, total_used_g: float, total_used_m: float) -> str:
    """Rewrite the used_g / used_m values in place, keeping all other text intact."""
    updated, g_count = USED_G_RE.subn(lambda m: f'used_g="{total_used_g:.2f}"', xml, count=1)
    updated, m_count = USED_M_RE.subn(lambda m: f'used_m="{total_used_m:.2f}"', updated, count=1)

    if not g_count or not m_count:
        logger.warning(
            f"slice_info.config template is missing usage attributes "
            f"(used_g: {bool(g_count)}, used_m: {bool(m_count)})"
        )

    return updated
