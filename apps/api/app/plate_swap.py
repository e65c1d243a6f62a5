"""Plate swap sequences and their injection into G-code.

The swap sequence ejects the finished plate and loads the next one. It is
inserted right after the ``; EXECUTABLE_BLOCK_END`` marker that closes the
printable part of a Bambu G-code file, so that concatenated jobs run back to
back with a plate change between them.
"""

import logging
from dataclasses import dataclass, asdict
from typing import List, Optional

from errors import MarkerNotFoundError

logger = logging.getLogger(__name__)

EXECUTABLE_BLOCK_END = "; EXECUTABLE_BLOCK_END"

# Fragment every known swap sequence starts with; used to spot already-injected G-code.
SWAP_SEQUENCE_TELLTALE = "G0 X-10"
# The default sequence is ~25 lines, anything shorter after the marker is slicer output.
SWAP_SEQUENCE_MIN_LENGTH = 100

# PlateCycler C1M sequence, kept byte-for-byte with Chitu's formatting (leading spaces included).
DEFAULT_PLATE_SWAP_SEQUENCE = """G0 X-10 F5000;
 G0 Z175;
 G0 Y-5 F2000;
  G0 Y186.5 F2000;
  G0 Y182 F10000;
  G0 Z186 ;
  G0 X180 F5000;
 G0 Y120 F500;
 G0 Y-4 Z175 X-15 F3000;
 G0 Y145;
  G0 Y115 F1000;
 G0 Y25 F500;
 G0 Y85 F1000;
 G0 Y180 F1000;
 G0 X-10 F5000;
 G4 P500; wait
 G0 Y186.5 F200;
 G4 P500; wait
 G0 Y3 F3000;
 G0 Y-5 F200;
G4 P500; wait
 G0 Y10 F1000;
 G0 Z100 Y186 F2000;
 G0 Y150;
 G4 P1000; wait;"""


@dataclass(frozen=True)
class PlateSwapPreset:
    name: str
    description: str
    sequence: str

    def to_dict(self):
        return asdict(self)


BUILTIN_PRESETS: List[PlateSwapPreset] = [
    PlateSwapPreset(
        name="Default (Chitu)",
        description="Standard PlateCycler C1M sequence",
        sequence=DEFAULT_PLATE_SWAP_SEQUENCE,
    ),
]


def find_marker(gcode: str) -> Optional[int]:
    """Return the offset of the first EXECUTABLE_BLOCK_END marker, or None."""
    index = gcode.find(EXECUTABLE_BLOCK_END)
    return index if index != -1 else None


def find_insertion_point(gcode: str) -> int:
    """Return the offset of the line following the marker line.

    Raises:
        MarkerNotFoundError: If the marker is not present
    """
    marker_index = find_marker(gcode)
    if marker_index is None:
        raise MarkerNotFoundError("Could not find EXECUTABLE_BLOCK_END marker in gcode")

    newline_index = gcode.find("\n", marker_index)
    return newline_index + 1 if newline_index != -1 else len(gcode)


def splice(text: str, offset: int, insertion: str) -> str:
    return text[:offset] + insertion + text[offset:]


def has_swap_sequence(
    gcode: str,
    telltale: str = SWAP_SEQUENCE_TELLTALE,
    min_length: int = SWAP_SEQUENCE_MIN_LENGTH,
) -> bool:
    """Check whether a swap sequence already follows the marker."""
    marker_index = find_marker(gcode)
    if marker_index is None:
        return False

    after_marker = gcode[marker_index + len(EXECUTABLE_BLOCK_END):].strip()
    return len(after_marker) > min_length and telltale in after_marker


def ensure_swap_sequence(gcode: str, swap_sequence: str) -> str:
    """Inject the swap sequence after the marker unless one is already there.

    The returned G-code always ends with exactly two newlines so the next
    job's header starts on its own line when streams are concatenated.

    Raises:
        MarkerNotFoundError: If the G-code has no EXECUTABLE_BLOCK_END marker
    """
    insert_point = find_insertion_point(gcode)

    if has_swap_sequence(gcode):
        logger.debug("G-code already carries a swap sequence, normalizing trailing whitespace only")
        return gcode.rstrip() + "\n\n"

    # Bambu G-code usually has one blank line after the marker
    if gcode[insert_point:insert_point + 1] == "\n":
        insert_point += 1
    elif gcode[insert_point:insert_point + 2] == "\r\n":
        insert_point += 2

    insertion = swap_sequence.rstrip() + "\n\n"
    if insert_point == len(gcode) and not gcode.endswith("\n"):
        # Marker is the unterminated last line; the sequence must not land inside the comment.
        insertion = "\n" + insertion

    injected = splice(gcode, insert_point, insertion)

    tail = gcode[insert_point:]
    if not tail.strip():
        return injected[:len(injected) - len(tail)]
    return injected.rstrip() + "\n\n"
