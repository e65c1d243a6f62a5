"""Builders for in-memory Bambu-style 3MF archives used across the tests."""

import io
import zipfile
from typing import Dict, Optional

from PIL import Image


def make_gcode(
    model_time: str = "5m 0s",
    weight_g: float = 5.0,
    length_mm: float = 1000.0,
    layers: int = 50,
    max_z: float = 10.0,
    body: str = "G28\nG1 X10 Y10 Z0.2 F3000\nG1 X20 E1.5\n",
    marker: bool = True,
) -> str:
    header = (
        "; HEADER_BLOCK_START\n"
        "; BambuStudio 01.09.00.70\n"
        f"; model printing time: {model_time}; total estimated time: {model_time}\n"
        f"; total layer number: {layers}\n"
        f"; total filament length [mm] : {length_mm:.2f}\n"
        f"; total filament weight [g] : {weight_g:.2f}\n"
        f"; max_z_height: {max_z:.2f}\n"
        "; HEADER_BLOCK_END\n"
    )
    footer = "; EXECUTABLE_BLOCK_END\n\n" if marker else ""
    return header + body + footer


def make_slice_info(used_g: float = 5.0, used_m: float = 1.0) -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        "<config>\n"
        "  <header>\n"
        '    <header_item key="X-BBL-Client-Type" value="slicer"/>\n'
        "  </header>\n"
        "  <plate>\n"
        '    <metadata key="index" value="1"/>\n'
        f'    <filament id="1" type="PLA" color="#FFFFFF" used_m="{used_m:.2f}" used_g="{used_g:.2f}" />\n'
        "  </plate>\n"
        "</config>\n"
    )


def make_png(size=(16, 16), color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def make_3mf(
    gcode: Optional[str] = None,
    slice_info: Optional[str] = None,
    thumbnail: Optional[bytes] = None,
    gcode_entry: str = "Metadata/plate_1.gcode",
    extra: Optional[Dict[str, bytes]] = None,
    compression: int = zipfile.ZIP_DEFLATED,
) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression) as zf:
        zf.writestr("[Content_Types].xml", '<?xml version="1.0"?><Types/>')
        zf.writestr("3D/3dmodel.model", '<?xml version="1.0"?><model/>')
        if gcode is not None:
            zf.writestr(gcode_entry, gcode)
            zf.writestr(f"{gcode_entry}.md5", "0" * 32)
        if slice_info is not None:
            zf.writestr("Metadata/slice_info.config", slice_info)
        if thumbnail is not None:
            zf.writestr("Metadata/plate_1.png", thumbnail)
        for name, content in (extra or {}).items():
            zf.writestr(name, content)
    return buffer.getvalue()


def read_zip(data: bytes) -> Dict[str, bytes]:
    with zipfile.ZipFile(io.BytesIO(data), "r") as zf:
        return {name: zf.read(name) for name in zf.namelist()}


def make_job(
    filename: str = "cube.3mf",
    copies: int = 1,
    model_time: str = "5m 0s",
    used_g: float = 5.0,
    used_m: float = 1.0,
    gcode: Optional[str] = None,
    thumbnail: bool = True,
):
    """Build a PrintJob through the real ingestion path."""
    from print_job import parse_3mf

    if gcode is None:
        gcode = make_gcode(model_time=model_time, weight_g=used_g, length_mm=used_m * 1000)
    archive = make_3mf(
        gcode=gcode,
        slice_info=make_slice_info(used_g=used_g, used_m=used_m),
        thumbnail=make_png() if thumbnail else None,
    )
    job = parse_3mf(archive, filename)
    job.copies = copies
    return job
