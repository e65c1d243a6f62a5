"""
Tests for 3MF ingestion and preview image handling.
"""

import pytest

from errors import IngestError
from gcode_parser import FilamentUsage
from helpers import make_3mf, make_gcode, make_png, make_slice_info
from print_job import PreviewImage, job_name_from_filename, parse_3mf, release_job


class TestParse3mf:
    def test_parses_complete_archive(self):
        gcode = make_gcode(model_time="10m 0s", layers=42, max_z=12.5)
        archive = make_3mf(gcode=gcode, slice_info=make_slice_info(used_g=6.53, used_m=2.06), thumbnail=make_png())

        job = parse_3mf(archive, "Benchy.3mf")

        assert job.name == "Benchy"
        assert job.filename == "Benchy.3mf"
        assert job.copies == 1
        assert job.gcode == gcode
        assert job.metadata.print_time_seconds == 600
        assert job.metadata.layer_count == 42
        assert job.metadata.max_z_height == 12.5
        assert job.usage == FilamentUsage(used_g=6.53, used_m=2.06)
        assert job.source_archive == archive
        assert job.thumbnail is not None
        assert job.thumbnail.media_type == "image/png"

    def test_unique_ids(self):
        archive = make_3mf(gcode=make_gcode(), slice_info=make_slice_info())
        ids = {parse_3mf(archive, "a.3mf").id for _ in range(20)}
        assert len(ids) == 20

    def test_case_insensitive_entry_lookup(self):
        archive = make_3mf(gcode=make_gcode(), slice_info=make_slice_info(), gcode_entry="METADATA/plate_1.gcode")
        job = parse_3mf(archive, "upper.3mf")
        assert job.metadata.print_time_seconds == 300

    def test_missing_slice_info_reads_zero_usage(self):
        job = parse_3mf(make_3mf(gcode=make_gcode()), "bare.3mf")
        assert job.slice_info_xml == ""
        assert job.usage == FilamentUsage()
        assert job.thumbnail is None

    def test_missing_gcode(self):
        archive = make_3mf(gcode=None, slice_info=make_slice_info())

        with pytest.raises(IngestError) as exc_info:
            parse_3mf(archive, "unsliced.3mf")

        assert exc_info.value.filename == "unsliced.3mf"
        assert exc_info.value.entry == "Metadata/plate_1.gcode"
        assert "unsliced.3mf" in str(exc_info.value)

    def test_corrupt_archive(self):
        with pytest.raises(IngestError) as exc_info:
            parse_3mf(b"PK\x03\x04 truncated", "broken.3mf")
        assert exc_info.value.filename == "broken.3mf"
        assert exc_info.value.entry is None

    def test_multi_plate_rejected(self):
        archive = make_3mf(
            gcode=make_gcode(),
            slice_info=make_slice_info(),
            extra={"Metadata/plate_2.gcode": make_gcode().encode("utf-8")},
        )
        with pytest.raises(IngestError, match="multi-plate"):
            parse_3mf(archive, "two_plates.3mf")

    def test_to_dict(self):
        job = parse_3mf(make_3mf(gcode=make_gcode(), slice_info=make_slice_info(), thumbnail=make_png()), "a.3mf")
        data = job.to_dict()
        assert data["name"] == "a"
        assert data["has_thumbnail"] is True
        assert data["metadata"]["print_time_seconds"] == 300
        assert "gcode" not in data


def test_job_name_from_filename():
    assert job_name_from_filename("Cube.3MF") == "Cube"
    assert job_name_from_filename("part.gcode.3mf") == "part.gcode"
    assert job_name_from_filename("noext") == "noext"


class TestPreviewImage:
    def test_probes_png(self):
        preview = PreviewImage(make_png(size=(32, 24)), "Metadata/plate_1.png")
        assert preview.format == "PNG"
        assert preview.size == (32, 24)
        assert preview.media_type == "image/png"

    def test_unrecognized_bytes_fall_back_to_extension(self):
        preview = PreviewImage(b"not an image", "Metadata/plate_1.png")
        assert preview.format is None
        assert preview.media_type == "image/png"
        assert preview.data == b"not an image"

    def test_release_is_idempotent(self):
        preview = PreviewImage(make_png(), "Metadata/plate_1.png")

        preview.release()
        preview.release()

        assert preview.released
        with pytest.raises(RuntimeError):
            _ = preview.data

    def test_release_job(self):
        job = parse_3mf(make_3mf(gcode=make_gcode(), thumbnail=make_png()), "a.3mf")
        release_job(job)
        release_job(job)
        assert job.thumbnail.released
        assert job.to_dict()["has_thumbnail"] is False

    def test_release_job_without_preview(self):
        job = parse_3mf(make_3mf(gcode=make_gcode()), "a.3mf")
        release_job(job)
