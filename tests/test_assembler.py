# =============================================================================
# SHAPEPORT ASSEMBLER TESTS
# =============================================================================
# Tests for archive naming and the shared archive sink.
# =============================================================================

from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import read_zip
from shapeport.core.assembler import ArchiveSink, config_tag, entry_name, render_value
from shapeport.core.errors import DuplicateEntryError, ExportError
from shapeport.domain.models import ArchiveEntry, ConfigParameter, ExportFormat


class TestConfigTag:
    """Test human-readable combination tags."""

    def test_unit_is_not_part_of_tag(self, width_param):
        assert config_tag([width_param], (50,)) == "Width = 50"

    def test_multiple_parameters(self, width_param):
        size = ConfigParameter(key="Size", keyDisplay="Size", values=["_500_mm"])
        assert config_tag([width_param, size], (50, "_500_mm")) == "Width = 50 | Size = _500_mm"

    def test_empty_combination(self):
        assert config_tag([], ()) == ""

    def test_integral_float_rendered_as_int(self):
        assert render_value(50.0) == "50"
        assert render_value(12.5) == "12.5"


class TestEntryName:
    """Test deterministic archive entry names."""

    def test_part_entry(self, make_unit):
        assert entry_name(make_unit()) == "Frame - Bracket.stl"

    def test_container_entry(self, make_unit):
        assert entry_name(make_unit(), container=True) == "Frame - Bracket.zip"

    def test_configured_entry(self, make_unit):
        unit = make_unit(export_format=ExportFormat.STEP, config_tag="Width = 50")
        assert entry_name(unit) == "Frame - Bracket - Width = 50.step"

    def test_combined_entry(self, make_unit):
        assert entry_name(make_unit(combine=True)) == "Frame - Combined.stl"

    def test_part_id_used_without_name(self, make_unit):
        assert entry_name(make_unit(part_name=None)) == "Frame - JHD.stl"

    def test_path_separators_replaced(self, make_unit):
        unit = make_unit(studio_name="Frame/Left", part_name="A\\B")
        assert entry_name(unit) == "Frame-Left - A-B.stl"


class TestArchiveSink:
    """Test the shared archive writer."""

    def test_entries_written(self):
        sink = ArchiveSink()
        sink.add(ArchiveEntry(name="a.stl", data=b"one"))
        sink.add(ArchiveEntry(name="b.step", data=b"two"))
        assert len(sink) == 2
        assert read_zip(sink.finalize()) == {"a.stl": b"one", "b.step": b"two"}

    def test_duplicate_name_rejected(self):
        sink = ArchiveSink()
        sink.add(ArchiveEntry(name="a.stl", data=b"one"))
        with pytest.raises(DuplicateEntryError):
            sink.add(ArchiveEntry(name="a.stl", data=b"two"))
        assert sink.names == ["a.stl"]

    def test_empty_archive_is_valid(self):
        assert read_zip(ArchiveSink().finalize()) == {}

    def test_finalize_twice(self):
        sink = ArchiveSink()
        sink.add(ArchiveEntry(name="a.stl", data=b"one"))
        assert sink.finalize() == sink.finalize()

    def test_add_after_finalize_rejected(self):
        sink = ArchiveSink()
        sink.finalize()
        with pytest.raises(ExportError):
            sink.add(ArchiveEntry(name="a.stl", data=b"one"))

    def test_concurrent_adds(self):
        sink = ArchiveSink()
        entries = [ArchiveEntry(name=f"part-{i}.stl", data=bytes([i])) for i in range(50)]
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(sink.add, entries))
        assert len(read_zip(sink.finalize())) == 50
