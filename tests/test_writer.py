from __future__ import annotations

import pytest

from drawer_export.errors import ExportSetupError
from drawer_export.writer import IndexWriter


def test_write_line_format(tmp_path):
    index_path = tmp_path / "import.txt"
    img = tmp_path / "Images" / "0001.tif"
    with IndexWriter(index_path) as writer:
        writer.write_line("INV|2020|001", img)
        writer.write_line(None, tmp_path / "Images" / "0002.tif")
        writer.write_line("", tmp_path / "Images" / "0003.tif")
        assert writer.lines_written == 3

    lines = index_path.read_text(encoding="utf-8").splitlines()
    assert lines == [
        f"INV|2020|001@{img}",
        f"@{tmp_path / 'Images' / '0002.tif'}",
        f"@{tmp_path / 'Images' / '0003.tif'}",
    ]


def test_index_is_appended_across_runs(tmp_path):
    index_path = tmp_path / "import.txt"
    with IndexWriter(index_path) as writer:
        writer.write_line("A", tmp_path / "0001.tif")
    with IndexWriter(index_path) as writer:
        writer.write_line("B", tmp_path / "0002.tif")
    assert len(index_path.read_text(encoding="utf-8").splitlines()) == 2


def test_write_before_open_raises(tmp_path):
    writer = IndexWriter(tmp_path / "import.txt")
    with pytest.raises(RuntimeError):
        writer.write_line("A", tmp_path / "0001.tif")


def test_open_failure_is_a_setup_error(tmp_path):
    (tmp_path / "import.txt").mkdir()
    with pytest.raises(ExportSetupError):
        IndexWriter(tmp_path / "import.txt").open()


def test_reopening_keeps_the_same_stream(tmp_path):
    writer = IndexWriter(tmp_path / "import.txt").open()
    stream = writer._stream
    with writer:
        assert writer._stream is stream
        writer.write_line("A", tmp_path / "0001.tif")
    assert writer._stream is None
    assert stream.closed
