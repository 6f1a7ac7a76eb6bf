"""Shared fixtures for the drawer_export test suite.

Raster sources are real (tiny) images written with Pillow; the database and
the poppler-backed PDF engine are replaced by in-memory fakes.
"""

from __future__ import annotations

import logging
import sys
import threading
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest
from PIL import Image

from drawer_export.config import build_encoder
from drawer_export.renderer import PageRenderer, PdfDocumentHandle, PdfEngine
from drawer_export.source import RecordSource
from drawer_export.types import (
    DrawerInfo,
    ExportConfig,
    FolderRecord,
    Page,
    PageKind,
    RasterFormat,
)

logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stderr,
    force=True,
)


def write_image(path: Path, fmt: str = "TIFF", size: Tuple[int, int] = (8, 6), mode: str = "RGB") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    color = (10, 120, 200, 255)[: len(mode)] if mode in ("RGB", "RGBA") else 128
    Image.new(mode, size, color).save(str(path), format=fmt)
    return path


def raster_page(path: Path, position: int, fmt: RasterFormat = RasterFormat.TIFF) -> Page:
    return Page(file_location=str(path), kind=PageKind.RASTER_IMAGE, position=position, raster_format=fmt)


def pdf_page(path: str, position: int) -> Page:
    return Page(file_location=path, kind=PageKind.PDF, position=position)


class FakePdfDocument(PdfDocumentHandle):
    def __init__(self, engine: "FakePdfEngine", path: str, sizes: List[Tuple[float, float]]) -> None:
        self.engine = engine
        self.path = path
        self.sizes = sizes
        self.page_count = len(sizes)
        self.closed = False

    def page_size(self, index: int) -> Tuple[float, float]:
        return self.sizes[index]

    def render_page(self, index, width_px, height_px, dpi_x, dpi_y):
        self.engine.render_calls.append((self.path, index, width_px, height_px, dpi_x, dpi_y))
        if (self.path, index) in self.engine.failing_pages:
            raise RuntimeError(f"rasterization failed on page {index + 1}")
        return Image.new("RGB", (width_px, height_px), (255, 255, 255))

    def close(self) -> None:
        self.closed = True


class FakePdfEngine(PdfEngine):
    """PDF engine keyed by path: each document is a list of page sizes in points."""

    def __init__(self, documents: Optional[Dict[str, List[Tuple[float, float]]]] = None) -> None:
        self.documents = dict(documents or {})
        self.failing_pages: set = set()
        self.render_calls: list = []
        self.opened: List[FakePdfDocument] = []

    def open(self, path: str) -> PdfDocumentHandle:
        if path not in self.documents:
            raise ValueError(f"not a PDF: {path}")
        doc = FakePdfDocument(self, path, self.documents[path])
        self.opened.append(doc)
        return doc


class FakeSource(RecordSource):
    def __init__(
        self,
        records: List[Tuple[str, str, List[Page]]],
        drawer: Optional[DrawerInfo] = DrawerInfo(id=7, name="Invoices"),
        fail_retrieve: bool = False,
    ) -> None:
        self._records = records
        self._pages = {folder_id: pages for folder_id, _, pages in records}
        self.drawer = drawer
        self.fail_retrieve = fail_retrieve
        self.failing_folders: set = set()
        self.closed = False
        self.get_pages_threads: set = set()
        self.gate: Optional[threading.Event] = None

    def retrieve_records(self) -> List[FolderRecord]:
        if self.gate is not None:
            self.gate.wait(5)
        if self.fail_retrieve:
            raise ConnectionError("database unreachable")
        return [FolderRecord(folder_id=fid, delimited_index=key) for fid, key, _ in self._records]

    def get_pages(self, folder_id: str) -> List[Page]:
        self.get_pages_threads.add(threading.get_ident())
        if folder_id in self.failing_folders:
            raise RuntimeError("page query failed")
        return list(self._pages.get(folder_id, []))

    def active_drawer(self) -> Optional[DrawerInfo]:
        return self.drawer

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def export_config() -> ExportConfig:
    return ExportConfig(encoder=build_encoder("TIFF", "tiff_lzw"))


@pytest.fixture
def pdf_engine() -> FakePdfEngine:
    return FakePdfEngine()


@pytest.fixture
def renderer(export_config, pdf_engine) -> PageRenderer:
    return PageRenderer(export_config, pdf_engine=pdf_engine)


@pytest.fixture
def scans(tmp_path: Path) -> Path:
    """Directory of source scans, one per supported format plus a bogus file."""
    d = tmp_path / "scans"
    write_image(d / "a.tif", "TIFF")
    write_image(d / "b.jpg", "JPEG")
    write_image(d / "c.bmp", "BMP")
    write_image(d / "d.png", "PNG", mode="RGBA")
    (d / "e.gif").write_bytes(b"GIF89a-not-really")
    return d


@pytest.fixture
def dest(tmp_path: Path) -> Path:
    return tmp_path / "export"
