from __future__ import annotations

import threading

from drawer_export.orchestrator import ExportListener, ExportPipeline
from drawer_export.types import RasterFormat, RunState

from conftest import FakeSource, raster_page


class EventListener(ExportListener):
    def __init__(self):
        self.progress = []
        self.completed = []
        self.cancelled = []
        self.threads = set()
        self.first_progress = threading.Event()
        self.release = threading.Event()
        self.release.set()

    def on_progress(self, progress):
        self.threads.add(threading.get_ident())
        self.progress.append(progress)
        self.first_progress.set()
        self.release.wait(5)

    def on_completed(self, summary):
        self.threads.add(threading.get_ident())
        self.completed.append(summary)

    def on_cancelled(self, summary):
        self.cancelled.append(summary)


def _source(scans):
    return FakeSource(
        [
            ("A", "KEY-A", [raster_page(scans / "a.tif", 1)]),
            ("B", "KEY-B", [raster_page(scans / "b.jpg", 1, RasterFormat.JPEG)]),
        ]
    )


def test_export_runs_on_worker_thread(export_config, renderer, scans, dest):
    listener = EventListener()
    source = _source(scans)
    pipeline = ExportPipeline(source, export_config, renderer, listener)

    assert pipeline.start_export(str(dest)) is True
    assert pipeline.wait(timeout=10)

    assert pipeline.state == RunState.COMPLETED
    assert len(listener.completed) == 1
    assert pipeline.last_summary is listener.completed[0]
    assert [p.processed for p in listener.progress] == [1, 2]
    main_thread = threading.get_ident()
    assert main_thread not in listener.threads
    assert main_thread not in source.get_pages_threads


def test_second_start_is_rejected_while_running(export_config, renderer, scans, tmp_path):
    source = _source(scans)
    source.gate = threading.Event()
    pipeline = ExportPipeline(source, export_config, renderer, EventListener())

    assert pipeline.start_export(str(tmp_path / "one")) is True
    assert pipeline.is_running
    assert pipeline.start_export(str(tmp_path / "two")) is False

    source.gate.set()
    assert pipeline.wait(timeout=10)
    assert not (tmp_path / "two").exists()

    # once idle, a new run is accepted again
    assert pipeline.start_export(str(tmp_path / "three")) is True
    assert pipeline.wait(timeout=10)
    assert (tmp_path / "three" / "import.txt").exists()


def test_cancel_from_caller(export_config, renderer, scans, dest):
    listener = EventListener()
    listener.release.clear()
    pipeline = ExportPipeline(_source(scans), export_config, renderer, listener)

    assert pipeline.start_export(str(dest))
    assert listener.first_progress.wait(10)
    pipeline.cancel()
    listener.release.set()
    assert pipeline.wait(timeout=10)

    assert pipeline.state == RunState.CANCELLED
    assert len(listener.cancelled) == 1
    assert listener.completed == []
    assert [p.processed for p in listener.progress] == [1]


def test_wait_without_run_returns_immediately(export_config, renderer, scans):
    pipeline = ExportPipeline(_source(scans), export_config, renderer)
    assert pipeline.state == RunState.IDLE
    assert pipeline.wait(timeout=0.1)
