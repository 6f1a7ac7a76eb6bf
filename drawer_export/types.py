from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional


class PageKind(str, Enum):
    RASTER_IMAGE = "image"
    PDF = "pdf"


class RasterFormat(str, Enum):
    TIFF = "tiff"
    JPEG = "jpeg"
    BMP = "bmp"
    PNG = "png"
    UNSUPPORTED = "unsupported"


SUPPORTED_RASTER_FORMATS = frozenset(
    {RasterFormat.TIFF, RasterFormat.JPEG, RasterFormat.BMP, RasterFormat.PNG}
)


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Page:
    """Une page source d'un dossier : image raster ou PDF (éventuellement multi-pages)."""
    file_location: str
    kind: PageKind
    position: int                                   # 1-based, la position 1 porte la clé d'index
    raster_format: RasterFormat = RasterFormat.UNSUPPORTED   # significatif seulement pour RASTER_IMAGE


@dataclass
class FolderRecord:
    folder_id: str
    delimited_index: str
    pages: List[Page] = field(default_factory=list)


@dataclass(frozen=True)
class DrawerInfo:
    id: Any
    name: str


@dataclass
class EncoderConfig:
    """Réglages du codec de sortie, transmis tels quels à Pillow."""
    format: str = "TIFF"
    extension: str = ".tif"
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ExportConfig:
    """Configuration de haut niveau pour exécuter un export."""
    encoder: EncoderConfig = field(default_factory=EncoderConfig)
    pdf_dpi: int = 600
    points_per_pixel: float = 0.24
    start_sequence: int = 1


@dataclass
class ExportPaths:
    """Regroupe les chemins produits sous le dossier de destination."""
    destination: Path
    images_dir: Path
    index_path: Path
    error_log_path: Path
    summary_path: Path


@dataclass
class RenderOutcome:
    produced: List[Path] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ProgressUpdate:
    processed: int
    total: int
    success_count: int
    failure_count: int
    percentage: int


@dataclass
class ExportSummary:
    total_records: int
    success_count: int
    failure_count: int
    started_at: datetime
    finished_at: datetime
    destination: str
    drawer: Optional[DrawerInfo] = None
    state: RunState = RunState.COMPLETED
