import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pdf2image import convert_from_path, pdfinfo_from_path
from PIL import Image

from .errors import RenderError
from .storage import SequenceAllocator
from .types import (
    SUPPORTED_RASTER_FORMATS,
    EncoderConfig,
    ExportConfig,
    Page,
    PageKind,
    RenderOutcome,
)

logger = logging.getLogger(__name__)

_PAGE_SIZE_KEY = re.compile(r"^Page\s+(\d+)\s+size$")
_PAGE_SIZE_VALUE = re.compile(r"([\d.]+)\s*x\s*([\d.]+)\s*pts")


class ImageCodec:
    def load(self, path: str) -> Image.Image:
        raise NotImplementedError

    def encode(self, image: Image.Image, dest: Path, encoder: EncoderConfig) -> None:
        raise NotImplementedError


class PillowCodec(ImageCodec):
    def load(self, path: str) -> Image.Image:
        # Seule la première frame d'un TIFF multi-pages est conservée
        with Image.open(path) as img:
            img.load()
            return img.copy()

    def encode(self, image: Image.Image, dest: Path, encoder: EncoderConfig) -> None:
        if encoder.format == "JPEG" and image.mode not in ("RGB", "L", "CMYK"):
            image = image.convert("RGB")
        image.save(str(dest), format=encoder.format, **encoder.params)


class PdfDocumentHandle:
    page_count: int = 0

    def page_size(self, index: int) -> Tuple[float, float]:
        """Taille physique de la page `index` (0-based), en points."""
        raise NotImplementedError

    def render_page(self, index: int, width_px: int, height_px: int, dpi_x: int, dpi_y: int) -> Image.Image:
        raise NotImplementedError

    def close(self) -> None:
        pass


class PdfEngine:
    def open(self, path: str) -> PdfDocumentHandle:
        raise NotImplementedError


def parse_page_sizes(info: Dict[str, object], page_count: int) -> List[Tuple[float, float]]:
    """
    Extrait les tailles de pages d'une sortie `pdfinfo -f 1 -l N`.

    Avec -f/-l, poppler écrit une ligne `Page    3 size: 612 x 792 pts` par page ;
    sans, une seule ligne `Page size` valable pour la première page.
    """
    sizes: Dict[int, Tuple[float, float]] = {}
    default: Optional[Tuple[float, float]] = None
    for key, value in info.items():
        m = _PAGE_SIZE_VALUE.search(str(value))
        if not m:
            continue
        size = (float(m.group(1)), float(m.group(2)))
        if key == "Page size":
            default = size
            continue
        k = _PAGE_SIZE_KEY.match(key)
        if k:
            sizes[int(k.group(1))] = size

    result: List[Tuple[float, float]] = []
    for number in range(1, page_count + 1):
        size = sizes.get(number, default)
        if size is None:
            raise RenderError(f"Taille introuvable pour la page {number}")
        result.append(size)
    return result


class PopplerPdfDocument(PdfDocumentHandle):
    def __init__(self, path: str, page_sizes: List[Tuple[float, float]], poppler_path: Optional[str] = None) -> None:
        self.path = path
        self.page_count = len(page_sizes)
        self._page_sizes = page_sizes
        self._poppler_path = poppler_path

    def page_size(self, index: int) -> Tuple[float, float]:
        return self._page_sizes[index]

    def render_page(self, index: int, width_px: int, height_px: int, dpi_x: int, dpi_y: int) -> Image.Image:
        # pdftoppm n'accepte qu'une résolution : dpi_y suit dpi_x
        images = convert_from_path(
            self.path,
            dpi=dpi_x,
            first_page=index + 1,
            last_page=index + 1,
            size=(width_px, height_px),
            poppler_path=self._poppler_path,
        )
        if not images:
            raise RenderError(f"Aucune image produite pour la page {index + 1} de {self.path}")
        return images[0]


class PopplerPdfEngine(PdfEngine):
    """Moteur PDF basé sur pdf2image (outils poppler `pdfinfo` / `pdftoppm`)."""

    def __init__(self, poppler_path: Optional[str] = None) -> None:
        self.poppler_path = poppler_path

    def open(self, path: str) -> PdfDocumentHandle:
        info = pdfinfo_from_path(path, poppler_path=self.poppler_path)
        page_count = int(info["Pages"])
        if page_count > 0:
            info = pdfinfo_from_path(path, poppler_path=self.poppler_path, first_page=1, last_page=page_count)
        return PopplerPdfDocument(path, parse_page_sizes(info, page_count), self.poppler_path)


def _describe(page: Page) -> str:
    return f"{page.raster_format.value} : {page.kind.value} : {page.file_location}"


class PageRenderer:
    """
    Convertit une page source en un ou plusieurs fichiers raster numérotés.

    - Image raster (TIFF/JPEG/BMP/PNG) : ré-encodage vers un seul emplacement.
    - PDF : chaque page interne est rastérisée puis écrite dans son propre
      emplacement, demandé à l'allocateur page par page.

    Les échecs sont capturés par page (ou page interne) et remontés dans
    `RenderOutcome.errors` ; ils n'interrompent jamais le dossier.
    """

    def __init__(
        self,
        config: ExportConfig,
        codec: Optional[ImageCodec] = None,
        pdf_engine: Optional[PdfEngine] = None,
    ) -> None:
        self.config = config
        self.codec = codec or PillowCodec()
        self.pdf_engine = pdf_engine or PopplerPdfEngine()

    def render(self, page: Page, allocator: SequenceAllocator) -> RenderOutcome:
        if page.kind == PageKind.RASTER_IMAGE:
            return self._render_raster(page, allocator)
        if page.kind == PageKind.PDF:
            return self._render_pdf(page, allocator)
        return RenderOutcome(errors=[f"Invalid Image or Format Type {{ {_describe(page)} }}"])

    def _write(self, image: Image.Image, allocator: SequenceAllocator) -> Path:
        path, sequence = allocator.reserve()
        try:
            self.codec.encode(image, path, self.config.encoder)
        except Exception as e:
            # L'emplacement était libre avant l'écriture : on retire le fichier partiel
            if path.exists():
                path.unlink()
            raise RenderError(f"Écriture impossible de {path}: {e}") from e
        allocator.commit(sequence)
        logger.debug("Écrit %s", path)
        return path

    def _render_raster(self, page: Page, allocator: SequenceAllocator) -> RenderOutcome:
        outcome = RenderOutcome()
        if page.raster_format not in SUPPORTED_RASTER_FORMATS:
            outcome.errors.append(f"Invalid Image or Format Type {{ {_describe(page)} }}")
            return outcome
        try:
            image = self.codec.load(page.file_location)
            try:
                outcome.produced.append(self._write(image, allocator))
            finally:
                image.close()
        except Exception as e:
            outcome.errors.append(f"Image export failed {{ {_describe(page)} }}: {e}")
        return outcome

    def _render_pdf(self, page: Page, allocator: SequenceAllocator) -> RenderOutcome:
        outcome = RenderOutcome()
        try:
            doc = self.pdf_engine.open(page.file_location)
        except Exception as e:
            outcome.errors.append(f"Unreadable PDF {{ {page.file_location} }}: {e}")
            return outcome

        try:
            if doc.page_count == 0:
                outcome.errors.append(f"PDF without pages {{ {page.file_location} }}")
            dpi = self.config.pdf_dpi
            for index in range(doc.page_count):
                try:
                    width_pt, height_pt = doc.page_size(index)
                    width_px = int(width_pt / self.config.points_per_pixel)
                    height_px = int(height_pt / self.config.points_per_pixel)
                    image = doc.render_page(index, width_px, height_px, dpi, dpi)
                    try:
                        outcome.produced.append(self._write(image, allocator))
                    finally:
                        image.close()
                except Exception as e:
                    outcome.errors.append(
                        f"PDF page export failed {{ {page.file_location} : page {index + 1} }}: {e}"
                    )
        finally:
            doc.close()
        return outcome
