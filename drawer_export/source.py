import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import SourceConnectionError
from .types import DrawerInfo, FolderRecord, Page, PageKind, RasterFormat

logger = logging.getLogger(__name__)


class RecordSource:
    """
    Source des dossiers d'un tiroir (base d'imagerie, manifeste...).

    Utilisée uniquement depuis le thread de travail de l'export, jamais en parallèle.
    """

    def retrieve_records(self) -> List[FolderRecord]:
        raise NotImplementedError

    def get_pages(self, folder_id: str) -> List[Page]:
        raise NotImplementedError

    def active_drawer(self) -> Optional[DrawerInfo]:
        raise NotImplementedError

    def close(self) -> None:
        pass


_FORMAT_ALIASES = {
    "tif": RasterFormat.TIFF,
    "tiff": RasterFormat.TIFF,
    "jpg": RasterFormat.JPEG,
    "jpeg": RasterFormat.JPEG,
    "bmp": RasterFormat.BMP,
    "png": RasterFormat.PNG,
}


def _parse_page(raw: Dict[str, Any], position: int, base_dir: Path) -> Page:
    location = raw.get("file") or raw.get("location")
    if not location:
        raise SourceConnectionError(f"Page sans fichier dans le manifeste: {raw!r}")
    path = Path(location).expanduser()
    if not path.is_absolute():
        path = base_dir / path

    kind_raw = str(raw.get("type", "")).lower()
    suffix = path.suffix.lower().lstrip(".")
    if kind_raw == "pdf" or (not kind_raw and suffix == "pdf"):
        return Page(file_location=str(path), kind=PageKind.PDF, position=int(raw.get("number", position)))

    fmt_raw = str(raw.get("format") or suffix).lower()
    return Page(
        file_location=str(path),
        kind=PageKind.RASTER_IMAGE,
        position=int(raw.get("number", position)),
        raster_format=_FORMAT_ALIASES.get(fmt_raw, RasterFormat.UNSUPPORTED),
    )


class ManifestRecordSource(RecordSource):
    """
    Source lisant un manifeste JSON décrivant un tiroir :

        {"drawer": {"id": 7, "name": "Factures"},
         "records": [{"folder_id": "F1", "index": "INV|001",
                      "pages": [{"file": "scans/a.tif"}, {"file": "b.pdf", "type": "pdf"}]}]}

    Les chemins relatifs sont résolus depuis le dossier du manifeste. La position
    d'une page suit l'ordre de la liste sauf si un champ `number` est fourni.
    """

    def __init__(self, manifest_path: str) -> None:
        self.manifest_path = Path(manifest_path).expanduser().resolve()
        self._data: Optional[Dict[str, Any]] = None
        self._pages: Dict[str, List[Dict[str, Any]]] = {}

    def _load(self) -> Dict[str, Any]:
        if self._data is not None:
            return self._data
        try:
            data = json.loads(self.manifest_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise SourceConnectionError(f"Manifeste illisible {self.manifest_path}: {e}") from e
        if not isinstance(data, dict) or not isinstance(data.get("records"), list):
            raise SourceConnectionError(f"Manifeste invalide (clé 'records' manquante): {self.manifest_path}")
        self._data = data
        return data

    def retrieve_records(self) -> List[FolderRecord]:
        data = self._load()
        records: List[FolderRecord] = []
        self._pages = {}
        for raw in data["records"]:
            folder_id = str(raw.get("folder_id", ""))
            if not folder_id:
                raise SourceConnectionError(f"Dossier sans folder_id dans le manifeste: {raw!r}")
            self._pages[folder_id] = list(raw.get("pages") or [])
            records.append(FolderRecord(folder_id=folder_id, delimited_index=str(raw.get("index", ""))))
        logger.info("%s dossier(s) lus depuis %s", len(records), self.manifest_path)
        return records

    def get_pages(self, folder_id: str) -> List[Page]:
        base_dir = self.manifest_path.parent
        raw_pages = self._pages.get(folder_id, [])
        return [_parse_page(raw, pos, base_dir) for pos, raw in enumerate(raw_pages, start=1)]

    def active_drawer(self) -> Optional[DrawerInfo]:
        drawer = self._load().get("drawer")
        if not isinstance(drawer, dict):
            return None
        return DrawerInfo(id=drawer.get("id", ""), name=str(drawer.get("name", "")))
