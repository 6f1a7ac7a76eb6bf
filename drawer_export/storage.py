import logging
import os
from datetime import datetime
from pathlib import Path
from typing import List, Tuple

from .errors import ExportSetupError
from .types import ExportPaths, ExportSummary, RunState

logger = logging.getLogger(__name__)

IMAGES_DIR_NAME = "Images"
INDEX_FILE_NAME = "import.txt"
ERROR_LOG_NAME = "ErrorLog.txt"
SUMMARY_LOG_NAME = "export.log"

TIMESTAMP_FORMAT = "%m/%d/%Y %I:%M:%S %p"
BANNER_RULE = "=" * 64


def prepare_paths(destination: str) -> ExportPaths:
    """Crée `Images/` sous la destination et retourne les chemins des artefacts.

    Lève ExportSetupError si le dossier ne peut pas être créé : l'export ne
    doit alors traiter aucun dossier.
    """
    root = Path(destination).expanduser().resolve()
    images_dir = root / IMAGES_DIR_NAME
    try:
        images_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ExportSetupError(f"Impossible de créer {images_dir}: {e}") from e
    return ExportPaths(
        destination=root,
        images_dir=images_dir,
        index_path=root / INDEX_FILE_NAME,
        error_log_path=root / ERROR_LOG_NAME,
        summary_path=root / SUMMARY_LOG_NAME,
    )


def slot_path(base_dir: Path, sequence: int, extension: str) -> Path:
    return base_dir / f"{sequence:04d}{extension}"


def next_free_slot(base_dir: Path, starting_sequence: int, extension: str) -> Tuple[Path, int]:
    """
    Retourne le premier chemin `NNNN<ext>` absent du disque à partir de `starting_sequence`.

    On sonde l'existence plutôt que de faire confiance à un compteur : les fichiers
    d'un export précédent interrompu dans le même dossier sont sautés. Aucun fichier
    n'est créé ici. Un dossier inaccessible propage une OSError.
    """
    if not base_dir.is_dir():
        raise FileNotFoundError(f"Dossier d'images introuvable: {base_dir}")
    sequence = starting_sequence
    candidate = slot_path(base_dir, sequence, extension)
    while candidate.exists():
        sequence += 1
        candidate = slot_path(base_dir, sequence, extension)
    return candidate, sequence


class SequenceAllocator:
    """Distribue les emplacements de sortie d'un export.

    `next_sequence` n'est qu'un indice monotone : `reserve()` sonde toujours le
    disque. Un emplacement n'est consommé que par `commit()`, appelé une fois le
    fichier réellement écrit ; un rendu en échec réutilise donc le même numéro.
    """

    def __init__(self, base_dir: Path, extension: str, start: int = 1) -> None:
        self.base_dir = base_dir
        self.extension = extension
        self.next_sequence = start

    def reserve(self) -> Tuple[Path, int]:
        path, sequence = next_free_slot(self.base_dir, self.next_sequence, self.extension)
        self.next_sequence = sequence
        return path, sequence

    def commit(self, sequence: int) -> None:
        self.next_sequence = max(self.next_sequence, sequence + 1)


class ErrorSink:
    """Journal texte append-only des erreurs par élément (`ErrorLog.txt`)."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def write(self, message: str) -> bool:
        """Ajoute l'erreur au journal ; False si le journal n'a pas pu être écrit.

        Un journal inaccessible ne doit pas interrompre l'export : l'erreur reste
        visible dans les logs et dans le compteur d'échecs.
        """
        logger.warning(message)
        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(message + "\n")
                f.write("\n")
        except OSError as e:
            logger.error("Écriture impossible dans %s: %s", self.path, e)
            return False
        return True


class SummarySink:
    """Écrit le bloc récapitulatif d'un export à la fin de `export.log`."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def write(self, summary: ExportSummary) -> Path:
        with open(self.path, "a", encoding="utf-8") as f:
            f.write("\n".join(format_summary(summary)) + "\n")
            f.flush()
            os.fsync(f.fileno())
        return self.path


def _ts(value: datetime) -> str:
    return value.strftime(TIMESTAMP_FORMAT)


def format_summary(summary: ExportSummary) -> List[str]:
    lines = [
        BANNER_RULE,
        "                    Extraction Information",
        BANNER_RULE,
        "     Extraction Started: " + _ts(summary.started_at),
        "",
    ]
    if summary.drawer is not None:
        lines += [
            f"     Drawer Id: {summary.drawer.id}",
            f"     Drawer Name: {summary.drawer.name}",
            "",
        ]
    lines += [
        "     Export Destination: " + summary.destination,
        "",
        f"     Total Records: {summary.total_records}",
        f"     Total Successful Exports: {summary.success_count}",
    ]
    if summary.failure_count > 0:
        lines.append(f"     Errors: {summary.failure_count}")
    lines.append("")
    if summary.state == RunState.CANCELLED:
        lines.append("     Extraction Cancelled: " + _ts(summary.finished_at))
    else:
        lines.append("     Extraction Completed: " + _ts(summary.finished_at))
    lines += [BANNER_RULE, BANNER_RULE]
    return lines
