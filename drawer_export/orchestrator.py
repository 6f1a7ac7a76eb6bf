import logging
import threading
from datetime import datetime
from typing import Callable, List, Optional

from .accumulator import RunAccumulator
from .config import load_config
from .errors import ExportSetupError
from .renderer import PageRenderer
from .source import RecordSource
from .storage import ErrorSink, SequenceAllocator, SummarySink, prepare_paths
from .types import (
    DrawerInfo,
    ExportConfig,
    ExportSummary,
    FolderRecord,
    Page,
    ProgressUpdate,
    RunState,
)
from .writer import IndexWriter

logger = logging.getLogger(__name__)


class ExportListener:
    """Notifications d'un export. Toutes sont appelées depuis le thread de travail."""

    def on_progress(self, progress: ProgressUpdate) -> None:
        pass

    def on_completed(self, summary: ExportSummary) -> None:
        pass

    def on_aborted(self, reason: str) -> None:
        pass

    def on_cancelled(self, summary: ExportSummary) -> None:
        pass


def _key_position(pages: List[Page]) -> int:
    positions = [p.position for p in pages]
    return 1 if 1 in positions else min(positions)


class ExportOrchestrator:
    """
    Orchestrateur principal : dossiers → pages → fichiers numérotés + import.txt.

    Étapes:
    1. Récupération des dossiers du tiroir (échec → export avorté avant démarrage).
    2. Préparation de la destination : Images/ et import.txt (échec → avorté).
    3. Pour chaque dossier : pages, rendu, lignes d'index, compteurs, progression.
    4. Écriture du récapitulatif dans export.log puis notification de fin.

    Les erreurs d'une page ou d'un dossier sont journalisées dans ErrorLog.txt et
    ne remontent jamais au-delà du dossier en cours.
    """

    def __init__(
        self,
        source: RecordSource,
        config: Optional[ExportConfig] = None,
        renderer: Optional[PageRenderer] = None,
        listener: Optional[ExportListener] = None,
    ) -> None:
        self.source = source
        self.config = config or load_config()
        self.renderer = renderer or PageRenderer(self.config)
        self.listener = listener or ExportListener()
        self.state = RunState.IDLE

    def run(self, destination: str, cancel_event: Optional[threading.Event] = None) -> Optional[ExportSummary]:
        """Exécute un export complet de manière synchrone ; None si l'export est avorté."""
        self.state = RunState.RUNNING
        started_at = datetime.now()
        try:
            return self._run(destination, started_at, cancel_event)
        except Exception as e:
            logger.exception("Échec inattendu de l'export vers %s", destination)
            return self._abort(f"Échec inattendu de l'export: {e}")
        finally:
            try:
                self.source.close()
            except Exception:
                logger.exception("Fermeture de la source impossible")

    def _run(
        self,
        destination: str,
        started_at: datetime,
        cancel_event: Optional[threading.Event],
    ) -> Optional[ExportSummary]:
        try:
            records = list(self.source.retrieve_records() or [])
        except Exception as e:
            return self._abort(f"Connexion à la source impossible: {e}")

        try:
            paths = prepare_paths(destination)
            index = IndexWriter(paths.index_path).open()
        except ExportSetupError as e:
            return self._abort(str(e))

        logger.info("%s dossier(s) à exporter vers %s", len(records), paths.destination)
        acc = RunAccumulator(len(records), started_at)
        allocator = SequenceAllocator(paths.images_dir, self.config.encoder.extension, self.config.start_sequence)
        errors = ErrorSink(paths.error_log_path)
        cancelled = False

        try:
            for pos, record in enumerate(records, start=1):
                if cancel_event is not None and cancel_event.is_set():
                    logger.warning("Export annulé avant le dossier %s sur %s", pos, len(records))
                    cancelled = True
                    break

                logger.info("Export du dossier %s sur %s (%s)", pos, len(records), record.folder_id)
                record.pages = self._fetch_pages(record)
                if not record.pages:
                    acc.exclude_record()
                    errors.write(f"Error Retrieving Images [{record.folder_id}]")
                    continue

                try:
                    self._process_record(record, allocator, index, acc, errors)
                except Exception as e:
                    logger.exception("Échec inattendu sur le dossier %s", record.folder_id)
                    acc.record_outcome(False)
                    errors.write(f"Record export failed [{record.folder_id}]: {e}")
                finally:
                    record.pages = []

                acc.mark_processed()
                self._notify(self.listener.on_progress, acc.progress())
        finally:
            index.close()

        state = RunState.CANCELLED if cancelled else RunState.COMPLETED
        summary = acc.summary(str(paths.destination), self._drawer(), state)
        try:
            SummarySink(paths.summary_path).write(summary)
        except OSError as e:
            return self._abort(f"Écriture de {paths.summary_path} impossible: {e}")

        self.state = state
        logger.info(
            "Export %s: %s dossier(s), %s succès, %s erreur(s)",
            state.value,
            summary.total_records,
            summary.success_count,
            summary.failure_count,
        )
        if cancelled:
            self._notify(self.listener.on_cancelled, summary)
        else:
            self._notify(self.listener.on_completed, summary)
        return summary

    def _fetch_pages(self, record: FolderRecord) -> List[Page]:
        try:
            return list(self.source.get_pages(record.folder_id) or [])
        except Exception:
            logger.exception("Récupération des pages impossible pour %s", record.folder_id)
            return []

    def _process_record(
        self,
        record: FolderRecord,
        allocator: SequenceAllocator,
        index: IndexWriter,
        acc: RunAccumulator,
        errors: ErrorSink,
    ) -> None:
        key_position = _key_position(record.pages)
        # La clé passe à la sortie suivante si la page qui la porte n'a rien produit
        key_pending = False
        key_written = False

        for page in record.pages:
            if page.position == key_position and not key_written:
                key_pending = True

            outcome = self.renderer.render(page, allocator)
            for path in outcome.produced:
                key = None
                if key_pending:
                    key = record.delimited_index
                    key_pending = False
                    key_written = True
                index.write_line(key, path)
                acc.record_outcome(True)
            for message in outcome.errors:
                acc.record_outcome(False)
                errors.write(f"[{record.folder_id}] {message}")

    def _drawer(self) -> Optional[DrawerInfo]:
        try:
            return self.source.active_drawer()
        except Exception:
            logger.exception("Informations du tiroir indisponibles")
            return None

    def _abort(self, reason: str) -> None:
        logger.error("Export avorté: %s", reason)
        self.state = RunState.ABORTED
        self._notify(self.listener.on_aborted, reason)
        return None

    @staticmethod
    def _notify(callback: Callable, payload) -> None:
        try:
            callback(payload)
        except Exception:
            logger.exception("Erreur dans le listener d'export")


class ExportPipeline:
    """
    Lance les exports sur un thread dédié, un seul à la fois.

    `start_export` ne bloque jamais l'appelant : il retourne False si un export
    est déjà en cours. L'annulation est coopérative et vérifiée entre deux dossiers.
    """

    def __init__(
        self,
        source: RecordSource,
        config: Optional[ExportConfig] = None,
        renderer: Optional[PageRenderer] = None,
        listener: Optional[ExportListener] = None,
    ) -> None:
        self._orchestrator = ExportOrchestrator(source, config, renderer, listener)
        self._lock = threading.Lock()
        self._worker: Optional[threading.Thread] = None
        self._cancel_event = threading.Event()
        self.last_summary: Optional[ExportSummary] = None

    @property
    def state(self) -> RunState:
        return self._orchestrator.state

    @property
    def is_running(self) -> bool:
        return bool(self._worker and self._worker.is_alive())

    def start_export(self, destination: str) -> bool:
        with self._lock:
            if self.is_running:
                logger.warning("Export déjà en cours, démarrage refusé (%s)", destination)
                return False
            self._cancel_event = threading.Event()
            self.last_summary = None
            self._worker = threading.Thread(
                target=self._run,
                args=(destination, self._cancel_event),
                name="drawer-export",
                daemon=True,
            )
            self._worker.start()
        return True

    def _run(self, destination: str, cancel_event: threading.Event) -> None:
        self.last_summary = self._orchestrator.run(destination, cancel_event)

    def cancel(self) -> None:
        self._cancel_event.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Attend la fin de l'export en cours ; True si plus aucun export ne tourne."""
        worker = self._worker
        if worker is not None:
            worker.join(timeout)
        return not self.is_running
