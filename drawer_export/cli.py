import argparse
import logging
import sys
from typing import List, Optional

from dotenv import find_dotenv, load_dotenv

from .config import load_config
from .orchestrator import ExportListener, ExportPipeline
from .source import ManifestRecordSource
from .types import ExportSummary, ProgressUpdate, RunState


class ConsoleListener(ExportListener):
    def on_progress(self, progress: ProgressUpdate) -> None:
        print(
            f"[{progress.percentage:3d}%] dossier {progress.processed}/{progress.total}"
            f" - succès: {progress.success_count} - échecs: {progress.failure_count}"
        )

    def on_completed(self, summary: ExportSummary) -> None:
        print(
            f"✅ Export terminé: {summary.total_records} dossier(s), "
            f"{summary.success_count} fichier(s), {summary.failure_count} erreur(s) → {summary.destination}"
        )

    def on_aborted(self, reason: str) -> None:
        print(f"❌ Export avorté → {reason}")

    def on_cancelled(self, summary: ExportSummary) -> None:
        print(f"Export annulé après {summary.success_count} fichier(s).")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Export d'un tiroir : pages (images/PDF) → Images/NNNN.<ext> + import.txt."
    )
    parser.add_argument("--manifest", required=True, help="Manifeste JSON décrivant le tiroir et ses dossiers")
    parser.add_argument("--dest", required=True, help="Dossier de destination de l'export")
    parser.add_argument("--format", required=False, default=None, help="Format de sortie: TIFF|JPEG|PNG|BMP (défaut via env EXPORT_IMAGE_FORMAT=TIFF)")
    parser.add_argument("--dpi", required=False, type=int, default=None, help="DPI de rastérisation PDF (défaut via env EXPORT_PDF_DPI=600)")
    parser.add_argument("--start", required=False, type=int, default=None, help="Premier numéro de séquence sondé (défaut: 1)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Logs détaillés (DEBUG)")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    # Charger .env avant toute lecture d'os.getenv (config)
    load_dotenv(find_dotenv(usecwd=True), override=False)

    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )

    try:
        cfg = load_config(image_format=args.format, pdf_dpi=args.dpi, start_sequence=args.start)
    except ValueError as e:
        print(f"Erreur: {e}")
        sys.exit(2)

    pipeline = ExportPipeline(ManifestRecordSource(args.manifest), cfg, listener=ConsoleListener())
    pipeline.start_export(args.dest)
    try:
        while not pipeline.wait(timeout=0.5):
            pass
    except KeyboardInterrupt:
        print("Interrompu par l'utilisateur, arrêt après le dossier en cours...")
        pipeline.cancel()
        pipeline.wait()
        sys.exit(130)

    if pipeline.state == RunState.ABORTED:
        sys.exit(1)


if __name__ == "__main__":
    main()
