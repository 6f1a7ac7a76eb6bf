from __future__ import annotations

from datetime import datetime
from typing import Optional

from .types import DrawerInfo, ExportSummary, ProgressUpdate, RunState


class RunAccumulator:
    """
    Compteurs mutables d'un export : dossiers restants, succès, échecs.

    Possédé par l'orchestrateur et manipulé uniquement depuis son thread de travail.
    `remaining_records` sert de dénominateur à la progression et peut diminuer
    en cours d'export lorsqu'un dossier est exclu.
    """

    def __init__(self, total_records: int, started_at: Optional[datetime] = None) -> None:
        self.started_at = started_at or datetime.now()
        self.remaining_records = total_records
        self.success_count = 0
        self.failure_count = 0
        self.processed_records = 0

    def exclude_record(self) -> None:
        """Dossier sans page : retiré du dénominateur et compté en échec."""
        self.remaining_records = max(self.remaining_records - 1, 0)
        self.failure_count += 1

    def record_outcome(self, success: bool) -> None:
        if success:
            self.success_count += 1
        else:
            self.failure_count += 1

    def mark_processed(self) -> None:
        """Dossier traité (non exclu) : compté dans la progression."""
        self.processed_records += 1

    def percentage(self, processed: Optional[int] = None) -> int:
        if processed is None:
            processed = self.processed_records
        if self.remaining_records == 0 and processed <= 0:
            return 0
        pct = int(processed / max(self.remaining_records, 1) * 100)
        return min(max(pct, 0), 100)

    def progress(self) -> ProgressUpdate:
        return ProgressUpdate(
            processed=self.processed_records,
            total=self.remaining_records,
            success_count=self.success_count,
            failure_count=self.failure_count,
            percentage=self.percentage(),
        )

    def summary(
        self,
        destination: str,
        drawer: Optional[DrawerInfo],
        state: RunState = RunState.COMPLETED,
        finished_at: Optional[datetime] = None,
    ) -> ExportSummary:
        return ExportSummary(
            total_records=self.remaining_records,
            success_count=self.success_count,
            failure_count=self.failure_count,
            started_at=self.started_at,
            finished_at=finished_at or datetime.now(),
            destination=destination,
            drawer=drawer,
            state=state,
        )
