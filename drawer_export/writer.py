from pathlib import Path
from typing import Optional, TextIO

from .errors import ExportSetupError


class IndexWriter:
    """
    Écrit `import.txt` : une ligne `<clé ou vide>@<chemin>` par fichier produit.

    Le fichier est ouvert en ajout pour que les lignes d'un export précédent
    interrompu restent valides, leurs images n'étant jamais écrasées.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self.lines_written = 0
        self._stream: Optional[TextIO] = None

    def open(self) -> "IndexWriter":
        if self._stream is not None:
            return self
        try:
            self._stream = open(self.path, "a", encoding="utf-8")
        except OSError as e:
            raise ExportSetupError(f"Impossible d'ouvrir {self.path}: {e}") from e
        return self

    def write_line(self, key: Optional[str], path: Path) -> None:
        if self._stream is None:
            raise RuntimeError("IndexWriter non ouvert")
        self._stream.write(f"{key or ''}@{path}\n")
        self._stream.flush()
        self.lines_written += 1

    def close(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None

    def __enter__(self) -> "IndexWriter":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()
