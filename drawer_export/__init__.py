"""Export d'un tiroir d'imagerie vers un dossier plat d'images numérotées.

Ce package fournit:
- Le chargement de la configuration d'export (codec, DPI, séquence de départ)
- Les structures typées des dossiers, pages et rapports d'export
- L'allocation des noms `Images/NNNN.<ext>` sans jamais écraser un fichier
- Le rendu des pages (ré-encodage raster, rastérisation PDF page par page)
- L'écriture de `import.txt`, `ErrorLog.txt` et `export.log`
- Un orchestrateur exécuté sur un thread dédié, avec progression et annulation
- Une CLI pilotée par un manifeste JSON
"""

from .orchestrator import ExportListener, ExportOrchestrator, ExportPipeline

__all__ = [
    "config",
    "types",
    "errors",
    "storage",
    "writer",
    "renderer",
    "accumulator",
    "source",
    "orchestrator",
    "ExportListener",
    "ExportOrchestrator",
    "ExportPipeline",
]
