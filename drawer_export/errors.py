class ExportError(RuntimeError):
    """Erreur de base du pipeline d'export."""


class SourceConnectionError(ExportError):
    """Impossible de récupérer les dossiers depuis la source (base ou manifeste)."""


class ExportSetupError(ExportError):
    """Destination inutilisable : dossier Images/ ou import.txt impossible à créer."""


class RenderError(ExportError):
    """Échec de conversion d'une page ou d'une page interne de PDF."""
