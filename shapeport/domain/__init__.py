# -----------------------------------------------------------------------------
# DOMAIN LAYER
# -----------------------------------------------------------------------------
# Contains the export instructions (Pydantic models) that define the
# contract between the API surface and the export engine.
# -----------------------------------------------------------------------------

from .models import (
    ArchiveEntry,
    ConfigEncoding,
    ConfigParameter,
    ExportFormat,
    ExportRequest,
    ExportResult,
    ExportUnit,
    FormatFamily,
    Job,
    JobStatus,
    QualitySettings,
)

__all__ = [
    "ArchiveEntry",
    "ConfigEncoding",
    "ConfigParameter",
    "ExportFormat",
    "ExportRequest",
    "ExportResult",
    "ExportUnit",
    "FormatFamily",
    "Job",
    "JobStatus",
    "QualitySettings",
]
