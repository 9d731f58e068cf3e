# -----------------------------------------------------------------------------
# CORE LAYER
# -----------------------------------------------------------------------------
# The export orchestration engine:
# - Expander: configuration combinations and units of work
# - Encoder / Resolver: per-combination provider lookups
# - Dispatcher: mesh download and translation job protocols
# - Extractor / Assembler: bundle unpacking and archive naming
# - JobTracker: per-unit progress records
# - ExportEngine: ties it all together
# -----------------------------------------------------------------------------

from .engine import ExportEngine, ExportOutcome
from .errors import (
    EncodingError,
    ExportError,
    ExportRequestError,
    ExportTimeoutError,
    ExtractionError,
    PartResolutionError,
    ProviderError,
    TranslationFailedError,
    WorkspaceError,
)
from .jobs import JobTracker
from .settings import ExportSettings, load_settings

__all__ = [
    "ExportEngine", "ExportOutcome",
    "EncodingError", "ExportError", "ExportRequestError", "ExportTimeoutError",
    "ExtractionError", "PartResolutionError", "ProviderError",
    "TranslationFailedError", "WorkspaceError",
    "JobTracker",
    "ExportSettings", "load_settings",
]
