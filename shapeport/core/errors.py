# Copyright 2026 Pramod Kumar Voola
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

# -----------------------------------------------------------------------------
# EXPORT ERRORS
# -----------------------------------------------------------------------------
# Every failure the engine can record against a unit (or a whole request).
# `kind` is the tag surfaced to callers so "timeout" and "failed" stay
# distinguishable from transport errors and extraction misses.
# -----------------------------------------------------------------------------


class ExportError(Exception):
    """Base class for export failures."""

    kind = "error"

    def __init__(
        self, message: str, details: str | None = None, status_code: int | None = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        self.status_code = status_code


class ExportRequestError(ExportError):
    """Raised when a request is malformed. Nothing has run yet."""

    kind = "request"


class WorkspaceError(ExportError):
    """Raised when the document's default workspace cannot be resolved."""

    kind = "workspace"


class EncodingError(ExportError):
    """Raised when the provider rejects a configuration parameter set."""

    kind = "encoding"


class PartResolutionError(ExportError):
    """Raised when no part can be matched under a configuration."""

    kind = "resolution"


class ProviderError(ExportError):
    """Raised on a non-success provider response at submit, poll or download."""

    kind = "provider"


class RedirectError(ProviderError):
    """Raised when a mesh download redirects without a target."""

    pass


class TranslationFailedError(ExportError):
    """Raised when the provider reports a translation job as FAILED."""

    kind = "failed"


class ExportTimeoutError(ExportError):
    """Raised when a translation job never finishes within the polling ceiling."""

    kind = "timeout"


class ExtractionError(ExportError):
    """Raised when a bundled payload cannot be narrowed to the requested file."""

    kind = "extraction"


class DuplicateEntryError(ExportError):
    """Raised when two results map to the same archive entry name."""

    kind = "archive"
