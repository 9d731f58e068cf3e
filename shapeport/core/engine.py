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
# THE EXPORT ENGINE - ORCHESTRATOR
# -----------------------------------------------------------------------------
# Orchestrates one export request end to end.
#
# Pipeline: Workspace -> Expand -> Encode/Resolve (per combination)
#           -> Dispatch (per unit, concurrent) -> Extract -> Archive
#
# Failure policy:
# - Workspace resolution failure aborts the request (nothing has run)
# - Encoding failure fails every unit of that combination
# - Anything else fails only its own unit; siblings keep going
# - Zero-result translations succeed without an archive entry
#
# Every unit gets its own worker thread. At most `max_workers` provider
# calls are in flight per request; translation units release their slot
# while they sleep between polls.
#
# Units with the same job id running at the same time execute once; the
# others wait for and reuse that outcome. The job id covers the caller and
# the configuration as sent, so only truly identical work is shared.
# -----------------------------------------------------------------------------

import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field

from rich.console import Console

from shapeport.core.assembler import ArchiveSink, entry_name
from shapeport.core.dispatcher import DispatchContext, ExportDispatcher
from shapeport.core.encoder import ConfigurationEncoder
from shapeport.core.errors import (
    DuplicateEntryError,
    EncodingError,
    ExportError,
    PartResolutionError,
    WorkspaceError,
)
from shapeport.core.expander import CombinationBatch, build_units
from shapeport.core.extractor import extract_payload, is_container
from shapeport.core.jobs import JobTracker
from shapeport.core.resolver import PartResolver
from shapeport.core.settings import ExportSettings, load_settings
from shapeport.domain.models import (
    ArchiveEntry,
    ConfigEncoding,
    ExportRequest,
    ExportResult,
    ExportUnit,
    FormatFamily,
)
from shapeport.infra.onshape_client import OnshapeAPIError, OnshapeClient

console = Console()


@dataclass
class PreparedBatch:
    """A combination after encoding and (if needed) part resolution."""

    batch: CombinationBatch
    encoding: ConfigEncoding = field(default_factory=ConfigEncoding)
    part_ids: list[str] | None = None
    encoding_error: EncodingError | None = None
    resolution_error: PartResolutionError | None = None


@dataclass
class ExportOutcome:
    """Finished archive plus one result per unit."""

    archive: bytes
    results: list[ExportResult]

    @property
    def succeeded(self) -> list[ExportResult]:
        return [r for r in self.results if r.has_output]

    @property
    def empty(self) -> list[ExportResult]:
        return [r for r in self.results if r.succeeded and not r.has_output]

    @property
    def failed(self) -> list[ExportResult]:
        return [r for r in self.results if not r.succeeded]

    def summary(self) -> str:
        return (
            f"succeeded={len(self.succeeded)}; empty={len(self.empty)}; "
            f"failed={len(self.failed)}"
        )


class ExportEngine:
    """
    The Export Orchestrator.

    One instance serves every request of the service; only the job tracker
    and the in-flight map outlive a single request.
    """

    def __init__(
        self,
        settings: ExportSettings | None = None,
        tracker: JobTracker | None = None,
        dispatcher: ExportDispatcher | None = None,
    ) -> None:
        self._settings = settings or load_settings()
        self._tracker = tracker or JobTracker(
            payload_budget=self._settings.job_payload_budget_bytes
        )
        self._dispatcher = dispatcher or ExportDispatcher(self._settings)
        self._inflight: dict[str, Future] = {}
        self._inflight_lock = threading.Lock()

        console.print(
            f"[green][ENGINE] Export engine online ({self._settings.max_workers} workers)[/green]"
        )

    @property
    def tracker(self) -> JobTracker:
        return self._tracker

    @property
    def settings(self) -> ExportSettings:
        return self._settings

    def client_for(self, auth_header: str) -> OnshapeClient:
        """Provider client bound to a caller's Authorization header."""
        return OnshapeClient(
            auth_header,
            api_base=self._settings.api_base,
            timeout=self._settings.request_timeout_seconds,
        )

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def run(self, request: ExportRequest, client: OnshapeClient) -> ExportOutcome:
        """
        Export every unit of a request into one archive.

        Raises:
            WorkspaceError: If the document has no resolvable workspace.
        """
        workspace_id = self._resolve_workspace(client, request.document_id)
        batches = build_units(request, owner=client.identity)
        units = [unit for batch in batches for unit in batch.units]

        console.print(
            f"[cyan][ENGINE] {request.studio_name}: {len(batches)} combination(s) x "
            f"{len(request.formats)} format(s) = {len(units)} unit(s)[/cyan]"
        )
        for unit in units:
            self._tracker.register(unit)

        encoder = ConfigurationEncoder(client, request.document_id, request.element_id)
        resolver = PartResolver(client, request.document_id, workspace_id, request.element_id)
        sink = ArchiveSink()
        results: list[ExportResult] = []

        with ThreadPoolExecutor(max_workers=self._settings.max_workers) as pool:
            prepared = list(
                pool.map(lambda batch: self._prepare(batch, request, encoder, resolver), batches)
            )

        throttle = threading.BoundedSemaphore(self._settings.max_workers)
        runnable = []
        for prep in prepared:
            for unit in prep.batch.units:
                error = self._preparation_error(prep, unit)
                if error:
                    results.append(self._fail(unit, error))
                    continue
                ctx = DispatchContext(
                    client=client,
                    workspace_id=workspace_id,
                    encoding=prep.encoding,
                    part_ids=prep.part_ids,
                    quality=request.quality,
                    throttle=throttle,
                )
                runnable.append((unit, ctx))

        if runnable:
            with ThreadPoolExecutor(max_workers=len(runnable)) as pool:
                futures = [pool.submit(self._execute, unit, ctx, sink) for unit, ctx in runnable]
                for future in as_completed(futures):
                    results.append(future.result())

        outcome = ExportOutcome(archive=sink.finalize(), results=results)
        console.print(f"[green][ENGINE] {request.studio_name}: {outcome.summary()}[/green]")
        return outcome

    # =========================================================================
    # PREPARATION (once per combination)
    # =========================================================================

    def _resolve_workspace(self, client: OnshapeClient, document_id: str) -> str:
        try:
            workspace_id = client.get_default_workspace(document_id)
        except OnshapeAPIError as e:
            raise WorkspaceError(
                f"Failed to get document info: {e}",
                details=e.body or None,
                status_code=e.status_code or 502,
            )
        if not workspace_id:
            raise WorkspaceError("No default workspace found", status_code=400)
        return workspace_id

    def _prepare(
        self,
        batch: CombinationBatch,
        request: ExportRequest,
        encoder: ConfigurationEncoder,
        resolver: PartResolver,
    ) -> PreparedBatch:
        """Encode the combination once and resolve the part for translations."""
        prep = PreparedBatch(batch=batch)
        try:
            prep.encoding = encoder.encode(request.config_options, batch.combination)
        except EncodingError as e:
            prep.encoding_error = e
            return prep
        except Exception as e:
            console.print(f"[red][ENGINE] Unexpected encoding error: {e}[/red]")
            prep.encoding_error = EncodingError(f"Failed to encode configuration: {e}")
            return prep

        needs_part = not request.combine_parts and any(
            unit.format.family is FormatFamily.TRANSLATED for unit in batch.units
        )
        if needs_part:
            try:
                prep.part_ids = resolver.resolve(
                    prep.encoding, request.part_id, request.part_name
                )
            except PartResolutionError as e:
                prep.resolution_error = e
            except Exception as e:
                console.print(f"[red][ENGINE] Unexpected resolution error: {e}[/red]")
                prep.resolution_error = PartResolutionError(f"Failed to resolve part: {e}")
        return prep

    def _preparation_error(self, prep: PreparedBatch, unit: ExportUnit) -> ExportError | None:
        if prep.encoding_error:
            return prep.encoding_error
        if prep.resolution_error and unit.format.family is FormatFamily.TRANSLATED:
            return prep.resolution_error
        return None

    # =========================================================================
    # EXECUTION (once per unit)
    # =========================================================================

    def _execute(self, unit: ExportUnit, ctx: DispatchContext, sink: ArchiveSink) -> ExportResult:
        """Run a unit, or wait for the identical unit that is already running."""
        job_id = unit.job_id
        with self._inflight_lock:
            running = self._inflight.get(job_id)
            if running is None:
                own = Future()
                self._inflight[job_id] = own

        if running is not None:
            console.print(f"[dim][ENGINE] {unit.label}: already running, waiting[/dim]")
            result = running.result().model_copy(update={"unit": unit})
        else:
            try:
                result = self._run_unit(unit, ctx)
            except Exception as e:
                console.print(f"[red][ENGINE] {unit.label}: unexpected error: {e}[/red]")
                result = self._fail(unit, ExportError(f"Export failed: {e}"))
            finally:
                with self._inflight_lock:
                    self._inflight.pop(job_id, None)
            own.set_result(result)

        if result.has_output:
            try:
                sink.add(ArchiveEntry(name=result.entry_name, data=result.data))
            except DuplicateEntryError as e:
                result = self._fail(unit, e)
        return result

    def _run_unit(self, unit: ExportUnit, ctx: DispatchContext) -> ExportResult:
        self._tracker.mark_exporting(unit.job_id)
        try:
            payload = self._dispatcher.dispatch(unit, ctx)

            if payload.data is None:
                self._tracker.mark_done(unit.job_id)
                return ExportResult(unit=unit, content_type=payload.content_type or None)

            if unit.format.family is FormatFamily.MESH:
                # Grouped mesh bundles are kept as delivered
                data = payload.data
                name = entry_name(unit, container=is_container(payload.content_type, data))
            else:
                data = extract_payload(payload.data, payload.content_type, unit)
                name = entry_name(unit)

        except ExportError as e:
            return self._fail(unit, e)

        self._tracker.mark_done(unit.job_id, entry_name=name, payload=data)
        return ExportResult(
            unit=unit, data=data, content_type=payload.content_type, entry_name=name
        )

    def _fail(self, unit: ExportUnit, error: ExportError) -> ExportResult:
        console.print(f"[red][ENGINE] {unit.label}: {error.message}[/red]")
        self._tracker.mark_failed(
            unit.job_id, error.message, error_kind=error.kind, details=error.details
        )
        return ExportResult(
            unit=unit, error=error.message, error_kind=error.kind, details=error.details
        )
