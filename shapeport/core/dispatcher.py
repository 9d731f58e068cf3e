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
# THE DISPATCHER - EXPORT PROTOCOLS
# -----------------------------------------------------------------------------
# Responsibility: Drive one ExportUnit through the provider and return the
# raw payload. Two protocols, selected by the format's family:
#
# - MeshExport:        synchronous binary download (manual 307 handling)
# - TranslationExport: submit job -> poll every 2s (max 90) -> download
#
# Every failure here is terminal for the unit. Nothing is retried; running
# a unit again repeats the whole sequence from scratch.
#
# Provider calls run inside the context's throttle; the sleeps between
# polls do not, so a polling unit never holds a slot another unit needs.
# -----------------------------------------------------------------------------

import time
from contextlib import AbstractContextManager, nullcontext
from dataclasses import dataclass, field
from urllib.parse import quote

from rich.console import Console

from shapeport.core.errors import (
    ExportTimeoutError,
    ProviderError,
    RedirectError,
    TranslationFailedError,
)
from shapeport.core.polling import PollPhase, PollState, advance
from shapeport.core.settings import ExportSettings
from shapeport.domain.models import (
    ConfigEncoding,
    ExportFormat,
    ExportUnit,
    FormatFamily,
    QualitySettings,
)
from shapeport.infra.onshape_client import (
    OnshapeAPIError,
    OnshapeClient,
    configuration_query,
    with_query,
)

console = Console()

REDIRECT_STATUS = 307


@dataclass
class FetchedPayload:
    """Raw provider output for a unit. `data` is None for a zero-result job."""

    data: bytes | None
    content_type: str = ""


@dataclass
class DispatchContext:
    """Everything a unit needs beyond its own fields."""

    client: OnshapeClient
    workspace_id: str
    encoding: ConfigEncoding = field(default_factory=ConfigEncoding)
    part_ids: list[str] | None = None
    quality: QualitySettings = field(default_factory=QualitySettings)
    throttle: AbstractContextManager = field(default_factory=nullcontext)


def _is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


def _provider_error(message: str, error: OnshapeAPIError) -> ProviderError:
    return ProviderError(
        f"{message}: {error}", details=error.body or None, status_code=error.status_code or None
    )


class MeshExport:
    """Synchronous STL download."""

    family = FormatFamily.MESH

    def __init__(self, settings: ExportSettings) -> None:
        self._settings = settings

    def build_url(
        self,
        client: OnshapeClient,
        unit: ExportUnit,
        workspace_id: str,
        encoding: ConfigEncoding,
        quality: QualitySettings,
    ) -> str:
        """Mesh export URL for a part, or for the whole studio in combine scope."""
        studio = f"d/{unit.document_id}/w/{workspace_id}/e/{unit.studio_id}"
        if unit.combine_scope:
            endpoint = client.url(f"partstudios/{studio}/stl")
        else:
            endpoint = client.url(f"parts/{studio}/partid/{quote(unit.part_id or '', safe='')}/stl")

        fragments = []
        if encoding.query_token:
            fragments.append(configuration_query(encoding.query_token))
        fragments += [
            "mode=binary",
            f"units={self._settings.mesh_units}",
            f"scale={self._settings.mesh_scale}",
            f"angleTolerance={quality.angle_tolerance or self._settings.angle_tolerance}",
            f"chordTolerance={quality.chord_tolerance or self._settings.chord_tolerance}",
            f"minFacetWidth={quality.min_facet_width or self._settings.min_facet_width}",
        ]
        if unit.combine_scope:
            fragments.append("grouping=true")
        return with_query(endpoint, fragments)

    def run(self, unit: ExportUnit, ctx: DispatchContext) -> FetchedPayload:
        """
        Download the mesh.

        Raises:
            RedirectError: 307 without a Location header.
            ProviderError: Any other non-success response.
        """
        url = self.build_url(ctx.client, unit, ctx.workspace_id, ctx.encoding, ctx.quality)
        console.print(f"[cyan][DISPATCH] {unit.label}: mesh download[/cyan]")

        try:
            with ctx.throttle:
                response = ctx.client.fetch_mesh(url)
        except OnshapeAPIError as e:
            raise _provider_error("STL export failed", e)

        content_type = response.headers.get("content-type", "")

        if response.status_code == REDIRECT_STATUS:
            location = response.headers.get("location")
            if not location:
                raise RedirectError("No redirect URL for STL", status_code=REDIRECT_STATUS)
            try:
                with ctx.throttle:
                    target = ctx.client.follow_redirect(location)
            except OnshapeAPIError as e:
                raise _provider_error("STL redirect failed", e)
            if not _is_success(target.status_code):
                raise ProviderError(
                    f"STL redirect failed: {target.status_code} {target.reason}",
                    details=target.text,
                    status_code=target.status_code,
                )
            return FetchedPayload(
                target.content, target.headers.get("content-type") or content_type
            )

        if not _is_success(response.status_code):
            raise ProviderError(
                f"STL export failed: {response.status_code} {response.reason}",
                details=response.text,
                status_code=response.status_code,
            )

        return FetchedPayload(response.content, content_type)


class TranslationExport:
    """Asynchronous translation job: submit, poll, download."""

    family = FormatFamily.TRANSLATED

    def __init__(self, settings: ExportSettings) -> None:
        self._interval = settings.poll_interval_seconds
        self._max_attempts = settings.max_poll_attempts

    def build_body(
        self, unit: ExportUnit, encoding: ConfigEncoding, part_ids: list[str] | None
    ) -> dict:
        """
        Translation request body.

        The configuration travels as the encoded id in the body, never as a
        query parameter.
        """
        body: dict = {
            "formatName": unit.format.value,
            "storeInDocument": False,
            "translate": True,
        }
        if not unit.combine_scope and part_ids:
            body["partIds"] = list(part_ids)
        if encoding.encoded_id:
            body["configuration"] = encoding.encoded_id
        return body

    def run(self, unit: ExportUnit, ctx: DispatchContext) -> FetchedPayload:
        """
        Submit and poll a translation job, then download its first result.

        Returns:
            FetchedPayload with data=None if the job finished with no results.

        Raises:
            ProviderError: Submission, poll or download failed.
            TranslationFailedError: The provider reported FAILED.
            ExportTimeoutError: The polling ceiling was reached.
        """
        fmt = unit.format.value
        body = self.build_body(unit, ctx.encoding, ctx.part_ids)

        try:
            with ctx.throttle:
                job = ctx.client.start_translation(
                    unit.document_id, ctx.workspace_id, unit.studio_id, body
                )
        except OnshapeAPIError as e:
            raise _provider_error(f"Failed to start {fmt} translation", e)

        translation_id = job.get("id")
        if not translation_id:
            raise ProviderError(f"{fmt} translation started without an id", details=str(job))

        console.print(f"[cyan][DISPATCH] {unit.label}: translation {translation_id} submitted[/cyan]")
        state = self.poll(ctx.client, translation_id, fmt, ctx.throttle)

        if state.phase is PollPhase.FAILED:
            console.print(f"[red][DISPATCH] {unit.label}: translation failed ({state.reason})[/red]")
            raise TranslationFailedError(f"Translation failed ({fmt}): {state.reason}")
        if state.phase is PollPhase.TIMED_OUT:
            console.print(f"[red][DISPATCH] {unit.label}: timeout after {state.attempt} polls[/red]")
            suffix = f" (configuration {unit.config_tag})" if unit.config_tag else ""
            raise ExportTimeoutError(f"Translation timeout for {fmt}{suffix}", status_code=408)

        if not state.result_ids:
            console.print(f"[yellow][DISPATCH] {unit.label}: finished with no output[/yellow]")
            return FetchedPayload(None)

        try:
            with ctx.throttle:
                data, content_type = ctx.client.download_external_data(
                    unit.document_id, state.result_ids[0]
                )
        except OnshapeAPIError as e:
            raise _provider_error(f"Failed to download {fmt} file", e)

        console.print(f"[green][DISPATCH] {unit.label}: {len(data)} bytes received[/green]")
        return FetchedPayload(data, content_type)

    def poll(
        self,
        client: OnshapeClient,
        translation_id: str,
        fmt: str,
        throttle: AbstractContextManager | None = None,
    ) -> PollState:
        """Poll until a terminal state. Transport errors end polling immediately."""
        if throttle is None:
            throttle = nullcontext()
        state = PollState()
        while not state.terminal:
            time.sleep(self._interval)
            try:
                with throttle:
                    status = client.get_translation(translation_id)
            except OnshapeAPIError as e:
                raise _provider_error(f"Failed to read {fmt} translation status", e)
            state = advance(state, status, self._max_attempts)
        return state


class ExportDispatcher:
    """Selects and runs the protocol for a unit's format family."""

    def __init__(self, settings: ExportSettings) -> None:
        self._strategies = {
            strategy.family: strategy
            for strategy in (MeshExport(settings), TranslationExport(settings))
        }

    def strategy_for(self, export_format: ExportFormat):
        return self._strategies[export_format.family]

    def dispatch(self, unit: ExportUnit, ctx: DispatchContext) -> FetchedPayload:
        return self.strategy_for(unit.format).run(unit, ctx)
