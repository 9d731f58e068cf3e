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
# THE RESOLVER - CONFIGURED PART IDENTIFIERS
# -----------------------------------------------------------------------------
# Responsibility: Find the part id to send to a translation job under a
# configuration. Part ids can shift between configurations, so the
# configured listing is searched by name first, then by id.
#
# The matching heuristics are plain functions over part listings so they
# can be tested without a provider.
# -----------------------------------------------------------------------------

import re
import threading
from collections.abc import Callable

from rich.console import Console

from shapeport.core.errors import PartResolutionError
from shapeport.domain.models import ConfigEncoding
from shapeport.infra.onshape_client import OnshapeAPIError, OnshapeClient

console = Console()


def normalize_name(value: str) -> str:
    """Lowercase and strip everything that is not a letter or digit."""
    return re.sub(r"[^a-z0-9]+", "", value.lower())


def exportable_parts(parts: list[dict]) -> list[dict]:
    """Drop mesh bodies and entries without an id."""
    return [p for p in parts if p.get("partId") and not p.get("isMesh")]


def match_part(
    candidates: list[dict],
    part_name: str | None = None,
    part_id: str | None = None,
    load_base: Callable[[], list[dict]] | None = None,
) -> str:
    """
    Pick the part id that corresponds to the caller's part in `candidates`.

    Order: exact name, normalized name, exact id, position in the
    unconfigured listing, id substring, and finally the first listed part
    (only when a name was given).

    `load_base` returns the unconfigured listing. It is only called when
    the name and exact id lookups both miss.

    Raises:
        PartResolutionError: If nothing matches.
    """
    if not candidates:
        raise PartResolutionError("No exportable parts under this configuration")

    if part_name:
        for part in candidates:
            if part.get("name") == part_name:
                return part["partId"]
        wanted = normalize_name(part_name)
        if wanted:
            for part in candidates:
                if normalize_name(part.get("name", "")) == wanted:
                    return part["partId"]

    if part_id:
        for part in candidates:
            if part["partId"] == part_id:
                return part_id

        base_parts = load_base() if load_base else []
        if base_parts:
            base_ids = [p["partId"] for p in base_parts]
            if part_id in base_ids:
                index = base_ids.index(part_id)
                if index < len(candidates):
                    return candidates[index]["partId"]

        for part in candidates:
            if part_id in part["partId"] or part["partId"] in part_id:
                return part["partId"]

    if part_name:
        return candidates[0]["partId"]

    raise PartResolutionError(
        f"Could not match part {part_id or '?'} under this configuration",
        details=", ".join(p["partId"] for p in candidates),
    )


class PartResolver:
    """Resolves the caller's part within one studio workspace."""

    def __init__(
        self, client: OnshapeClient, document_id: str, workspace_id: str, element_id: str
    ) -> None:
        self._client = client
        self._document_id = document_id
        self._workspace_id = workspace_id
        self._element_id = element_id
        self._base_parts: list[dict] | None = None
        self._base_lock = threading.Lock()

    def _list(self, configuration: str | None = None) -> list[dict]:
        try:
            parts = self._client.list_parts(
                self._document_id, self._workspace_id, self._element_id, configuration
            )
        except OnshapeAPIError as e:
            raise PartResolutionError(
                f"Failed to list parts: {e}", details=e.body or None, status_code=e.status_code
            )
        return exportable_parts(parts)

    def _base_listing(self) -> list[dict]:
        with self._base_lock:
            if self._base_parts is None:
                self._base_parts = self._list()
            return self._base_parts

    def resolve(
        self,
        encoding: ConfigEncoding,
        part_id: str | None,
        part_name: str | None,
        combine_scope: bool = False,
    ) -> list[str] | None:
        """
        Part ids to send with a translation job.

        Returns:
            None for combine scope (whole studio), the caller's id when no
            configuration is active, otherwise the id matched in the
            configured listing.

        Raises:
            PartResolutionError: If the part cannot be matched.
        """
        if combine_scope:
            return None
        if encoding.is_empty:
            if not part_id:
                raise PartResolutionError("partId is required for single-part export")
            return [part_id]

        candidates = self._list(encoding.query_token)
        resolved = match_part(candidates, part_name, part_id, load_base=self._base_listing)
        if resolved != part_id:
            console.print(
                f"[yellow][RESOLVER] {part_name or part_id} -> {resolved} under configuration[/yellow]"
            )
        return [resolved]
