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
# THE EXTRACTOR - BUNDLED PAYLOADS
# -----------------------------------------------------------------------------
# Responsibility: The provider sometimes answers a translation with a zip of
# several files. Pick the one that belongs to the requested part/studio,
# or fail loudly. Never guess a wrong file silently.
# -----------------------------------------------------------------------------

import io
import zipfile

from rich.console import Console

from shapeport.core.errors import ExtractionError
from shapeport.core.resolver import normalize_name
from shapeport.domain.models import ExportUnit

console = Console()

ZIP_MAGIC = b"PK"


def is_container(content_type: str | None, data: bytes) -> bool:
    """True if the payload is a zip archive (by content type or signature)."""
    if "zip" in (content_type or "").lower():
        return True
    return data[:2] == ZIP_MAGIC


def _basename(name: str) -> str:
    return name.rsplit("/", 1)[-1]


def pick_entry(
    names: list[str],
    extensions: tuple[str, ...],
    part_name: str | None = None,
    studio_name: str | None = None,
) -> str | None:
    """
    Choose one entry from a container listing.

    Args:
        names: Non-directory entry names.
        extensions: Accepted extensions, without the dot.
        part_name: Requested part (None for combine scope).
        studio_name: Studio the export came from.

    Returns:
        The chosen entry name, or None if nothing can be chosen.
    """
    if not names:
        return None

    suffixes = tuple(f".{ext.lower()}" for ext in extensions)
    candidates = [n for n in names if _basename(n).lower().endswith(suffixes)]

    if len(candidates) == 1:
        return candidates[0]
    if not candidates:
        return names[0] if len(names) == 1 else None

    normalized = [(n, normalize_name(_basename(n))) for n in candidates]

    if studio_name and part_name:
        prefix = normalize_name(f"{studio_name} - {part_name}")
        for name, norm in normalized:
            if norm.startswith(prefix):
                return name

    for target in (part_name, studio_name):
        wanted = normalize_name(target or "")
        if wanted:
            for name, norm in normalized:
                if wanted in norm:
                    return name

    return candidates[0]


def extract_payload(data: bytes, content_type: str | None, unit: ExportUnit) -> bytes:
    """
    Return the file for `unit` from a translation payload.

    Raises:
        ExtractionError: If the payload is a container and no entry can be
            selected, or the container cannot be read.
    """
    if not is_container(content_type, data):
        return data

    try:
        with zipfile.ZipFile(io.BytesIO(data)) as bundle:
            names = [info.filename for info in bundle.infolist() if not info.is_dir()]
            chosen = pick_entry(
                names,
                unit.format.accepted_extensions,
                part_name=None if unit.combine_scope else unit.part_name,
                studio_name=unit.studio_name,
            )
            if chosen is None:
                raise ExtractionError(
                    f"Could not find a {unit.format.value} file for {unit.label} in bundled payload",
                    details=", ".join(names) or "empty archive",
                )
            console.print(f"[cyan][EXTRACT] {unit.label}: using {chosen}[/cyan]")
            return bundle.read(chosen)
    except zipfile.BadZipFile as e:
        raise ExtractionError(f"Bundled payload for {unit.label} is not a readable archive: {e}")
