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
# THE ASSEMBLER - ARCHIVE NAMING & PACKING
# -----------------------------------------------------------------------------
# Responsibility: Give every export a deterministic archive name and write it
# into the single output archive.
#
# Naming: "{studio} - {part|Combined}[ - {config tag}].{ext}"
# The sink is shared by every concurrent unit of a request, so all writes
# go through one lock.
# -----------------------------------------------------------------------------

import io
import threading
import zipfile

from rich.console import Console

from shapeport.core.errors import DuplicateEntryError, ExportError
from shapeport.domain.models import ArchiveEntry, ConfigParameter, ConfigValue, ExportUnit

console = Console()

COMBINED_LABEL = "Combined"
CONTAINER_EXTENSION = "zip"


def render_value(value: ConfigValue) -> str:
    """Render a configuration value the way it appears in names and encodings."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def config_tag(parameters: list[ConfigParameter], combination: tuple) -> str:
    """
    Human-readable tag for one combination.

    Units are deliberately left out: [(Width, 50, "mm")] -> "Width = 50".
    """
    return " | ".join(
        f"{param.label} = {render_value(value)}"
        for param, value in zip(parameters, combination)
    )


def _clean(component: str) -> str:
    # Path separators would create folders inside the archive
    return component.replace("/", "-").replace("\\", "-").strip()


def entry_name(unit: ExportUnit, container: bool = False) -> str:
    """
    Archive entry name for a unit's payload.

    Args:
        unit: The exported unit.
        container: True when a mesh payload is itself an archive and is
            stored verbatim.
    """
    scope = COMBINED_LABEL if unit.combine_scope else (unit.part_name or unit.part_id or "")
    name = f"{_clean(unit.studio_name)} - {_clean(scope)}"
    if unit.config_tag:
        name += f" - {_clean(unit.config_tag)}"
    extension = CONTAINER_EXTENSION if container else unit.format.extension
    return f"{name}.{extension}"


class ArchiveSink:
    """
    In-memory zip writer shared by the units of one request.

    Explicitly handed to each unit; never a module global.
    """

    def __init__(self) -> None:
        self._buffer = io.BytesIO()
        self._zip = zipfile.ZipFile(self._buffer, "w", compression=zipfile.ZIP_DEFLATED)
        self._lock = threading.Lock()
        self._names: list[str] = []
        self._closed = False

    def add(self, entry: ArchiveEntry) -> None:
        """
        Write one entry.

        Raises:
            DuplicateEntryError: If the name is already in the archive.
            ExportError: If the archive was already finalized.
        """
        with self._lock:
            if self._closed:
                raise ExportError("Archive already finalized")
            if entry.name in self._names:
                raise DuplicateEntryError(f"Duplicate archive entry: {entry.name}")
            self._zip.writestr(entry.name, entry.data)
            self._names.append(entry.name)
        console.print(f"[green][ARCHIVE] + {entry.name} ({len(entry.data)} bytes)[/green]")

    @property
    def names(self) -> list[str]:
        with self._lock:
            return list(self._names)

    def __len__(self) -> int:
        with self._lock:
            return len(self._names)

    def finalize(self) -> bytes:
        """Close the archive and return its bytes. Safe to call twice."""
        with self._lock:
            if not self._closed:
                self._zip.close()
                self._closed = True
            return self._buffer.getvalue()
