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
# DOMAIN MODELS - EXPORT INSTRUCTIONS
# -----------------------------------------------------------------------------
# These Pydantic models describe one export request and every unit of work
# derived from it. The service validates the request; the engine expands it
# into ExportUnits and executes them without question.
#
# Invalid requests (no formats, no part without combine scope, unknown
# format names) are rejected at the gate, before any provider call.
# -----------------------------------------------------------------------------

import hashlib
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ConfigValue = str | int | float


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FormatFamily(str, Enum):
    """
    Export protocol family.

    MESH formats are downloaded synchronously; everything else goes through
    the provider's asynchronous translation jobs.
    """

    MESH = "mesh"
    TRANSLATED = "translated"


class ExportFormat(str, Enum):
    """
    Supported export formats.

    Each member knows its protocol family, the extension used in the output
    archive, and the extensions accepted when picking a file out of a bundle.
    """

    STL = "STL"
    STEP = "STEP"
    IGES = "IGES"
    PARASOLID = "PARASOLID"
    SOLIDWORKS = "SOLIDWORKS"
    ACIS = "ACIS"
    JT = "JT"
    RHINO = "RHINO"
    GLTF = "GLTF"
    OBJ = "OBJ"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            upper = value.strip().upper()
            for member in cls:
                if member.value == upper:
                    return member
        return None

    @property
    def family(self) -> FormatFamily:
        return FormatFamily.MESH if self is ExportFormat.STL else FormatFamily.TRANSLATED

    @property
    def extension(self) -> str:
        return _EXTENSIONS[self][0]

    @property
    def accepted_extensions(self) -> tuple[str, ...]:
        return _EXTENSIONS[self]


# First entry is the archive extension.
_EXTENSIONS: dict[ExportFormat, tuple[str, ...]] = {
    ExportFormat.STL: ("stl",),
    ExportFormat.STEP: ("step", "stp"),
    ExportFormat.IGES: ("igs", "iges"),
    ExportFormat.PARASOLID: ("x_t", "x_b"),
    ExportFormat.SOLIDWORKS: ("sldprt", "sldasm"),
    ExportFormat.ACIS: ("sat",),
    ExportFormat.JT: ("jt",),
    ExportFormat.RHINO: ("3dm",),
    ExportFormat.GLTF: ("gltf", "glb"),
    ExportFormat.OBJ: ("obj",),
}


class ConfigParameter(BaseModel):
    """
    A configuration parameter and the values to export it at.

    `id` is the provider's parameterId. For enum parameters the values must be
    the option tokens (e.g. "_500_mm"), not the display labels.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(..., alias="key", min_length=1)
    display_name: str | None = Field(None, alias="keyDisplay")
    values: list[ConfigValue] = Field(..., min_length=1)
    unit: str | None = None

    @field_validator("values")
    @classmethod
    def _dedupe_values(cls, values: list[ConfigValue]) -> list[ConfigValue]:
        unique: list[ConfigValue] = []
        for value in values:
            if value not in unique:
                unique.append(value)
        return unique

    @property
    def label(self) -> str:
        return self.display_name or self.id


class ConfigEncoding(BaseModel):
    """Provider encoding of one combination. Both fields absent = no configuration."""

    model_config = ConfigDict(frozen=True)

    query_token: str | None = None
    encoded_id: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.query_token and not self.encoded_id


class QualitySettings(BaseModel):
    """Mesh quality overrides. Unset fields fall back to the service defaults."""

    model_config = ConfigDict(populate_by_name=True)

    min_facet_width: str | None = Field(None, alias="minFacetWidth")
    angle_tolerance: str | None = Field(None, alias="angleTolerance")
    chord_tolerance: str | None = Field(None, alias="chordTolerance")


class ExportUnit(BaseModel):
    """
    The atomic unit of work: one studio/part, one format, one combination.

    Never mutated after creation; re-running a unit re-derives everything
    from these fields.
    """

    model_config = ConfigDict(frozen=True)

    document_id: str
    studio_id: str
    studio_name: str
    part_id: str | None = None
    part_name: str | None = None
    format: ExportFormat
    combination: tuple[ConfigValue, ...] = ()
    parameters: tuple[ConfigParameter, ...] = ()
    config_tag: str = ""
    combine_scope: bool = False
    quality: QualitySettings = Field(default_factory=QualitySettings)
    owner: str = ""

    @property
    def wire_settings(self) -> tuple[str, ...]:
        """Sorted parameter id, value and unit triples, as sent to the provider."""
        return tuple(
            sorted(
                f"{param.id}={value!r} {param.unit or ''}".rstrip()
                for param, value in zip(self.parameters, self.combination)
            )
        )

    @property
    def job_id(self) -> str:
        """
        Stable identity of the work a unit performs.

        Covers the caller, the target, the configuration as sent on the wire
        and the mesh quality, so two units share an id only when they would
        fetch the same bytes with the same credentials.
        """
        scope = "combined" if self.combine_scope else (self.part_id or "")
        raw = "|".join(
            [
                self.owner,
                self.document_id,
                self.studio_id,
                scope,
                self.format.value,
                ";".join(self.wire_settings),
                self.quality.model_dump_json(),
            ]
        )
        return hashlib.sha1(raw.encode("utf-8")).hexdigest()[:16]

    @property
    def label(self) -> str:
        target = "Combined" if self.combine_scope else (self.part_name or self.part_id or "?")
        suffix = f" [{self.config_tag}]" if self.config_tag else ""
        return f"{self.studio_name}/{target} {self.format.value}{suffix}"


class ExportResult(BaseModel):
    """Outcome of one ExportUnit. Exactly one per unit."""

    unit: ExportUnit
    data: bytes | None = None
    content_type: str | None = None
    entry_name: str | None = None
    error: str | None = None
    error_kind: str | None = None
    details: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def has_output(self) -> bool:
        return self.succeeded and self.data is not None


class ArchiveEntry(BaseModel):
    """A named file inside the output archive."""

    name: str
    data: bytes


class JobStatus(str, Enum):
    PENDING = "pending"
    EXPORTING = "exporting"
    DONE = "done"
    FAILED = "failed"


class Job(BaseModel):
    """
    Progress record for one ExportUnit, kept for the client session.

    A DONE job with has_output=False is a zero-result success, not a failure.
    """

    id: str
    studio_id: str
    studio_name: str
    part_id: str | None = None
    part_name: str | None = None
    format: ExportFormat
    config_tag: str = ""
    combine_scope: bool = False
    status: JobStatus = JobStatus.PENDING
    error: str | None = None
    error_kind: str | None = None
    details: str | None = None
    entry_name: str | None = None
    payload: bytes | None = Field(None, exclude=True)
    owner: str = Field("", exclude=True)
    has_output: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class ExportRequest(BaseModel):
    """
    Body of an export call.

    Accepts the camelCase field names sent by the browser client as well as
    the snake_case names used internally.
    """

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    document_id: str = Field(..., alias="documentId", min_length=1)
    element_id: str = Field(..., alias="elementId", min_length=1)
    element_name: str = Field("", alias="elementName")
    part_id: str | None = Field(None, alias="partId")
    part_name: str | None = Field(None, alias="partName")
    formats: list[ExportFormat] = Field(..., min_length=1)
    config_options: list[ConfigParameter] = Field(default_factory=list, alias="configOptions")
    combine_parts: bool = Field(False, alias="combineParts")
    quality: QualitySettings = Field(default_factory=QualitySettings)

    @field_validator("formats", mode="before")
    @classmethod
    def _normalize_formats(cls, value):
        if not isinstance(value, list):
            return value
        seen: list = []
        for item in value:
            name = item.strip().upper() if isinstance(item, str) else item
            if name not in seen:
                seen.append(name)
        return seen

    @model_validator(mode="after")
    def _require_part(self) -> "ExportRequest":
        if not self.combine_parts and not self.part_id:
            raise ValueError("partId is required when combineParts is false")
        return self

    @property
    def studio_name(self) -> str:
        return self.element_name or self.element_id
