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
# THE EXPANDER - COMBINATIONS & UNITS OF WORK
# -----------------------------------------------------------------------------
# Responsibility: Turn a request into every configuration x format x part
# unit of work. Pure: no I/O, deterministic order.
# -----------------------------------------------------------------------------

import itertools
from dataclasses import dataclass, field

from shapeport.core.assembler import config_tag
from shapeport.domain.models import ConfigParameter, ExportRequest, ExportUnit


@dataclass
class CombinationBatch:
    """All units sharing one combination (and therefore one encoding)."""

    combination: tuple
    units: list[ExportUnit] = field(default_factory=list)


def expand_combinations(parameters: list[ConfigParameter]) -> list[tuple]:
    """
    Cartesian product of the parameters' values.

    The first parameter varies slowest. No parameters yields one empty
    combination.
    """
    return list(itertools.product(*(param.values for param in parameters)))


def build_units(request: ExportRequest, owner: str = "") -> list[CombinationBatch]:
    """
    Expand a request into its units of work, grouped by combination.

    Args:
        request: The validated export request.
        owner: Digest of the caller's credentials, stamped on every unit.
    """
    parameters = tuple(request.config_options)
    batches = []

    for combination in expand_combinations(list(parameters)):
        tag = config_tag(list(parameters), combination)
        batch = CombinationBatch(combination=combination)
        for export_format in request.formats:
            batch.units.append(
                ExportUnit(
                    document_id=request.document_id,
                    studio_id=request.element_id,
                    studio_name=request.studio_name,
                    part_id=None if request.combine_parts else request.part_id,
                    part_name=None if request.combine_parts else request.part_name,
                    format=export_format,
                    combination=combination,
                    parameters=parameters,
                    config_tag=tag,
                    combine_scope=request.combine_parts,
                    quality=request.quality,
                    owner=owner,
                )
            )
        batches.append(batch)

    return batches
