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
# EXPORT SETTINGS
# -----------------------------------------------------------------------------
# Responsibility: Provider endpoint, polling ceiling, provider concurrency,
# stored job output budget and mesh quality defaults. Loaded from
# export.yaml at startup, then overridden by environment variables.
# -----------------------------------------------------------------------------

import os
from pathlib import Path

import yaml
from pydantic import BaseModel
from rich.console import Console

console = Console()

# Settings file location
SETTINGS_PATH = Path(__file__).parent.parent.parent / "export.yaml"


class ExportSettings(BaseModel):
    """
    Pydantic model for the export configuration.

    Loaded from export.yaml at startup.
    """

    api_base: str = "https://cad.onshape.com/api/v6"
    request_timeout_seconds: float = 30.0
    poll_interval_seconds: float = 2.0
    max_poll_attempts: int = 90
    max_workers: int = 8
    job_payload_budget_bytes: int = 64 * 1024 * 1024

    mesh_units: str = "millimeter"
    mesh_scale: int = 1
    min_facet_width: str = "0.0254"
    angle_tolerance: str = "0.04363323129985824"
    chord_tolerance: str = "0.06"

    access_key: str | None = None
    secret_key: str | None = None


def load_settings(path: Path | None = None) -> ExportSettings:
    """
    Load settings from YAML, then apply environment overrides.

    Args:
        path: Settings file. Defaults to SHAPEPORT_SETTINGS or export.yaml.

    Returns:
        ExportSettings with validated values.
    """
    settings_path = path or Path(os.getenv("SHAPEPORT_SETTINGS", str(SETTINGS_PATH)))

    data: dict = {}
    if settings_path.exists():
        with open(settings_path) as f:
            data = yaml.safe_load(f) or {}
        console.print(f"[green][SETTINGS] Loaded {settings_path.name}[/green]")
    else:
        console.print("[yellow][SETTINGS] Settings file not found, using defaults[/yellow]")

    overrides = {
        "api_base": os.getenv("SHAPEPORT_API_BASE"),
        "max_workers": os.getenv("SHAPEPORT_MAX_WORKERS"),
        "poll_interval_seconds": os.getenv("SHAPEPORT_POLL_INTERVAL"),
        "access_key": os.getenv("ONSHAPE_ACCESS_KEY"),
        "secret_key": os.getenv("ONSHAPE_SECRET_KEY"),
    }
    data.update({key: value for key, value in overrides.items() if value})

    return ExportSettings(**data)
