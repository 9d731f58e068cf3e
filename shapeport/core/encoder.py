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
# THE ENCODER - CONFIGURATION ENCODINGS
# -----------------------------------------------------------------------------
# Responsibility: Turn one combination into the provider's two encodings:
# a query token for synchronous endpoints and an opaque encoded id for
# translation request bodies. One provider round trip per combination.
# -----------------------------------------------------------------------------

from rich.console import Console

from shapeport.core.assembler import render_value
from shapeport.core.errors import EncodingError
from shapeport.domain.models import ConfigEncoding, ConfigParameter, ConfigValue
from shapeport.infra.onshape_client import OnshapeAPIError, OnshapeClient

console = Console()


def parameter_value(param: ConfigParameter, value: ConfigValue) -> str:
    """
    Wire value for one parameter.

    Numbers carry their unit ("50 mm"); strings are enum option tokens and
    pass through untouched.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        rendered = render_value(value)
        return f"{rendered} {param.unit}" if param.unit else rendered
    return str(value)


def build_parameter_records(
    parameters: list[ConfigParameter], combination: tuple
) -> list[dict]:
    """Provider parameter records for a combination, in parameter order."""
    return [
        {"parameterId": param.id, "parameterValue": parameter_value(param, value)}
        for param, value in zip(parameters, combination)
    ]


class ConfigurationEncoder:
    """Encodes combinations for one studio through the provider."""

    def __init__(self, client: OnshapeClient, document_id: str, element_id: str) -> None:
        self._client = client
        self._document_id = document_id
        self._element_id = element_id

    def encode(self, parameters: list[ConfigParameter], combination: tuple) -> ConfigEncoding:
        """
        Encode one combination.

        Returns:
            An empty ConfigEncoding for the empty combination (no call made).

        Raises:
            EncodingError: If the provider rejects the parameter set.
        """
        records = build_parameter_records(parameters, combination)
        if not records:
            return ConfigEncoding()

        try:
            data = self._client.encode_configuration(
                self._document_id, self._element_id, records
            )
        except OnshapeAPIError as e:
            console.print(f"[red][ENCODER] Rejected {records}: {e}[/red]")
            raise EncodingError(
                f"Failed to encode configuration: {e}",
                details=e.body or None,
                status_code=e.status_code or None,
            )

        encoding = ConfigEncoding(
            query_token=data.get("queryParam") or None,
            encoded_id=data.get("encodedId") or None,
        )
        if encoding.is_empty:
            raise EncodingError(
                "Configuration encoding returned no identifiers", details=str(data)
            )
        console.print(f"[cyan][ENCODER] Encoded {len(records)} parameter(s)[/cyan]")
        return encoding
