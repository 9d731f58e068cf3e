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
# ONSHAPE INFRASTRUCTURE - REST API Client
# -----------------------------------------------------------------------------
# Responsibility: Authenticated calls to the Onshape REST API.
# Thin wrappers only: no retries, no export logic. Callers decide what a
# failure means for their unit of work.
#
# Security:
# - The Authorization header is forwarded as received
# - Credentials are NEVER logged
# -----------------------------------------------------------------------------

import base64
import hashlib
from urllib.parse import quote

import requests
from rich.console import Console

console = Console()

# Onshape API configuration
ONSHAPE_API_URL = "https://cad.onshape.com/api/v6"
JSON_ACCEPT = "application/json"
OCTET_ACCEPT = "application/vnd.onshape.v1+octet-stream"
ENCODING_CONTENT_TYPE = "application/json;charset=UTF-8; qs=0.09"


class OnshapeAPIError(Exception):
    """Raised when an Onshape API call fails or cannot be made."""

    def __init__(self, message: str, status_code: int = 0, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def basic_auth_header(access_key: str, secret_key: str) -> str:
    """Build a Basic Authorization header from an API key pair."""
    token = base64.b64encode(f"{access_key}:{secret_key}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def caller_identity(auth_header: str) -> str:
    """Short digest of an Authorization header. Safe to store and log."""
    return hashlib.sha256(auth_header.encode("utf-8")).hexdigest()[:16]


def configuration_query(token: str) -> str:
    """
    Normalize a configuration token into a `configuration=...` query fragment.

    The encodings endpoint already returns the full fragment; bare values
    are quoted and prefixed.
    """
    if token.startswith("configuration="):
        return token
    return f"configuration={quote(token, safe='')}"


def with_query(url: str, fragments: list[str]) -> str:
    """Append pre-encoded query fragments to a URL."""
    fragments = [f for f in fragments if f]
    if not fragments:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{'&'.join(fragments)}"


class OnshapeClient:
    """
    Onshape REST client bound to one Authorization header.

    Methods returning JSON raise OnshapeAPIError on any non-2xx status.
    The mesh download methods return the raw response so the caller can
    handle redirects itself.
    """

    def __init__(
        self, auth_header: str, api_base: str = ONSHAPE_API_URL, timeout: float = 30.0
    ) -> None:
        self._auth_header = auth_header
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout

    @property
    def identity(self) -> str:
        """Digest of the bound Authorization header."""
        return caller_identity(self._auth_header)

    def url(self, path: str) -> str:
        """Absolute URL for an API path."""
        return f"{self._api_base}/{path.lstrip('/')}"

    def _headers(self, accept: str = JSON_ACCEPT, content_type: str | None = None) -> dict:
        headers = {"Authorization": self._auth_header, "Accept": accept}
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            return requests.request(method, url, timeout=self._timeout, **kwargs)
        except requests.RequestException as e:
            raise OnshapeAPIError(f"Onshape request failed: {e}")

    def _check(self, response: requests.Response, action: str) -> requests.Response:
        if not response.ok:
            console.print(f"[red][ONSHAPE] {action}: {response.status_code}[/red]")
            raise OnshapeAPIError(
                f"{action}: {response.status_code} {response.reason}",
                status_code=response.status_code,
                body=response.text,
            )
        return response

    def _json(self, response: requests.Response, action: str):
        try:
            return response.json()
        except ValueError as e:
            raise OnshapeAPIError(
                f"{action}: invalid JSON response ({e})",
                status_code=response.status_code,
                body=response.text,
            )

    def _get_json(self, path: str, action: str, params: dict | None = None):
        response = self._request("GET", self.url(path), headers=self._headers(), params=params)
        return self._json(self._check(response, action), action)

    def _post_json(
        self, path: str, action: str, payload: dict, content_type: str = JSON_ACCEPT
    ):
        response = self._request(
            "POST",
            self.url(path),
            headers=self._headers(accept=content_type, content_type=content_type),
            json=payload,
        )
        return self._json(self._check(response, action), action)

    # =========================================================================
    # DOCUMENTS & ELEMENTS
    # =========================================================================

    def get_default_workspace(self, document_id: str) -> str | None:
        """Return the id of the document's default workspace, if any."""
        data = self._get_json(f"documents/{document_id}", "Failed to get document info")
        workspace = data.get("defaultWorkspace") or {}
        return workspace.get("id")

    def list_documents(self, query: str = "") -> list[dict]:
        """List documents visible to the caller, optionally filtered by `query`."""
        params = {"q": query} if query else None
        data = self._get_json("documents", "Failed to list documents", params=params)
        return data.get("items", [])

    def list_elements(self, document_id: str, workspace_id: str) -> list[dict]:
        """List the elements (tabs) of a workspace."""
        return self._get_json(
            f"documents/d/{document_id}/w/{workspace_id}/elements", "Failed to list elements"
        )

    def get_element_configuration(
        self, document_id: str, workspace_id: str, element_id: str
    ) -> dict | None:
        """Return an element's configuration, or None if it is not configurable."""
        try:
            return self._get_json(
                f"elements/d/{document_id}/w/{workspace_id}/e/{element_id}/configuration",
                "Failed to get configuration",
            )
        except OnshapeAPIError as e:
            if e.status_code == 404:
                return None
            raise

    def list_parts(
        self,
        document_id: str,
        workspace_id: str,
        element_id: str,
        configuration: str | None = None,
    ) -> list[dict]:
        """
        List the parts of a Part Studio.

        Args:
            configuration: Configuration query token. Part ids can differ
                between configurations, so pass it whenever one is active.
        """
        url = self.url(f"parts/d/{document_id}/w/{workspace_id}/e/{element_id}")
        if configuration:
            url = with_query(url, [configuration_query(configuration)])
        response = self._request("GET", url, headers=self._headers())
        action = "Failed to get parts list"
        return self._json(self._check(response, action), action)

    # =========================================================================
    # CONFIGURATIONS
    # =========================================================================

    def encode_configuration(
        self, document_id: str, element_id: str, parameters: list[dict]
    ) -> dict:
        """
        Encode configuration parameter values.

        Returns:
            Dict with `encodedId` (for request bodies) and `queryParam`
            (for query strings).
        """
        return self._post_json(
            f"elements/d/{document_id}/e/{element_id}/configurationencodings",
            "Failed to encode configuration",
            {"parameters": parameters},
            content_type=ENCODING_CONTENT_TYPE,
        )

    # =========================================================================
    # SYNCHRONOUS MESH DOWNLOAD
    # =========================================================================

    def fetch_mesh(self, url: str) -> requests.Response:
        """Request a mesh export without following redirects."""
        return self._request(
            "GET", url, headers=self._headers(accept=OCTET_ACCEPT), allow_redirects=False
        )

    def follow_redirect(self, location: str) -> requests.Response:
        """Fetch a redirect target with the same Authorization header."""
        return self._request("GET", location, headers={"Authorization": self._auth_header})

    # =========================================================================
    # ASYNCHRONOUS TRANSLATIONS
    # =========================================================================

    def start_translation(
        self, document_id: str, workspace_id: str, element_id: str, body: dict
    ) -> dict:
        """Submit a translation job for a Part Studio."""
        return self._post_json(
            f"partstudios/d/{document_id}/w/{workspace_id}/e/{element_id}/translations",
            f"Failed to start {body.get('formatName', '')} translation",
            body,
        )

    def get_translation(self, translation_id: str) -> dict:
        """Read the state of a translation job."""
        return self._get_json(
            f"translations/{translation_id}", "Failed to read translation status"
        )

    def download_external_data(self, document_id: str, data_id: str) -> tuple[bytes, str]:
        """
        Download a translation result.

        Returns:
            Tuple of (content_bytes, content_type).
        """
        response = self._request(
            "GET",
            self.url(f"documents/d/{document_id}/externaldata/{data_id}"),
            headers={"Authorization": self._auth_header},
        )
        self._check(response, "Failed to download translated file")
        return response.content, response.headers.get("content-type", "")
