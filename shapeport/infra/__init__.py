# -----------------------------------------------------------------------------
# INFRASTRUCTURE LAYER
# -----------------------------------------------------------------------------
# External system integrations:
# - OnshapeClient: Onshape REST API (documents, parts, encodings, exports)
# -----------------------------------------------------------------------------

from .onshape_client import OnshapeAPIError, OnshapeClient, basic_auth_header, caller_identity

__all__ = ["OnshapeAPIError", "OnshapeClient", "basic_auth_header", "caller_identity"]
