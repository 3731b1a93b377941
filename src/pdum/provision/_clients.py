"""Discovery clients used by ``ApiControlPlane``.

Every client is built the same way (no discovery cache, explicit credentials), so
they are looked up by a short name instead of one builder function per API.
"""

from __future__ import annotations

from google.auth.credentials import Credentials
from googleapiclient import discovery

APIS: dict[str, tuple[str, str]] = {
    "crm_v3": ("cloudresourcemanager", "v3"),
    "iam_v1": ("iam", "v1"),
    "service_usage": ("serviceusage", "v1"),
    "cloud_billing": ("cloudbilling", "v1"),
    "api_keys": ("apikeys", "v2"),
}


def build(name: str, credentials: Credentials):
    """Build the discovery client registered as ``name`` (see ``APIS``)."""
    try:
        api, version = APIS[name]
    except KeyError:
        raise ValueError(f"Unknown API client: {name}") from None
    return discovery.build(api, version, credentials=credentials, cache_discovery=False)
