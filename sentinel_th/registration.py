"""Entra ID application registration for the integration.

register_application() creates the app with a baseline Graph scope;
add_sentinel_permissions() then grants Azure Service Management access
with a read-merge-write of requiredResourceAccess.

The merge is not compare-and-swap. Calls are serialized within this
process, but two processes updating the same application can still race.
"""

import logging
import threading

from sentinel_th.graph_client import GraphClient

logger = logging.getLogger(__name__)

DEFAULT_APP_NAME = "Sentinel TH Integration App"

MICROSOFT_GRAPH_APP_ID = "00000003-0000-0000-c000-000000000000"
GRAPH_USER_READ_SCOPE_ID = "e1fe6dd8-ba31-4d61-89e7-88639da4683d"

AZURE_SERVICE_MANAGEMENT_APP_ID = "797f4846-ba00-4fd7-ba43-dac1f8f63013"
USER_IMPERSONATION_SCOPE_ID = "41094075-9dad-400e-a0bd-54e686782033"

BASE_RESOURCE_ACCESS: list[dict] = [
    {
        "resourceAppId": MICROSOFT_GRAPH_APP_ID,
        "resourceAccess": [{"id": GRAPH_USER_READ_SCOPE_ID, "type": "Scope"}],
    }
]

SENTINEL_RESOURCE_ACCESS: list[dict] = [
    {
        "resourceAppId": AZURE_SERVICE_MANAGEMENT_APP_ID,
        "resourceAccess": [{"id": USER_IMPERSONATION_SCOPE_ID, "type": "Scope"}],
    }
]

_permission_lock = threading.Lock()


def register_application(graph: GraphClient, name: str, redirect_uris: list[str] | None = None) -> dict:
    """Create a single-tenant web application. Returns the Graph application object."""
    body = {
        "displayName": name,
        "signInAudience": "AzureADMyOrg",
        "web": {
            "redirectUris": list(redirect_uris or []),
            "implicitGrantSettings": {
                "enableIdTokenIssuance": True,
                "enableAccessTokenIssuance": True,
            },
        },
        "requiredResourceAccess": [
            {**entry, "resourceAccess": [dict(a) for a in entry["resourceAccess"]]}
            for entry in BASE_RESOURCE_ACCESS
        ],
    }
    app = graph.create_application(body)
    logger.info("Application registered: appId=%s objectId=%s", app.get("appId"), app.get("id"))
    return app


def merge_resource_access(existing: list[dict] | None, additions: list[dict]) -> list[dict]:
    """Union two requiredResourceAccess lists without dropping any entry.

    Entries for the same resourceAppId are merged by access (id, type);
    order of first appearance is preserved.
    """
    merged: list[dict] = []
    by_app: dict[str, dict] = {}
    for entry in [*(existing or []), *additions]:
        app_id = entry.get("resourceAppId")
        target = by_app.get(app_id)
        if target is None:
            target = {**entry, "resourceAccess": []}
            by_app[app_id] = target
            merged.append(target)
        seen = {(a.get("id"), a.get("type")) for a in target["resourceAccess"]}
        for access in entry.get("resourceAccess") or []:
            key = (access.get("id"), access.get("type"))
            if key not in seen:
                target["resourceAccess"].append(dict(access))
                seen.add(key)
    return merged


def add_api_permissions(graph: GraphClient, object_id: str, permissions: list[dict]) -> list[dict]:
    """Read-merge-write permissions onto an application. Returns the written list."""
    with _permission_lock:
        app = graph.get_application(object_id)
        required = merge_resource_access(app.get("requiredResourceAccess"), permissions)
        graph.update_application(object_id, {"requiredResourceAccess": required})
    logger.info("API permissions added for app object ID %s", object_id)
    return required


def add_sentinel_permissions(graph: GraphClient, object_id: str) -> list[dict]:
    """Grant Azure Service Management user_impersonation (used for Sentinel ARM calls)."""
    return add_api_permissions(graph, object_id, SENTINEL_RESOURCE_ACCESS)
