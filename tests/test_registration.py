"""Tests for application registration and the additive permission merge."""

import copy
from unittest.mock import MagicMock

import pytest

from sentinel_th.errors import RemoteError
from sentinel_th.registration import (
    AZURE_SERVICE_MANAGEMENT_APP_ID,
    GRAPH_USER_READ_SCOPE_ID,
    MICROSOFT_GRAPH_APP_ID,
    USER_IMPERSONATION_SCOPE_ID,
    add_api_permissions,
    add_sentinel_permissions,
    merge_resource_access,
    register_application,
)


class FakeGraph:
    """Minimal in-memory /applications store."""

    def __init__(self):
        self.apps: dict[str, dict] = {}
        self.patches: list[tuple[str, dict]] = []

    def create_application(self, body: dict) -> dict:
        app = {**copy.deepcopy(body), "id": "obj-1", "appId": "app-1"}
        self.apps["obj-1"] = app
        return copy.deepcopy(app)

    def get_application(self, object_id: str) -> dict:
        if object_id not in self.apps:
            raise RemoteError("Resource does not exist", status_code=404)
        return copy.deepcopy(self.apps[object_id])

    def update_application(self, object_id: str, patch: dict) -> None:
        self.patches.append((object_id, copy.deepcopy(patch)))
        self.apps[object_id].update(copy.deepcopy(patch))


@pytest.fixture
def graph():
    return FakeGraph()


class TestRegisterApplication:
    def test_body_shape(self, graph):
        app = register_application(graph, "My App", ["https://localhost/callback"])

        assert app["displayName"] == "My App"
        assert app["signInAudience"] == "AzureADMyOrg"
        assert app["web"]["redirectUris"] == ["https://localhost/callback"]
        assert app["web"]["implicitGrantSettings"] == {
            "enableIdTokenIssuance": True,
            "enableAccessTokenIssuance": True,
        }
        assert app["requiredResourceAccess"] == [{
            "resourceAppId": MICROSOFT_GRAPH_APP_ID,
            "resourceAccess": [{"id": GRAPH_USER_READ_SCOPE_ID, "type": "Scope"}],
        }]

    def test_redirect_uris_default_empty(self, graph):
        app = register_application(graph, "My App")
        assert app["web"]["redirectUris"] == []


class TestAddSentinelPermissions:
    def test_preserves_existing_entries(self, graph):
        app = register_application(graph, "My App")
        unrelated = {
            "resourceAppId": "cfa8b339-82a2-471a-a3c9-0fc0be7a4093",
            "resourceAccess": [{"id": "f53da476-18e3-4152-8e01-aec403e6edc0", "type": "Scope"}],
        }
        graph.apps[app["id"]]["requiredResourceAccess"].append(unrelated)

        add_sentinel_permissions(graph, app["id"])

        stored = graph.apps[app["id"]]["requiredResourceAccess"]
        app_ids = [e["resourceAppId"] for e in stored]
        assert app_ids == [
            MICROSOFT_GRAPH_APP_ID,
            "cfa8b339-82a2-471a-a3c9-0fc0be7a4093",
            AZURE_SERVICE_MANAGEMENT_APP_ID,
        ]
        assert unrelated in stored
        assert stored[2]["resourceAccess"] == [{"id": USER_IMPERSONATION_SCOPE_ID, "type": "Scope"}]

    def test_repeat_call_does_not_duplicate(self, graph):
        app = register_application(graph, "My App")
        add_sentinel_permissions(graph, app["id"])
        add_sentinel_permissions(graph, app["id"])
        stored = graph.apps[app["id"]]["requiredResourceAccess"]
        assert len(stored) == 2
        assert len(stored[1]["resourceAccess"]) == 1

    def test_read_before_write(self):
        graph = MagicMock()
        graph.get_application.return_value = {"requiredResourceAccess": []}
        add_api_permissions(graph, "obj-9", [{"resourceAppId": "a", "resourceAccess": []}])
        names = [c[0] for c in graph.method_calls]
        assert names == ["get_application", "update_application"]
        graph.update_application.assert_called_once_with(
            "obj-9", {"requiredResourceAccess": [{"resourceAppId": "a", "resourceAccess": []}]}
        )

    def test_read_failure_skips_write(self):
        graph = MagicMock()
        graph.get_application.side_effect = RemoteError("not found", status_code=404)
        with pytest.raises(RemoteError):
            add_sentinel_permissions(graph, "missing")
        graph.update_application.assert_not_called()


class TestMergeResourceAccess:
    def test_merges_scopes_for_same_resource(self):
        existing = [{"resourceAppId": "r", "resourceAccess": [{"id": "1", "type": "Scope"}]}]
        additions = [{"resourceAppId": "r", "resourceAccess": [
            {"id": "1", "type": "Scope"},
            {"id": "2", "type": "Role"},
        ]}]
        merged = merge_resource_access(existing, additions)
        assert merged == [{"resourceAppId": "r", "resourceAccess": [
            {"id": "1", "type": "Scope"},
            {"id": "2", "type": "Role"},
        ]}]
        assert existing[0]["resourceAccess"] == [{"id": "1", "type": "Scope"}]

    def test_none_existing(self):
        assert merge_resource_access(None, []) == []
