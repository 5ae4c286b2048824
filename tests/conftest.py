"""Shared pytest fixtures: settings, env isolation and an in-memory Sentinel workspace."""

import copy
from unittest.mock import MagicMock

import pytest

from sentinel_th.config import Settings
from sentinel_th.errors import RemoteError

SUBSCRIPTION_ID = "11111111-1111-1111-1111-111111111111"
RESOURCE_GROUP = "rg-sentinel"
WORKSPACE_NAME = "ws-sentinel"
WORKSPACE_ID = "00000000-0000-0000-0000-000000000000"


def _make_settings(**overrides) -> Settings:
    values = {
        "azure_subscription_id": SUBSCRIPTION_ID,
        "azure_resource_group": RESOURCE_GROUP,
        "sentinel_workspace_name": WORKSPACE_NAME,
        "sentinel_workspace_id": WORKSPACE_ID,
        "azure_client_id": "22222222-2222-2222-2222-222222222222",
    }
    values.update(overrides)
    return Settings(**values)


class FakeSentinelWorkspace:
    """In-memory stand-in for SentinelClient.

    Mirrors the remote service closely enough for orchestration and purge
    tests: server-assigned ids, 404 on missing resources, relation
    referential checks, and cascade delete of relations with their hunt.
    Any method can be forced to fail via fail(method, error).
    """

    def __init__(self, settings: Settings):
        self.workspace_resource_id = settings.workspace_resource_id
        self.saved_searches: dict[str, dict] = {}
        self.hunts: dict[str, dict] = {}
        self.relations: dict[str, dict[str, dict]] = {}
        self.calls: list[tuple] = []
        self._failures: dict[str, RemoteError] = {}
        self._fail_names: dict[str, set[str]] = {}

    # -- failure injection ---------------------------------------------

    def fail(self, method: str, error: RemoteError | None = None, *, only: set[str] | None = None):
        """Make `method` raise. `only` restricts failures to given resource names."""
        self._failures[method] = error or RemoteError("Forbidden", status_code=403, code="AuthorizationFailed")
        if only is not None:
            self._fail_names[method] = set(only)

    def _maybe_fail(self, method: str, *names: str):
        self.calls.append((method, *names))
        if method not in self._failures:
            return
        restricted = self._fail_names.get(method)
        if restricted is None or restricted.intersection(names):
            raise self._failures[method]

    @staticmethod
    def _not_found(kind: str, name: str) -> RemoteError:
        return RemoteError(f"{kind} '{name}' was not found", status_code=404, code="NotFound")

    # -- saved searches ------------------------------------------------

    def list_saved_searches(self) -> list[dict]:
        self._maybe_fail("list_saved_searches")
        return [copy.deepcopy(s) for s in self.saved_searches.values()]

    def create_saved_search(self, name: str, body: dict) -> dict:
        self._maybe_fail("create_saved_search", name)
        resource = {
            "id": f"{self.workspace_resource_id}/savedSearches/{name}",
            "name": name,
            "type": "Microsoft.OperationalInsights/savedSearches",
            "etag": "W/\"datetime'2026-01-01T00%3A00%3A00Z'\"",
            "properties": copy.deepcopy(body["properties"]),
        }
        self.saved_searches[name] = resource
        return copy.deepcopy(resource)

    def delete_saved_search(self, name: str) -> None:
        self._maybe_fail("delete_saved_search", name)
        if name not in self.saved_searches:
            raise self._not_found("Saved search", name)
        del self.saved_searches[name]

    # -- hunts ---------------------------------------------------------

    def get_hunts(self) -> dict:
        self._maybe_fail("get_hunts")
        return {"value": [copy.deepcopy(h) for h in self.hunts.values()]}

    def list_hunts(self) -> list[dict]:
        self._maybe_fail("list_hunts")
        return [copy.deepcopy(h) for h in self.hunts.values()]

    def create_hunt(self, hunt_id: str, body: dict) -> dict:
        self._maybe_fail("create_hunt", hunt_id)
        resource = {
            "id": f"{self.workspace_resource_id}/providers/Microsoft.SecurityInsights/hunts/{hunt_id}",
            "name": hunt_id,
            "type": "Microsoft.SecurityInsights/hunts",
            "properties": copy.deepcopy(body["properties"]),
        }
        self.hunts[hunt_id] = resource
        self.relations.setdefault(hunt_id, {})
        return copy.deepcopy(resource)

    def delete_hunt(self, hunt_id: str) -> None:
        self._maybe_fail("delete_hunt", hunt_id)
        if hunt_id not in self.hunts:
            raise self._not_found("Hunt", hunt_id)
        del self.hunts[hunt_id]
        self.relations.pop(hunt_id, None)

    # -- relations -----------------------------------------------------

    def list_hunt_relations(self, hunt_id: str) -> list[dict]:
        self._maybe_fail("list_hunt_relations", hunt_id)
        if hunt_id not in self.hunts:
            raise self._not_found("Hunt", hunt_id)
        return [copy.deepcopy(r) for r in self.relations.get(hunt_id, {}).values()]

    def create_hunt_relation(self, hunt_id: str, relation_id: str, body: dict) -> dict:
        self._maybe_fail("create_hunt_relation", hunt_id, relation_id)
        if hunt_id not in self.hunts:
            raise self._not_found("Hunt", hunt_id)
        related = body["properties"]["relatedResourceId"]
        if related.rsplit("/", 1)[-1] not in self.saved_searches:
            raise self._not_found("Saved search", related)
        resource = {
            "id": f"{self.hunts[hunt_id]['id']}/relations/{relation_id}",
            "name": relation_id,
            "type": "Microsoft.SecurityInsights/hunts/relations",
            "properties": {
                **copy.deepcopy(body["properties"]),
                "relatedResourceType": "Microsoft.OperationalInsights/savedSearches",
                "relatedResourceName": related.rsplit("/", 1)[-1],
            },
        }
        self.relations[hunt_id][relation_id] = resource
        return copy.deepcopy(resource)

    def delete_hunt_relation(self, hunt_id: str, relation_id: str) -> None:
        self._maybe_fail("delete_hunt_relation", hunt_id, relation_id)
        if relation_id not in self.relations.get(hunt_id, {}):
            raise self._not_found("Relation", relation_id)
        del self.relations[hunt_id][relation_id]

    def run_hunting_query(self, query, timespan) -> dict:
        self._maybe_fail("run_hunting_query")
        return {"tables": [{"name": "PrimaryResult", "columns": [], "rows": []}]}

    # -- helpers -------------------------------------------------------

    def seed_foreign_saved_search(self, name: str = "foreign-search") -> dict:
        """Add a saved search that this integration did not create."""
        self.saved_searches[name] = {
            "id": f"{self.workspace_resource_id}/savedSearches/{name}",
            "name": name,
            "properties": {
                "category": "Hunting Queries",
                "displayName": "Pre-existing query",
                "query": "SecurityEvent | take 1",
                "tags": [{"name": "tactics", "value": "Execution"}],
            },
        }
        return self.saved_searches[name]

    def seed_foreign_hunt(self, hunt_id: str = "foreign-hunt") -> dict:
        self.hunts[hunt_id] = {
            "id": f"{self.workspace_resource_id}/providers/Microsoft.SecurityInsights/hunts/{hunt_id}",
            "name": hunt_id,
            "properties": {"displayName": "Analyst hunt", "labels": ["manual"]},
        }
        self.relations.setdefault(hunt_id, {})
        return self.hunts[hunt_id]

    def call_count(self, method: str) -> int:
        return sum(1 for c in self.calls if c[0] == method)


@pytest.fixture
def mock_settings():
    """Return a Settings instance pointing at a test workspace."""
    return _make_settings()


@pytest.fixture
def workspace(mock_settings):
    """Return an empty in-memory Sentinel workspace."""
    return FakeSentinelWorkspace(mock_settings)


@pytest.fixture
def mock_credential():
    """Return a MagicMock credential whose get_token yields a fixed token."""
    credential = MagicMock()
    credential.get_token.return_value = MagicMock(token="test-token")
    return credential


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Set required env vars to test values."""
    monkeypatch.setenv("AZURE_SUBSCRIPTION_ID", SUBSCRIPTION_ID)
    monkeypatch.setenv("AZURE_RESOURCE_GROUP", RESOURCE_GROUP)
    monkeypatch.setenv("SENTINEL_WORKSPACE_NAME", WORKSPACE_NAME)
    monkeypatch.setenv("SENTINEL_WORKSPACE_ID", WORKSPACE_ID)


@pytest.fixture
def clean_env(monkeypatch):
    """Clear all AZURE_* and SENTINEL_* env vars and prevent .env reload."""
    env_prefixes = ("AZURE_", "SENTINEL_", "UPLOADS_DIR", "PORT", "HOST", "LOG_LEVEL")
    import os

    for key in list(os.environ.keys()):
        if key.startswith(env_prefixes):
            monkeypatch.delenv(key, raising=False)

    # Prevent load_dotenv() from re-reading .env file during tests
    monkeypatch.setattr("sentinel_th.config.load_dotenv", lambda *a, **kw: None)
