"""Query builder, hunt builder, relation linker and the bulk orchestrator.

HuntingService composes SentinelClient primitives into the operations the
HTTP layer exposes. Validation happens before any remote call; remote
errors propagate unchanged. Multi-step creation is sequential and never
rolls back: a resource left behind by a failed later step is still
attributed, so the purge engine can remove it.
"""

import logging
import re
from pathlib import Path

from sentinel_th.errors import ValidationError
from sentinel_th.kql_file import read_kql_file
from sentinel_th.payloads import build_hunt, build_relation, build_saved_search
from sentinel_th.sentinel_client import SentinelClient

logger = logging.getLogger(__name__)

_SAVED_SEARCH_ID_RE = re.compile(
    r"^(?P<workspace>/subscriptions/[^/]+/resourceGroups/[^/]+"
    r"/providers/Microsoft\.OperationalInsights/workspaces/[^/]+)"
    r"/savedSearches/(?P<name>[^/]+)$",
    re.IGNORECASE,
)


def _require(payload, *fields: str) -> None:
    """Raise ValidationError naming every missing or blank field."""
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    missing = [
        f for f in fields
        if not isinstance(payload.get(f), str) or not payload[f].strip()
    ]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")


class HuntingService:
    """Creates attributed saved searches, hunts and relations.

    Each step is exposed individually for direct callers, and
    create_hunt_with_query() sequences all three.
    """

    def __init__(self, sentinel_client: SentinelClient):
        self._client = sentinel_client

    # ------------------------------------------------------------------
    # Query builder
    # ------------------------------------------------------------------

    def create_query_from_input(self, payload: dict) -> dict:
        """Create a hunting-query saved search from a QueryInput dict.

        Requires name and query. tactics/techniques may be strings or lists.
        """
        _require(payload, "name", "query")
        resource_name, body = build_saved_search(payload)
        return self._client.create_saved_search(resource_name, body)

    def create_query_from_file(self, path: str | Path, *, default_name: str | None = None) -> dict:
        """Create a saved search from a .kql file with a comment header.

        default_name is used when the header carries no name. The file is
        never deleted here.
        """
        parsed = read_kql_file(path)
        payload = parsed.to_payload()
        if not payload.get("name") and default_name:
            payload["name"] = default_name
        return self.create_query_from_input(payload)

    # ------------------------------------------------------------------
    # Hunt builder
    # ------------------------------------------------------------------

    def create_hunt(self, payload: dict) -> dict:
        _require(payload, "name")
        hunt_id, body = build_hunt(payload["name"], payload.get("description"))
        return self._client.create_hunt(hunt_id, body)

    # ------------------------------------------------------------------
    # Relation linker
    # ------------------------------------------------------------------

    def _check_query_resource_id(self, query_resource_id: str) -> None:
        match = _SAVED_SEARCH_ID_RE.match(query_resource_id.strip())
        if match is None:
            raise ValidationError(
                f"queryResourceId is not a saved search resource id: '{query_resource_id}'"
            )
        if match.group("workspace").lower() != self._client.workspace_resource_id.lower():
            raise ValidationError(
                "queryResourceId must reference a saved search in the configured workspace"
            )

    def link_query_to_hunt(self, payload: dict) -> dict:
        """Create a relation from an existing hunt to an existing saved search.

        Existence of either side is left to the remote service to check.
        """
        _require(payload, "huntId", "queryResourceId")
        query_resource_id = payload["queryResourceId"].strip()
        self._check_query_resource_id(query_resource_id)
        relation_id, body = build_relation(query_resource_id)
        return self._client.create_hunt_relation(payload["huntId"].strip(), relation_id, body)

    # ------------------------------------------------------------------
    # Orchestrator
    # ------------------------------------------------------------------

    def create_hunt_with_query(self, payload: dict) -> dict:
        """Create a saved search, a hunt, and the relation linking them.

        Steps run strictly in order and are not rolled back. If the hunt or
        relation step fails, resources from earlier steps remain in the
        workspace (at least one resource may exist without full linkage);
        they are attributed and removable with purge.

        Returns the created relation.
        """
        _require(payload, "name", "query", "huntName")

        saved_search = self.create_query_from_input(payload)
        logger.info("Bulk create: saved search %s created", saved_search.get("name"))

        try:
            hunt = self.create_hunt({
                "name": payload["huntName"],
                "description": payload.get("huntDescription"),
            })
        except Exception:
            logger.warning(
                "Bulk create: hunt step failed; saved search %s left unlinked",
                saved_search.get("id"),
            )
            raise
        logger.info("Bulk create: hunt %s created", hunt.get("name"))

        try:
            relation = self.link_query_to_hunt({
                "huntId": hunt["name"],
                "queryResourceId": saved_search["id"],
            })
        except Exception:
            logger.warning(
                "Bulk create: link step failed; hunt %s and saved search %s left unlinked",
                hunt.get("name"),
                saved_search.get("id"),
            )
            raise
        logger.info("Bulk create: relation %s links hunt %s", relation.get("name"), hunt.get("name"))
        return relation
