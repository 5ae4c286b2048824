"""SentinelClient for saved searches, hunts and hunt relations in a Sentinel workspace.

Wraps the Azure Resource Manager REST API (Microsoft.OperationalInsights
savedSearches, Microsoft.SecurityInsights hunts/relations) and the
azure-monitor-query LogsQueryClient for ad-hoc KQL runs. Methods are thin
create/read/delete primitives; all failures raise RemoteError.
"""

import logging
from datetime import datetime, timedelta

from azure.core.exceptions import AzureError, HttpResponseError
from azure.monitor.query import LogsQueryClient, LogsQueryStatus

from sentinel_th.config import MANAGEMENT_SCOPE, Settings
from sentinel_th.errors import RemoteError
from sentinel_th.rest import AzureRestClient

logger = logging.getLogger(__name__)

ARM_ENDPOINT = "https://management.azure.com"

# Ad-hoc hunting queries may aggregate over days of data
RUN_QUERY_TIMEOUT = 180


class SentinelClient(AzureRestClient):
    """Create/read/delete primitives for the Sentinel hunting resources.

    The workspace is addressed by its ARM coordinates from Settings; the
    Log Analytics GUID is only used for query execution.
    """

    SCOPE = MANAGEMENT_SCOPE
    NEXT_LINK_KEY = "nextLink"
    SERVICE_NAME = "Azure Resource Manager"

    def __init__(
        self,
        settings: Settings,
        *,
        session=None,
        credential=None,
        logs_client: LogsQueryClient | None = None,
    ):
        """Initialize with Settings. Optionally inject collaborators for testing.

        Args:
            settings: Application settings with the workspace coordinates.
            session: Optional requests.Session (for test injection).
            credential: Optional azure-identity credential.
            logs_client: Optional pre-built LogsQueryClient.
        """
        super().__init__(
            session=session,
            credential=credential,
            timeout=settings.request_timeout,
        )
        self._settings = settings
        self._workspace_id = settings.sentinel_workspace_id
        if logs_client is not None:
            self._logs_client = logs_client
        else:
            self._logs_client = LogsQueryClient(self._credential)

    # ------------------------------------------------------------------
    # Resource addressing
    # ------------------------------------------------------------------

    @property
    def workspace_resource_id(self) -> str:
        return self._settings.workspace_resource_id

    def _workspace_url(self, suffix: str) -> str:
        return f"{ARM_ENDPOINT}{self.workspace_resource_id}{suffix}"

    def _saved_search_url(self, name: str = "") -> str:
        suffix = f"/savedSearches/{name}" if name else "/savedSearches"
        return self._workspace_url(suffix)

    def _hunt_url(self, hunt_id: str = "") -> str:
        suffix = "/providers/Microsoft.SecurityInsights/hunts"
        if hunt_id:
            suffix += f"/{hunt_id}"
        return self._workspace_url(suffix)

    def _relation_url(self, hunt_id: str, relation_id: str = "") -> str:
        url = f"{self._hunt_url(hunt_id)}/relations"
        if relation_id:
            url += f"/{relation_id}"
        return url

    @property
    def _search_params(self) -> dict:
        return {"api-version": self._settings.saved_search_api_version}

    @property
    def _hunt_params(self) -> dict:
        return {"api-version": self._settings.hunts_api_version}

    # ------------------------------------------------------------------
    # Saved searches
    # ------------------------------------------------------------------

    def list_saved_searches(self) -> list[dict]:
        """Return every saved search in the workspace."""
        return self._list_all(self._saved_search_url(), params=self._search_params)

    def create_saved_search(self, name: str, body: dict) -> dict:
        """PUT a saved search under the given resource name."""
        logger.info("Creating saved search %s", name)
        return self._request(
            "PUT", self._saved_search_url(name), json=body, params=self._search_params
        )

    def delete_saved_search(self, name: str) -> None:
        self._request("DELETE", self._saved_search_url(name), params=self._search_params)

    # ------------------------------------------------------------------
    # Hunts
    # ------------------------------------------------------------------

    def get_hunts(self) -> dict:
        """Return the first page of hunts as {value, nextLink?}."""
        return self._request("GET", self._hunt_url(), params=self._hunt_params) or {"value": []}

    def list_hunts(self) -> list[dict]:
        """Return every hunt in the workspace, following next links."""
        return self._list_all(self._hunt_url(), params=self._hunt_params)

    def create_hunt(self, hunt_id: str, body: dict) -> dict:
        logger.info("Creating hunt %s", hunt_id)
        return self._request("PUT", self._hunt_url(hunt_id), json=body, params=self._hunt_params)

    def delete_hunt(self, hunt_id: str) -> None:
        self._request("DELETE", self._hunt_url(hunt_id), params=self._hunt_params)

    # ------------------------------------------------------------------
    # Hunt relations
    # ------------------------------------------------------------------

    def list_hunt_relations(self, hunt_id: str) -> list[dict]:
        return self._list_all(self._relation_url(hunt_id), params=self._hunt_params)

    def create_hunt_relation(self, hunt_id: str, relation_id: str, body: dict) -> dict:
        logger.info("Creating relation %s under hunt %s", relation_id, hunt_id)
        return self._request(
            "PUT",
            self._relation_url(hunt_id, relation_id),
            json=body,
            params=self._hunt_params,
        )

    def delete_hunt_relation(self, hunt_id: str, relation_id: str) -> None:
        self._request(
            "DELETE", self._relation_url(hunt_id, relation_id), params=self._hunt_params
        )

    # ------------------------------------------------------------------
    # Query execution
    # ------------------------------------------------------------------

    def run_hunting_query(self, query: str, timespan: timedelta) -> dict:
        """Execute freeform KQL against the workspace.

        Returns {"tables": [...]} with column names/types and JSON-safe rows.
        Partial results add "partialError".
        """
        try:
            response = self._logs_client.query_workspace(
                workspace_id=self._workspace_id,
                query=query,
                timespan=timespan,
                server_timeout=RUN_QUERY_TIMEOUT,
            )
        except HttpResponseError as e:
            status_code = getattr(e, "status_code", None) or 0
            error_code = getattr(e.error, "code", None) if e.error else None
            raise RemoteError(
                str(e.message or e)[:500],
                status_code=status_code,
                code=error_code or "query_error",
            ) from e
        except AzureError as e:
            raise RemoteError(
                f"Log Analytics request failed: {e.message}",
                code="transport_error",
            ) from e

        if response.status == LogsQueryStatus.SUCCESS:
            return {"tables": [self._serialize_table(t) for t in response.tables]}

        if response.status == LogsQueryStatus.PARTIAL:
            error = response.partial_error
            result = {"tables": [self._serialize_table(t) for t in response.partial_data]}
            result["partialError"] = (
                f"{error.code}: {error.message}" if error else "Partial results"
            )
            return result

        raise RemoteError(
            f"Unexpected query status: {response.status}",
            code="unexpected_status",
        )

    # ------------------------------------------------------------------
    # Private: result serialization
    # ------------------------------------------------------------------

    @staticmethod
    def _serialize_table(table) -> dict:
        """Convert a LogsTable into the QueryResults table shape."""
        names = [col.name if hasattr(col, "name") else str(col) for col in table.columns]
        types = list(getattr(table, "columns_types", None) or [])
        types.extend([""] * (len(names) - len(types)))
        return {
            "name": getattr(table, "name", "PrimaryResult"),
            "columns": [{"name": n, "type": t} for n, t in zip(names, types, strict=False)],
            "rows": [[SentinelClient._jsonable(v) for v in row] for row in table.rows],
        }

    @staticmethod
    def _jsonable(value):
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, timedelta):
            return value.total_seconds()
        return value
