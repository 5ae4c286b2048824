"""GraphClient for Entra ID application objects via Microsoft Graph v1.0."""

import logging

from sentinel_th.config import GRAPH_SCOPE, Settings
from sentinel_th.errors import RemoteError
from sentinel_th.rest import AzureRestClient

logger = logging.getLogger(__name__)

GRAPH_ENDPOINT = "https://graph.microsoft.com/v1.0"


class GraphClient(AzureRestClient):
    """Thin create/read/update wrapper over /applications."""

    SCOPE = GRAPH_SCOPE
    NEXT_LINK_KEY = "@odata.nextLink"
    SERVICE_NAME = "Microsoft Graph"

    def __init__(self, settings: Settings, *, session=None, credential=None):
        super().__init__(session=session, credential=credential, timeout=settings.request_timeout)
        self._settings = settings

    def create_application(self, body: dict) -> dict:
        return self._request("POST", f"{GRAPH_ENDPOINT}/applications", json=body)

    def get_application(self, object_id: str) -> dict:
        return self._request("GET", f"{GRAPH_ENDPOINT}/applications/{object_id}")

    def get_application_by_app_id(self, app_id: str) -> dict | None:
        """Look up an application by its client (app) id. Returns None if absent."""
        try:
            return self._request("GET", f"{GRAPH_ENDPOINT}/applications(appId='{app_id}')")
        except RemoteError as e:
            if e.status_code == 404:
                return None
            raise

    def update_application(self, object_id: str, patch: dict) -> None:
        """PATCH selected properties. Graph answers 204 with no body."""
        self._request("PATCH", f"{GRAPH_ENDPOINT}/applications/{object_id}", json=patch)
