"""Shared bearer-token REST plumbing for the ARM and Graph clients.

Wraps a requests.Session with DefaultAzureCredential token acquisition,
remote error extraction and next-link pagination. Every failure surfaces
as RemoteError; nothing is retried.
"""

import logging

import requests
from azure.core.exceptions import ClientAuthenticationError
from azure.identity import DefaultAzureCredential

from sentinel_th.errors import RemoteError

logger = logging.getLogger(__name__)


def extract_error(resp: requests.Response) -> tuple[str, str]:
    """Return (code, message) from an Azure-style error body.

    ARM and Graph both answer {"error": {"code", "message"}}; anything else
    falls back to the raw body or the HTTP reason phrase.
    """
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        err = body["error"]
        code = str(err.get("code") or "http_error")
        message = str(err.get("message") or resp.reason or "Request failed")
        return code, message
    text = (resp.text or "").strip()
    return "http_error", text[:500] or f"HTTP {resp.status_code} {resp.reason or ''}".strip()


def check_response(resp: requests.Response) -> None:
    """Raise RemoteError for non-2xx responses."""
    if resp.status_code >= 400:
        code, message = extract_error(resp)
        raise RemoteError(message, status_code=resp.status_code, code=code)


class AzureRestClient:
    """Base class for JSON REST clients authenticated with an Azure AD token.

    Subclasses set SCOPE and NEXT_LINK_KEY. A session and credential may be
    injected for testing.
    """

    SCOPE = ""
    NEXT_LINK_KEY = "nextLink"
    SERVICE_NAME = "Azure"

    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        credential=None,
        timeout: int = 30,
    ):
        self._session = session if session is not None else requests.Session()
        self._credential = credential if credential is not None else DefaultAzureCredential()
        self._timeout = timeout

    def _token(self) -> str:
        try:
            return self._credential.get_token(self.SCOPE).token
        except ClientAuthenticationError as e:
            raise RemoteError(
                f"Could not acquire {self.SERVICE_NAME} token: {e.message}",
                status_code=401,
                code="auth_error",
            ) from e

    def _request(
        self,
        method: str,
        url: str,
        *,
        json: dict | None = None,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> dict | None:
        """Send one request and return the decoded JSON body (None if empty)."""
        all_headers = {"Authorization": f"Bearer {self._token()}"}
        if headers:
            all_headers.update(headers)
        try:
            resp = self._session.request(
                method,
                url,
                json=json,
                params=params,
                headers=all_headers,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise RemoteError(
                f"{self.SERVICE_NAME} request failed: {e}",
                code="transport_error",
            ) from e

        logger.debug("%s %s -> %s", method, url.split("?")[0], resp.status_code)
        check_response(resp)
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise RemoteError(
                f"{self.SERVICE_NAME} returned a non-JSON response (HTTP {resp.status_code})",
                status_code=resp.status_code,
                code="invalid_response",
            ) from e

    def _list_all(self, url: str, *, params: dict | None = None) -> list[dict]:
        """GET a collection and follow next links until exhausted."""
        items: list[dict] = []
        page = self._request("GET", url, params=params) or {}
        items.extend(page.get("value", []))
        next_link = page.get(self.NEXT_LINK_KEY)
        while next_link:
            # Next links already carry the api-version and any skip token
            page = self._request("GET", next_link) or {}
            items.extend(page.get("value", []))
            next_link = page.get(self.NEXT_LINK_KEY)
        return items
