"""
Paginated read of the groups defined in a tenant's identity directory.

Groups are listed through the Microsoft Graph ``/groups`` endpoint and the
listing follows ``@odata.nextLink`` until the last page. Any page failure
raises FetchError; the caller never gets a silently truncated listing.
"""

import logging

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from group_sync_config import (
    GRAPH_API_BASE_URL,
    GRAPH_LOGIN_URL,
    GRAPH_PAGE_SIZE,
    GRAPH_TIMEOUT_SECONDS,
)
from group_sync_errors import CancellationError, FetchError
from group_sync_models import RemoteGroup

task_logger = logging.getLogger("airflow.task")

GRAPH_SCOPE = "https://graph.microsoft.com/.default"


def build_session(max_retries: int = 3) -> requests.Session:
    """Session retrying throttled and transient Graph responses."""
    session = requests.Session()
    retry = Retry(
        total=max_retries,
        backoff_factor=1,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET", "POST"],
        respect_retry_after_header=True,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def fetch_client_credentials_token(
    credentials,
    session=None,
    login_url=GRAPH_LOGIN_URL,
    timeout=GRAPH_TIMEOUT_SECONDS,
) -> str:
    """Acquire an app-only Graph token with the tenant's application id and secret."""
    session = session or requests.Session()
    endpoint = f"{login_url.rstrip('/')}/{credentials.tenant_directory_id}/oauth2/v2.0/token"
    body = {
        "client_id": credentials.application_id,
        "client_secret": credentials.application_secret,
        "scope": GRAPH_SCOPE,
        "grant_type": "client_credentials",
    }
    try:
        response = session.post(endpoint, data=body, timeout=timeout)
        response.raise_for_status()
        access_token = response.json().get("access_token")
    except (requests.exceptions.RequestException, ValueError) as e:
        raise FetchError(
            f"Could not acquire a Graph token for directory '{credentials.tenant_directory_id}': {e}"
        ) from e
    if not access_token:
        raise FetchError(
            f"Token response for directory '{credentials.tenant_directory_id}' has no access_token"
        )
    return access_token


class GraphGroupSource:
    def __init__(
        self,
        base_url=GRAPH_API_BASE_URL,
        page_size=GRAPH_PAGE_SIZE,
        timeout=GRAPH_TIMEOUT_SECONDS,
        token_provider=None,
        session=None,
    ):
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.timeout = timeout
        self.session = session or build_session()
        self.token_provider = token_provider or self._client_credentials_token

    def _client_credentials_token(self, credentials) -> str:
        return fetch_client_credentials_token(credentials, session=self.session, timeout=self.timeout)

    def iter_group_pages(self, credentials, cancel_event=None):
        """Yield one list of RemoteGroup per page until the listing is exhausted."""
        if cancel_event is not None and cancel_event.is_set():
            raise CancellationError("Group listing cancelled before it started")

        headers = {
            "Authorization": f"Bearer {self.token_provider(credentials)}",
            "Accept": "application/json",
        }
        url = f"{self.base_url}/groups"
        params = {"$select": "id,displayName,description", "$top": self.page_size}
        page_number = 0

        while url:
            if cancel_event is not None and cancel_event.is_set():
                raise CancellationError(f"Group listing cancelled before page {page_number + 1}")
            page_number += 1
            try:
                response = self.session.get(url, headers=headers, params=params, timeout=self.timeout)
                response.raise_for_status()
                data = response.json()
            except requests.exceptions.HTTPError as e:
                status = e.response.status_code if e.response is not None else "n/a"
                raise FetchError(f"Group listing page {page_number} failed with HTTP {status}: {e}") from e
            except requests.exceptions.RequestException as e:
                raise FetchError(f"Group listing page {page_number} failed: {e}") from e
            except ValueError as e:
                raise FetchError(f"Group listing page {page_number} is not valid JSON: {e}") from e

            values = data.get("value") if isinstance(data, dict) else None
            if not isinstance(values, list):
                raise FetchError(f"Group listing page {page_number} has no 'value' list")
            if not values:
                break

            groups = [RemoteGroup.from_graph(item) for item in values]
            task_logger.info(f"[GROUPS] Retrieved page {page_number} with {len(groups)} groups")
            yield groups

            # nextLink already carries the query string
            url = data.get("@odata.nextLink")
            params = None

    def fetch_all_groups(self, credentials, cancel_event=None):
        """Lazy iterator over every group of the tenant, across pages."""
        for page in self.iter_group_pages(credentials, cancel_event=cancel_event):
            yield from page
