"""Fetch alert tickets from the Jira Cloud REST API using httpx."""

import base64
from datetime import datetime

import httpx
import structlog

from alertboard.config import settings
from alertboard.errors import ConfigurationError, JiraConnectionError, JiraSearchError

logger = structlog.get_logger()

DEFAULT_PAGE_SIZE = 100
MAX_PAGES = 500

BASE_FIELDS = [
    "summary", "description", "created", "priority", "labels",
    "issuetype", "components", "status", "project", "parent",
]


def _build_auth_header(user: str, token: str) -> str:
    """Build Basic Auth header from Jira user + API token."""
    credentials = f"{user}:{token}"
    encoded = base64.b64encode(credentials.encode()).decode()
    return f"Basic {encoded}"


def build_scope_jql(project: str, start: datetime, end: datetime) -> str:
    """JQL for one project over ``[start, end)``, skipping unassigned tickets and sub-tasks."""
    return (
        f"project = {project}"
        f" AND created >= '{start.strftime('%Y-%m-%d %H:%M')}'"
        f" AND created < '{end.strftime('%Y-%m-%d %H:%M')}'"
        " AND assignee != EMPTY AND issuetype != Sub-task"
    )


class JiraClient:
    def __init__(
        self,
        server: str,
        user: str,
        token: str,
        raw_alert_field: str = "customfield_10160",
        timeout: float = 30.0,
        max_pages: int = MAX_PAGES,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = f"{server.rstrip('/')}/rest/api/2"
        self.raw_alert_field = raw_alert_field
        self.timeout = timeout
        self.max_pages = max_pages
        self._transport = transport
        self._headers = {
            "Authorization": _build_auth_header(user, token),
            "Accept": "application/json",
        }

    @classmethod
    def from_settings(cls) -> "JiraClient":
        if not settings.jira_configured:
            raise ConfigurationError("Jira credentials not found in environment variables")
        return cls(
            settings.JIRA_SERVER,
            settings.JIRA_USER,
            settings.JIRA_TOKEN,
            raw_alert_field=settings.JIRA_RAW_ALERT_FIELD,
            timeout=settings.JIRA_TIMEOUT_SECONDS,
            max_pages=settings.JIRA_MAX_PAGES,
        )

    @property
    def fields(self) -> list[str]:
        return [*BASE_FIELDS, self.raw_alert_field]

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def test_connection(self) -> None:
        try:
            async with self._client() as client:
                resp = await client.get(f"{self.base_url}/myself", headers=self._headers)
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise JiraConnectionError(f"Jira connection test failed: {exc}") from exc

    async def search_page(
        self,
        client: httpx.AsyncClient,
        jql: str,
        page_size: int,
        next_page_token: str = "",
    ) -> tuple[list[dict], str]:
        """Fetch one page. Returns ``(raw_issues, next_page_token)``."""
        body: dict = {
            "jql": jql,
            "maxResults": page_size,
            "fields": self.fields,
        }
        if next_page_token:
            body["nextPageToken"] = next_page_token

        resp = await client.post(
            f"{self.base_url}/search/jql",
            headers={**self._headers, "Content-Type": "application/json"},
            json=body,
        )
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict):
            raise ValueError(f"search response is not an object: {type(data).__name__}")
        issues = data.get("issues") or []
        if not isinstance(issues, list):
            raise ValueError("search response issues is not a list")
        return issues, data.get("nextPageToken") or ""

    async def search_all_issues(
        self,
        jql: str,
        page_size: int = DEFAULT_PAGE_SIZE,
        label: str = "",
    ) -> list[dict]:
        """Walk every page of a JQL search and return the raw issues.

        Stops on an empty continuation token, on a token identical to the one
        just sent (the tracker is stuck) or after ``max_pages`` pages.
        """
        if page_size <= 0:
            page_size = DEFAULT_PAGE_SIZE

        logger.info("jira_search_started", label=label, jql=jql)

        issues: list[dict] = []
        next_page_token = ""
        page_num = 0

        async with self._client() as client:
            while True:
                page_num += 1
                if page_num > self.max_pages:
                    logger.warning("jira_search_page_limit", label=label, max_pages=self.max_pages)
                    break

                try:
                    page, returned_token = await self.search_page(client, jql, page_size, next_page_token)
                except (httpx.HTTPError, ValueError) as exc:
                    raise JiraSearchError(f"Jira search error on page {page_num}: {exc}", page=page_num) from exc

                issues.extend(page)
                logger.debug(
                    "jira_search_page",
                    label=label,
                    page=page_num,
                    count=len(page),
                    next_token=returned_token,
                )

                if not returned_token:
                    break
                if returned_token == next_page_token:
                    logger.warning("jira_search_token_repeated", label=label, page=page_num)
                    break
                next_page_token = returned_token

        logger.info("jira_search_complete", label=label, total=len(issues), pages=min(page_num, self.max_pages))
        return issues
