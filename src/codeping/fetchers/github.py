from __future__ import annotations

import asyncio
import logging
import os
from typing import Any

import requests

from codeping.config import GitHubSettings
from codeping.models import PullRequestRecord
from codeping.utils.datetime_utils import parse_datetime_utc

from .base import AuthContext, AuthError, Fetcher, FetchError

logger = logging.getLogger(__name__)

_USER_AGENT = "codeping-review-watcher"


def auth_from_settings(settings: GitHubSettings) -> AuthContext | None:
    """Build the identity described by config, or None when no token is set."""
    token = os.getenv(settings.token_env_var, "").strip()
    if not token:
        return None
    return AuthContext(
        kind=settings.kind,
        token=token,
        base_url=settings.base_url,
        username=settings.username,
    )


class GitHubFetcher(Fetcher):
    """Lists review requests through the GitHub.com or GitHub Enterprise REST API."""

    def __init__(self, *, per_page: int = 50, timeout_seconds: int = 30) -> None:
        self.per_page = per_page
        self.timeout_seconds = timeout_seconds
        self._auth: AuthContext | None = None
        self._session: requests.Session | None = None

    def set_auth(self, auth: AuthContext) -> None:
        session = requests.Session()
        session.headers["Authorization"] = f"token {auth.token}"
        session.headers["Accept"] = "application/vnd.github+json"
        session.headers["User-Agent"] = _USER_AGENT
        self._auth = auth
        self._session = session

    def clear_auth(self) -> None:
        if self._session is not None:
            self._session.close()
        self._auth = None
        self._session = None

    def is_authenticated(self) -> bool:
        return self._auth is not None and self._session is not None

    async def fetch_review_requests(self) -> list[PullRequestRecord]:
        return await asyncio.to_thread(self._fetch_review_requests_sync)

    def _fetch_review_requests_sync(self) -> list[PullRequestRecord]:
        auth, session = self._auth, self._session
        if auth is None or session is None:
            raise AuthError("Not authenticated. Sign in first.")

        username = auth.username or self._get_authenticated_user(auth, session)
        # GitHub resolves @me to the token owner when the login is unknown.
        reviewer_qualifier = f"review-requested:{username}" if username else "review-requested:@me"

        search = self._request(
            auth,
            session,
            "/search/issues",
            params={
                "q": f"is:open is:pr {reviewer_qualifier}",
                "sort": "updated",
                "order": "desc",
                "per_page": self.per_page,
            },
        )
        items = search.get("items") or []
        if not isinstance(items, list):
            raise FetchError("GitHub search returned an unexpected payload")

        records: list[PullRequestRecord] = []
        for item in items:
            if not isinstance(item, dict) or "id" not in item:
                logger.debug("Skipping malformed search item: %r", item)
                continue
            records.append(self._item_to_record(auth, session, item))
        return records

    def _get_authenticated_user(self, auth: AuthContext, session: requests.Session) -> str | None:
        try:
            data = self._request(auth, session, "/user")
        except AuthError:
            raise
        except FetchError as exc:
            logger.warning("Unable to read authenticated GitHub user: %s", exc)
            return None
        login = data.get("login")
        return str(login) if login else None

    def _item_to_record(
        self,
        auth: AuthContext,
        session: requests.Session,
        item: dict[str, Any],
    ) -> PullRequestRecord:
        repository = repo_from_url(item.get("repository_url") or "")
        owner, _, repo = repository.partition("/")
        number = int(item.get("number") or 0)

        reviewers: list[str] = []
        created_at = item.get("created_at")

        if owner and repo and number:
            try:
                detail = self._request(auth, session, f"/repos/{owner}/{repo}/pulls/{number}")
            except FetchError as exc:
                logger.debug("Could not enrich %s#%d: %s", repository, number, exc)
            else:
                reviewers = [
                    *_names(detail.get("requested_reviewers"), "login"),
                    *_names(detail.get("requested_teams"), "name"),
                ]
                created_at = detail.get("created_at") or created_at

        user = item.get("user") or {}
        return PullRequestRecord(
            id=int(item["id"]),
            number=number,
            title=item.get("title") or "Untitled PR",
            url=item.get("html_url") or "",
            repository=repository,
            author=user.get("login") or "unknown",
            created_at=parse_datetime_utc(created_at),
            updated_at=parse_datetime_utc(item.get("updated_at")),
            reviewers=tuple(reviewers),
            assignees=tuple(_names(item.get("assignees"), "login")),
            labels=tuple(_label_names(item.get("labels"))),
        )

    def _request(
        self,
        auth: AuthContext,
        session: requests.Session,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        base_url = (auth.base_url or "https://api.github.com").rstrip("/")
        try:
            response = session.get(f"{base_url}{path}", params=params, timeout=self.timeout_seconds)
        except requests.RequestException as exc:
            raise FetchError(f"GitHub request failed: {exc}") from exc

        if response.status_code == 401:
            raise AuthError("GitHub rejected the request. Please sign in again or refresh your token.")
        if response.status_code >= 400:
            message = response.text or response.reason or str(response.status_code)
            try:
                payload = response.json()
            except ValueError:
                payload = None
            if isinstance(payload, dict) and payload.get("message"):
                message = str(payload["message"])
            raise FetchError(f"GitHub returned {response.status_code}: {message}")

        try:
            data = response.json()
        except ValueError as exc:
            raise FetchError(f"GitHub returned invalid JSON for {path}") from exc
        if not isinstance(data, dict):
            raise FetchError(f"GitHub returned an unexpected payload for {path}")
        return data


def repo_from_url(repo_api_url: str) -> str:
    # https://api.github.com/repos/<owner>/<name>
    parts = [part for part in repo_api_url.rstrip("/").split("/") if part]
    if len(parts) < 2 or not repo_api_url:
        return "unknown/unknown"
    return f"{parts[-2]}/{parts[-1]}"


def _names(values: Any, key: str) -> list[str]:
    if not isinstance(values, list):
        return []
    names: list[str] = []
    for value in values:
        if isinstance(value, dict) and value.get(key):
            names.append(str(value[key]))
    return names


def _label_names(values: Any) -> list[str]:
    if not isinstance(values, list):
        return []
    names: list[str] = []
    for label in values:
        if isinstance(label, str) and label:
            names.append(label)
        elif isinstance(label, dict) and label.get("name"):
            names.append(str(label["name"]))
    return names
