"""Async GitHub REST client for listing, reading and (un)archiving repositories."""

from __future__ import annotations

import base64
import binascii
import logging
from typing import TYPE_CHECKING, Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from repjan.exceptions import (
    AuthenticationError,
    RateLimitError,
    RemoteError,
    RemoteNotFoundError,
)
from repjan.github.schemas import AccountPayload, ErrorPayload, ReadmePayload, RepositoryPayload
from repjan.services.datetime_service import now_utc

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from repjan.config import Settings
    from repjan.snapshot import RepositorySnapshot

logger = logging.getLogger(__name__)

PAGE_SIZE = 100
DEFAULT_MAX_REPOSITORIES = 1000
_API_VERSION = "2022-11-28"

PayloadT = TypeVar("PayloadT", bound=BaseModel)


def _error_message(response: httpx.Response) -> str:
    try:
        payload = ErrorPayload.model_validate(response.json())
    except (ValueError, ValidationError):
        return response.text.strip()[:200]
    return payload.message


def _parse_payload(response: httpx.Response, model: type[PayloadT], action: str) -> PayloadT:
    try:
        return model.model_validate(response.json())
    except (ValueError, ValidationError) as exc:
        msg = f"{action}: malformed response: {exc}"
        raise RemoteError(msg) from exc


def _is_rate_limited(response: httpx.Response, message: str) -> bool:
    if response.headers.get("x-ratelimit-remaining") == "0":
        return True
    if "retry-after" in response.headers:
        return True
    return "rate limit" in message.lower()


def _map_error(response: httpx.Response, action: str) -> RemoteError:
    """Translate a failed response into the remote error taxonomy."""
    detail = _error_message(response)
    status = response.status_code
    msg = f"{action}: HTTP {status}"
    if detail:
        msg = f"{msg} ({detail})"

    if status == 401:
        return AuthenticationError(msg)
    if status in (403, 429) and _is_rate_limited(response, detail):
        return RateLimitError(msg)
    if status == 404:
        return RemoteNotFoundError(msg)
    return RemoteError(msg)


class GitHubClient:
    """Thin async wrapper over the GitHub REST API.

    Every call is bounded by the client's timeout. Failures are raised as
    ``RemoteError`` subclasses; transport errors become plain ``RemoteError``.
    """

    def __init__(
        self,
        token: str | None,
        *,
        base_url: str = "https://api.github.com",
        timeout: float = 30.0,
        max_repositories: int = DEFAULT_MAX_REPOSITORIES,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": _API_VERSION,
            "User-Agent": "repjan",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )
        self._max_repositories = max_repositories
        self._clock = clock
        self._login: str | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> GitHubClient:
        return cls(
            settings.github_token,
            base_url=settings.github_api_url,
            timeout=settings.request_timeout_seconds,
            max_repositories=settings.max_repositories,
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        url: str,
        action: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(method, url, params=params, json=json)
        except httpx.HTTPError as exc:
            msg = f"{action}: {exc.__class__.__name__}: {exc}"
            raise RemoteError(msg) from exc
        if response.is_success:
            return response
        raise _map_error(response, action)

    async def get_authenticated_user(self) -> str:
        """Return the login of the token's owner."""
        if self._login is None:
            action = "getting authenticated user"
            response = await self._request("GET", "/user", action)
            account = _parse_payload(response, AccountPayload, action)
            if not account.login:
                msg = "getting authenticated user: empty login"
                raise AuthenticationError(msg)
            self._login = account.login
        return self._login

    async def _listing_endpoint(self, owner: str) -> tuple[str, dict[str, Any]]:
        """Pick the listing endpoint that shows everything the token can see."""
        action = f"looking up {owner}"
        response = await self._request("GET", f"/users/{owner}", action)
        account = _parse_payload(response, AccountPayload, action)
        if account.type == "Organization":
            return f"/orgs/{owner}/repos", {"type": "all"}

        try:
            login = await self.get_authenticated_user()
        except AuthenticationError:
            login = None
        if login is not None and login.lower() == owner.lower():
            return "/user/repos", {"affiliation": "owner"}
        return f"/users/{owner}/repos", {"type": "owner"}

    async def fetch_repositories(self, owner: str) -> list[RepositorySnapshot]:
        """Fetch every repository for owner, following pagination up to the cap."""
        if not owner:
            msg = "owner cannot be empty"
            raise ValueError(msg)

        action = f"fetching repositories for {owner}"
        url, params = await self._listing_endpoint(owner)
        params = {**params, "per_page": PAGE_SIZE, "sort": "full_name"}
        now = self._clock()

        snapshots: list[RepositorySnapshot] = []
        next_url: str | None = url
        while next_url is not None and len(snapshots) < self._max_repositories:
            response = await self._request("GET", next_url, action, params=params)
            try:
                payloads = [RepositoryPayload.model_validate(item) for item in response.json()]
            except (ValueError, TypeError, ValidationError) as exc:
                msg = f"{action}: malformed response: {exc}"
                raise RemoteError(msg) from exc
            snapshots.extend(payload.to_snapshot(now) for payload in payloads)

            next_url = response.links.get("next", {}).get("url")
            # the next link already carries the query string
            params = None

        logger.debug("Fetched %d repositories for %s", len(snapshots), owner)
        return snapshots[: self._max_repositories]

    async def fetch_readme(self, owner: str, name: str) -> str:
        """Return the decoded README, or an empty string if there is none."""
        action = f"fetching README for {owner}/{name}"
        try:
            response = await self._request("GET", f"/repos/{owner}/{name}/readme", action)
        except RemoteNotFoundError:
            return ""

        readme = _parse_payload(response, ReadmePayload, action)
        content = readme.content.replace("\n", "").strip()
        if not content:
            return ""
        try:
            return base64.b64decode(content).decode("utf-8", errors="replace")
        except (binascii.Error, ValueError) as exc:
            msg = f"{action}: cannot decode content: {exc}"
            raise RemoteError(msg) from exc

    async def _set_archived(self, owner: str, name: str, archived: bool) -> None:
        if not owner or not name:
            msg = "owner and name cannot be empty"
            raise ValueError(msg)
        verb = "archiving" if archived else "unarchiving"
        await self._request(
            "PATCH",
            f"/repos/{owner}/{name}",
            f"{verb} repository {owner}/{name}",
            json={"archived": archived},
        )
        logger.info("%s %s/%s succeeded", verb.capitalize(), owner, name)

    async def archive_repository(self, owner: str, name: str) -> None:
        await self._set_archived(owner, name, True)

    async def unarchive_repository(self, owner: str, name: str) -> None:
        await self._set_archived(owner, name, False)
