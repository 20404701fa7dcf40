"""Sage Accounting API connector.

Purpose
- Issue authenticated JSON requests against the Sage Accounting REST API.
- Keep bearer-token refresh (on 401) in one place.

Every call returns a `RequestOutcome`; nothing here raises on an HTTP or
network failure. The connector is independent of the MCP layer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import requests

from sage_mcp.config import SAGE_TOKEN_URL, SageSettings
from sage_mcp.integrations.results import Failure, FailureKind, RequestOutcome, Success

logger = logging.getLogger(__name__)

WRITE_METHODS = frozenset({"POST", "PUT"})
ERROR_EXCERPT_CHARS = 500


@dataclass(slots=True)
class SageCredentials:
    """OAuth credential state shared by every call in the process.

    Only `access_token` changes at runtime. The refresh token is reused as-is
    for every refresh.
    """

    access_token: str
    refresh_token: str
    client_id: str
    client_secret: str


def _status_line(resp: requests.Response) -> str:
    return f"{resp.status_code} {resp.reason or ''}".rstrip()


def _excerpt(text: str, limit: int = ERROR_EXCERPT_CHARS) -> str:
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


class SageClient:
    def __init__(
        self,
        *,
        credentials: SageCredentials,
        base_url: str,
        token_url: str = SAGE_TOKEN_URL,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._credentials = credentials
        self._base_url = base_url.rstrip("/")
        self._token_url = token_url
        self._timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: SageSettings) -> "SageClient":
        return cls(
            credentials=SageCredentials(
                access_token=settings.access_token,
                refresh_token=settings.refresh_token,
                client_id=settings.client_id,
                client_secret=settings.client_secret,
            ),
            base_url=settings.base_url,
            timeout_seconds=settings.timeout_seconds,
        )

    @property
    def credentials(self) -> SageCredentials:
        return self._credentials

    @property
    def base_url(self) -> str:
        return self._base_url

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._credentials.access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _send(
        self, method: str, url: str, body: dict[str, Any] | None
    ) -> requests.Response:
        kwargs: dict[str, Any] = {
            "headers": self._headers(),
            "timeout": self._timeout_seconds,
        }
        if body is not None and method in WRITE_METHODS:
            kwargs["json"] = body

        logger.debug("Sage %s %s", method, url)
        return requests.request(method, url, **kwargs)

    def execute(
        self,
        path: str,
        method: str = "GET",
        body: dict[str, Any] | None = None,
    ) -> RequestOutcome:
        """Call `path` under the API base URL and decode the JSON reply.

        A 401 triggers one token refresh followed by one retry; the retry's
        result is final.
        """

        if not self._credentials.access_token:
            return Failure(
                FailureKind.AUTH,
                "No access token configured. Please set SAGE_ACCESS_TOKEN in environment.",
            )

        method = method.upper()
        url = f"{self._base_url}{path}"

        try:
            resp = self._send(method, url, body)
        except requests.RequestException as e:
            return Failure(FailureKind.TRANSPORT, f"Sage API request failed: {e}")

        if resp.status_code == 401:
            logger.info("Sage access token rejected (401); refreshing")
            refreshed = self.refresh_access_token()
            if not refreshed.ok:
                return refreshed

            try:
                resp = self._send(method, url, body)
            except requests.RequestException as e:
                return Failure(FailureKind.TRANSPORT, f"Sage API request failed: {e}")

        return self._decode(resp)

    @staticmethod
    def _decode(resp: requests.Response) -> RequestOutcome:
        if not 200 <= resp.status_code < 300:
            logger.warning("Sage API returned HTTP %s", resp.status_code)
            return Failure(
                FailureKind.API,
                f"Sage API error: {_status_line(resp)} - {_excerpt(resp.text)}",
                status_code=resp.status_code,
            )

        if not resp.content:
            return Success(None)
        try:
            return Success(resp.json())
        except ValueError:
            return Failure(
                FailureKind.API,
                f"Sage API returned a non-JSON body: {_excerpt(resp.text)}",
                status_code=resp.status_code,
            )

    def refresh_access_token(self) -> RequestOutcome:
        """Exchange the refresh token for a new access token.

        On success the in-memory access token is replaced and `Success` carries
        the token endpoint's JSON reply.
        """

        creds = self._credentials
        if not creds.refresh_token or not creds.client_id or not creds.client_secret:
            return Failure(
                FailureKind.REFRESH,
                "Cannot refresh token: missing SAGE_REFRESH_TOKEN, SAGE_CLIENT_ID, or SAGE_CLIENT_SECRET",
            )

        try:
            resp = requests.request(
                "POST",
                self._token_url,
                headers={
                    "Content-Type": "application/x-www-form-urlencoded",
                    "Accept": "application/json",
                },
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": creds.refresh_token,
                    "client_id": creds.client_id,
                    "client_secret": creds.client_secret,
                },
                timeout=self._timeout_seconds,
            )
        except requests.RequestException as e:
            return Failure(FailureKind.REFRESH, f"Token refresh failed: {e}")

        if not 200 <= resp.status_code < 300:
            logger.warning("Sage token refresh failed with HTTP %s", resp.status_code)
            return Failure(
                FailureKind.REFRESH,
                f"Token refresh failed: {_status_line(resp)}",
                status_code=resp.status_code,
            )

        try:
            payload = resp.json()
        except ValueError:
            payload = None
        access_token = payload.get("access_token") if isinstance(payload, dict) else None
        if not access_token:
            return Failure(
                FailureKind.REFRESH,
                "Token refresh failed: response did not include an access_token",
                status_code=resp.status_code,
            )

        creds.access_token = access_token
        rotated = payload.get("refresh_token")
        if rotated and rotated != creds.refresh_token:
            # TODO: persist rotated refresh tokens once the service's rotation
            # policy is confirmed; the configured one is kept for now.
            logger.info("Sage issued a new refresh token; keeping the configured one")
        logger.info("Sage access token refreshed")
        return Success(payload)
