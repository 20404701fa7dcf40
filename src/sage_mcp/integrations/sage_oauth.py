"""OAuth2 authorization-code helpers for Sage Accounting.

Used by `scripts/sage_auth_local.py` to obtain the first access/refresh token
pair. The MCP server itself never runs this flow.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import urlencode

import requests

from sage_mcp.config import SAGE_AUTHORIZE_URL, SAGE_TOKEN_URL


def build_authorization_url(
    *,
    client_id: str,
    redirect_uri: str,
    country: str = "ie",
    state: str = "sage_auth",
    authorize_url: str = SAGE_AUTHORIZE_URL,
) -> str:
    query = urlencode(
        {
            "filter": "apiv3.1",
            "response_type": "code",
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "scope": "full_access",
            "state": state,
            "country": country,
        }
    )
    return f"{authorize_url}?{query}"


def exchange_authorization_code(
    *,
    code: str,
    client_id: str,
    client_secret: str,
    redirect_uri: str,
    token_url: str = SAGE_TOKEN_URL,
    timeout_seconds: float = 30.0,
) -> dict[str, Any]:
    """Swap an authorization `code` for tokens.

    Returns the token endpoint JSON (access_token, refresh_token, expires_in,
    refresh_token_expires_in, ...).
    """

    resp = requests.request(
        "POST",
        token_url,
        headers={
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        },
        data={
            "grant_type": "authorization_code",
            "code": code,
            "client_id": client_id,
            "client_secret": client_secret,
            "redirect_uri": redirect_uri,
        },
        timeout=timeout_seconds,
    )
    if resp.status_code >= 400:
        raise RuntimeError(f"Token exchange failed: HTTP {resp.status_code}: {resp.text}")

    try:
        tokens = resp.json()
    except ValueError as e:
        raise RuntimeError(f"Token exchange returned a non-JSON body: {resp.text}") from e

    if not isinstance(tokens, dict) or not tokens.get("access_token"):
        raise RuntimeError(f"Token exchange failed: {resp.text}")
    return tokens
