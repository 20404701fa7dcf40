"""Runtime configuration for the Sage Accounting MCP server.

Values come from the process environment (optionally seeded from `.env`).
Only the region check fails fast; a missing access token is reported on the
first tool call instead.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import dotenv_values, load_dotenv

SAGE_API_HOST = "https://api.accounting.sage.com"
SAGE_TOKEN_URL = "https://oauth.accounting.sage.com/token"
SAGE_AUTHORIZE_URL = "https://www.sageone.com/oauth2/auth/central"

# Every supported region is currently served from the same host.
API_BASE_URLS: dict[str, str] = {
    "uk": SAGE_API_HOST,
    "us": SAGE_API_HOST,
    "ca": SAGE_API_HOST,
    "de": SAGE_API_HOST,
    "es": SAGE_API_HOST,
    "fr": SAGE_API_HOST,
    "ie": SAGE_API_HOST,
}

DEFAULT_REGION = "uk"
DEFAULT_API_VERSION = "v3.1"


def load_env_files() -> None:
    """Load `.env`, then fill remaining gaps from non-blank `.env.example` values."""

    load_dotenv(override=False)

    # `.env.example` ships blank placeholders for secrets; never let those
    # blanks shadow real values.
    if not os.environ.get("SAGE_CLIENT_ID"):
        example_path = os.path.abspath(".env.example")
        if os.path.exists(example_path):
            for k, v in (dotenv_values(example_path) or {}).items():
                if not k or not v:
                    continue
                if not os.environ.get(k):
                    os.environ[k] = v


def resolve_base_url(region: str, api_version: str) -> str:
    host = API_BASE_URLS.get(region.lower())
    if host is None:
        supported = ", ".join(sorted(API_BASE_URLS))
        raise ValueError(f"Unsupported SAGE_REGION {region!r} (expected one of: {supported})")
    return f"{host}/{api_version.strip('/')}"


@dataclass(frozen=True, slots=True)
class SageSettings:
    client_id: str
    client_secret: str
    access_token: str
    refresh_token: str
    region: str = DEFAULT_REGION
    api_version: str = DEFAULT_API_VERSION
    timeout_seconds: float = 30.0
    log_level: str = "INFO"

    @property
    def base_url(self) -> str:
        return resolve_base_url(self.region, self.api_version)

    @classmethod
    def from_env(cls) -> "SageSettings":
        load_env_files()

        region = (os.environ.get("SAGE_REGION") or DEFAULT_REGION).strip().lower()
        api_version = (os.environ.get("SAGE_API_VERSION") or DEFAULT_API_VERSION).strip()
        # Validate eagerly so a typo surfaces at startup, not on the first call.
        resolve_base_url(region, api_version)

        return cls(
            client_id=os.environ.get("SAGE_CLIENT_ID", ""),
            client_secret=os.environ.get("SAGE_CLIENT_SECRET", ""),
            access_token=os.environ.get("SAGE_ACCESS_TOKEN", ""),
            refresh_token=os.environ.get("SAGE_REFRESH_TOKEN", ""),
            region=region,
            api_version=api_version,
            timeout_seconds=float(os.environ.get("SAGE_HTTP_TIMEOUT_SECONDS") or "30"),
            log_level=(os.environ.get("SAGE_LOG_LEVEL") or "INFO").upper(),
        )
