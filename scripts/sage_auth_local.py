"""Minimal local OAuth2 (authorization-code) flow for Sage Accounting.

What this does:
- Starts a tiny local HTTP server on your redirect URI
- Opens the Sage consent page in your browser
- Captures the auth `code` on the callback
- Exchanges `code` for access/refresh tokens
- Prints both tokens so you can put them in `.env`

Prereqs (env vars):
- SAGE_CLIENT_ID
- SAGE_CLIENT_SECRET
- SAGE_REDIRECT_URI   (must exactly match the Sage Developer app) [default: http://localhost:3000/callback]
- SAGE_COUNTRY        (uk | us | ca | de | es | fr | ie)          [default: ie]

Run:
  python scripts/sage_auth_local.py
"""

from __future__ import annotations

import os
import threading
import time
import webbrowser
from http.server import BaseHTTPRequestHandler, HTTPServer
from urllib.parse import parse_qs, urlparse

from sage_mcp.config import load_env_files
from sage_mcp.integrations.sage_oauth import (
    build_authorization_url,
    exchange_authorization_code,
)

load_env_files()


def _require_env(name: str) -> str:
    value = os.environ.get(name)
    if not value:
        raise SystemExit(
            f"Missing env var {name}. Put it in your .env/.env.example and export it before running."
        )
    return value


class _CallbackState:
    def __init__(self) -> None:
        self.code: str | None = None
        self.error: str | None = None


def main() -> None:
    client_id = _require_env("SAGE_CLIENT_ID")
    client_secret = _require_env("SAGE_CLIENT_SECRET")
    redirect_uri = os.environ.get("SAGE_REDIRECT_URI") or "http://localhost:3000/callback"
    country = os.environ.get("SAGE_COUNTRY", "ie")

    parsed = urlparse(redirect_uri)
    if parsed.scheme not in {"http", "https"}:
        raise SystemExit("SAGE_REDIRECT_URI must start with http:// or https://")
    if not parsed.hostname or not parsed.port:
        raise SystemExit(
            "SAGE_REDIRECT_URI must include hostname and port, e.g. http://localhost:3000/callback"
        )

    state = _CallbackState()

    class Handler(BaseHTTPRequestHandler):
        def do_GET(self):  # noqa: N802
            if urlparse(self.path).path != parsed.path:
                self.send_response(404)
                self.end_headers()
                self.wfile.write(b"Not found")
                return

            query = parse_qs(urlparse(self.path).query)
            if "error" in query:
                state.error = query.get("error", [""])[0] or "unknown_error"
            state.code = query.get("code", [None])[0]

            self.send_response(200)
            self.send_header("Content-Type", "text/html")
            self.end_headers()
            self.wfile.write(
                b"<html><body><h3>Sage connected.</h3><p>You can close this tab and return to the terminal.</p></body></html>"
            )

        def log_message(self, *_args, **_kwargs):
            return

    try:
        server = HTTPServer((parsed.hostname, parsed.port), Handler)
    except OSError as e:
        raise SystemExit(f"Could not listen on {parsed.hostname}:{parsed.port}: {e}") from e

    thread = threading.Thread(target=lambda: server.serve_forever(poll_interval=0.1), daemon=True)
    thread.start()

    auth_url = build_authorization_url(
        client_id=client_id,
        redirect_uri=redirect_uri,
        country=country,
    )

    print("\n1) Opening the Sage consent page in your browser...")
    print("   If it doesn't open, copy/paste this URL:")
    print(auth_url)
    webbrowser.open(auth_url)

    print("\n2) After you approve access, you will be redirected back to:")
    print(f"   {redirect_uri}")
    print("   Waiting for callback...")

    timeout_s = int(os.environ.get("SAGE_AUTH_TIMEOUT_SECONDS", "180"))
    start = time.time()
    while time.time() - start < timeout_s:
        if state.error:
            server.shutdown()
            raise SystemExit(f"OAuth error: {state.error}")
        if state.code:
            break
        time.sleep(0.1)

    server.shutdown()

    if not state.code:
        raise SystemExit(
            "Timed out waiting for OAuth callback. Check that the callback URL of your Sage app matches SAGE_REDIRECT_URI exactly."
        )

    print("\n3) Exchanging auth code for tokens...")
    try:
        tokens = exchange_authorization_code(
            code=state.code,
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
        )
    except RuntimeError as e:
        raise SystemExit(str(e)) from e

    print("\n✅ Success.\n")
    print("SAGE_ACCESS_TOKEN=" + tokens["access_token"])
    print("SAGE_REFRESH_TOKEN=" + str(tokens.get("refresh_token") or ""))
    print(f"\nAccess token expires in: {tokens.get('expires_in')} seconds")
    print(f"Refresh token expires in: {tokens.get('refresh_token_expires_in')} seconds")
    print("\nNext: copy these into your .env and run the smoke test:")
    print("  python scripts/sage_api_smoke_test.py")


if __name__ == "__main__":
    main()
