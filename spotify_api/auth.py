import base64
import hashlib
import json
import logging
import secrets
import urllib.parse
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

import httpx

from constants import SPOTIFY_AUTHORIZE_URL, SPOTIFY_TOKEN_URL
from .errors import TokenRequestError

logger = logging.getLogger(__name__)

PKCE_VERIFIER_BYTES = 32


def _base64url_no_pad(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def code_challenge_from_verifier(verifier: str) -> str:
    """Compute PKCE S256 code_challenge from code_verifier."""

    digest = hashlib.sha256((verifier or "").encode("utf-8")).digest()
    return _base64url_no_pad(digest)


@dataclass(frozen=True)
class PKCEPair:
    code_verifier: str
    code_challenge: str


def generate_pkce_pair() -> PKCEPair:
    """Generate a fresh PKCE verifier + challenge.

    The verifier is 32 random bytes, base64url encoded without padding
    (43 characters, inside RFC 7636's 43-128 range).
    """

    verifier = _base64url_no_pad(secrets.token_bytes(PKCE_VERIFIER_BYTES))
    return PKCEPair(code_verifier=verifier, code_challenge=code_challenge_from_verifier(verifier))


def scope_string(scopes: Iterable[str]) -> str:
    return " ".join([str(s).strip() for s in (scopes or []) if str(s).strip()])


def build_authorize_url(*, client_id: str, redirect_uri: str, scopes: Iterable[str], code_challenge: str) -> str:
    """Build the authorize URL. Parameter order is fixed so the URL is deterministic."""

    params = [
        ("client_id", client_id),
        ("response_type", "code"),
        ("redirect_uri", redirect_uri),
        ("scope", scope_string(scopes)),
        ("code_challenge_method", "S256"),
        ("code_challenge", code_challenge),
    ]
    return f"{SPOTIFY_AUTHORIZE_URL}?{urllib.parse.urlencode(params)}"


def extract_code_from_redirect_url(redirect_url: str) -> Dict[str, str]:
    """Parse a redirect URL and return {"code": ..., "state": ..., "error": ...} (missing keys omitted)."""

    parsed = urllib.parse.urlparse(str(redirect_url or "").strip())
    qs = urllib.parse.parse_qs(parsed.query)
    out: Dict[str, str] = {}
    if qs.get("code"):
        out["code"] = str(qs["code"][0])
    if qs.get("state"):
        out["state"] = str(qs["state"][0])
    if qs.get("error"):
        out["error"] = str(qs["error"][0])
    return out


def check_spotify_credentials(config: Dict[str, Any]) -> Dict[str, Any]:
    """Validate Spotify OAuth config fields and return a structured status dict."""

    config = config or {}
    client_id = str(config.get("spotify_client_id", "")).strip()
    redirect_uri = str(config.get("spotify_redirect_uri", "")).strip()
    scopes = list(config.get("spotify_scopes", []) or [])

    status = {
        "ok": False,
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "scopes": scopes,
    }

    if not client_id:
        status["message"] = (
            "Missing spotify_client_id in config.json.\n"
            "Create a Spotify app and copy its Client ID (see spotify_app_setup_instructions())."
        )
        return status

    if not redirect_uri:
        status["message"] = (
            "Missing spotify_redirect_uri in config.json.\n"
            "Recommended default: http://127.0.0.1:8888/callback"
        )
        return status

    status["ok"] = True
    status["message"] = "Spotify credentials look OK."
    return status


def spotify_app_setup_instructions(*, redirect_uri: str = "http://127.0.0.1:8888/callback") -> str:
    """Return user-facing setup instructions for creating a Spotify Developer app."""

    redirect_uri = str(redirect_uri or "").strip() or "http://127.0.0.1:8888/callback"
    return (
        "Spotify app setup:\n"
        "1) Go to https://developer.spotify.com/dashboard\n"
        "2) Create an app (or select an existing app)\n"
        f"3) Add this Redirect URI in the app settings: {redirect_uri}\n"
        "4) Copy the Client ID into config.json as spotify_client_id\n"
        "5) Keep spotify_scopes as-is unless you know you need different permissions\n\n"
        "Notes:\n"
        "- This project uses Authorization Code + PKCE (no client secret required).\n"
        "- Redirect URI must match *exactly* what you configure in the Spotify dashboard.\n"
        "- The redirect URI must point at this machine; a local listener receives the callback.\n"
    )


@dataclass(frozen=True)
class TokenResponse:
    """Outcome of a token endpoint call: HTTP status plus the decoded body."""

    status_code: int
    payload: Any

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300 and isinstance(self.payload, dict)


class TokenEndpoint:
    """Posts form-encoded grants to the Spotify token endpoint."""

    def __init__(self, *, http_client: Optional[httpx.Client] = None, timeout: float = 30.0, url: str = SPOTIFY_TOKEN_URL):
        self.url = url
        self._http_client = http_client
        self._timeout = timeout

    def post_grant(self, form: Dict[str, Any]) -> TokenResponse:
        data = {k: str(v) for k, v in (form or {}).items() if v is not None}
        headers = {"Content-Type": "application/x-www-form-urlencoded"}

        try:
            if self._http_client is not None:
                resp = self._http_client.post(self.url, data=data, headers=headers)
            else:
                with httpx.Client(timeout=self._timeout, follow_redirects=False) as client:
                    resp = client.post(self.url, data=data, headers=headers)
        except httpx.HTTPError as e:
            raise TokenRequestError(f"Spotify token request failed: {e}") from e

        try:
            payload = resp.json()
        except json.JSONDecodeError:
            payload = resp.text

        logger.debug("Token endpoint answered HTTP %s for grant %s", resp.status_code, data.get("grant_type"))
        return TokenResponse(status_code=resp.status_code, payload=payload)
