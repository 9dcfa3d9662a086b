import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional

from constants import (
    ACCESS_TOKEN_KEY,
    PKCE_VERIFIER_KEY,
    REFRESH_TOKEN_KEY,
    TOKEN_EXPIRES_AT_KEY,
    TOKEN_EXPIRY_MARGIN_SECONDS,
)
from .auth import TokenEndpoint, build_authorize_url, extract_code_from_redirect_url, generate_pkce_pair
from .browser import BrowserLocation
from .errors import MissingRefreshTokenError
from .token_store import TokenStore

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


def expiry_from_expires_in(expires_in: Any, *, now: int) -> int:
    """Epoch-ms expiry for a token that lives ``expires_in`` seconds, minus the safety margin."""
    return int(now + (float(expires_in) - TOKEN_EXPIRY_MARGIN_SECONDS) * 1000)


@dataclass(frozen=True)
class TokenState:
    """Access/refresh pair as persisted in the token store."""

    access_token: str
    refresh_token: str
    expires_at_ms: int

    def is_expired(self, *, now: int) -> bool:
        return now >= self.expires_at_ms

    def to_dict(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at_ms": self.expires_at_ms,
        }


class TokenManager:
    """Owns the PKCE flow and the persisted access/refresh token pair.

    Nothing else reads or writes the token store. Callers ask for
    ``get_valid_access_token()`` and the manager refreshes when the stored
    expiry has passed.
    """

    def __init__(
        self,
        *,
        client_id: str,
        redirect_uri: str,
        scopes: Iterable[str],
        store: TokenStore,
        location: BrowserLocation,
        token_endpoint: Optional[TokenEndpoint] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.scopes = list(scopes or [])
        self.store = store
        self.location = location
        self.token_endpoint = token_endpoint or TokenEndpoint()
        self.clock = clock

    @classmethod
    def from_config(cls, config: Dict[str, Any], *, store: TokenStore, location: BrowserLocation, **kwargs) -> "TokenManager":
        config = config or {}
        if "token_endpoint" not in kwargs:
            kwargs["token_endpoint"] = TokenEndpoint(timeout=float(config.get("spotify_http_timeout", 30)))
        return cls(
            client_id=str(config.get("spotify_client_id", "")).strip(),
            redirect_uri=str(config.get("spotify_redirect_uri", "")).strip(),
            scopes=config.get("spotify_scopes", []),
            store=store,
            location=location,
            **kwargs,
        )

    # -----------------
    # Authorization code flow
    # -----------------

    def authorize_url(self, code_challenge: str) -> str:
        return build_authorize_url(
            client_id=self.client_id,
            redirect_uri=self.redirect_uri,
            scopes=self.scopes,
            code_challenge=code_challenge,
        )

    def begin_authorization(self) -> None:
        """Persist a fresh verifier and send the browser to the authorize page."""

        pkce = generate_pkce_pair()
        self.store.set(PKCE_VERIFIER_KEY, pkce.code_verifier)
        url = self.authorize_url(pkce.code_challenge)
        logger.info("Redirecting to Spotify for authorization")
        self.location.assign(url)

    def complete_authorization(self, callback_url: Optional[str] = None) -> bool:
        """Exchange the callback's authorization code for tokens.

        Returns True only when tokens were stored. A callback without a code,
        or a missing stored verifier, is a no-op.
        """

        href = self.location.href if callback_url is None else callback_url
        code = extract_code_from_redirect_url(href).get("code")
        verifier = self.store.get(PKCE_VERIFIER_KEY)
        if not code or not verifier:
            return False

        resp = self.token_endpoint.post_grant(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
                "client_id": self.client_id,
                "code_verifier": verifier,
            }
        )
        if not resp.ok:
            logger.error("Token exchange error (HTTP %s): %s", resp.status_code, resp.payload)
            return False

        payload = resp.payload
        if not payload.get("access_token") or not payload.get("refresh_token"):
            logger.error("Token exchange error: incomplete token response %s", payload)
            return False

        self.store.set(ACCESS_TOKEN_KEY, str(payload["access_token"]))
        self.store.set(REFRESH_TOKEN_KEY, str(payload["refresh_token"]))
        self.store.set(TOKEN_EXPIRES_AT_KEY, str(expiry_from_expires_in(payload.get("expires_in", 0), now=self.clock())))
        self.store.clear(PKCE_VERIFIER_KEY)

        # Drop ?code=... so the same code is never exchanged twice.
        self.location.replace_state(self.redirect_uri)
        logger.info("Spotify authorization complete")
        return True

    # -----------------
    # Refresh
    # -----------------

    def refresh(self) -> bool:
        refresh_token = self.store.get(REFRESH_TOKEN_KEY)
        if not refresh_token:
            raise MissingRefreshTokenError("No refresh token available")

        resp = self.token_endpoint.post_grant(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.client_id,
            }
        )
        if not resp.ok or not resp.payload.get("access_token"):
            logger.error("Refresh token error (HTTP %s): %s", resp.status_code, resp.payload)
            return False

        # The refresh token is not rotated; the stored one stays authoritative.
        self.store.set(ACCESS_TOKEN_KEY, str(resp.payload["access_token"]))
        self.store.set(
            TOKEN_EXPIRES_AT_KEY, str(expiry_from_expires_in(resp.payload.get("expires_in", 0), now=self.clock()))
        )
        logger.debug("Access token refreshed")
        return True

    def get_valid_access_token(self) -> Optional[str]:
        """Return the stored access token, refreshing first when it is missing or expired."""

        expires_at = _parse_epoch_ms(self.store.get(TOKEN_EXPIRES_AT_KEY))
        if not self.store.get(ACCESS_TOKEN_KEY) or self.clock() >= expires_at:
            self.refresh()
        return self.store.get(ACCESS_TOKEN_KEY)

    # -----------------
    # Inspection / sign out
    # -----------------

    def has_access_token(self) -> bool:
        return bool(self.store.get(ACCESS_TOKEN_KEY))

    def load_state(self) -> Optional[TokenState]:
        access_token = self.store.get(ACCESS_TOKEN_KEY)
        refresh_token = self.store.get(REFRESH_TOKEN_KEY)
        if not access_token or not refresh_token:
            return None
        return TokenState(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at_ms=_parse_epoch_ms(self.store.get(TOKEN_EXPIRES_AT_KEY)),
        )

    def sign_out(self) -> None:
        self.store.clear()
        logger.info("Cleared stored Spotify tokens")


def _parse_epoch_ms(value: Optional[str]) -> int:
    try:
        return int(float(value or 0))
    except ValueError:
        return 0
