import time
from dataclasses import dataclass
from typing import Optional

import httpx
import questionary

from spotify_api.auth import check_spotify_credentials, spotify_app_setup_instructions
from spotify_api.bootstrap import AUTHORIZATION_FAILED, AWAITING_CALLBACK, CALLBACK_TIMEOUT, POLLING, start_now_playing
from spotify_api.browser import BrowserLocation, CallbackListener
from spotify_api.errors import SpotifyAuthError
from spotify_api.now_playing import NowPlayingPoller, PlaybackSnapshot
from spotify_api.scheduler import JobScheduler
from spotify_api.token_manager import TokenManager
from spotify_api.token_store import JsonFileTokenStore, TokenStore
from utils.logger import log_error, log_info, log_success, log_warning


def format_ms(ms: int) -> str:
    seconds = max(0, int(ms)) // 1000
    return f"{seconds // 60}:{seconds % 60:02d}"


class TerminalRenderer:
    """Prints the current track to the terminal."""

    def __init__(self, out=print):
        self._out = out

    def render(self, snapshot: PlaybackSnapshot) -> None:
        self._out("")
        self._out(f"🎵 {snapshot.track_name}")
        self._out(f"   {', '.join(snapshot.artist_names)}")
        if snapshot.artwork_url:
            self._out(f"   Artwork: {snapshot.artwork_url}")
        self._out(f"   {format_ms(snapshot.progress_ms)} / {format_ms(snapshot.duration_ms)}")


@dataclass
class NowPlayingSession:
    location: BrowserLocation
    token_manager: TokenManager
    poller: NowPlayingPoller
    scheduler: JobScheduler


def build_token_manager(config: dict, *, store: Optional[TokenStore] = None, location=None) -> TokenManager:
    store = store or JsonFileTokenStore(cache_path=config.get("spotify_token_cache_path", "data/spotify_tokens.json"))
    return TokenManager.from_config(config, store=store, location=location or BrowserLocation())


def build_session(config: dict, *, store: Optional[TokenStore] = None, renderer=None, location=None) -> NowPlayingSession:
    location = location or BrowserLocation()
    scheduler = JobScheduler()
    token_manager = build_token_manager(config, store=store, location=location)
    poller = NowPlayingPoller.from_config(
        config,
        token_manager=token_manager,
        scheduler=scheduler,
        renderer=renderer or TerminalRenderer(),
    )
    return NowPlayingSession(location=location, token_manager=token_manager, poller=poller, scheduler=scheduler)


def _paste_callback_url(session: NowPlayingSession) -> bool:
    """Fallback when the local listener never saw the redirect."""
    pasted = questionary.text("Paste the full redirect URL from your browser (leave empty to cancel):").ask()
    pasted = (pasted or "").strip()
    if not pasted:
        log_warning("No redirect URL provided. Cancelling auth.")
        return False

    session.location.replace_state(pasted)
    if not session.location.has_callback_code():
        log_error("Could not find an authorization code. Paste the full redirect URL that contains ?code=...")
        return False
    return True


def now_playing(config: dict, *, session: Optional[NowPlayingSession] = None) -> str:
    """Authorize if needed, then show the current track until polling stops or Ctrl+C."""

    creds = check_spotify_credentials(config)
    if not creds.get("ok"):
        log_warning(creds.get("message") or "Spotify credentials are incomplete.")
        return AUTHORIZATION_FAILED

    session = session or build_session(config)
    try:
        listener = CallbackListener(
            config.get("spotify_redirect_uri", ""),
            timeout=float(config.get("spotify_callback_timeout", 300)),
        )
    except ValueError as e:
        log_warning(f"{e}. You will have to paste the redirect URL by hand.")
        listener = None

    try:
        outcome = start_now_playing(
            location=session.location,
            token_manager=session.token_manager,
            poller=session.poller,
            listener=listener,
        )
        if outcome in (CALLBACK_TIMEOUT, AWAITING_CALLBACK) and _paste_callback_url(session):
            outcome = start_now_playing(
                location=session.location,
                token_manager=session.token_manager,
                poller=session.poller,
            )
    except SpotifyAuthError as e:
        log_error(f"Spotify authorization problem: {e}")
        log_info("Use 'Sign out (clear tokens)' and try again to re-authorize.")
        outcome = AUTHORIZATION_FAILED
    except httpx.HTTPError as e:
        log_error(f"Spotify request failed: {e}")
        outcome = AUTHORIZATION_FAILED
    except OSError as e:
        log_error(f"Could not listen for the Spotify redirect: {e}")
        outcome = AUTHORIZATION_FAILED
    except KeyboardInterrupt:
        log_info("Authorization cancelled")
        outcome = AUTHORIZATION_FAILED

    if outcome == POLLING:
        log_info("Polling now playing. Press Ctrl+C to return to the menu.")
        session.scheduler.run_forever(stop_when_idle=True)
        log_info("Polling stopped: nothing is playing right now.")
    elif outcome in (CALLBACK_TIMEOUT, AWAITING_CALLBACK):
        log_warning("Spotify authorization was not completed.")

    session.scheduler.clear()
    session.poller.close()
    return outcome


def authorization_status(config: dict, *, store: Optional[TokenStore] = None) -> str:
    state = build_token_manager(config, store=store).load_state()

    if state is None:
        message = "Not signed in. Choose 'Show now playing' to authorize with Spotify."
    else:
        expires = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(state.expires_at_ms / 1000.0))
        expired = state.is_expired(now=int(time.time() * 1000))
        message = f"Signed in: YES | Access token expired: {'YES' if expired else 'NO'} | Expires at: {expires}"

    log_info(message)
    return message


def sign_out(config: dict, *, store: Optional[TokenStore] = None) -> bool:
    confirm = questionary.confirm("Clear stored Spotify tokens? You will need to authorize again.", default=False).ask()
    if not confirm:
        return False

    build_token_manager(config, store=store).sign_out()
    log_success("Signed out of Spotify")
    return True


def setup_help(config: dict) -> None:
    creds = check_spotify_credentials(config)
    log_info(creds.get("message", ""))
    print(spotify_app_setup_instructions(redirect_uri=config.get("spotify_redirect_uri", "")))
