import logging
from typing import Optional

from .browser import BrowserLocation, CallbackListener
from .now_playing import NowPlayingPoller
from .token_manager import TokenManager

logger = logging.getLogger(__name__)

POLLING = "polling"
AUTHORIZATION_FAILED = "authorization_failed"
AWAITING_CALLBACK = "awaiting_callback"
CALLBACK_TIMEOUT = "callback_timeout"


def start_now_playing(
    *,
    location: BrowserLocation,
    token_manager: TokenManager,
    poller: NowPlayingPoller,
    listener: Optional[CallbackListener] = None,
) -> str:
    """Decide what a fresh start does and do it.

    - callback code in the location: finish the exchange, then poll
    - stored access token: poll
    - otherwise: send the browser to Spotify. With a ``listener`` the call
      waits for the redirect and continues as if the page had been reloaded
      with the callback URL; without one it returns AWAITING_CALLBACK.
    """

    if location.has_callback_code():
        return _resume_from_callback(location=location, token_manager=token_manager, poller=poller)

    if token_manager.has_access_token():
        poller.start()
        return POLLING

    if listener is None:
        token_manager.begin_authorization()
        return AWAITING_CALLBACK

    with listener:
        token_manager.begin_authorization()
        callback_url = listener.wait_for_callback()

    if callback_url is None:
        return CALLBACK_TIMEOUT

    location.replace_state(callback_url)
    if not location.has_callback_code():
        error = location.query_params().get("error", "no authorization code")
        logger.error("Spotify authorization was not granted: %s", error)
        return AUTHORIZATION_FAILED

    return _resume_from_callback(location=location, token_manager=token_manager, poller=poller)


def _resume_from_callback(*, location: BrowserLocation, token_manager: TokenManager, poller: NowPlayingPoller) -> str:
    if not token_manager.complete_authorization():
        logger.error("Could not complete Spotify authorization; polling not started")
        return AUTHORIZATION_FAILED

    poller.start()
    return POLLING
