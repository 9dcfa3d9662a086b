"""Spotify Web API integration (OAuth PKCE) and now-playing polling."""

from .auth import PKCEPair, TokenEndpoint, code_challenge_from_verifier, generate_pkce_pair
from .bootstrap import start_now_playing
from .browser import BrowserLocation, CallbackListener
from .errors import MissingRefreshTokenError, SpotifyAuthError, TokenRequestError
from .now_playing import NowPlayingPoller, PlaybackSnapshot
from .scheduler import CancellationHandle, JobScheduler, Scheduler
from .token_manager import TokenManager, TokenState
from .token_store import JsonFileTokenStore, MemoryTokenStore, TokenStore

__all__ = [
    "BrowserLocation",
    "CallbackListener",
    "CancellationHandle",
    "JobScheduler",
    "JsonFileTokenStore",
    "MemoryTokenStore",
    "MissingRefreshTokenError",
    "NowPlayingPoller",
    "PKCEPair",
    "PlaybackSnapshot",
    "Scheduler",
    "SpotifyAuthError",
    "TokenEndpoint",
    "TokenManager",
    "TokenRequestError",
    "TokenState",
    "TokenStore",
    "code_challenge_from_verifier",
    "generate_pkce_pair",
    "start_now_playing",
]
