import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from constants import DEFAULT_POLL_END_PADDING_MS, DEFAULT_POLL_RETRY_DELAY_MS, SPOTIFY_NOW_PLAYING_URL
from .scheduler import Scheduler
from .token_manager import TokenManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlaybackSnapshot:
    """What is playing right now, as reported by one poll."""

    track_name: str
    artist_names: List[str] = field(default_factory=list)
    artwork_url: Optional[str] = None
    progress_ms: int = 0
    duration_ms: int = 0

    @property
    def remaining_ms(self) -> int:
        return max(0, self.duration_ms - self.progress_ms)

    @staticmethod
    def from_payload(payload: Dict[str, Any]) -> Optional["PlaybackSnapshot"]:
        """Build a snapshot from a currently-playing response, or None when it has no item.

        Spotify returns:
        - progress_ms (may be null)
        - item.name, item.duration_ms
        - item.artists[].name
        - item.album.images[] (largest first; the second entry is used as artwork)
        """

        item = (payload or {}).get("item")
        if not isinstance(item, dict):
            return None

        artists = [str(a.get("name", "")) for a in (item.get("artists") or []) if isinstance(a, dict)]
        images = (item.get("album") or {}).get("images") or []
        artwork_url = images[1].get("url") if len(images) > 1 and isinstance(images[1], dict) else None

        return PlaybackSnapshot(
            track_name=str(item.get("name", "")),
            artist_names=artists,
            artwork_url=artwork_url,
            progress_ms=int(payload.get("progress_ms") or 0),
            duration_ms=int(item.get("duration_ms") or 0),
        )


class NowPlayingPoller:
    """Polls the currently-playing endpoint, timing each poll to the end of the track.

    Each poll schedules at most one successor. When nothing is playing the
    chain stops and only an explicit ``start()`` begins a new one.
    """

    def __init__(
        self,
        *,
        token_manager: TokenManager,
        scheduler: Scheduler,
        renderer,
        http_client: Optional[httpx.Client] = None,
        retry_delay_ms: int = DEFAULT_POLL_RETRY_DELAY_MS,
        end_padding_ms: int = DEFAULT_POLL_END_PADDING_MS,
        timeout: float = 30.0,
        url: str = SPOTIFY_NOW_PLAYING_URL,
    ):
        self.token_manager = token_manager
        self.scheduler = scheduler
        self.renderer = renderer
        self.http_client = http_client or httpx.Client(timeout=timeout)
        self.retry_delay_ms = int(retry_delay_ms)
        self.end_padding_ms = int(end_padding_ms)
        self.url = url

    @classmethod
    def from_config(cls, config: Dict[str, Any], **kwargs) -> "NowPlayingPoller":
        config = config or {}
        kwargs.setdefault("retry_delay_ms", int(config.get("poll_retry_delay_ms", DEFAULT_POLL_RETRY_DELAY_MS)))
        kwargs.setdefault("end_padding_ms", int(config.get("poll_end_padding_ms", DEFAULT_POLL_END_PADDING_MS)))
        kwargs.setdefault("timeout", float(config.get("spotify_http_timeout", 30)))
        return cls(**kwargs)

    def start(self) -> Optional[PlaybackSnapshot]:
        logger.info("Starting now-playing polling")
        return self.poll_once()

    def next_delay_ms(self, snapshot: PlaybackSnapshot) -> int:
        return snapshot.remaining_ms + self.end_padding_ms

    def fetch_current_track(self) -> Optional[Dict[str, Any]]:
        token = self.token_manager.get_valid_access_token()
        resp = self.http_client.get(
            self.url,
            headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
        )

        if resp.status_code == 204:
            logger.debug("Nothing is playing")
            return None

        if not resp.is_success:
            logger.error("Spotify API error %s: %s", resp.status_code, resp.text)
            self.scheduler.after(self.retry_delay_ms, self.poll_once)
            return None

        return resp.json()

    def poll_once(self) -> Optional[PlaybackSnapshot]:
        data = self.fetch_current_track()
        snapshot = PlaybackSnapshot.from_payload(data) if data else None
        if snapshot is None:
            return None

        self.renderer.render(snapshot)
        delay = self.next_delay_ms(snapshot)
        logger.debug("Next poll in %s ms", delay)
        self.scheduler.after(delay, self.poll_once)
        return snapshot

    def close(self) -> None:
        self.http_client.close()
