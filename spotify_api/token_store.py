import json
import os
from typing import Dict, Optional

from constants import TOKEN_STORE_KEYS


DEFAULT_TOKEN_CACHE_PATH = os.path.join("data", "spotify_tokens.json")


def _check_key(key: str) -> None:
    if key not in TOKEN_STORE_KEYS:
        raise KeyError(f"Unknown token store key: {key}")


class TokenStore:
    """Key/value storage for the persisted OAuth client state.

    Only the keys listed in ``constants.TOKEN_STORE_KEYS`` are accepted:
    - pkce_verifier (transient, survives the redirect round trip)
    - access_token
    - refresh_token
    - token_expires_at (epoch milliseconds, stored as a string)
    """

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def clear(self, key: Optional[str] = None) -> None:
        """Remove one key, or every key when ``key`` is None."""
        raise NotImplementedError


class MemoryTokenStore(TokenStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str) -> Optional[str]:
        _check_key(key)
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        _check_key(key)
        self._data[key] = str(value)

    def clear(self, key: Optional[str] = None) -> None:
        if key is None:
            self._data.clear()
            return
        _check_key(key)
        self._data.pop(key, None)

    def snapshot(self) -> Dict[str, str]:
        return dict(self._data)


class JsonFileTokenStore(TokenStore):
    """Token store backed by a small JSON file (last write wins)."""

    def __init__(self, *, cache_path: str = DEFAULT_TOKEN_CACHE_PATH):
        self.cache_path = cache_path

    def ensure_cache_dir(self) -> None:
        directory = os.path.dirname(self.cache_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

    def _read(self) -> Dict[str, str]:
        if not os.path.exists(self.cache_path):
            return {}

        try:
            with open(self.cache_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError):
            return {}

        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items() if k in TOKEN_STORE_KEYS and v is not None}

    def _write(self, data: Dict[str, str]) -> None:
        self.ensure_cache_dir()
        with open(self.cache_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def get(self, key: str) -> Optional[str]:
        _check_key(key)
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        _check_key(key)
        data = self._read()
        data[key] = str(value)
        self._write(data)

    def clear(self, key: Optional[str] = None) -> None:
        if key is None:
            if os.path.exists(self.cache_path):
                os.remove(self.cache_path)
            return

        _check_key(key)
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)
