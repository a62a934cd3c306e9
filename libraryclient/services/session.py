"""
Persisted client-side session state.

``SessionStore`` plays the role browser local storage plays for the web
front end: a small string key/value map that survives restarts, holding the
bearer token and the serialised current user. ``Navigator`` tracks the
current route so session expiry can send the user back to sign-in.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"
LEGACY_TOKEN_KEY = "auth_token"
USER_KEY = "user"
LEGACY_USER_KEY = "currentUser"
FORCE_LOGOUT_KEY = "force_logout"

AUTH_KEYS = (TOKEN_KEY, LEGACY_TOKEN_KEY, USER_KEY, LEGACY_USER_KEY)


class SessionStore:
    """String key/value store persisted as a JSON document.

    With ``path=None`` the store lives in memory only.
    """

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._values: dict[str, str] = self._load()

    @property
    def path(self) -> Path | None:
        return self._path

    def _load(self) -> dict[str, str]:
        if self._path is None or not self._path.exists():
            return {}
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Discarding unreadable session file %s: %s", self._path, exc)
            return {}
        if not isinstance(raw, dict):
            logger.warning("Discarding malformed session file %s", self._path)
            return {}
        return {str(key): str(value) for key, value in raw.items()}

    def _persist(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._values, indent=2), encoding="utf-8")
        tmp_path.replace(self._path)

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._values[key] = value
            self._persist()

    def remove(self, *keys: str) -> None:
        with self._lock:
            changed = False
            for key in keys:
                if self._values.pop(key, None) is not None:
                    changed = True
            if changed:
                self._persist()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._values

    @property
    def token(self) -> str | None:
        return self.get(TOKEN_KEY) or self.get(LEGACY_TOKEN_KEY)

    @property
    def current_user(self) -> dict[str, Any] | None:
        raw = self.get(USER_KEY) or self.get(LEGACY_USER_KEY)
        if not raw:
            return None
        try:
            user = json.loads(raw)
        except ValueError:
            logger.error("Error parsing stored user; clearing session")
            self.clear_auth()
            return None
        return user if isinstance(user, dict) else None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token) and self.current_user is not None

    def save_login(self, token: str, user: Mapping[str, Any] | None) -> None:
        """Persist a successful sign-in."""
        serialised = json.dumps(dict(user or {}))
        with self._lock:
            self._values[TOKEN_KEY] = token
            self._values[LEGACY_TOKEN_KEY] = token
            self._values[USER_KEY] = serialised
            self._values[LEGACY_USER_KEY] = serialised
            self._values.pop(FORCE_LOGOUT_KEY, None)
            self._persist()

    def clear_auth(self) -> None:
        self.remove(*AUTH_KEYS)


class Navigator:
    """Current route of the client plus change notifications."""

    def __init__(self, current_path: str = "/") -> None:
        self.current_path = current_path
        self.history: list[str] = [current_path]
        self._listeners: list[Callable[[str], None]] = []

    def navigate(self, path: str) -> None:
        logger.info("Navigating to %s", path)
        self.current_path = path
        self.history.append(path)
        for listener in list(self._listeners):
            listener(path)

    def subscribe(self, listener: Callable[[str], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe


__all__ = [
    "AUTH_KEYS",
    "FORCE_LOGOUT_KEY",
    "LEGACY_TOKEN_KEY",
    "LEGACY_USER_KEY",
    "Navigator",
    "SessionStore",
    "TOKEN_KEY",
    "USER_KEY",
]
