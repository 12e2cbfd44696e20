"""Persisted user preferences.

Holds the terminal URL the user last chose. The store is an ordinary
object constructed once and handed to whoever needs it; all access goes
through an internal lock so tabs opened from different threads see a
consistent value.
"""

from __future__ import annotations

import contextlib
import logging
import os
import threading
from pathlib import Path

import yaml

from termtabs.config.settings import DEFAULT_TERMINAL_URL

logger = logging.getLogger(__name__)

URL_KEY = "url"


class UrlPreferences:
    """YAML-file backed store for the preferred terminal URL."""

    def __init__(self, path: Path | str, default_url: str = DEFAULT_TERMINAL_URL) -> None:
        self._path = Path(path)
        self._default_url = default_url
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def url(self) -> str:
        """The stored URL, or the default when nothing usable is stored."""
        with self._lock:
            value = self._read().get(URL_KEY)
            if isinstance(value, str) and value:
                return value
            return self._default_url

    @url.setter
    def url(self, value: str) -> None:
        with self._lock:
            data = self._read()
            data[URL_KEY] = value
            self._write(data)
        logger.info("Terminal URL set to %s", value)

    def reset(self) -> None:
        """Forget the stored URL so the default applies again."""
        with self._lock:
            data = self._read()
            if data.pop(URL_KEY, None) is not None:
                self._write(data)

    def _read(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            with open(self._path) as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.warning("Ignoring unreadable preferences file %s: %s", self._path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            with open(tmp, "w") as f:
                yaml.safe_dump(data, f)
            os.replace(tmp, self._path)
        except OSError:
            with contextlib.suppress(OSError):
                tmp.unlink()
            raise
