"""Lazily reloaded JSON-with-comments configuration."""

from __future__ import annotations

import json
import logging
import os
import re
import threading
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

log = logging.getLogger(__name__)

DEFAULT_DATABASE_PATH = "data/searcher.db"
DEFAULT_HTML_DIRS = ["files"]

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_JSONC_TOKENS = re.compile(
    r'(?P<string>"(?:\\.|[^"\\])*")'
    r"|(?P<line>//[^\n]*)"
    r"|(?P<block>/\*.*?(?:\*/|\Z))"
    r"|,(?P<close>\s*[}\]])",
    re.DOTALL,
)

_TRUE_WORDS = {"1", "t", "T", "TRUE", "true", "True"}


def strip_json_comments(text: str) -> str:
    """Remove // and /* */ comments and trailing commas outside JSON strings."""

    def replace(match: re.Match[str]) -> str:
        if match.group("string") is not None:
            return match.group("string")
        if match.group("close") is not None:
            return match.group("close")
        return ""

    return _JSONC_TOKENS.sub(replace, text)


def _split_path(path: str) -> list[str]:
    return [part.replace("\\.", ".") for part in re.split(r"(?<!\\)\.", path)]


def lookup_path(document: Any, path: str) -> Any:
    """Follow a dotted path through nested objects and arrays.

    Numeric segments index into arrays. Raises KeyError if any step is missing.
    """
    node = document
    for key in _split_path(path):
        if isinstance(node, Mapping):
            if key not in node:
                raise KeyError(path)
            node = node[key]
        elif isinstance(node, list):
            if not key.isdigit() or int(key) >= len(node):
                raise KeyError(path)
            node = node[int(key)]
        else:
            raise KeyError(path)
    return node


def _as_str(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return json.dumps(value)


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, list):
        return value
    if value is None:
        return []
    return [value]


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value in _TRUE_WORDS
    return False


def _as_float(value: Any) -> float:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return 0.0
    return 0.0


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            pass
    return int(_as_float(value))


def _as_time(value: Any) -> datetime:
    text = _as_str(value)
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return _ZERO_TIME


class Config:
    """Configuration file that is re-read whenever its size or mtime changes."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._mtime = 0
        self._size = 0
        self._document: dict[str, Any] | None = None
        self._lock = threading.RLock()

    def has_changed(self) -> bool:
        """Return True if the configuration must be (re)loaded."""
        with self._lock:
            if self._document is None:
                return True
            if not self.path:
                log.info("Config(no reload): no configuration path")
                return False
            try:
                info = os.stat(self.path)
            except OSError as err:
                log.info(
                    "Config(no reload): could not get file info for [%s] ERROR: %s",
                    self.path,
                    err,
                )
                return False
            mtime = int(info.st_mtime)
            if mtime != self._mtime or info.st_size != self._size:
                log.info(
                    "Config(reload): file info changed: MTime: %d(%d) Size: %d(%d)",
                    mtime,
                    self._mtime,
                    info.st_size,
                    self._size,
                )
                return True
            return False

    def reload(self) -> None:
        """Re-read the file, keeping the old data if it cannot be read."""
        with self._lock:
            document = self._document if self._document is not None else {}
            try:
                with open(self.path, encoding="utf-8") as handle:
                    text = handle.read()
            except OSError as err:
                log.error(
                    "Searcher(error): Failed to load configuration from [%s] ERROR: %s",
                    self.path,
                    err,
                )
            else:
                try:
                    parsed = json.loads(strip_json_comments(text)) if text.strip() else {}
                except json.JSONDecodeError as err:
                    log.error(
                        "Searcher(error): Failed to parse configuration [%s] ERROR: %s",
                        self.path,
                        err,
                    )
                    parsed = {}
                document = parsed if isinstance(parsed, dict) else {}
                try:
                    info = os.stat(self.path)
                except OSError:
                    pass
                else:
                    self._mtime = int(info.st_mtime)
                    self._size = info.st_size

            document.setdefault("DatabasePath", DEFAULT_DATABASE_PATH)
            document.setdefault("HtmlDirs", list(DEFAULT_HTML_DIRS))
            self._document = document
            log.info(
                "Searcher: configuration: [%s]\n[%s]",
                self.path,
                json.dumps(document),
            )

    def get(self, path: str) -> Any:
        """Return the raw value at path, reloading first if needed.

        Raises KeyError if the value does not exist.
        """
        if self.has_changed():
            self.reload()
        with self._lock:
            return lookup_path(self._document, path)

    def _lookup(self, path: str, default: Any, convert: Any) -> Any:
        try:
            value = self.get(path)
        except KeyError:
            return default
        return convert(value)

    def get_str(self, path: str, default: str) -> str:
        return self._lookup(path, default, _as_str)

    def get_str_list(self, path: str, default: list[str]) -> list[str]:
        return self._lookup(
            path, default, lambda value: [_as_str(item) for item in _as_list(value)]
        )

    def get_bool(self, path: str, default: bool) -> bool:
        return self._lookup(path, default, _as_bool)

    def get_int(self, path: str, default: int) -> int:
        return self._lookup(path, default, _as_int)

    def get_uint(self, path: str, default: int) -> int:
        return self._lookup(path, default, lambda value: max(0, _as_int(value)))

    def get_float(self, path: str, default: float) -> float:
        return self._lookup(path, default, _as_float)

    def get_time(self, path: str, default: datetime) -> datetime:
        return self._lookup(path, default, _as_time)