"""HTML template that is re-read whenever its file changes."""

from __future__ import annotations

import dataclasses
import logging
import os
import threading
from collections.abc import Mapping
from typing import Any

import jinja2

log = logging.getLogger(__name__)

_ENVIRONMENT = jinja2.Environment(autoescape=True)


def _load(path: str) -> jinja2.Template:
    with open(path, encoding="utf-8") as handle:
        return _ENVIRONMENT.from_string(handle.read())


def _context(data: Any) -> dict[str, Any]:
    if isinstance(data, Mapping):
        return dict(data)
    if dataclasses.is_dataclass(data) and not isinstance(data, type):
        return {field.name: getattr(data, field.name) for field in dataclasses.fields(data)}
    return {"data": data}


class ReloadingTemplate:
    """An autoescaping template tracking its file's size and mtime."""

    def __init__(self, path: str) -> None:
        if not path:
            raise ValueError("no template path supplied")
        self.path = path
        self._mtime = 0
        self._size = 0
        self._lock = threading.RLock()
        self._template = _load(path)
        try:
            info = os.stat(path)
        except OSError:
            pass
        else:
            self._mtime = int(info.st_mtime)
            self._size = info.st_size
        log.info("WebserverTemplate: loaded [%s]", path)

    def has_changed(self) -> bool:
        """Return True if the template file's size or mtime differ."""
        with self._lock:
            try:
                info = os.stat(self.path)
            except OSError as err:
                log.info(
                    "WebserverTemplate(no reload): could not get template file info "
                    "for [%s] ERROR: %s",
                    self.path,
                    err,
                )
                return False
            mtime = int(info.st_mtime)
            if mtime != self._mtime or info.st_size != self._size:
                log.info(
                    "WebserverTemplate(reload): file info changed: "
                    "MTime: %d(%d) Size: %d(%d)",
                    mtime,
                    self._mtime,
                    info.st_size,
                    self._size,
                )
                return True
            return False

    def reload(self) -> None:
        """Re-read the template, keeping the old one if loading fails."""
        with self._lock:
            try:
                template = _load(self.path)
            except (OSError, jinja2.TemplateError) as err:
                log.error(
                    "WebserverTemplate: failed to load template from [%s] ERROR: %s",
                    self.path,
                    err,
                )
                return
            self._template = template
            try:
                info = os.stat(self.path)
            except OSError:
                return
            self._mtime = int(info.st_mtime)
            self._size = info.st_size

    def render(self, data: Any) -> str:
        """Render with data: a mapping, a dataclass's fields, or 'data'."""
        if self.has_changed():
            self.reload()
        with self._lock:
            return self._template.render(_context(data))