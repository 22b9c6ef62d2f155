"""HTTP front end that runs full-text queries against the page index."""

from __future__ import annotations

import logging
import os
import re
import sqlite3
import urllib.parse
from collections.abc import Callable, Iterable, Mapping
from contextlib import closing
from dataclasses import dataclass, field
from socketserver import ThreadingMixIn
from typing import Any
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from htmlsearcher.config import Config
from htmlsearcher.template import ReloadingTemplate

log = logging.getLogger(__name__)

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 9090
DEFAULT_MAX_RESULTS = 100
MAX_NUM_RANGE = (10, 50, 100, 200)

_SEARCH_SQL = (
    "select filePath, fileTitle, bm25(pageSearch) from pageSearch "
    "where pageSearch match ? order by rank;"
)

_TYPE_MARKERS = (("blog", "B"), ("author", "A"), ("cite", "C"), ("tasks", "T"))

_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")


@dataclass
class SearchResult:
    """One page that matched a query."""

    file_path: str
    title: str
    type: str
    rank: str


@dataclass
class SearchData:
    """Everything the search form template is rendered with."""

    query: str
    max_num: int
    max_num_range: list[int] = field(default_factory=lambda: list(MAX_NUM_RANGE))
    results: list[SearchResult] = field(default_factory=list)


def result_type(file_path: str) -> str:
    """Classify a page by its path: B(log), A(uthor), C(ite), T(asks) or blank."""
    for marker, code in _TYPE_MARKERS:
        if marker in file_path:
            return code
    return " "


def resolve_address(config: Config, cli_host: str, cli_port: int) -> tuple[str, int]:
    """Pick the listening address: command line first, then config, then defaults."""
    host = cli_host or config.get_str("Host", "") or DEFAULT_HOST
    port = cli_port or config.get_int("Port", 0) or DEFAULT_PORT
    return host, port


def _public_path(file_path: str, html_dirs: Iterable[str], url_base: str) -> str:
    public = ""
    for html_dir in html_dirs:
        if file_path.startswith(html_dir):
            public = file_path.replace(html_dir, url_base, 1)
    return public


def search(
    conn: sqlite3.Connection,
    query: str,
    max_num: int,
    html_dirs: Iterable[str],
    url_base: str,
) -> list[SearchResult]:
    """Run a full-text query, returning at most max_num results for existing files."""
    if not query or max_num <= 0:
        return []
    dirs = list(html_dirs)
    log.info("Webserver(info): query: [%s]", query)
    results: list[SearchResult] = []
    try:
        with closing(conn.execute(_SEARCH_SQL, (query,))) as cursor:
            for file_path, title, rank in cursor:
                if len(results) >= max_num:
                    break
                if not os.path.exists(file_path):
                    continue
                results.append(
                    SearchResult(
                        file_path=_public_path(file_path, dirs, url_base),
                        title=title,
                        type=result_type(file_path),
                        rank=f"{-rank:.2f}",
                    )
                )
    except sqlite3.Error as err:
        log.error(
            "Webserver(error): trying to search pageSearch table with query error: %s",
            err,
        )
    return results


def _query_unescape(text: str) -> str:
    if _BAD_ESCAPE.search(text):
        return text
    return urllib.parse.unquote_plus(text)


def _parse_int(text: str | None, default: int) -> int:
    if text is None:
        return default
    try:
        return int(text.strip()) if text.strip() == text else int("x")
    except ValueError:
        return default


class SearchApp:
    """WSGI application serving the search form and its results."""

    def __init__(self, config: Config) -> None:
        self.config = config
        self.html_dirs = config.get_str_list("HtmlDirs", ["files"])
        self.url_base = config.get_str("UrlBase", "")
        self.template = ReloadingTemplate(
            config.get_str("Webserver.SearchForm", "config/searchForm.html")
        )
        self.db_path = config.get_str("DatabasePath", "")

    def handle(self, method: str, path: str, form: Mapping[str, str]) -> str:
        """Answer one request and return the page body."""
        if path == "/favicon.ico":
            return ""
        log.info("Webserver(info): url: [%s]", path)
        query = ""
        max_num = self.config.get_int("Webserver.MaxNumResults", DEFAULT_MAX_RESULTS)
        if method == "GET":
            query = _query_unescape(path.replace("/search/", "", 1))
        elif method == "POST":
            query = form.get("searchQueryStr", "")
            max_num = _parse_int(form.get("searchQueryNum"), max_num)

        data = SearchData(query=query, max_num=max_num)
        if query:
            with closing(sqlite3.connect(self.db_path)) as conn:
                data.results = search(conn, query, max_num, self.html_dirs, self.url_base)
        return self.template.render(data)

    def __call__(
        self, environ: dict[str, Any], start_response: Callable[..., Any]
    ) -> list[bytes]:
        method = environ.get("REQUEST_METHOD", "GET").upper()
        path = environ.get("PATH_INFO", "/").encode("latin-1").decode("utf-8", "replace")
        try:
            body = self.handle(method, path, _read_form(environ, method))
        except Exception as err:  # noqa: BLE001 - a broken template must not kill the server
            log.error("Webserver(error): could not execute searchForm error: %s", err)
            start_response(
                "500 Internal Server Error", [("Content-Type", "text/plain; charset=utf-8")]
            )
            return [b""]
        payload = body.encode("utf-8")
        start_response(
            "200 OK",
            [
                ("Content-Type", "text/html; charset=utf-8"),
                ("Content-Length", str(len(payload))),
            ],
        )
        return [payload]


def _read_form(environ: Mapping[str, Any], method: str) -> dict[str, str]:
    pairs: list[tuple[str, str]] = []
    if method == "POST":
        content_type = environ.get("CONTENT_TYPE", "")
        try:
            length = int(environ.get("CONTENT_LENGTH") or 0)
        except ValueError:
            length = 0
        if length > 0 and content_type.startswith("application/x-www-form-urlencoded"):
            raw = environ["wsgi.input"].read(length).decode("utf-8", "replace")
            pairs.extend(urllib.parse.parse_qsl(raw, keep_blank_values=True))
    pairs.extend(
        urllib.parse.parse_qsl(environ.get("QUERY_STRING", ""), keep_blank_values=True)
    )
    form: dict[str, str] = {}
    for key, value in pairs:
        form.setdefault(key, value)
    return form


class _ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


class _LoggingHandler(WSGIRequestHandler):
    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        log.debug("Webserver(info): " + format, *args)


def run_web_server(config: Config, cli_host: str, cli_port: int) -> None:
    """Serve the search application forever."""
    host, port = resolve_address(config, cli_host, cli_port)
    app = SearchApp(config)
    with make_server(
        host, port, app, server_class=_ThreadingWSGIServer, handler_class=_LoggingHandler
    ) as server:
        log.info("Webserver(info): listening to %s:%d", host, port)
        server.serve_forever()