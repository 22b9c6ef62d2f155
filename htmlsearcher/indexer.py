"""Full-text indexer that keeps an SQLite FTS5 table in step with HTML files."""

from __future__ import annotations

import itertools
import logging
import os
import random
import re
import sqlite3
import stat
import time
from collections.abc import Iterator
from contextlib import closing
from html.parser import HTMLParser

from htmlsearcher.config import Config

log = logging.getLogger(__name__)

DEFAULT_TITLE_PATTERN = "<title>(.*?)</title>"

_SCHEMA = """
create table fileInfo (
  filePath  text not null primary key,
  fileMTime int,
  fileSize  int
);
create index filePaths ON fileInfo(filePath);
create virtual table pageSearch using fts5(
  filePath,
  fileTitle,
  fileStr
);
"""

_WHITESPACE = re.compile(r"\s+")


def init_database(db_path: str) -> bool:
    """Create the database and its tables unless the file already exists.

    Returns True if a new database was created.
    """
    if os.path.exists(db_path):
        return False
    with open(db_path, "x", encoding="utf-8"):
        pass
    with closing(sqlite3.connect(db_path)) as conn:
        conn.executescript(_SCHEMA)
        conn.commit()
    log.info("Indexer(info): created database [%s]", db_path)
    return True


class _TextExtractor(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=False)
        self.parts: list[str] = []

    def handle_data(self, data: str) -> None:
        self.parts.append(data)

    def handle_entityref(self, name: str) -> None:
        self.parts.append(f"&{name};")

    def handle_charref(self, name: str) -> None:
        self.parts.append(f"&#{name};")


def strip_tags(html: str) -> str:
    """Remove tags and comments, leaving the text (entities untouched)."""
    extractor = _TextExtractor()
    extractor.feed(html)
    extractor.close()
    return "".join(extractor.parts)


def _read_text(path: str) -> str:
    with open(path, "rb") as handle:
        return handle.read().decode("utf-8", errors="replace")


def _plain_text(html: str) -> str:
    return _WHITESPACE.sub(" ", strip_tags(html))


def extract_page(path: str, title_regex: str | re.Pattern[str]) -> tuple[str, str]:
    """Return (title, searchable text) for an HTML file.

    The title falls back to the path when the pattern does not match. Text of
    a sibling ``*Citations.html`` file is appended when one exists.
    """
    pattern = re.compile(title_regex)
    content = _read_text(path).replace("\n", " ").replace("\r", " ")
    match = pattern.search(content)
    title = match.group(1) if match else path
    text = _plain_text(content)

    citations_path = path.replace(".html", "Citations.html", 1)
    try:
        citations = _read_text(citations_path)
    except OSError:
        pass
    else:
        text = text + " " + _plain_text(citations)
    return title, text


def _run_transaction(
    conn: sqlite3.Connection,
    statements: list[tuple[str, tuple[object, ...]]],
    action: str,
) -> bool:
    try:
        with conn:
            for sql, params in statements:
                conn.execute(sql, params)
    except sqlite3.Error as err:
        log.error("Indexer(error): %s error: %s", action, err)
        return False
    return True


def remove_missing_files(conn: sqlite3.Connection, config: Config) -> int:
    """Drop index entries whose files no longer exist; return how many were dropped."""
    max_deletions = config.get_int("Indexer.RemoveBatch", 200)
    log.info("Indexer(info): removing missing files")

    try:
        with closing(conn.execute("select filePath from fileInfo")) as cursor:
            missing = (row[0] for row in cursor if not os.path.exists(row[0]))
            to_delete = list(itertools.islice(missing, max(0, max_deletions)))
    except sqlite3.Error as err:
        log.error("Indexer(error): selecting filePaths from fileInfo error: %s", err)
        to_delete = []

    removed = 0
    for index, file_path in enumerate(to_delete):
        log.info("Indexer(info): deleting(%d): [%s]", index, file_path)
        ok = _run_transaction(
            conn,
            [
                ("delete from fileInfo where filePath = ?", (file_path,)),
                ("delete from pageSearch where filePath = ?", (file_path,)),
            ],
            "deleting missing file",
        )
        if not ok:
            break
        removed += 1

    if to_delete:
        log.info("Indexer(info): vacuuming database....")
        try:
            conn.execute("vacuum;")
        except sqlite3.Error as err:
            log.error("Indexer(error): vacuuming database error: %s", err)
        log.info("Indexer(info): finished vacuuming database.")
    log.info("Indexer(info): removed %d missing files", removed)
    return removed


def _walk_files(root: str) -> Iterator[str]:
    try:
        info = os.lstat(root)
    except OSError as err:
        log.error("Indexer(error): walking path %s error: %s", root, err)
        return
    if not stat.S_ISDIR(info.st_mode):
        yield root
        return
    try:
        names = sorted(os.listdir(root))
    except OSError as err:
        log.error("Indexer(error): walking path %s error: %s", root, err)
        return
    for name in names:
        yield from _walk_files(os.path.join(root, name))


def _is_indexable(path: str) -> bool:
    return (
        path.endswith(".html")
        and not path.endswith("index.html")
        and not path.endswith("Citations.html")
    )


def look_for_new_files(conn: sqlite3.Connection, config: Config) -> int:
    """Index new or changed HTML files; return how many were (re)indexed."""
    max_insertions = config.get_int("Indexer.AddUpdateBatch", 200)
    title_pattern = config.get_str("TitlePattern", DEFAULT_TITLE_PATTERN)
    log.info("Indexer(info): TitlePattern: [%s]", title_pattern)
    title_regex = re.compile(title_pattern)

    log.info("Indexer(info): looking for new or changed files")
    count = 0
    for html_dir in config.get_str_list("HtmlDirs", ["files"]):
        for path in _walk_files(html_dir):
            if count >= max_insertions:
                break
            if not _is_indexable(path):
                continue
            try:
                row = conn.execute(
                    "select filePath, fileMTime, fileSize from fileInfo where filePath == ?",
                    (path,),
                ).fetchone()
            except sqlite3.Error as err:
                log.error("Indexer(error): looking for new files in fileInfo error: %s", err)
                row = None
            try:
                info = os.stat(path)
            except OSError as err:
                log.error("Indexer(error): walking path %s error: %s", path, err)
                continue
            mtime = int(info.st_mtime)
            if row is not None and row[1] == mtime and row[2] == info.st_size:
                continue

            log.info("Indexer(info): need to index(%d) [%s]", count + 1, path)
            try:
                title, text = extract_page(path, title_regex)
            except OSError as err:
                log.error("Indexer(error): reading %s error: %s", path, err)
                continue

            if row is None:
                log.info("Indexer(info): INSERTING: [%s][%s]", path, title)
                statements = [
                    (
                        "insert into fileInfo ( filePath, fileMTime, fileSize ) values ( ?, ?, ? )",
                        (path, mtime, info.st_size),
                    ),
                    (
                        "insert into pageSearch ( filePath, fileTitle, fileStr ) values ( ?, ?, ? )",
                        (path, title, text),
                    ),
                ]
                action = "inserting new file"
            else:
                log.info("Indexer(info): UPDATING: [%s][%s]", path, title)
                statements = [
                    (
                        "update fileInfo set fileMTime = ?, fileSize = ? where filePath = ?",
                        (mtime, info.st_size, path),
                    ),
                    (
                        "update pageSearch set fileTitle = ?, fileStr = ? where filePath = ?",
                        (title, text, path),
                    ),
                ]
                action = "updating changed file"
            if _run_transaction(conn, statements, action):
                count += 1
    log.info("Indexer(info): found %d new or changed files", count)
    return count


def index_once(conn: sqlite3.Connection, config: Config) -> tuple[int, int]:
    """Run one indexing pass; return (files removed, files indexed)."""
    log.info("Indexer(info): starting")
    removed = remove_missing_files(conn, config)
    indexed = look_for_new_files(conn, config)
    log.info("Indexer(info): finished")
    return removed, indexed


def run_indexer(config: Config) -> None:
    """Index forever, sleeping a random time below Indexer.SleepSeconds between passes."""
    with closing(sqlite3.connect(config.get_str("DatabasePath", ""))) as conn:
        while True:
            index_once(conn, config)
            sleep_seconds = config.get_int("Indexer.SleepSeconds", 60)
            time.sleep(random.randrange(sleep_seconds))