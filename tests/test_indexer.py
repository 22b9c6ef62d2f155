import json
import os
import re
import sqlite3
import time
from contextlib import closing

import pytest

from htmlsearcher.config import Config
from htmlsearcher.indexer import (
    extract_page,
    index_once,
    init_database,
    look_for_new_files,
    remove_missing_files,
    run_indexer,
    strip_tags,
)


def make_setup(tmp_path, **extra):
    files = tmp_path / "files"
    files.mkdir()
    db_path = tmp_path / "searcher.db"
    settings = {"DatabasePath": str(db_path), "HtmlDirs": [str(files)]}
    settings.update(extra)
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps(settings))
    init_database(str(db_path))
    return Config(str(config_path)), files, db_path


def page(title, body):
    return f"<html><head><title>{title}</title></head><body>{body}</body></html>"


def indexed_paths(conn):
    return sorted(row[0] for row in conn.execute("select filePath from fileInfo"))


def test_strip_tags_keeps_text():
    assert strip_tags("<p>Hello <b>world</b></p>") == "Hello world"


def test_strip_tags_drops_comments_and_keeps_entities():
    assert strip_tags("a <!-- hidden --> &amp; b") == "a  &amp; b"


def test_extract_page_title_and_text(tmp_path):
    path = tmp_path / "doc.html"
    path.write_text(page("My Page", "<p>first\nline</p>\r\n<p>second</p>"))
    title, text = extract_page(str(path), "<title>(.*?)</title>")
    assert title == "My Page"
    assert "\n" not in text and "\r" not in text
    assert "first line" in text
    assert "second" in text
    assert "  " not in text


def test_extract_page_without_title_uses_path(tmp_path):
    path = tmp_path / "doc.html"
    path.write_text("<body>no heading</body>")
    title, text = extract_page(str(path), "<title>(.*?)</title>")
    assert title == str(path)
    assert text == "no heading"


def test_extract_page_appends_citations(tmp_path):
    path = tmp_path / "doc.html"
    path.write_text(page("T", "main text"))
    (tmp_path / "docCitations.html").write_text("<ul><li>cited\nwork</li></ul>")
    _, text = extract_page(str(path), re.compile("<title>(.*?)</title>"))
    assert text.endswith(" cited work")
    assert "main text" in text


def test_extract_page_missing_file_raises(tmp_path):
    with pytest.raises(OSError):
        extract_page(str(tmp_path / "absent.html"), "<title>(.*?)</title>")


def test_init_database_creates_tables_once(tmp_path):
    db_path = str(tmp_path / "new.db")
    assert init_database(db_path) is True
    with closing(sqlite3.connect(db_path)) as conn:
        names = {row[0] for row in conn.execute("select name from sqlite_master")}
    assert {"fileInfo", "pageSearch", "filePaths"} <= names
    assert init_database(db_path) is False


def test_init_database_missing_directory_raises(tmp_path):
    with pytest.raises(OSError):
        init_database(str(tmp_path / "nowhere" / "db.sqlite"))


def test_look_for_new_files_indexes_and_filters(tmp_path):
    config, files, db_path = make_setup(tmp_path)
    (files / "alpha.html").write_text(page("Alpha", "zebra content"))
    sub = files / "sub"
    sub.mkdir()
    (sub / "beta.html").write_text(page("Beta", "other words"))
    (files / "index.html").write_text(page("Index", "skip me"))
    (files / "alphaCitations.html").write_text("<p>quoted source</p>")
    (files / "notes.txt").write_text("plain")

    with closing(sqlite3.connect(db_path)) as conn:
        assert look_for_new_files(conn, config) == 2
        assert indexed_paths(conn) == sorted(
            [str(files / "alpha.html"), str(sub / "beta.html")]
        )
        hits = conn.execute(
            "select filePath, fileTitle from pageSearch('zebra')"
        ).fetchall()
        assert hits == [(str(files / "alpha.html"), "Alpha")]
        cited = conn.execute("select filePath from pageSearch('quoted')").fetchall()
        assert cited == [(str(files / "alpha.html"),)]
        assert look_for_new_files(conn, config) == 0


def test_look_for_new_files_respects_batch(tmp_path):
    config, files, db_path = make_setup(tmp_path, Indexer={"AddUpdateBatch": 1})
    for name in ("a.html", "b.html", "c.html"):
        (files / name).write_text(page(name, "text"))
    with closing(sqlite3.connect(db_path)) as conn:
        assert look_for_new_files(conn, config) == 1
        assert indexed_paths(conn) == [str(files / "a.html")]
        assert look_for_new_files(conn, config) == 1
        assert look_for_new_files(conn, config) == 1
        assert look_for_new_files(conn, config) == 0
        assert len(indexed_paths(conn)) == 3


def test_look_for_new_files_updates_changed(tmp_path):
    config, files, db_path = make_setup(tmp_path)
    path = files / "doc.html"
    path.write_text(page("Old", "before"))
    with closing(sqlite3.connect(db_path)) as conn:
        assert look_for_new_files(conn, config) == 1
        path.write_text(page("New Title", "after a longer body"))
        later = time.time() + 10
        os.utime(path, (later, later))
        assert look_for_new_files(conn, config) == 1
        rows = conn.execute("select fileTitle from pageSearch").fetchall()
        assert rows == [("New Title",)]
        info = conn.execute("select fileMTime, fileSize from fileInfo").fetchone()
        assert info == (int(os.stat(path).st_mtime), os.stat(path).st_size)


def test_look_for_new_files_bad_pattern_raises(tmp_path):
    config, files, db_path = make_setup(tmp_path, TitlePattern="(unclosed")
    with closing(sqlite3.connect(db_path)) as conn:
        with pytest.raises(re.error):
            look_for_new_files(conn, config)


def test_remove_missing_files(tmp_path):
    config, files, db_path = make_setup(tmp_path)
    keep = files / "keep.html"
    gone = files / "gone.html"
    keep.write_text(page("Keep", "stays"))
    gone.write_text(page("Gone", "leaves"))
    with closing(sqlite3.connect(db_path)) as conn:
        look_for_new_files(conn, config)
        gone.unlink()
        assert remove_missing_files(conn, config) == 1
        assert indexed_paths(conn) == [str(keep)]
        left = conn.execute("select filePath from pageSearch").fetchall()
        assert left == [(str(keep),)]
        assert remove_missing_files(conn, config) == 0


def test_remove_missing_files_respects_batch(tmp_path):
    config, files, db_path = make_setup(tmp_path, Indexer={"RemoveBatch": 1})
    paths = [files / f"p{n}.html" for n in range(3)]
    for path in paths:
        path.write_text(page(path.name, "body"))
    with closing(sqlite3.connect(db_path)) as conn:
        look_for_new_files(conn, config)
        for path in paths:
            path.unlink()
        assert remove_missing_files(conn, config) == 1
        assert len(indexed_paths(conn)) == 2


def test_index_once_reports_both_counts(tmp_path):
    config, files, db_path = make_setup(tmp_path)
    old = files / "old.html"
    old.write_text(page("Old", "x"))
    with closing(sqlite3.connect(db_path)) as conn:
        assert index_once(conn, config) == (0, 1)
        old.unlink()
        (files / "fresh.html").write_text(page("Fresh", "y"))
        assert index_once(conn, config) == (1, 1)
        assert indexed_paths(conn) == [str(files / "fresh.html")]


class _StopLoop(Exception):
    pass


def test_run_indexer_indexes_then_sleeps(tmp_path, monkeypatch):
    config, files, db_path = make_setup(tmp_path, Indexer={"SleepSeconds": 5})
    (files / "doc.html").write_text(page("Doc", "words"))
    slept = []

    def fake_sleep(seconds):
        slept.append(seconds)
        raise _StopLoop

    monkeypatch.setattr(time, "sleep", fake_sleep)
    with pytest.raises(_StopLoop):
        run_indexer(config)
    assert len(slept) == 1
    assert 0 <= slept[0] < 5
    with closing(sqlite3.connect(db_path)) as conn:
        assert indexed_paths(conn) == [str(files / "doc.html")]