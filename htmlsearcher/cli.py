"""Command line entry point: start the web server and the indexer."""

from __future__ import annotations

import argparse
import logging
import sys
import threading

from htmlsearcher.config import Config
from htmlsearcher.indexer import init_database, run_indexer
from htmlsearcher.webserver import run_web_server

log = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "/searcher/config/searcher.jsonc"
_LOG_FORMAT = "%(asctime)s %(message)s"


def build_parser() -> argparse.ArgumentParser:
    """Return the argument parser for the searcher command."""
    parser = argparse.ArgumentParser(
        prog="htmlsearcher", description="Index HTML files and serve full-text search."
    )
    parser.add_argument(
        "-c", dest="config", default=DEFAULT_CONFIG_PATH,
        help="The searcher configuration file",
    )
    parser.add_argument(
        "-H", dest="host", default="",
        help="The interface on which the webServer will listen",
    )
    parser.add_argument(
        "-p", dest="port", type=int, default=0,
        help="The port on which the webServer will listen",
    )
    parser.add_argument(
        "-l", dest="log", default="stderr", help="The searcher log file path"
    )
    return parser


def configure_logging(log_path: str) -> logging.Handler:
    """Send INFO and above to stdout, stderr or an appended file; return the handler."""
    handler: logging.Handler
    if log_path == "stdout":
        handler = logging.StreamHandler(sys.stdout)
    elif log_path in ("stderr", ""):
        handler = logging.StreamHandler(sys.stderr)
    else:
        handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(logging.INFO)
    return handler


def main(argv: list[str] | None = None) -> int:
    """Run the searcher; returns an exit status."""
    args = build_parser().parse_args(argv)
    try:
        handler = configure_logging(args.log)
    except OSError as err:
        print(f"htmlsearcher: cannot open log file [{args.log}]: {err}", file=sys.stderr)
        return 1

    root = logging.getLogger()
    log.info("Searcher: starting")
    try:
        config = Config(args.config)
        try:
            init_database(config.get_str("DatabasePath", ""))
        except OSError as err:
            log.critical("Indexer(FATAL): could not create database file ERROR: %s", err)
            return 1
        threading.Thread(
            target=run_web_server,
            args=(config, args.host, args.port),
            name="webserver",
            daemon=True,
        ).start()
        run_indexer(config)
    except KeyboardInterrupt:
        pass
    finally:
        log.info("Searcher: finished")
        root.removeHandler(handler)
        handler.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())