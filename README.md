# htmlsearcher

htmlsearcher indexes the HTML pages of a static site into a SQLite FTS5 full-text index. It also puts a small search form in front of that index.

One process runs two jobs:

- **An indexer.** It walks the configured HTML directories over and over. On each pass it:
  - adds pages that are new or whose size or modification time has changed;
  - removes pages whose files have gone.

  Work is done in bounded batches. Between passes it sleeps for a random number of seconds.
- **A web server.** A threaded WSGI server from the standard library answers searches. Each answer is a ranked list of matching pages, rendered through a Jinja2 template.

The configuration file and the template are both reloaded when their size or modification time changes. You can therefore edit either one without restarting.

## Installation

```
pip install .
```

## Running

```
htmlsearcher -c config/searcher.jsonc -H 127.0.0.1 -p 9090 -l searcher.log
```

| Option | Meaning | Default |
|--------|---------|---------|
| `-c` | Path of the configuration file | `/searcher/config/searcher.jsonc` |
| `-H` | Interface the web server listens on | the `Host` setting, or `0.0.0.0` |
| `-p` | Port the web server listens on | the `Port` setting, or `9090` |
| `-l` | Log destination: `stderr`, `stdout`, or a file path (the file is appended to) | `stderr` |

### Start-up

On start-up the command:

1. Creates the database and its tables if the `DatabasePath` file does not exist yet.
2. Starts the web server in a background thread.
3. Runs the indexer in the foreground until it is interrupted.

If the log file or the database file cannot be created, the command exits with status 1.

## Configuration

The configuration file is JSON. It may contain:

- `//` comments;
- `/* */` comments;
- trailing commas.

Nested keys are addressed with dotted paths such as `Indexer.SleepSeconds`. Numeric segments index into arrays, and a dot inside a key name is written `\.`.

```jsonc
{
  // where the SQLite index lives
  "DatabasePath": "data/searcher.db",
  // directories scanned for *.html pages
  "HtmlDirs": [ "files" ],
  // replaces the HtmlDirs prefix in result links
  "UrlBase": "/",
  "Host": "0.0.0.0",
  "Port": 9090,
  // the first capture group becomes the page title
  "TitlePattern": "<title>(.*?)</title>",
  "Indexer": {
    "RemoveBatch": 200,
    "AddUpdateBatch": 200,
    "SleepSeconds": 60
  },
  "Webserver": {
    "SearchForm": "config/searchForm.html",
    "MaxNumResults": 100
  }
}
```

Defaults for missing settings:

- If `DatabasePath` is missing, `data/searcher.db` is used.
- If `HtmlDirs` is missing, `["files"]` is used.

If the file cannot be read, the previously loaded settings are kept. If it cannot be parsed, the built-in defaults apply.

### What gets indexed

When walking the HTML directories, the indexer only looks at files ending in `.html`. It skips:

- files ending in `index.html`;
- files ending in `Citations.html`.

For each indexed page:

- Newlines are flattened.
- The title is the first capture group of `TitlePattern`. If the pattern does not match, the file path is used instead.
- Tags are stripped from the text and runs of whitespace are collapsed.
- If a companion `<name>Citations.html` file exists, its text is appended to the page's text.

## Searching

There are two ways to send a search:

- **GET.** `GET /search/<terms>` searches for the URL-decoded `<terms>`. On any other GET path, the path itself (after removing a first `/search/`) is taken as the query.
- **POST.** A POST reads two form fields:
  - `searchQueryStr`: the search terms;
  - `searchQueryNum`: the result limit.

  The fields are taken from a urlencoded body or from the query string. If `searchQueryNum` is not an integer, `Webserver.MaxNumResults` is used.

The query is passed to FTS5 `MATCH`, so FTS5 query syntax applies. Only pages whose files still exist are listed, in rank order. An invalid query gives an empty result list.

`/favicon.ico` returns an empty page. If rendering fails, the response is `500`.

### The template

The Jinja2 template named by `Webserver.SearchForm` is rendered with autoescaping and these variables:

- `query`: the search string.
- `max_num`: the result limit.
- `max_num_range`: `[10, 50, 100, 200]`.
- `results`: a list of results.

Each result has these attributes:

- `file_path`: the page path. The matching `HtmlDirs` prefix is replaced by `UrlBase`. If no prefix matches, this is an empty string.
- `title`
- `type`: `B` blog, `A` author, `C` cite, `T` tasks, or a single space.
- `rank`: the negated bm25 score, as text with two decimals.

## Using it as a library

```python
import sqlite3
from contextlib import closing

from htmlsearcher.config import Config
from htmlsearcher.indexer import index_once, init_database
from htmlsearcher.webserver import SearchApp, search

config = Config("config/searcher.jsonc")
db_path = config.get_str("DatabasePath", "")
init_database(db_path)
with closing(sqlite3.connect(db_path)) as conn:
    removed, indexed = index_once(conn, config)
    hits = search(conn, "sqlite", 10, config.get_str_list("HtmlDirs", ["files"]), "/")

app = SearchApp(config)  # a WSGI application; app.handle(method, path, form) returns the page body
```

Other useful pieces:

- `htmlsearcher.indexer.strip_tags` and `htmlsearcher.indexer.extract_page` are available on their own.
- `htmlsearcher.template.ReloadingTemplate` is the self-reloading template wrapper.
- `htmlsearcher.config.strip_json_comments` and `htmlsearcher.config.lookup_path` handle the configuration format.

## What it does not do

- **No search form template is included.** You must provide one at the `Webserver.SearchForm` path (by default `config/searchForm.html`). The web server does not start without it.
- **No parent directories are created.** `init_database` only creates the database file itself, so the directory holding `DatabasePath` must already exist.
- **No other files are served.** The web server answers search requests only. It does not serve the indexed HTML pages or any static assets.