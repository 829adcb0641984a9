import argparse
import json as _json
import secrets
import threading
from collections import OrderedDict
from pathlib import Path

from flask import Flask, jsonify, render_template_string, send_file, abort, request, make_response, g

from browser import ActivateArticle, ContentLoader, DocBrowser, Escape, Search, SelectCategory, StaleCommand
from catalog import load_catalog
from content import HOSTING_HINT, DocumentStore, LoadError, loading_panel
from toc import ANCHOR_STYLES, NO_CONTENTS

app = Flask(__name__)

HERE = Path(__file__).resolve().parent

_CONFIG_PATH = HERE / "docshelf.config.json"
_DEFAULTS = {
    "port": 8000,
    "host": "127.0.0.1",
    "docs_root": "docs",
    "catalog_file": "catalog.json",
    "default_category": None,
    "default_article": None,
    "anchor_style": "position",
    "strict_empty": True,
    "hosting_hints": True,
    "max_sessions": 256,
}


def _load_config() -> dict:
    cfg = dict(_DEFAULTS)
    if _CONFIG_PATH.is_file():
        try:
            with open(_CONFIG_PATH, encoding="utf-8") as f:
                user = _json.load(f)
            if not isinstance(user, dict):
                raise ValueError(f"expected a JSON object, got {type(user).__name__}")
            cfg.update(user)
        except (OSError, ValueError) as e:
            print(f"Warning: could not load {_CONFIG_PATH.name}: {e}")
    return cfg


def _resolve(base: Path, value: str) -> Path:
    p = Path(value)
    return p if p.is_absolute() else base / p


def _anchor_style(value) -> str:
    if value not in ANCHOR_STYLES:
        print(f"Warning: unknown anchor_style {value!r}, using 'position'")
        return "position"
    return value


_cfg = _load_config()

DOCS = _resolve(HERE, _cfg["docs_root"])
STORE = DocumentStore(DOCS)
CATALOG = load_catalog(_resolve(HERE, _cfg["catalog_file"]))
DEFAULT_CATEGORY = _cfg["default_category"] or CATALOG.keys()[0]
DEFAULT_ARTICLE = _cfg["default_article"]
ANCHOR_STYLE = _anchor_style(_cfg["anchor_style"])
STRICT_EMPTY = bool(_cfg["strict_empty"])
HOSTING_HINTS = bool(_cfg["hosting_hints"])
MAX_SESSIONS = max(1, int(_cfg["max_sessions"]))

# least recently used first
_sessions: "OrderedDict[str, DocBrowser]" = OrderedDict()
_SESSION_COOKIE = "docshelf_sid"
_sessions_lock = threading.Lock()

COMMANDS = {
    "select_category": lambda body: SelectCategory(str(body["key"])),
    "search": lambda body: Search(str(body.get("query", ""))),
    "activate": lambda body: ActivateArticle(str(body["file"]), body.get("category")),
    "escape": lambda body: Escape(),
}


def _new_browser() -> DocBrowser:
    loader = ContentLoader(STORE, strict_empty=STRICT_EMPTY,
                           anchor_style=ANCHOR_STYLE, hints=HOSTING_HINTS)
    return DocBrowser(CATALOG, loader, DEFAULT_CATEGORY, DEFAULT_ARTICLE)


def _get_or_create_sid() -> tuple[str, bool]:

    if "sid" in g:
        return g.sid, g.sid_new
    sid = request.cookies.get(_SESSION_COOKIE)
    with _sessions_lock:
        if sid and sid in _sessions:
            _sessions.move_to_end(sid)
            g.sid, g.sid_new, g.browser = sid, False, _sessions[sid]
        else:
            sid = secrets.token_urlsafe(32)
            browser = _sessions[sid] = _new_browser()
            while len(_sessions) > MAX_SESSIONS:
                _sessions.popitem(last=False)
            g.sid, g.sid_new, g.browser = sid, True, browser
    return g.sid, g.sid_new


def _respond(payload: dict, status: int = 200):
    sid, needs_set = _get_or_create_sid()
    resp = make_response(jsonify(payload), status)
    if needs_set:
        resp.set_cookie(_SESSION_COOKIE, sid, samesite="Lax", httponly=True)
    return resp


def _browser() -> DocBrowser:
    _get_or_create_sid()
    return g.browser


def _state_dict(browser: DocBrowser) -> dict:
    s = browser.state
    return {
        "current_category": s.current_category,
        "current_article": s.current_article,
        "is_searching": s.is_searching,
        "query": s.query,
        "active_file": s.active_file,
        "loaded_path": browser.loader.loaded_path,
        "toc_html": browser.loader.toc_html,
    }


@app.route("/")
def index():
    return render_template_string(MAIN_TEMPLATE, catalog=CATALOG, default_category=DEFAULT_CATEGORY)


@app.route("/api/config")
def api_config():
    return jsonify({
        "default_category": DEFAULT_CATEGORY,
        "default_article": DEFAULT_ARTICLE,
        "anchor_style": ANCHOR_STYLE,
        "no_contents": str(NO_CONTENTS),
        "loading_html": loading_panel(),
        "hosting_hint": HOSTING_HINT if HOSTING_HINTS else None,
    })


@app.route("/api/catalog")
def api_catalog():
    return jsonify(CATALOG.to_dict())


@app.route("/api/state")
def api_state():
    return _respond(_state_dict(_browser()))


@app.route("/api/bootstrap", methods=["POST"])
def api_bootstrap():
    browser = _browser()
    instruction = browser.bootstrap()
    return _respond({"render": instruction.to_dict(), "state": _state_dict(browser)})


@app.route("/api/command", methods=["POST"])
def api_command():
    body = request.get_json(silent=True) or {}
    factory = COMMANDS.get(body.get("type"))
    if factory is None:
        return _respond({"error": f"Unknown command: {body.get('type')!r}"}, 400)
    try:
        command = factory(body)
    except KeyError as e:
        return _respond({"error": f"Missing field: {e.args[0]}"}, 400)
    seq = body.get("seq")
    if seq is not None and not isinstance(seq, int):
        return _respond({"error": "seq must be an integer"}, 400)
    browser = _browser()
    try:
        instruction = browser.dispatch(command, seq)
    except StaleCommand as e:
        return _respond({"error": str(e), "stale": True}, 409)
    except KeyError as e:
        return _respond({"error": f"Unknown category or article: {e.args[0]}"}, 404)
    return _respond({"render": instruction.to_dict(), "state": _state_dict(browser)})


@app.route("/api/article/<path:file_path>")
def api_article(file_path):
    browser = _browser()
    result = browser.load(file_path)
    if not result.ok and not result.stale:
        app.logger.warning("Article %s failed: %s %s", file_path, result.status, result.reason)
    return _respond(result.to_dict())


@app.route("/docs/<path:file_path>")
def raw_doc(file_path):
    try:
        fpath = STORE.resolve(file_path)
    except LoadError as e:
        abort(e.status)
    if not fpath.is_file():
        abort(404)
    return send_file(fpath, mimetype="text/markdown; charset=utf-8")


MAIN_TEMPLATE = r"""<!DOCTYPE html>
<html lang="zh-CN">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>Docshelf</title>
<style>

*, *::before, *::after { box-sizing: border-box; margin: 0; padding: 0; }

:root {
  --bg-primary: #ffffff;
  --bg-secondary: #f7f7f9;
  --bg-tertiary: #eef0f4;
  --bg-hover: rgba(37,99,235,.06);
  --bg-active: rgba(37,99,235,.12);
  --text: #1f2937;
  --text-muted: #6b7280;
  --text-faint: #9ca3af;
  --accent: #2563eb;
  --accent-hover: #1d4ed8;
  --border: rgba(0,0,0,.08);
  --sidebar-width: 260px;
  --toc-width: 240px;
  --font: -apple-system, BlinkMacSystemFont, 'Segoe UI', 'PingFang SC', 'Microsoft YaHei', Roboto, sans-serif;
  --font-mono: 'Fira Code', 'JetBrains Mono', 'Source Code Pro', 'Consolas', monospace;
  --radius: 4px;
}

html, body { height: 100%; background: var(--bg-primary); color: var(--text); font-family: var(--font); font-size: 16px; line-height: 1.6; }

.topbar { display: flex; align-items: center; gap: 24px; padding: 0 20px; height: 52px; border-bottom: 1px solid var(--border); }
.brand { font-weight: 700; }
.nav { display: flex; gap: 4px; list-style: none; }
.nav-item { padding: 6px 12px; border-radius: var(--radius); color: var(--text-muted); text-decoration: none; }
.nav-item:hover { background: var(--bg-hover); }
.nav-item.active { background: var(--bg-active); color: var(--accent); font-weight: 600; }
.search { margin-left: auto; }
.search input { width: 220px; padding: 6px 10px; border: 1px solid var(--border); border-radius: var(--radius); font: inherit; }

.app { display: flex; height: calc(100vh - 52px); overflow: hidden; }
.sidebar { width: var(--sidebar-width); background: var(--bg-secondary); overflow-y: auto; padding: 16px 10px; }
.category-title { font-size: 12px; font-weight: 700; color: var(--text-faint); text-transform: uppercase; letter-spacing: .08em; padding: 0 8px 8px; }
.article-list { list-style: none; }
.article-list a { display: block; padding: 6px 8px; border-radius: var(--radius); color: var(--text); text-decoration: none; font-size: 14px; }
.article-list a:hover { background: var(--bg-hover); }
.article-list a.active { background: var(--bg-active); color: var(--accent); }
.article-list .result-category { display: block; font-size: 11px; color: var(--text-faint); }
.article-list .empty { padding: 6px 8px; color: var(--text-faint); font-size: 14px; }

.content { flex: 1; overflow-y: auto; padding: 32px 48px; }
.toc { width: var(--toc-width); overflow-y: auto; padding: 24px 16px; border-left: 1px solid var(--border); font-size: 14px; }
.toc ul { list-style: none; }
.toc ul ul { padding-left: 1rem; }
.toc a { color: var(--text-muted); text-decoration: none; display: block; padding: 2px 0; }
.toc a:hover { color: var(--accent); }
.toc-empty { color: var(--text-faint); font-size: .9rem; }

.loading, .load-error { padding: 2rem; text-align: center; color: var(--text-muted); }
.load-error p { margin-top: .75rem; }

.markdown-body { max-width: 780px; margin: 0 auto; color: var(--text); }
.markdown-body h1 { font-size: 1.9em; font-weight: 700; margin: 0 0 20px; padding-bottom: 10px; border-bottom: 1px solid var(--border); }
.markdown-body h2 { font-size: 1.45em; font-weight: 600; margin: 32px 0 12px; }
.markdown-body h3 { font-size: 1.2em; font-weight: 600; margin: 24px 0 8px; }
.markdown-body p { margin: 0 0 16px; line-height: 1.7; }
.markdown-body a { color: var(--accent); text-decoration: none; }
.markdown-body ul, .markdown-body ol { margin: 0 0 16px; padding-left: 2em; }
.markdown-body code { font-family: var(--font-mono); background: var(--bg-tertiary); padding: 2px 6px; border-radius: var(--radius); font-size: .85em; }
.markdown-body pre { background: var(--bg-tertiary); border: 1px solid var(--border); border-radius: 6px; padding: 16px; overflow-x: auto; margin: 0 0 16px; }
.markdown-body pre code { background: none; padding: 0; }
.markdown-body table { border-collapse: collapse; width: 100%; margin: 0 0 16px; }
.markdown-body th, .markdown-body td { border: 1px solid var(--border); padding: 8px 12px; text-align: left; }
.markdown-body blockquote { border-left: 3px solid var(--accent); padding: 4px 16px; margin: 0 0 16px; color: var(--text-muted); }
</style>
</head>
<body>
<header class="topbar">
  <span class="brand">Docshelf</span>
  <ul class="nav" id="categoryNav">
    {% for key in catalog %}
    <li><a href="#" class="nav-item{% if key == default_category %} active{% endif %}" data-category="{{ key }}">{{ catalog.title(key) }}</a></li>
    {% endfor %}
  </ul>
  <div class="search"><input id="searchInput" type="search" placeholder="搜索文章..." autocomplete="off"></div>
</header>
<div class="app">
  <aside class="sidebar">
    <div class="category-title" id="categoryTitle"></div>
    <ul class="article-list" id="articleList"></ul>
  </aside>
  <main class="content"><article class="markdown-body" id="markdownContent"></article></main>
  <nav class="toc" id="tableOfContents"></nav>
</div>
<script>
const navItems = document.querySelectorAll('#categoryNav .nav-item');
const searchInput = document.getElementById('searchInput');
const articleList = document.getElementById('articleList');
const categoryTitle = document.getElementById('categoryTitle');
const contentDiv = document.getElementById('markdownContent');
const toc = document.getElementById('tableOfContents');
let loadToken = 0;
let commandSeq = 0;
let loadingHtml = '';
let hostingHint = null;

function esc(s) {
  const d = document.createElement('div');
  d.textContent = s;
  return d.innerHTML;
}

async function post(url, body) {
  const res = await fetch(url, {
    method: 'POST',
    headers: {'Content-Type': 'application/json'},
    body: JSON.stringify(body || {}),
  });
  return res.json();
}

async function command(body) {
  const seq = ++commandSeq;
  const data = await post('/api/command', {...body, seq});
  if (seq !== commandSeq || data.stale) return;
  if (data.error) { console.warn(data.error); return; }
  paint(data.render);
}

function errorPanel(path, reason) {
  return `<div class="load-error"><h2>文档加载失败</h2>`
    + `<p class="error-path">无法加载文件: ${esc(path)}</p>`
    + `<p class="error-reason">${esc(reason)}</p>`
    + (hostingHint ? `<p class="error-hint">${esc(hostingHint)}</p>` : '')
    + `</div>`;
}

function paint(render) {
  navItems.forEach(nav => nav.classList.toggle('active', nav.dataset.category === render.nav_category));
  if (render.clear_search) searchInput.value = '';
  if (render.blur_search) searchInput.blur();

  const view = render.article_list;
  categoryTitle.textContent = view.title;
  if (view.empty_message) {
    articleList.innerHTML = `<li class="empty">${esc(view.empty_message)}</li>`;
  } else {
    articleList.innerHTML = view.entries.map(entry => `
      <li>
        <a href="#" class="${entry.active ? 'active' : ''}" data-file="${esc(entry.file)}" data-category="${esc(entry.category)}">
          ${esc(entry.title)}
          ${view.searching ? `<span class="result-category">${esc(entry.category_title)}</span>` : ''}
        </a>
      </li>
    `).join('');
  }
  articleList.querySelectorAll('a').forEach(link => {
    link.addEventListener('click', e => {
      e.preventDefault();
      articleList.querySelectorAll('a').forEach(a => a.classList.remove('active'));
      link.classList.add('active');
      command({type: 'activate', file: link.dataset.file, category: link.dataset.category});
    });
  });

  if (render.load) loadMarkdown(render.load);
}

async function loadMarkdown(path) {
  const token = ++loadToken;
  contentDiv.innerHTML = loadingHtml;
  let data = null;
  let reason = '';
  try {
    const res = await fetch('/api/article/' + path.split('/').map(encodeURIComponent).join('/'));
    try {
      data = await res.json();
    } catch (e) {
      reason = `${res.status} ${res.statusText}`;
    }
  } catch (e) {
    reason = e.message || String(e);
  }
  if (token !== loadToken || (data && data.stale)) return;
  if (!data) {
    contentDiv.innerHTML = errorPanel(path, reason);
    return;
  }
  contentDiv.innerHTML = data.html;
  if (data.ok) {
    toc.innerHTML = data.toc_html;
    toc.querySelectorAll('a').forEach(link => {
      link.addEventListener('click', e => {
        e.preventDefault();
        const target = document.getElementById(link.getAttribute('href').substring(1));
        if (target) target.scrollIntoView({behavior: 'smooth', block: 'start'});
      });
    });
  }
}

navItems.forEach(item => {
  item.addEventListener('click', e => {
    e.preventDefault();
    command({type: 'select_category', key: item.dataset.category});
  });
});

searchInput.addEventListener('input', () => command({type: 'search', query: searchInput.value}));
searchInput.addEventListener('keydown', e => {
  if (e.key === 'Escape') {
    e.preventDefault();
    command({type: 'escape'});
  }
});

document.addEventListener('DOMContentLoaded', async () => {
  const cfg = await (await fetch('/api/config')).json();
  loadingHtml = cfg.loading_html;
  hostingHint = cfg.hosting_hint;
  toc.innerHTML = cfg.no_contents;
  const data = await post('/api/bootstrap');
  paint(data.render);
});
</script>
</body>
</html>
"""


def main(argv=None):
    global DOCS, STORE
    parser = argparse.ArgumentParser(description="Serve a categorized markdown documentation browser.")
    parser.add_argument("--port", type=int, default=_cfg["port"])
    parser.add_argument("--host", default=_cfg["host"])
    parser.add_argument("--docs", type=Path, default=None, help="Document root (default: %(default)s from config)")
    args = parser.parse_args(argv)

    if args.docs is not None:
        DOCS = args.docs.resolve()
        STORE = DocumentStore(DOCS)
        _sessions.clear()
    if not DOCS.is_dir():
        print(f"Warning: document root {DOCS} does not exist")
    print(f"Serving docs: {DOCS}")
    print(f"Categories: {', '.join(CATALOG.keys())}")
    print(f"Open http://localhost:{args.port}")
    app.run(host=args.host, port=args.port)


if __name__ == "__main__":
    main()
