import json
import logging
import mimetypes
import threading
from pathlib import Path
from urllib.parse import quote

from flask import Flask, abort, make_response, redirect, render_template_string, request, send_file
from flask_sock import Sock
from simple_websocket import ConnectionClosed
from werkzeug.exceptions import InternalServerError

from .config import NotesContext
from .reload import Subscription
from .render import escape_html, render_markdown
from .sandbox import resolve_note_path
from .search import search_notes
from .tree import find_directory_index, render_directory, render_file_tree
from .watcher import ChangeWatcher

logger = logging.getLogger(__name__)

FRAGMENT_HEADER = "HX-Request"
DIRECTORY_TITLE = "Notes"
EMBEDDED_FONTS = frozenset({
    "UbuntuMono-Regular.ttf",
    "UbuntuMono-Italic.ttf",
    "UbuntuMono-Bold.ttf",
    "UbuntuMono-BoldItalic.ttf",
})


def read_note(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise InternalServerError(f"cannot read {path.name}") from exc


def fragment_response(title: str, content: str):
    resp = make_response(f"<title>{escape_html(title)} - para</title>{content}")
    resp.headers["Content-Type"] = "text/html; charset=utf-8"
    return resp


def page_response(title: str, content: str, file_tree: str, search_query: str = ""):
    return render_template_string(
        PAGE_TEMPLATE,
        title=title,
        content=content,
        file_tree=file_tree,
        search_query=search_query,
    )


def stream_reloads(ws, subscription: Subscription) -> None:
    """Forward reload notifications to ``ws`` until either direction stops.

    Incoming messages are read and discarded on a helper thread; when that
    side ends it closes the subscription, which ends the forwarding loop.
    """

    def consume_incoming():
        try:
            while True:
                ws.receive()
        except (ConnectionClosed, OSError):
            logger.debug("live reload client went away")
        finally:
            subscription.close()

    threading.Thread(target=consume_incoming, name="para-ws-recv", daemon=True).start()
    try:
        while True:
            path = subscription.get()
            if path is None:
                break
            ws.send(json.dumps({"type": "reload", "path": path}))
    except (ConnectionClosed, OSError):
        logger.debug("live reload send failed, closing")
    finally:
        subscription.close()


def create_app(context: NotesContext) -> Flask:
    app = Flask(__name__, static_folder=None)
    app.extensions["para"] = context
    sock = Sock(app)
    root = context.notes_root

    def respond(title: str, content: str, search_query: str = ""):
        file_tree = render_file_tree(root)
        if request.headers.get(FRAGMENT_HEADER):
            return fragment_response(title, content)
        return page_response(title, content, file_tree, search_query)

    @app.errorhandler(InternalServerError)
    def internal_error(error):
        logger.error("%s: %s", error.description, error.__cause__ or error.original_exception)
        return error

    @app.route("/", defaults={"path": ""})
    @app.route("/<path:path>")
    def serve_path(path):
        target = resolve_note_path(root, path)

        if target.is_file():
            if target.suffix == ".md":
                return respond(target.stem, render_markdown(read_note(target)))
            mime, _ = mimetypes.guess_type(target.name)
            return send_file(target, mimetype=mime or "application/octet-stream")

        if target.is_dir():
            if path and not path.endswith("/"):
                return redirect(quote(f"/{path}/"), code=308)
            index = find_directory_index(target)
            if index is not None:
                return respond(DIRECTORY_TITLE, render_markdown(read_note(index)))
            title = target.name if target != root else DIRECTORY_TITLE
            return respond(title, render_directory(target, root))

        abort(404)

    @app.route("/search")
    def search():
        query = request.args.get("q", "")
        title, content = search_notes(root, query, context.search_command)
        return respond(title, content, search_query=query)

    @app.route("/fonts/<path:name>")
    def fonts(name):
        if name not in EMBEDDED_FONTS:
            abort(404)
        font = context.fonts_dir / name
        if not font.is_file():
            abort(404)
        return send_file(font, mimetype="font/ttf")

    @sock.route("/ws")
    def live_reload(ws):
        stream_reloads(ws, context.reload.subscribe())

    return app


def run_server(context: NotesContext, host: str = "0.0.0.0", port: int = 8989) -> None:
    watcher = ChangeWatcher(context.notes_root, context.reload)
    watcher.start()
    app = create_app(context)
    print(f"Serving notes at http://localhost:{port}")
    print(f"Notes root: {context.notes_root}")
    print("Live reload enabled - watching for file changes")
    try:
        app.run(host=host, port=port, threaded=True)
    finally:
        watcher.stop()


PAGE_TEMPLATE = r"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{{ title }} - para</title>
<script src="https://unpkg.com/htmx.org@2.0.4/dist/htmx.min.js"></script>
<style>

*, *::before, *::after { box-sizing: border-box; }

:root {
  --bg: #fdfdfc;
  --bg-sidebar: #f4f3ef;
  --text: #24292f;
  --text-muted: #6e7781;
  --accent: #0969da;
  --border: #d8dee4;
  --mark: #fff2a8;
  --sidebar-width: 280px;
  --font-mono: 'Ubuntu Mono', 'Fira Code', 'Consolas', monospace;
}

html, body { height: 100%; margin: 0; background: var(--bg); color: var(--text); font-family: var(--font-mono); font-size: 16px; line-height: 1.55; }
a { color: var(--accent); text-decoration: none; }
a:hover { text-decoration: underline; }
mark { background: var(--mark); }

.navbar { display: flex; align-items: center; gap: 16px; height: 44px; padding: 0 14px; border-bottom: 1px solid var(--border); }
.current-path { flex: 1; color: var(--text-muted); white-space: nowrap; overflow: hidden; text-overflow: ellipsis; }
.breadcrumb-sep { color: var(--text-muted); }
.search-form input { font: inherit; padding: 3px 8px; border: 1px solid var(--border); border-radius: 4px; width: 240px; }
.search-form button { font: inherit; padding: 3px 10px; border: 1px solid var(--border); border-radius: 4px; background: var(--bg-sidebar); cursor: pointer; }

.content-wrapper { display: flex; height: calc(100vh - 44px); }
.sidebar { position: relative; width: var(--sidebar-width); min-width: 150px; overflow-y: auto; padding: 10px 12px; background: var(--bg-sidebar); border-right: 1px solid var(--border); }
.resize-handle { position: absolute; top: 0; right: 0; width: 4px; height: 100%; cursor: col-resize; }
.resize-handle:hover, .resize-handle.dragging { background: var(--accent); }

.file-tree ul { list-style: none; margin: 0; padding-left: 14px; }
.file-tree > ul { padding-left: 0; }
.file-tree li.dir > ul { display: none; }
.file-tree li.dir.expanded > ul { display: block; }
.file-tree .toggle { display: inline-block; width: 1em; cursor: pointer; }
.file-tree .toggle::before { content: '\25B8'; }
.file-tree li.dir.expanded > .toggle::before { content: '\25BE'; }
.file-tree a.active { font-weight: bold; }

main { flex: 1; overflow-y: auto; padding: 20px 40px; max-width: 960px; }
main pre { position: relative; background: var(--bg-sidebar); padding: 10px; overflow-x: auto; border-radius: 4px; }
main table { border-collapse: collapse; }
main th, main td { border: 1px solid var(--border); padding: 4px 8px; }
main img { max-width: 100%; }
.copy-button { position: absolute; top: 6px; right: 6px; font: inherit; font-size: 12px; opacity: .6; cursor: pointer; }
.copy-button:hover { opacity: 1; }
.file-listing { list-style: none; padding-left: 0; }
.search-result { margin-bottom: 18px; }
.search-result pre { margin-top: 4px; white-space: pre-wrap; }
.task-list-item { list-style: none; }

</style>
<script>
(function() {
  var w = localStorage.getItem('para-sidebar-width');
  if (w) document.documentElement.style.setProperty('--sidebar-width', w + 'px');
})();
</script>
</head>
<body>
<nav class="navbar">
  <span class="current-path"></span>
  <form class="search-form" action="/search" method="get" hx-get="/search" hx-target="main" hx-push-url="true">
    <input type="text" name="q" placeholder="Search notes..." value="{{ search_query }}">
    <button type="submit">Search</button>
  </form>
</nav>
<div class="content-wrapper">
  <div class="sidebar" hx-boost="true" hx-target="main" hx-push-url="true">
    {{ file_tree|safe }}
    <script>
    (function() {
      var expanded = JSON.parse(localStorage.getItem('para-expanded-dirs') || '[]');
      document.querySelectorAll('.file-tree li.dir').forEach(function(li) {
        var link = li.querySelector(':scope > a');
        var path = link ? link.getAttribute('href') : null;
        if (path && expanded.indexOf(path) !== -1) li.classList.add('expanded');
      });
    })();
    </script>
    <div class="resize-handle"></div>
  </div>
  <main hx-boost="true" hx-target="main" hx-push-url="true">
    {{ content|safe }}
  </main>
</div>
<script>

const handle = document.querySelector('.resize-handle');
handle.addEventListener('mousedown', () => {
  document.body.style.cursor = 'col-resize';
  document.body.style.userSelect = 'none';
  handle.classList.add('dragging');
  const onMove = (e) => {
    if (e.clientX >= 150 && e.clientX <= 600) {
      document.documentElement.style.setProperty('--sidebar-width', e.clientX + 'px');
      localStorage.setItem('para-sidebar-width', e.clientX);
    }
  };
  const onUp = () => {
    document.body.style.cursor = '';
    document.body.style.userSelect = '';
    handle.classList.remove('dragging');
    document.removeEventListener('mousemove', onMove);
    document.removeEventListener('mouseup', onUp);
  };
  document.addEventListener('mousemove', onMove);
  document.addEventListener('mouseup', onUp);
});

function saveExpanded() {
  const expanded = [];
  document.querySelectorAll('.file-tree li.dir.expanded').forEach(el => {
    const a = el.querySelector(':scope > a');
    if (a) expanded.push(a.getAttribute('href'));
  });
  localStorage.setItem('para-expanded-dirs', JSON.stringify(expanded));
}

document.querySelectorAll('.file-tree li.dir').forEach(li => {
  const toggle = li.querySelector(':scope > .toggle');
  const link = li.querySelector(':scope > a');
  const doToggle = (e) => {
    e.preventDefault();
    e.stopPropagation();
    li.classList.toggle('expanded');
    saveExpanded();
  };
  if (toggle) toggle.addEventListener('click', doToggle);
  if (link) link.addEventListener('click', doToggle);
});

function addCopyButtons(container) {
  container.querySelectorAll('pre:not(.has-copy-btn)').forEach(pre => {
    pre.classList.add('has-copy-btn');
    const button = document.createElement('button');
    button.className = 'copy-button';
    button.textContent = 'Copy';
    button.addEventListener('click', () => {
      const code = pre.querySelector('code');
      navigator.clipboard.writeText(code ? code.textContent : pre.textContent).then(() => {
        button.textContent = 'Copied!';
        setTimeout(() => { button.textContent = 'Copy'; }, 2000);
      });
    });
    pre.appendChild(button);
  });
}

function highlightCurrentFile() {
  const currentPath = decodeURIComponent(location.pathname);
  const crumbs = document.querySelector('.current-path');
  if (crumbs) {
    crumbs.innerHTML = '';
    const root = document.createElement('a');
    root.href = '/';
    root.textContent = 'Notes';
    crumbs.appendChild(root);
    let href = '';
    currentPath.split('/').filter(p => p).forEach(part => {
      const sep = document.createElement('span');
      sep.className = 'breadcrumb-sep';
      sep.textContent = ' / ';
      crumbs.appendChild(sep);
      href += '/' + part;
      const link = document.createElement('a');
      link.href = href;
      link.textContent = part;
      crumbs.appendChild(link);
    });
  }
  document.querySelectorAll('.file-tree a.active').forEach(a => a.classList.remove('active'));
  document.querySelectorAll('.file-tree a').forEach(a => {
    const href = decodeURIComponent(a.getAttribute('href') || '');
    if (href === currentPath || href === currentPath + '/') {
      a.classList.add('active');
      for (let p = a.parentElement; p; p = p.parentElement) {
        if (p.tagName === 'LI' && p.classList.contains('dir')) p.classList.add('expanded');
      }
    }
  });
}

addCopyButtons(document);
highlightCurrentFile();
document.body.addEventListener('htmx:afterSwap', (e) => addCopyButtons(e.detail.target));
document.body.addEventListener('htmx:afterSettle', highlightCurrentFile);

(function() {
  const input = document.querySelector('.search-form input[name="q"]');
  if (!input) return;
  input.addEventListener('input', () => {
    const q = input.value.toLowerCase().trim();
    document.querySelectorAll('.file-tree li').forEach(li => {
      li.style.display = q ? 'none' : '';
    });
    if (!q) return;
    document.querySelectorAll('.file-tree li').forEach(li => {
      const link = li.querySelector(':scope > a');
      if (!link || !link.textContent.toLowerCase().includes(q)) return;
      li.style.display = '';
      for (let p = li.parentElement; p; p = p.parentElement) {
        if (p.tagName === 'LI') { p.style.display = ''; p.classList.add('expanded'); }
      }
    });
  });
})();

(function() {
  let reconnectDelay = 1000;
  function connect() {
    const protocol = location.protocol === 'https:' ? 'wss:' : 'ws:';
    const ws = new WebSocket(protocol + '//' + location.host + '/ws');
    ws.onopen = () => { reconnectDelay = 1000; };
    ws.onmessage = (e) => {
      try {
        const data = JSON.parse(e.data);
        if (data.type === 'reload') location.reload();
      } catch (err) {
        console.error('[para] bad reload message', err);
      }
    };
    ws.onclose = () => {
      setTimeout(connect, reconnectDelay);
      reconnectDelay = Math.min(reconnectDelay * 2, 30000);
    };
    ws.onerror = () => ws.close();
  }
  connect();
})();
</script>
</body>
</html>
"""
