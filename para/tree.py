import os
from pathlib import Path
from urllib.parse import quote

from werkzeug.exceptions import InternalServerError

from .render import escape_html

MAX_TREE_DEPTH = 3
README_NAMES = ("README.md", "INDEX.md")


def is_hidden(name: str) -> bool:
    return name.startswith(".") or name.startswith("_")


def _href(path: str) -> str:
    return quote(path, errors="surrogateescape")


def _display(name: str) -> str:
    # Names that are not valid UTF-8 arrive with surrogates from os.scandir.
    return escape_html(name.encode("utf-8", "surrogateescape").decode("utf-8", "replace"))


def _list_dir(directory: Path) -> list:
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as exc:
        raise InternalServerError(f"cannot read directory {directory}") from exc
    return [e for e in entries if not is_hidden(e.name)]


def _is_dir(entry) -> bool:
    try:
        return entry.is_dir(follow_symlinks=False)
    except OSError as exc:
        raise InternalServerError(f"cannot stat {entry.path}") from exc


def build_tree(root: Path, rel: Path = None, depth: int = 0) -> list:
    """Walk ``root`` into the nested sidebar structure.

    Directories below the cap are not read. A directory is kept when it has a
    visible entry or sits directly under the root; markdown files are kept
    everywhere except the root level.
    """
    if rel is None:
        rel = Path(".")
    if depth > MAX_TREE_DEPTH:
        return []
    items = []
    for entry in _list_dir(root / rel):
        relative = rel / entry.name
        if _is_dir(entry):
            children = build_tree(root, relative, depth + 1)
            if children or depth < 1:
                items.append({"name": entry.name, "path": relative.as_posix(),
                              "type": "folder", "children": children})
        elif entry.name.endswith(".md") and depth > 0:
            items.append({"name": entry.name, "path": relative.as_posix(), "type": "file"})
    return items


def _render_items(items: list) -> str:
    parts = ["<ul>\n"]
    for item in items:
        href = _href("/" + item["path"])
        name = _display(item["name"])
        if item["type"] == "folder":
            parts.append(
                f'<li class="dir"><span class="toggle"></span>'
                f'<a href="{href}/">{name}</a>{_render_items(item["children"])}</li>\n'
            )
        else:
            parts.append(f'<li><a href="{href}">{name}</a></li>\n')
    parts.append("</ul>")
    return "".join(parts)


def render_file_tree(notes_root: Path) -> str:
    items = build_tree(notes_root)
    return f'<nav class="file-tree"><a href="/">Notes</a>{_render_items(items)}</nav>'


def render_directory(directory: Path, notes_root: Path) -> str:

    parts = ['<ul class="file-listing">\n']
    if directory != notes_root:
        parts.append('  <li><a href="..">..</a></li>\n')
    for entry in _list_dir(directory):
        name = _display(entry.name)
        href = _href(entry.name)
        if _is_dir(entry):
            parts.append(f'  <li><a href="{href}/">{name}/</a></li>\n')
        elif entry.name.endswith(".md"):
            parts.append(f'  <li><a href="{href}">{name}</a></li>\n')
    parts.append("</ul>")
    return "".join(parts)


def find_directory_index(directory: Path) -> Path | None:
    for name in README_NAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None
