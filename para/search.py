import logging
import re
import subprocess
from pathlib import Path
from urllib.parse import quote

from werkzeug.exceptions import InternalServerError

from .render import escape_html

logger = logging.getLogger(__name__)

SEARCH_FLAGS = [
    "--color", "never",
    "--line-number",
    "--max-count", "3",
    "-C", "1",
    "-i",
    "--type", "md",
]

_MD_SUFFIX = r"\.(?:md|markdown|mdown|mdwn|mkd|mkdn|mdx)"
MATCH_LINE_RE = re.compile(rf"^(?P<path>.+?{_MD_SUFFIX}):(?P<line>\d+):(?P<text>.*)$")
CONTEXT_LINE_RE = re.compile(rf"^(?P<path>.+?{_MD_SUFFIX})-(?P<line>\d+)-(?P<text>.*)$")

SEARCH_PROMPT = "<p>Enter a search term above.</p>"


def build_search_command(command: str, query: str) -> list:
    # "--" keeps a query such as "-v" from being read as a flag.
    return [command, *SEARCH_FLAGS, "--", query]


def run_search(notes_root: Path, query: str, command: str = "rg") -> str:

    try:
        proc = subprocess.run(
            build_search_command(command, query),
            cwd=notes_root,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except OSError as exc:
        raise InternalServerError(f"failed to run {command}") from exc
    if proc.returncode not in (0, 1):
        logger.warning("%s exited with %d: %s", command, proc.returncode, proc.stderr.strip())
    return proc.stdout


def no_results(query: str) -> str:
    return f'<h1>No results for "{escape_html(query)}"</h1>'


def _highlight(text: str, query: str) -> str:
    if not query:
        return escape_html(text)
    # Match on the raw line so entities produced by escaping are never split.
    pattern = re.compile(f"({re.escape(query)})", re.IGNORECASE)
    parts = pattern.split(text)
    return "".join(
        f"<mark>{escape_html(part)}</mark>" if i % 2 else escape_html(part)
        for i, part in enumerate(parts)
    )


def render_search_results(output: str, query: str) -> str:
    """Group the tool's ``path:line:text`` output into one block per file."""
    blocks = []
    current_file = None
    lines = []

    def flush():
        if current_file is not None and lines:
            href = quote("/" + current_file)
            blocks.append(
                f'<div class="search-result"><a href="{href}">{escape_html(current_file)}</a>'
                f"<pre>{chr(10).join(lines)}</pre></div>\n"
            )
            lines.clear()

    for line in output.splitlines():
        m = MATCH_LINE_RE.match(line) or CONTEXT_LINE_RE.match(line)
        if m:
            if m.group("path") != current_file:
                flush()
                current_file = m.group("path")
            lines.append(_highlight(m.group("text"), query))
        elif line.startswith("--"):
            if lines:
                lines.append("...")

    flush()

    if not blocks:
        return no_results(query)
    return f'<h1>Search results for "{escape_html(query)}"</h1>\n' + "".join(blocks)


def search_notes(notes_root: Path, query: str, command: str = "rg") -> tuple[str, str]:
    """Return the ``(title, body)`` of the search page for ``query``."""
    if not query:
        return "Search", SEARCH_PROMPT
    output = run_search(notes_root, query, command)
    if not output:
        return "Search", no_results(query)
    body = render_search_results(output, query)
    if 'class="search-result"' not in body:
        return "Search", body
    return f"Search: {query}", body
