import re

import markdown
from markupsafe import escape

WIKILINK_RE = re.compile(r"\[\[([^\]|]+)(?:\|([^\]]+))?\]\]")

MARKDOWN_EXTENSIONS = [
    "fenced_code",
    "tables",
    "footnotes",
    "sane_lists",
    "pymdownx.tilde",
    "pymdownx.magiclink",
    "pymdownx.tasklist",
]
MARKDOWN_EXTENSION_CONFIGS = {
    "pymdownx.tilde": {"subscript": False},
}


def escape_html(text: str) -> str:
    return str(escape(text))


def process_wikilinks(text: str) -> str:
    """Rewrite ``[[target]]`` and ``[[target|label]]`` into markdown links.

    The target becomes a root-relative ``.md`` href; label and target are
    copied verbatim so the markdown pass escapes them exactly once.
    """

    def replace_link(m):
        target = m.group(1).strip()
        display = m.group(2) if m.group(2) else target
        href = "/" + target.lstrip("/")
        if not href.endswith(".md"):
            href += ".md"
        if re.search(r"[\s()]", href):
            href = f"<{href}>"
        return f"[{display}]({href})"

    return WIKILINK_RE.sub(replace_link, text)


def render_markdown(text: str) -> str:
    # Raw HTML in notes is trusted and passed through.
    text = process_wikilinks(text)
    return markdown.markdown(
        text,
        extensions=MARKDOWN_EXTENSIONS,
        extension_configs=MARKDOWN_EXTENSION_CONFIGS,
    )
