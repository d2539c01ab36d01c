from pathlib import Path

from werkzeug.exceptions import Forbidden, NotFound


def resolve_note_path(notes_root: Path, raw_path: str) -> Path:
    """Map a browser-supplied path onto a canonical path inside ``notes_root``.

    Symlinks and ``.``/``..`` segments are resolved before the containment
    check. Paths that do not resolve raise ``NotFound``; resolved paths outside
    the root raise ``Forbidden``. ``notes_root`` must already be canonical.
    """
    relative = raw_path.lstrip("/")
    try:
        candidate = (notes_root / relative).resolve(strict=True)
    except (OSError, RuntimeError, ValueError):
        raise NotFound()
    if candidate != notes_root and notes_root not in candidate.parents:
        raise Forbidden()
    return candidate
