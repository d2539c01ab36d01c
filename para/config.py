import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from .reload import ReloadChannel

logger = logging.getLogger(__name__)

CONFIG_PATH = Path.home() / ".config" / "para.json"
NOTES_DIR_ENV = "PARA_NOTES_DIR"
FONTS_DIR = Path(__file__).resolve().parent / "fonts"

_DEFAULTS = {
    "host": "0.0.0.0",
    "port": 8989,
    "notes_dir": None,
    "reload_backlog": 16,
    "search_command": "rg",
}


class ConfigError(Exception):
    pass


def load_config(path: Path = CONFIG_PATH) -> dict:
    cfg = dict(_DEFAULTS)
    if path.is_file():
        try:
            with open(path, encoding="utf-8") as f:
                user = json.load(f)
            if not isinstance(user, dict):
                raise ValueError("top level must be an object")
            cfg.update(user)
        except (OSError, ValueError) as e:
            logger.warning("could not load %s: %s", path, e)
    try:
        cfg["reload_backlog"] = int(cfg["reload_backlog"])
        if cfg["reload_backlog"] < 1:
            raise ValueError("must be positive")
    except (TypeError, ValueError) as e:
        logger.warning("invalid reload_backlog %r in %s: %s", cfg["reload_backlog"], path, e)
        cfg["reload_backlog"] = _DEFAULTS["reload_backlog"]
    return cfg


def resolve_notes_dir(flag: str | None, cfg: dict, environ=os.environ) -> Path:

    raw = flag or environ.get(NOTES_DIR_ENV) or cfg.get("notes_dir")
    if raw:
        candidate = Path(os.path.expanduser(str(raw)))
    else:
        home = environ.get("HOME")
        if not home:
            raise ConfigError(
                "no notes directory given: pass --notes-dir or set "
                f"{NOTES_DIR_ENV} (HOME is not set either)"
            )
        candidate = Path(home) / "src" / "Notes"
    if not candidate.is_dir():
        raise ConfigError(f"notes directory does not exist: {candidate}")
    return candidate.resolve()


@dataclass(frozen=True)
class NotesContext:
    """Process-wide, read-only state handed to every component.

    ``notes_root`` is canonicalized on construction, so all containment
    checks compare resolved paths against a resolved root.
    """

    notes_root: Path
    reload: ReloadChannel = field(default_factory=ReloadChannel)
    search_command: str = "rg"
    fonts_dir: Path = FONTS_DIR

    def __post_init__(self):
        object.__setattr__(self, "notes_root", Path(self.notes_root).resolve(strict=True))

    @classmethod
    def from_config(cls, notes_root: Path, cfg: dict) -> "NotesContext":
        return cls(
            notes_root=notes_root,
            reload=ReloadChannel(capacity=int(cfg["reload_backlog"])),
            search_command=cfg["search_command"],
        )
