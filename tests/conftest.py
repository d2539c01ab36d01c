from pathlib import Path

import pytest

from para.config import NotesContext
from para.reload import ReloadChannel
from para.server import create_app


def write(path: Path, text: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def notes_root(tmp_path):
    root = tmp_path / "notes"
    write(root / "a.md", "# Hi [[b]]\n")
    write(root / "b.md", "# B\n\nsome text\n")
    write(root / "projects" / "plan.md", "# Plan\n")
    write(root / "projects" / "_draft.md", "draft\n")
    write(root / "projects" / ".secret.md", "secret\n")
    write(root / "with-readme" / "README.md", "# Readme page\n")
    write(root / "with-readme" / "INDEX.md", "# Index page\n")
    write(root / "only-index" / "INDEX.md", "# Index only\n")
    write(root / "_private" / "hidden.md", "hidden\n")
    write(root / ".obsidian" / "workspace.md", "config\n")
    (root / "empty").mkdir()
    (root / "img.png").write_bytes(b"\x89PNG\r\n\x1a\nfake")
    (root / "blob.zzunknown").write_bytes(b"\x00\x01")
    return root.resolve()


@pytest.fixture
def context(notes_root, tmp_path):
    fonts = tmp_path / "fonts"
    fonts.mkdir()
    (fonts / "UbuntuMono-Regular.ttf").write_bytes(b"fake-font")
    return NotesContext(notes_root=notes_root, reload=ReloadChannel(capacity=4), fonts_dir=fonts)


@pytest.fixture
def app(context):
    app = create_app(context)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()
