import argparse
import logging
import sys

from . import __version__
from .config import CONFIG_PATH, ConfigError, NotesContext, load_config, resolve_notes_dir
from .server import run_server


def build_parser(cfg: dict) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="para", description="PARA notes web server")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="serve the notes directory as a web interface")
    serve.add_argument("--port", type=int, default=cfg["port"], help="port to listen on")
    serve.add_argument("--host", default=cfg["host"], help="address to bind")
    serve.add_argument("--notes-dir", help="override the notes root directory")
    serve.add_argument("--log-level", default="INFO",
                       choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return parser


def main(argv=None) -> int:
    cfg = load_config(CONFIG_PATH)
    parser = build_parser(cfg)
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logging.getLogger("werkzeug").setLevel(logging.WARNING)

    try:
        notes_root = resolve_notes_dir(args.notes_dir, cfg)
    except ConfigError as e:
        parser.error(str(e))

    context = NotesContext.from_config(notes_root, cfg)
    try:
        run_server(context, host=args.host, port=args.port)
    except OSError as e:
        print(f"para: cannot serve {notes_root}: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
