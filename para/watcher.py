import logging
import os
from pathlib import Path

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .reload import ReloadChannel

logger = logging.getLogger(__name__)

WATCHED_EVENT_TYPES = {EVENT_TYPE_CREATED, EVENT_TYPE_MODIFIED, EVENT_TYPE_DELETED, EVENT_TYPE_MOVED}


def changed_markdown_path(event: FileSystemEvent) -> str | None:
    """Return the path to announce for ``event``, or ``None`` to drop it.

    Only create/modify/delete/move events touching a ``.md`` path count; the
    announced path is always the first one the event carries.
    """
    if event.event_type not in WATCHED_EVENT_TYPES:
        return None
    paths = [os.fsdecode(event.src_path)]
    dest = getattr(event, "dest_path", "")
    if dest:
        paths.append(os.fsdecode(dest))
    if not any(Path(p).suffix == ".md" for p in paths):
        return None
    return paths[0]


class MarkdownChangeHandler(FileSystemEventHandler):

    def __init__(self, channel: ReloadChannel):
        super().__init__()
        self.channel = channel

    def on_any_event(self, event):
        try:
            path = changed_markdown_path(event)
        except Exception:
            logger.warning("skipping unreadable file system event %r", event, exc_info=True)
            return
        if path is None:
            return
        receivers = self.channel.publish(path)
        logger.info("changed: %s (%d client(s) notified)", path, receivers)


class ChangeWatcher:
    """Watch the notes root on watchdog's own observer thread.

    Started once at server startup. Failing to start is fatal and propagates;
    individual events that cannot be processed are skipped.
    """

    def __init__(self, notes_root: Path, channel: ReloadChannel, observer_factory=Observer):
        self.notes_root = notes_root
        self.handler = MarkdownChangeHandler(channel)
        self._observer_factory = observer_factory
        self._observer = None

    def start(self) -> None:
        if self._observer is not None:
            raise RuntimeError("watcher already started")
        if not Path(self.notes_root).is_dir():
            raise FileNotFoundError(f"cannot watch {self.notes_root}: not a directory")
        observer = self._observer_factory()
        observer.schedule(self.handler, str(self.notes_root), recursive=True)
        observer.start()
        self._observer = observer
        logger.info("watching %s for markdown changes", self.notes_root)

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join()
        self._observer = None
