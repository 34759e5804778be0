"""Incremental rebuilds for ``quire watch``.

After one full build, a watchdog observer reports file changes. The
observer thread only puts project-relative paths on a queue; the main
thread takes them off one at a time, asks the dependency tracker what the
change affects and runs exactly that recompilation.

A failed recompilation is logged and the loop keeps going, so a single bad
edit never ends the session.

Key classes:
- ChangeProcessor: Routes one changed path to a compiler entry point.
- WatchSession: Full build, observer, queue loop and optional serving.
"""

from __future__ import annotations

import logging
import queue
from dataclasses import dataclass, field
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .build import BuildResult, build_site
from .config import load_config
from .server import LiveReloadServer
from .tracker import ChangeRoute, RouteAction

logger = logging.getLogger(__name__)


@dataclass
class ChangeReport:
    """Outcome of handling one changed path.

    Attributes:
        route: What the tracker decided the change requires.
        written: Files written by the recompilation.
        error: The exception that aborted the recompilation, if any.
    """

    route: ChangeRoute
    written: list[Path] = field(default_factory=list)
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ChangeProcessor:
    """Maps a changed path to the single recompilation it requires."""

    def __init__(self, result: BuildResult):
        self.result = result
        self.compiler = result.compiler
        self.tracker = result.tracker

    def handle_change(self, path: str) -> ChangeReport:
        """Recompile what a change to ``path`` affects.

        Args:
            path: Changed file, relative to the project root.

        Returns:
            A ChangeReport. Recompilation errors are logged and stored on
            the report instead of being raised.
        """
        route = self.tracker.route_change(path)
        report = ChangeReport(route)
        if route.action is RouteAction.NONE:
            logger.debug("Ignoring change to untracked file %s", path)
            return report

        logger.info("Change detected in %s (%s)", path, route.kind.value)
        try:
            if route.action is RouteAction.RECOMPILE_PAGE_VIEW:
                report.written = self.compiler.runtime_compile_page_view_from_path(path)
            elif route.action is RouteAction.RECOMPILE_COLLECTABLE_ITEM:
                report.written = self.compiler.runtime_compile_collectable_item_from_path(path)
            elif route.action is RouteAction.RECOMPILE_DEPENDENTS:
                report.written = self.compiler.compile_dependents(route.paths)
        except Exception as exc:
            logger.error("Failed to recompile %s: %s", path, exc)
            report.error = exc
        return report


class _ChangeHandler(FileSystemEventHandler):
    """Puts changed source paths on the session queue."""

    def __init__(self, project_root: Path, ignored: list[Path], events: queue.Queue):
        super().__init__()
        self.project_root = project_root
        self.ignored = ignored
        self.events = events

    def on_any_event(self, event: FileSystemEvent):
        if event.is_directory or event.event_type not in ("created", "modified", "moved"):
            return
        raw_path = event.dest_path if event.event_type == "moved" else event.src_path
        path = Path(str(raw_path))
        for ignored in self.ignored:
            if ignored == path or ignored in path.parents:
                return
        try:
            relative = path.relative_to(self.project_root)
        except ValueError:
            return
        if any(part.startswith(".") for part in relative.parts):
            return
        self.events.put(relative.as_posix())


class WatchSession:
    """Watch a project and recompile changed files.

    Attributes:
        project_root: Root directory of the project.
        serve: Whether to serve the output with live reload.
        http_port: Port for the HTTP server.
        ws_port: Port for the live reload websocket.
        events: Queue of changed project-relative paths.
    """

    def __init__(
        self,
        project_root: Path,
        serve: bool = False,
        http_port: int | None = None,
        ws_port: int | None = None,
    ):
        self.project_root = project_root
        self.serve = serve
        config = load_config(project_root)
        self.http_port = int(http_port or config.port)
        if ws_port is not None:
            self.ws_port = ws_port
        elif http_port is not None or config.ws_port is None:
            self.ws_port = self.http_port + 1
        else:
            self.ws_port = config.ws_port
        self.events: queue.Queue[str | None] = queue.Queue()
        self.processor: ChangeProcessor | None = None
        self.server: LiveReloadServer | None = None
        self._observer: Observer | None = None

    def start(self, include_drafts: bool = False) -> None:  # pragma: no cover - integration path
        result = build_site(self.project_root, include_drafts=include_drafts)
        logger.info("Built %d files into %s", len(result.written), result.output_dir)
        self.processor = ChangeProcessor(result)
        if self.serve:
            self.server = LiveReloadServer(result.output_dir, self.http_port, self.ws_port)
            self.server.start()
        self._start_observer(result)
        try:
            self.run()
        except KeyboardInterrupt:
            logger.info("Stopping watch")
        finally:
            self.stop()

    def stop(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        if self.server:
            self.server.stop()

    def _start_observer(self, result: BuildResult) -> None:  # pragma: no cover - integration path
        handler = _ChangeHandler(self.project_root, [result.output_dir], self.events)
        observer = Observer()
        observer.schedule(handler, str(self.project_root), recursive=True)
        observer.start()
        self._observer = observer
        logger.info("Watching %s for changes", self.project_root)

    def run(self) -> None:
        """Process queued changes until a ``None`` sentinel is received."""
        while True:
            path = self.events.get()
            if path is None:
                return
            pending = [path]
            # Editors emit several events per save.
            while True:
                try:
                    extra = self.events.get_nowait()
                except queue.Empty:
                    break
                if extra is None:
                    self.events.put(None)
                    break
                if extra not in pending:
                    pending.append(extra)
            for changed in pending:
                self.process(changed)

    def process(self, path: str) -> ChangeReport:
        """Handle one change and notify browsers when output was written."""
        if self.processor is None:
            raise RuntimeError("WatchSession.start() must run before processing changes")
        report = self.processor.handle_change(path)
        if report.ok and report.written and self.server is not None:
            self.server.broadcast_reload()
        return report
