"""Site building functionality for Quire.

This module assembles a project into a compiler and runs the first full
build. It loads configuration, collections and datasets, discovers page
views, attaches collectable items to the dynamic page views that render
them, registers every file with the dependency tracker and compiles.

Key functions:
- build_site: Main function to build the entire site.
- load_page_views: Discover and classify the page views of a project.
- load_collectable_items: Load the items of one collection or dataset.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from .compiler import Compiler, RenderHooks
from .config import SiteConfig, load_config
from .documents import CollectableItem, ContentItem, DataItem
from .frontmatter import FrontMatterError
from .pageviews import BasePageView, DynamicPageView, create_page_view
from .templates import JinjaTemplateBridge, TemplateRenderError
from .tracker import DependencyTracker
from .utils import ensure_clean_dir, is_data_file


class BuildError(Exception):
    """Error during site build with file context.

    Attributes:
        source_path: Relative path of the file that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    def __init__(
        self,
        source_path: str,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


@dataclass
class BuildResult:
    """Result of a site build operation.

    The compiler, tracker and bridge stay usable after the build so the
    watch loop can recompile single files.

    Attributes:
        page_views: Every page view, in registration order.
        output_dir: Directory where the site was built.
        config: The resolved site configuration.
        compiler: Compiler holding the tracked page views.
        tracker: Dependency tracker filled during the build.
        bridge: Template bridge used by the compiler.
        written: Files written by the build.
    """

    page_views: list[BasePageView]
    output_dir: Path
    config: SiteConfig
    compiler: Compiler
    tracker: DependencyTracker
    bridge: JinjaTemplateBridge
    written: list[Path] = field(default_factory=list)


def _source_files(folder: Path, exclude: Path | None = None) -> list[Path]:
    if not folder.is_dir():
        return []
    files = []
    for path in sorted(folder.rglob("*")):
        relative_parts = path.relative_to(folder).parts
        if not path.is_file() or any(part.startswith(".") for part in relative_parts):
            continue
        if exclude is not None and exclude in path.parents:
            continue
        files.append(path)
    return files


def load_collectable_items(
    project_root: Path,
    folder: str,
    namespace: str,
    factory: Callable[[Path, Path, str], CollectableItem],
) -> list[CollectableItem]:
    """Load every item of one collection or dataset.

    Args:
        project_root: Root directory of the project.
        folder: Folder holding the items, relative to the root.
        namespace: Name of the collection or dataset.
        factory: ContentItem or DataItem.

    Returns:
        The items in sorted path order.
    """
    files = _source_files(project_root / folder)
    if factory is DataItem:
        files = [path for path in files if is_data_file(path)]
    return [factory(path, project_root, namespace) for path in files]


def load_page_views(config: SiteConfig) -> list[BasePageView]:
    """Discover the page views in the configured folders.

    Folders are visited in configuration order and files in sorted order,
    which fixes the order page views are compiled in.
    """
    page_views = []
    for folder in config.pageview_folders:
        for path in _source_files(config.root / folder, exclude=config.output_dir):
            page_views.append(create_page_view(path, config.root))
    return page_views


class _ItemLoader:
    """Loads collectable items, handing out fresh instances per owner.

    The first dynamic page view of a namespace receives the instances that
    are also exposed to templates; each further one gets its own copies,
    since items memoize the permalink of the page view they belong to.
    """

    def __init__(self, config: SiteConfig):
        self.config = config
        self.shared: dict[tuple[str, str], list[CollectableItem]] = {}
        self._claimed: set[tuple[str, str]] = set()

    def _load(self, item_type: str, namespace: str) -> list[CollectableItem]:
        if item_type == "collection":
            folders, factory = self.config.collections, ContentItem
        else:
            folders, factory = self.config.datasets, DataItem
        return load_collectable_items(
            self.config.root, folders[namespace], namespace, factory
        )

    def knows(self, item_type: str, namespace: str) -> bool:
        if item_type == "collection":
            return namespace in self.config.collections
        return namespace in self.config.datasets

    def get_shared(self, item_type: str, namespace: str) -> list[CollectableItem]:
        key = (item_type, namespace)
        if key not in self.shared:
            self.shared[key] = self._load(item_type, namespace)
        return self.shared[key]

    def claim(self, item_type: str, namespace: str) -> list[CollectableItem]:
        key = (item_type, namespace)
        if key in self._claimed:
            return self._load(item_type, namespace)
        self._claimed.add(key)
        return self.get_shared(item_type, namespace)


def _jails(items: list[CollectableItem], include_drafts: bool) -> list:
    return [item.create_jail() for item in items if include_drafts or not item.is_draft]


def build_site(
    project_root: Path,
    include_drafts: bool = False,
    clean_output: bool = True,
    output_dir_override: Path | None = None,
    hooks: RenderHooks | None = None,
) -> BuildResult:
    """Build the entire static site.

    Args:
        project_root: Root directory of the project.
        include_drafts: Whether to compile items flagged ``draft: true``.
        clean_output: Whether to wipe the output directory before building.
        output_dir_override: Optional path to write the build output instead
            of the configured output_dir.
        hooks: Optional render callbacks passed to the compiler.

    Returns:
        BuildResult holding the compiler and tracker for incremental use.

    Raises:
        BuildError: If any document fails to load, evaluate or render.
    """
    config = load_config(project_root)
    if output_dir_override is not None:
        config.output_dir = output_dir_override
    output_dir = config.output_dir
    if clean_output:
        ensure_clean_dir(output_dir)
    else:
        output_dir.mkdir(parents=True, exist_ok=True)

    try:
        return _build(config, include_drafts, hooks)
    except FrontMatterError as exc:
        raise BuildError(exc.source_path or "", exc.message, exc) from exc
    except TemplateRenderError as exc:
        message = exc.message
        if exc.line is not None:
            message = f"Template error on line {exc.line}: {message}"
        raise BuildError(exc.source_path or "", message, exc) from exc
    except FileNotFoundError as exc:
        raise BuildError(str(exc.filename or ""), str(exc), exc) from exc


def _build(
    config: SiteConfig, include_drafts: bool, hooks: RenderHooks | None
) -> BuildResult:
    tracker = DependencyTracker()
    bridge = JinjaTemplateBridge(config.root, tracker=tracker, base_url=config.url)
    loader = _ItemLoader(config)

    page_views = load_page_views(config)
    for page_view in page_views:
        if isinstance(page_view, DynamicPageView):
            if not loader.knows(page_view.item_type, page_view.namespace):
                raise BuildError(
                    page_view.relative_path,
                    f"Unknown {page_view.item_type} '{page_view.namespace}'",
                )
            for item in loader.claim(page_view.item_type, page_view.namespace):
                page_view.add_collectable_item(item)
                tracker.register_file(item)
        tracker.register_file(page_view)

    collections = {
        name: _jails(loader.get_shared("collection", name), include_drafts)
        for name in config.collections
    }
    data = {
        name: _jails(loader.get_shared("dataset", name), include_drafts)
        for name in config.datasets
    }
    bridge.set_global("site", config.raw)
    bridge.set_global("collections", collections)
    bridge.set_global("data", data)

    compiler = Compiler(
        bridge,
        config.output_dir,
        page_views,
        include_drafts=include_drafts,
        redirect_template=config.read_redirect_template(),
        hooks=hooks,
    )
    written = compiler.compile_all()
    return BuildResult(
        page_views=page_views,
        output_dir=config.output_dir,
        config=config,
        compiler=compiler,
        tracker=tracker,
        bridge=bridge,
        written=written,
    )
