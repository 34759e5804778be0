"""Dependency tracking for incremental rebuilds.

The tracker is filled during the first full build and then answers, for a
single changed file, which compilation the watch loop has to run. Its
registries are append-only: nothing is removed or rebuilt wholesale during
a run.

Partial relationships are direct only. A partial included by another
partial is not followed, which keeps every lookup O(1) in the number of
tracked files.

Key classes:
- FileKind: Classification of a tracked file.
- DependencyTracker: File registry and include/extends adjacency lists.
- ChangeRoute: The action a change requires, plus the paths it targets.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .documents import ContentItem, DataItem
from .frontmatter import FrontMatterDocument
from .pageviews import DynamicPageView, RepeaterPageView, StaticPageView
from .utils import is_template


class FileKind(str, Enum):
    """Classification of a file known to the tracker."""

    CONTENT_ITEM = "content_item"
    DATA_ITEM = "data_item"
    STATIC_PAGEVIEW = "static_pageview"
    DYNAMIC_PAGEVIEW = "dynamic_pageview"
    REPEATER_PAGEVIEW = "repeater_pageview"
    TEMPLATE_PARTIAL = "template_partial"
    UNKNOWN = "unknown"


PAGEVIEW_KINDS = frozenset(
    {FileKind.STATIC_PAGEVIEW, FileKind.DYNAMIC_PAGEVIEW, FileKind.REPEATER_PAGEVIEW}
)
COLLECTABLE_KINDS = frozenset({FileKind.CONTENT_ITEM, FileKind.DATA_ITEM})

# Subclasses come before their bases.
_DOCUMENT_KINDS = (
    (ContentItem, FileKind.CONTENT_ITEM),
    (DataItem, FileKind.DATA_ITEM),
    (DynamicPageView, FileKind.DYNAMIC_PAGEVIEW),
    (RepeaterPageView, FileKind.REPEATER_PAGEVIEW),
    (StaticPageView, FileKind.STATIC_PAGEVIEW),
)


class RouteAction(str, Enum):
    """What the caller must do in response to a change."""

    RECOMPILE_PAGE_VIEW = "recompile_page_view"
    RECOMPILE_COLLECTABLE_ITEM = "recompile_collectable_item"
    RECOMPILE_DEPENDENTS = "recompile_dependents"
    NONE = "none"


@dataclass(frozen=True)
class ChangeRoute:
    """Result of routing one changed path.

    Attributes:
        path: The changed path, relative to the project root.
        kind: The classification of the changed path.
        action: What the caller must recompile.
        paths: Page view paths to recompile; for a collectable item this is
            the item path itself.
    """

    path: str
    kind: FileKind
    action: RouteAction
    paths: list[str] = field(default_factory=list)


class DependencyTracker:
    """Maps changed files to the page views that must be recompiled."""

    def __init__(self):
        self._file_kinds: dict[str, FileKind] = {}
        self._template_includes: dict[str, list[str]] = {}
        self._template_extends: dict[str, list[str]] = {}

    def classify(self, path: str) -> FileKind:
        """Return the kind of ``path``, or ``FileKind.UNKNOWN``."""
        kind = self._file_kinds.get(path)
        if kind is not None:
            return kind
        if path in self._template_includes or path in self._template_extends:
            return FileKind.TEMPLATE_PARTIAL
        return FileKind.UNKNOWN

    def register_file(self, document: FrontMatterDocument) -> FileKind:
        """Record the kind of ``document`` under its relative path.

        Returns:
            The kind that was recorded.
        """
        kind = FileKind.UNKNOWN
        for document_type, document_kind in _DOCUMENT_KINDS:
            if isinstance(document, document_type):
                kind = document_kind
                break
        else:
            if is_template(document.relative_path):
                kind = FileKind.TEMPLATE_PARTIAL

        self._file_kinds[document.relative_path] = kind
        return kind

    def register_template_include(self, partial_path: str, includer_path: str) -> None:
        """Record that ``includer_path`` directly includes ``partial_path``."""
        _append_unique(self._template_includes, partial_path, includer_path)

    def register_template_extend(self, parent_path: str, child_path: str) -> None:
        """Record that ``child_path`` directly extends ``parent_path``."""
        _append_unique(self._template_extends, parent_path, child_path)

    def get_template_dependents(self, path: str) -> list[str]:
        """Return the direct includers and extenders of ``path``."""
        dependents = list(self._template_includes.get(path, []))
        for child in self._template_extends.get(path, []):
            if child not in dependents:
                dependents.append(child)
        return dependents

    def route_change(self, path: str) -> ChangeRoute:
        """Decide what a change to ``path`` requires.

        Args:
            path: Changed file, relative to the project root.

        Returns:
            A ChangeRoute naming the action and the paths to recompile.
        """
        kind = self.classify(path)
        if kind in PAGEVIEW_KINDS:
            return ChangeRoute(path, kind, RouteAction.RECOMPILE_PAGE_VIEW, [path])
        if kind in COLLECTABLE_KINDS:
            return ChangeRoute(path, kind, RouteAction.RECOMPILE_COLLECTABLE_ITEM, [path])
        if kind is FileKind.TEMPLATE_PARTIAL:
            return ChangeRoute(
                path, kind, RouteAction.RECOMPILE_DEPENDENTS, self.get_template_dependents(path)
            )
        return ChangeRoute(path, kind, RouteAction.NONE)


def _append_unique(registry: dict[str, list[str]], key: str, value: str) -> None:
    values = registry.setdefault(key, [])
    if value not in values:
        values.append(value)
