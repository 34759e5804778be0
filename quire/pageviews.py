"""Page views for Quire.

A page view is a template-bearing source file that produces one or more
output files. There are three variants:

- StaticPageView: one document, one permalink, rendered once.
- DynamicPageView: one template rendered once per item of a collection
  or dataset.
- RepeaterPageView: one template rendered once per expansion of a
  permalink pattern over list-valued front matter.

``create_page_view`` inspects a file's front matter and returns the
matching variant.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .documents import CollectableItem
from .frontmatter import (
    DocumentFormatError,
    ExpandedValue,
    FrontMatterDocument,
    UndefinedVariableError,
    evaluate_string,
    expand_value,
    referenced_variables,
    split_front_matter,
)
from .utils import relative_posix, sanitize_permalink


class PageViewType(str, Enum):
    """Closed set of page view variants."""

    STATIC = "static"
    DYNAMIC = "dynamic"
    REPEATER = "repeater"


class BasePageView(FrontMatterDocument):
    """Common base for every page view variant."""

    page_type: PageViewType


class StaticPageView(BasePageView):
    """A page view compiled to exactly one output file."""

    page_type = PageViewType.STATIC

    @classmethod
    def create_redirect(
        cls, redirect_from: str, redirect_to: str, template: str
    ) -> StaticPageView:
        """Build an in-memory page view that redirects to another permalink.

        Args:
            redirect_from: Permalink the redirect page is written at.
            redirect_to: Permalink the redirect points to.
            template: Template body of the redirect page.

        Returns:
            A StaticPageView exposing ``this.redirect_to``.
        """
        source = sanitize_permalink(redirect_from)
        target = "/" + sanitize_permalink(redirect_to).lstrip("/")
        header = yaml.safe_dump(
            {"permalink": source, "redirect_to": target}, default_flow_style=False
        )
        text = f"---\n{header}---\n{template}"
        return cls(Path(source.lstrip("/") or "index"), Path("."), text=text)


class DynamicPageView(BasePageView):
    """A page view rendered once per collectable item.

    The page view's own ``permalink`` entry is a pattern evaluated against
    each item, so it is held apart from the page view's front matter.

    Attributes:
        namespace: Name of the collection or dataset this page view renders.
        item_type: ``"collection"`` or ``"dataset"``.
    """

    page_type = PageViewType.DYNAMIC

    def __init__(self, path: Path, root: Path):
        self._items: dict[str, CollectableItem] = {}
        super().__init__(path, root)

    def refresh(self) -> None:
        super().refresh()
        self.permalink_pattern = self.front_matter.pop("permalink", None)
        if "collection" in self.front_matter:
            self.item_type = "collection"
        else:
            self.item_type = "dataset"
        self.namespace = str(self.front_matter.get(self.item_type, ""))
        # A changed pattern invalidates every memoized item permalink.
        for item in self._items.values():
            item.refresh()
            self.evaluate_item(item)

    def evaluate_item(self, item: CollectableItem) -> None:
        """Evaluate ``item`` against this page view's permalink pattern."""
        item.evaluate_with_pattern(self.permalink_pattern)

    def add_collectable_item(self, item: CollectableItem) -> None:
        """Take ownership of ``item`` and evaluate its permalink."""
        self.evaluate_item(item)
        self._items[item.relative_path] = item

    def get_collectable_items(self) -> list[CollectableItem]:
        """Return the owned items in the order they were added."""
        return list(self._items.values())

    def get_collectable_item(self, relative_path: str) -> CollectableItem | None:
        """Return the owned item at ``relative_path``, if any."""
        return self._items.get(relative_path)


class RepeaterPageView(BasePageView):
    """A page view rendered once per expansion of its permalink pattern.

    The page view is stateful: ``bump_permalink()`` moves its current
    permalink forward, so it must be rewound before every full iteration.
    """

    page_type = PageViewType.REPEATER

    def refresh(self) -> None:
        self._expanded = False
        self._permalinks: list[ExpandedValue] = []
        self._redirect_links: list[list[ExpandedValue]] = []
        self._cursor = 0
        self._current: str | None = None
        super().refresh()
        self.evaluate_front_matter()
        self.configure_permalinks()

    def evaluate_front_matter(self, variables: Mapping[str, Any] | None = None) -> dict[str, Any]:
        if not self._expanded:
            self._expand_permalinks()
        return super().evaluate_front_matter(variables)

    def _expand_permalinks(self) -> None:
        raw = self.front_matter.get("permalink")
        patterns = list(raw) if isinstance(raw, (list, tuple)) else [raw]
        if not patterns or not isinstance(patterns[0], str):
            raise DocumentFormatError(
                "A repeater page view needs a permalink pattern", self.relative_path
            )

        try:
            primary = expand_value(patterns[0], self.front_matter)
            groups = [
                [
                    ExpandedValue(
                        evaluate_string(str(pattern), {**self.front_matter, **value.iterators}),
                        value.iterators,
                    )
                    for value in primary
                ]
                for pattern in patterns[1:]
            ]
        except UndefinedVariableError as exc:
            exc.source_path = exc.source_path or self.relative_path
            raise

        self.front_matter["permalink"] = [primary, *groups]
        self._expanded = True

    def configure_permalinks(self) -> None:
        """Store the expanded permalinks and redirects and reset the cursor.

        The evaluated ``permalink`` entry must be a list whose first element
        is the primary expansion and whose remaining elements are redirect
        groups, each index-aligned with the primary list.

        Raises:
            DocumentFormatError: If the entry has the wrong shape or a
                redirect group's length differs from the primary list.
        """
        evaluated = self.front_matter.get("permalink")
        if not isinstance(evaluated, list) or not evaluated or not all(
            isinstance(group, list) for group in evaluated
        ):
            raise DocumentFormatError(
                "Repeater permalinks have not been expanded", self.relative_path
            )

        permalinks, *redirects = evaluated
        for group in redirects:
            if len(group) != len(permalinks):
                raise DocumentFormatError(
                    f"Redirect group has {len(group)} entries but there are "
                    f"{len(permalinks)} permalinks",
                    self.relative_path,
                )

        self._permalinks = list(permalinks)
        self._redirect_links = [list(group) for group in redirects]
        self.rewind_permalink()

    def get_repeater_permalinks(self) -> list[ExpandedValue]:
        """Return the primary expansions in render order."""
        return list(self._permalinks)

    def get_repeater_redirects(self) -> list[list[ExpandedValue]]:
        """Return the redirect groups, each index-aligned with the permalinks."""
        return [list(group) for group in self._redirect_links]

    def rewind_permalink(self) -> None:
        """Move the cursor back to the first expansion."""
        self._cursor = 0

    def bump_permalink(self) -> None:
        """Make the cursor's expansion the current permalink and advance.

        Raises:
            IndexError: If every expansion has already been consumed.
        """
        if self._cursor >= len(self._permalinks):
            raise IndexError(
                f"{self.relative_path}: permalinks exhausted, rewind before iterating"
            )
        self._current = self._permalinks[self._cursor].evaluated
        self._cursor += 1

    def get_permalink(self) -> str:
        """Return the current expansion's permalink."""
        if self._current is not None:
            return sanitize_permalink(self._current)
        if self._permalinks:
            return sanitize_permalink(self._permalinks[0].evaluated)
        return super().get_permalink()

    def get_redirects(self) -> list[str]:
        return []


def is_repeater_front_matter(front_matter: Mapping[str, Any]) -> bool:
    """Check if a permalink pattern references list-valued front matter."""
    raw = front_matter.get("permalink")
    pattern = raw[0] if isinstance(raw, (list, tuple)) and raw else raw
    if not isinstance(pattern, str):
        return False
    return any(
        isinstance(front_matter.get(name), (list, tuple))
        for name in referenced_variables(pattern)
    )


def create_page_view(path: Path, root: Path) -> BasePageView:
    """Read ``path`` and return the page view variant its front matter implies.

    Args:
        path: Path to the page view source file.
        root: Project root directory.

    Returns:
        A DynamicPageView when the front matter names a ``collection`` or
        ``dataset``, a RepeaterPageView when the permalink iterates over
        list values, and a StaticPageView otherwise.

    Raises:
        FileNotFoundError: If the file does not exist.
        DocumentFormatError: If the file is not a valid document.
    """
    if not path.is_file():
        raise FileNotFoundError(f"The following file could not be found: {path}")
    front_matter, _, _ = split_front_matter(
        path.read_text(encoding="utf-8"), relative_posix(path, root)
    )
    if "collection" in front_matter or "dataset" in front_matter:
        return DynamicPageView(path, root)
    if is_repeater_front_matter(front_matter):
        return RepeaterPageView(path, root)
    return StaticPageView(path, root)
