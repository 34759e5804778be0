"""Collectable documents for Quire.

Collectable items are the records a dynamic page view renders once each:
content items (front matter plus a Markdown or HTML body) and data items
(YAML or JSON files whose whole content is the record).

Key classes:
- CollectableItem: Shared behavior of items owned by a dynamic page view.
- ContentItem: Front matter document whose body is rendered as markup.
- DataItem: Data file exposed as a front-matter-like mapping.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from .frontmatter import DocumentFormatError, FrontMatterDocument
from .renderers import RendererRegistry, default_renderer_registry

TRUTHY_STRINGS = ("true", "yes", "on")


class CollectableItem(FrontMatterDocument):
    """A document belonging to a named collection or dataset.

    Attributes:
        namespace: Name of the collection or dataset the item belongs to.
    """

    def __init__(self, path: Path, root: Path, namespace: str = ""):
        self.namespace = namespace
        super().__init__(path, root)

    @property
    def is_draft(self) -> bool:
        """Whether the item is flagged ``draft: true``.

        Quoted values count when they spell a YAML true (``"true"``,
        ``"yes"``, ``"on"``), so ``draft: "false"`` is not a draft.
        """
        value = self.get("draft", False)
        if isinstance(value, str):
            return value.strip().lower() in TRUTHY_STRINGS
        return value is True

    def evaluate_with_pattern(self, pattern: Any) -> dict[str, Any]:
        """Evaluate the item against its page view's permalink pattern.

        An item that declares its own permalink keeps it.

        Args:
            pattern: The page view's raw ``permalink`` entry, or None.

        Returns:
            The evaluated front matter.
        """
        variables: dict[str, Any] = {}
        if pattern is not None and not self.declares_permalink:
            variables["permalink"] = pattern
        return self.evaluate_front_matter(variables)


class ContentItem(CollectableItem):
    """A content file rendered through a markup renderer."""

    def __init__(
        self,
        path: Path,
        root: Path,
        namespace: str = "",
        renderer_registry: RendererRegistry | None = None,
    ):
        self.renderer_registry = renderer_registry or default_renderer_registry
        super().__init__(path, root, namespace)

    def get_content(self) -> str:
        """Return the rendered body, rendering it on first use."""
        if not self.body_evaluated:
            renderer = self.renderer_registry.get_renderer(self.path)
            self._content = renderer.render(self.body) if renderer else self.body
            self.body_evaluated = True
        return self._content or ""


class DataItem(CollectableItem):
    """A YAML or JSON record.

    The whole file is the mapping; data items have no body.
    """

    def parse_source(self, text: str) -> None:
        try:
            if self.extension == "json":
                payload = json.loads(text)
            else:
                payload = yaml.safe_load(text)
        except (ValueError, yaml.YAMLError) as exc:
            raise DocumentFormatError(
                f"Invalid data file: {exc}", self.relative_path
            ) from exc
        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise DocumentFormatError(
                f"Data file must contain a mapping, got {type(payload).__name__}",
                self.relative_path,
            )
        self.front_matter = dict(payload)
        self.body = ""
        self.line_offset = 0
