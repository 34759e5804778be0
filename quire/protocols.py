"""Protocol definitions for Quire.

The compiler talks to the template engine and to render collaborators only
through the interfaces below, so any engine or hook that satisfies them can
be substituted, including test doubles.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .pageviews import PageViewType


@runtime_checkable
class TemplateHandle(Protocol):
    """A compiled template that only needs a context to render."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the engine's internal identifier for this template."""
        ...

    @abstractmethod
    def render(self, context: Mapping[str, Any]) -> str:
        """Render the template.

        Args:
            context: Variables to make available in the template.

        Returns:
            Rendered output.

        Raises:
            TemplateRenderError: If the engine fails while rendering.
        """
        ...


@runtime_checkable
class TemplateBridge(Protocol):
    """Factory turning page bodies into template handles."""

    @abstractmethod
    def create_template(self, body: str, source_path: str | None = None) -> TemplateHandle:
        """Compile ``body`` into a template.

        Args:
            body: Template source, without front matter.
            source_path: Relative path of the page the body comes from.

        Returns:
            A template handle.

        Raises:
            TemplateRenderError: If the body cannot be compiled.
        """
        ...


@runtime_checkable
class ContentRenderer(Protocol):
    """Renders a content item body of one markup type to HTML."""

    @abstractmethod
    def can_render(self, path: Path) -> bool:
        """Check if this renderer can handle the given file."""
        ...

    @abstractmethod
    def render(self, content: str) -> str:
        """Render content to HTML."""
        ...

    @property
    @abstractmethod
    def source_type(self) -> str:
        """Return the source type identifier (e.g., 'markdown', 'html')."""
        ...


class PreRenderHook(Protocol):
    """Contributes extra template variables before a page view renders."""

    def __call__(self, page_type: PageViewType) -> Mapping[str, Any]: ...


class PostRenderHook(Protocol):
    """Transforms rendered output before it is written."""

    def __call__(self, page_type: PageViewType, output: str) -> str: ...
