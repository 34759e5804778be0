"""Jinja2 template bridge for Quire.

Page bodies are compiled into Jinja templates through ``JinjaTemplateBridge``.
Each body gets a generated template name so errors raised while rendering
can be traced back to the page that produced them. Partials, layouts and
macros are loaded from the project root, so the names used in
``{% include %}`` and ``{% extends %}`` are project-relative paths; those
names are reported to the dependency tracker when a page body is parsed.

Key classes:
- JinjaTemplateBridge: Creates templates and records partial dependencies.
- JinjaTemplate: Template handle returned by the bridge.
- TemplateRenderError: Engine failure enriched with source path and line.
"""

from __future__ import annotations

import itertools
import re
import traceback
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from jinja2 import (
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    FunctionLoader,
    Template,
    TemplateSyntaxError,
    nodes,
)
from markupsafe import Markup

if TYPE_CHECKING:
    from .tracker import DependencyTracker

__all__ = ["JinjaTemplate", "JinjaTemplateBridge", "TemplateRenderError", "summary"]


class TemplateRenderError(Exception):
    """Error raised when a template cannot be compiled or rendered.

    The compiler fills in ``source_path`` and ``line_offset`` so the
    reported line refers to the original source file, front matter
    included, rather than to the template body.

    Attributes:
        message: Human-readable error message.
        template_line: Line reported by the engine, relative to the body.
        template_name: Engine identifier of the failing template.
        source_path: Relative path of the originating page.
        line_offset: Number of front matter lines preceding the body.
        original_error: The exception raised by the engine.
    """

    def __init__(
        self,
        message: str,
        template_line: int | None = None,
        template_name: str | None = None,
        source_path: str | None = None,
        line_offset: int = 0,
        original_error: Exception | None = None,
    ):
        self.message = message
        self.template_line = template_line
        self.template_name = template_name
        self.source_path = source_path
        self.line_offset = line_offset
        self.original_error = original_error
        super().__init__(message)

    @property
    def line(self) -> int | None:
        """Line of the error in the original source file."""
        if self.template_line is None:
            return None
        return self.template_line + self.line_offset

    def __str__(self) -> str:
        location = self.source_path or self.template_name or "<template>"
        if self.line is not None:
            location = f"{location}:{self.line}"
        return f"{location}: {self.message}"


def _format_error_message(exc: Exception) -> str:
    """Format an engine exception into a user-friendly error message."""
    error_type = type(exc).__name__
    error_msg = str(exc)

    if error_type == "UndefinedError":
        return f"Undefined variable: {error_msg}"
    if error_type == "TemplateNotFound":
        return f"Template not found: {error_msg}"
    return f"{error_type}: {error_msg}"


def _template_line(exc: BaseException, template_name: str) -> int | None:
    """Return the innermost line of ``template_name`` in the traceback.

    Jinja rewrites tracebacks so template frames carry the template's
    filename and source line.
    """
    line = None
    for frame, lineno in traceback.walk_tb(exc.__traceback__):
        if frame.f_code.co_filename == template_name:
            line = lineno
    return line


def _constant_names(expr: nodes.Node) -> list[str]:
    if isinstance(expr, nodes.Const) and isinstance(expr.value, str):
        return [expr.value]
    if isinstance(expr, (nodes.List, nodes.Tuple)):
        return [item.value for item in expr.items if isinstance(item, nodes.Const)]
    return []


_TAG_RE = re.compile(r"<(/?)([a-zA-Z][a-zA-Z0-9-]*)\b[^>]*?(/?)>")
_VOID_TAGS = frozenset(
    {"area", "base", "br", "col", "embed", "hr", "img", "input", "link", "meta",
     "source", "track", "wbr"}
)


def summary(value: Any, paragraph_count: int = 1) -> Markup:
    """Return the first top-level paragraphs of an HTML fragment.

    Paragraphs nested in other elements, such as blockquotes or list
    items, are skipped.

    Args:
        value: Rendered HTML, typically ``this.content``.
        paragraph_count: Number of paragraphs to keep.

    Returns:
        The selected ``<p>`` elements, concatenated.

    Examples:
        >>> summary("<h1>Title</h1><p>One</p><p>Two</p>")
        Markup('<p>One</p>')
    """
    html = str(value or "")
    paragraphs: list[str] = []
    depth = 0
    start = None
    for match in _TAG_RE.finditer(html):
        closing, tag, self_closing = match.group(1), match.group(2).lower(), match.group(3)
        if tag in _VOID_TAGS or self_closing:
            continue
        if not closing:
            if depth == 0 and tag == "p":
                start = match.start()
            depth += 1
            continue
        depth = max(depth - 1, 0)
        if depth == 0 and tag == "p" and start is not None:
            paragraphs.append(html[start : match.end()])
            start = None
            if len(paragraphs) >= paragraph_count:
                break
    return Markup("".join(paragraphs))


class JinjaTemplate:
    """A compiled page template."""

    def __init__(self, template: Template, name: str):
        self._template = template
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    def render(self, context: Mapping[str, Any]) -> str:
        """Render the template.

        Args:
            context: Variables to make available in the template.

        Returns:
            Rendered string.

        Raises:
            TemplateRenderError: If rendering fails for any reason.
        """
        try:
            return self._template.render(dict(context))
        except TemplateSyntaxError as exc:
            raise TemplateRenderError(
                exc.message or str(exc),
                template_line=exc.lineno,
                template_name=exc.name,
                original_error=exc,
            ) from exc
        except Exception as exc:
            raise TemplateRenderError(
                _format_error_message(exc),
                template_line=_template_line(exc, self._name),
                template_name=self._name,
                original_error=exc,
            ) from exc


class JinjaTemplateBridge:
    """Template bridge backed by a Jinja2 environment.

    Attributes:
        root: Project root; partials are looked up relative to it.
        tracker: Optional dependency tracker receiving include/extends edges.
        base_url: Optional absolute base used by ``url_for``.
        env: The Jinja2 environment.
    """

    def __init__(
        self,
        root: Path,
        tracker: DependencyTracker | None = None,
        globals: Mapping[str, Any] | None = None,
        base_url: str = "",
    ):
        self.root = root
        self.tracker = tracker
        self.base_url = base_url
        self._sources: dict[str, str] = {}
        self._names_by_source: dict[str, str] = {}
        self._counter = itertools.count(1)
        self.env = Environment(
            loader=ChoiceLoader(
                [
                    FunctionLoader(self._load_page_source),
                    FileSystemLoader(str(root)),
                ]
            ),
            autoescape=True,
            auto_reload=True,
        )
        self.env.globals["url_for"] = self._url_for
        self.env.filters["summary"] = summary
        if globals:
            self.env.globals.update(globals)

    def set_global(self, name: str, value: Any) -> None:
        """Expose ``value`` to every template as ``name``."""
        self.env.globals[name] = value

    def _load_page_source(self, name: str):
        source = self._sources.get(name)
        if source is None:
            return None
        return source, name, lambda: True

    def _url_for(self, path: str) -> str:
        """Generate a URL for a path, applying base_url if configured."""
        if path.startswith(("http://", "https://", "//")):
            return path
        path = path if path.startswith("/") else f"/{path}"
        if self.base_url:
            return f"{self.base_url.rstrip('/')}{path}"
        return path

    def create_template(self, body: str, source_path: str | None = None) -> JinjaTemplate:
        """Compile a page body into a template.

        Args:
            body: Template source, without front matter.
            source_path: Relative path of the page the body comes from. When
                given, the partials it includes or extends are registered
                with the tracker.

        Returns:
            A JinjaTemplate handle.

        Raises:
            TemplateRenderError: If the body has a syntax error.
        """
        name = f"{source_path or '<string>'}#{next(self._counter)}"
        try:
            tree = self.env.parse(body, name=name)
        except TemplateSyntaxError as exc:
            raise TemplateRenderError(
                exc.message or str(exc),
                template_line=exc.lineno,
                template_name=name,
                original_error=exc,
            ) from exc

        if source_path is not None:
            if self.tracker is not None:
                self._register_dependencies(tree, source_path)
            previous = self._names_by_source.get(source_path)
            if previous is not None:
                self._sources.pop(previous, None)
            self._names_by_source[source_path] = name

        self._sources[name] = body
        template = self.env.get_template(name)
        if source_path is None:
            # Untracked bodies are never looked up again.
            del self._sources[name]
        return JinjaTemplate(template, name)

    def _register_dependencies(self, tree: nodes.Template, source_path: str) -> None:
        for node in tree.find_all(nodes.Extends):
            for parent in _constant_names(node.template):
                self.tracker.register_template_extend(parent, source_path)
        for node in tree.find_all((nodes.Include, nodes.Import, nodes.FromImport)):
            for partial in _constant_names(node.template):
                self.tracker.register_template_include(partial, source_path)
