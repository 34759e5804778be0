"""Page view compilation for Quire.

The compiler turns page views into output files. It dispatches on the page
view's type:

- static: one template, one render, one write, then plain redirects.
- dynamic: one template per page view, one render per non-draft item.
- repeater: one template, one render per permalink expansion, then
  redirects paired with the expansions by index.

Every render goes through the same protocol: pre-render hooks contribute
context variables, ``this`` is bound to the jailed document last so hooks
can never shadow it, and post-render hooks may transform the output that
is finally written.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, cast

from .documents import CollectableItem
from .frontmatter import FrontMatterDocument
from .pageviews import (
    BasePageView,
    DynamicPageView,
    PageViewType,
    RepeaterPageView,
    StaticPageView,
)
from .protocols import PostRenderHook, PreRenderHook, TemplateBridge, TemplateHandle
from .templates import TemplateRenderError
from .utils import write_output_file

logger = logging.getLogger(__name__)

DEFAULT_REDIRECT_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>Redirecting&hellip;</title>
<link rel="canonical" href="{{ this.redirect_to }}">
<meta http-equiv="refresh" content="0; url={{ this.redirect_to }}">
</head>
<body>
<p>Redirecting to <a href="{{ this.redirect_to }}">{{ this.redirect_to }}</a>.</p>
</body>
</html>
"""


class UntrackedPathError(Exception):
    """Raised when a runtime recompilation targets a path the compiler never saw.

    Attributes:
        path: The requested path, relative to the project root.
    """

    def __init__(self, path: str, kind: str = "page view"):
        self.path = path
        super().__init__(f'The "{path}" {kind} is not being tracked by this compiler.')


@dataclass
class RenderHooks:
    """Ordered render callbacks.

    Attributes:
        pre_render: Callables taking the page view type and returning extra
            template variables. Results are merged in order.
        post_render: Callables taking the page view type and the rendered
            output and returning the output to pass on.
    """

    pre_render: list[PreRenderHook] = field(default_factory=list)
    post_render: list[PostRenderHook] = field(default_factory=list)


class Compiler:
    """Compiles page views through a template bridge into an output directory.

    Attributes:
        bridge: Template bridge used to create templates.
        output_dir: Directory compiled files are written to.
        page_views: Tracked page views keyed by relative path, in
            registration order.
        include_drafts: Whether draft collectable items are compiled.
        redirect_template: Template body used for redirect pages.
        hooks: Render callbacks.
        template_mapping: Maps template names to the relative path of the
            page view they were created from. Only the latest template of
            each page view is kept.
    """

    def __init__(
        self,
        bridge: TemplateBridge,
        output_dir: Path,
        page_views: Iterable[BasePageView],
        *,
        include_drafts: bool = False,
        redirect_template: str | None = None,
        hooks: RenderHooks | None = None,
    ):
        self.bridge = bridge
        self.output_dir = Path(output_dir)
        self.page_views: dict[str, BasePageView] = {
            page_view.relative_path: page_view for page_view in page_views
        }
        self.include_drafts = include_drafts
        self.redirect_template = redirect_template or DEFAULT_REDIRECT_TEMPLATE
        self.hooks = hooks or RenderHooks()
        self.template_mapping: dict[str, str] = {}
        self._line_offsets: dict[str, int] = {}
        self._current_templates: dict[str, str] = {}

    def compile_all(self) -> list[Path]:
        """Compile every tracked page view in registration order.

        Returns:
            The files written, in write order.
        """
        written: list[Path] = []
        for page_view in self.page_views.values():
            written.extend(self.compile_page_view(page_view))
        return written

    def compile_page_view(self, page_view: BasePageView) -> list[Path]:
        """Compile a single page view according to its type.

        Returns:
            The files written, redirects included.
        """
        logger.debug(
            "Compiling %s page view %s", page_view.page_type.value, page_view.relative_path
        )
        if page_view.page_type is PageViewType.STATIC:
            return self._compile_static(cast(StaticPageView, page_view))
        elif page_view.page_type is PageViewType.DYNAMIC:
            return self._compile_dynamic(cast(DynamicPageView, page_view))
        elif page_view.page_type is PageViewType.REPEATER:
            return self._compile_repeater(cast(RepeaterPageView, page_view))
        raise ValueError(f"Unknown page view type: {page_view.page_type!r}")

    def runtime_compile_page_view_from_path(self, path: str) -> list[Path]:
        """Re-read and recompile the tracked page view at ``path``.

        Raises:
            UntrackedPathError: If no page view is tracked under ``path``.
        """
        page_view = self._tracked_page_view(path)
        page_view.refresh()
        return self.compile_page_view(page_view)

    def runtime_compile_collectable_item_from_path(self, path: str) -> list[Path]:
        """Re-read and recompile one collectable item.

        Dynamic page views are scanned in registration order; the first one
        owning an item at ``path`` compiles it and the scan stops.

        Raises:
            UntrackedPathError: If no dynamic page view owns ``path``.
        """
        for page_view in self.page_views.values():
            if page_view.page_type is not PageViewType.DYNAMIC:
                continue
            page_view = cast(DynamicPageView, page_view)
            item = page_view.get_collectable_item(path)
            if item is None:
                continue

            item.refresh()
            page_view.evaluate_item(item)
            if self._skip_draft(item):
                return []
            template = self._create_template(page_view)
            return self._compile_collectable_item(template, item)

        raise UntrackedPathError(path, "collectable item")

    def compile_dependents(self, paths: Iterable[str]) -> list[Path]:
        """Recompile the page views depending on a changed partial.

        Raises:
            UntrackedPathError: If one of ``paths`` is not a tracked page view.
        """
        written: list[Path] = []
        for path in paths:
            written.extend(self.compile_page_view(self._tracked_page_view(path)))
        return written

    def _tracked_page_view(self, path: str) -> BasePageView:
        page_view = self.page_views.get(path)
        if page_view is None:
            raise UntrackedPathError(path)
        return page_view

    def _skip_draft(self, item: CollectableItem) -> bool:
        if item.is_draft and not self.include_drafts:
            logger.debug("Skipping draft %s", item.relative_path)
            return True
        return False

    ###
    # Page view types
    ###

    def _compile_static(self, page_view: StaticPageView, track: bool = True) -> list[Path]:
        target_file = page_view.get_target_file()
        template = self._create_template(page_view, track=track)
        output = self._render(PageViewType.STATIC, template, page_view)
        written = [self._write(target_file, output)]
        written.extend(self._compile_standard_redirects(page_view))
        return written

    def _compile_dynamic(self, page_view: DynamicPageView) -> list[Path]:
        template = self._create_template(page_view)
        written: list[Path] = []
        for item in page_view.get_collectable_items():
            if self._skip_draft(item):
                continue
            written.extend(self._compile_collectable_item(template, item))
        return written

    def _compile_collectable_item(
        self, template: TemplateHandle, item: CollectableItem
    ) -> list[Path]:
        target_file = item.get_target_file()
        output = self._render(PageViewType.DYNAMIC, template, item)
        written = [self._write(target_file, output)]
        written.extend(self._compile_standard_redirects(item))
        return written

    def _compile_repeater(self, page_view: RepeaterPageView) -> list[Path]:
        page_view.rewind_permalink()
        template = self._create_template(page_view)
        written: list[Path] = []
        for expanded in page_view.get_repeater_permalinks():
            page_view.bump_permalink()
            page_view.evaluate_front_matter(
                {"permalink": expanded.evaluated, "iterators": dict(expanded.iterators)}
            )
            output = self._render(PageViewType.REPEATER, template, page_view)
            written.append(self._write(page_view.get_target_file(), output))
        written.extend(self._compile_expanded_redirects(page_view))
        return written

    ###
    # Redirects
    ###

    def _compile_standard_redirects(self, document: FrontMatterDocument) -> list[Path]:
        written: list[Path] = []
        for redirect in document.get_redirects():
            written.extend(self._compile_redirect(redirect, document.get_permalink()))
        return written

    def _compile_expanded_redirects(self, page_view: RepeaterPageView) -> list[Path]:
        permalinks = page_view.get_repeater_permalinks()
        written: list[Path] = []
        for group in page_view.get_repeater_redirects():
            for index, redirect in enumerate(group):
                written.extend(
                    self._compile_redirect(redirect.evaluated, permalinks[index].evaluated)
                )
        return written

    def _compile_redirect(self, redirect_from: str, redirect_to: str) -> list[Path]:
        logger.debug("Redirecting %s to %s", redirect_from, redirect_to)
        page_view = StaticPageView.create_redirect(
            redirect_from, redirect_to, self.redirect_template
        )
        return self._compile_static(page_view, track=False)

    ###
    # Rendering
    ###

    def _create_template(self, page_view: BasePageView, track: bool = True) -> TemplateHandle:
        source_path = page_view.relative_path if track else None
        try:
            template = self.bridge.create_template(page_view.get_content(), source_path)
        except TemplateRenderError as exc:
            exc.source_path = page_view.relative_path
            exc.line_offset = page_view.line_offset
            raise

        previous = self._current_templates.get(page_view.relative_path)
        if previous is not None and previous != template.name:
            self.template_mapping.pop(previous, None)
            self._line_offsets.pop(previous, None)
        self._current_templates[page_view.relative_path] = template.name
        self.template_mapping[template.name] = page_view.relative_path
        self._line_offsets[template.name] = page_view.line_offset
        return template

    def _render(
        self,
        page_type: PageViewType,
        template: TemplateHandle,
        document: FrontMatterDocument,
    ) -> str:
        context: dict[str, Any] = {}
        for pre_render in self.hooks.pre_render:
            context.update(pre_render(page_type))
        context["this"] = document.create_jail()

        try:
            output = template.render(context)
        except TemplateRenderError as exc:
            name = exc.template_name or template.name
            if name in self.template_mapping:
                exc.source_path = self.template_mapping[name]
                exc.line_offset = self._line_offsets[name]
            else:
                exc.source_path = exc.source_path or name
            raise

        for post_render in self.hooks.post_render:
            output = post_render(page_type, output)
        return output

    def _write(self, target_file: str, output: str) -> Path:
        path = write_output_file(self.output_dir, target_file, output)
        logger.info("Wrote %s", target_file)
        return path
