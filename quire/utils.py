"""Utility functions for Quire.

This module contains small path and string helpers shared by the document
model, the compiler and the site builder.

Key functions:
    sanitize_permalink: Clean a permalink into a safe output-relative path.
    get_extension: Return the lowercase extension of a path-like string.
    remove_extension: Drop the last extension of a path-like string.
    is_template: Check if a path is a Jinja/Twig template file.
    is_markdown: Check if a path is a Markdown file.
    is_data_file: Check if a path is a YAML/JSON data file.
    ensure_clean_dir: Ensure a directory exists and is empty.
    write_output_file: Write a compiled artifact below an output directory.
"""

from __future__ import annotations

import re
import shutil
from pathlib import Path

TEMPLATE_EXTENSIONS = ("jinja", "twig")
DATA_EXTENSIONS = ("yaml", "yml", "json")

_REPEATED_SLASH_RE = re.compile(r"/+")
_DISALLOWED_RE = re.compile(r"[^0-9a-zA-Z\-_/.]")


def get_extension(value: str) -> str:
    """Return the lowercase extension of the last segment of ``value``.

    Args:
        value: A path-like string using ``/`` separators.

    Returns:
        The extension without the dot, or an empty string.

    Examples:
        >>> get_extension("blog/post.html.jinja")
        'jinja'

        >>> get_extension("blog/post/")
        ''
    """
    name = value.rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[-1].lower()


def remove_extension(value: str) -> str:
    """Remove the last extension from ``value``.

    Args:
        value: A path-like string using ``/`` separators.

    Returns:
        The string without its final ``.ext`` part.
    """
    head, sep, name = value.rpartition("/")
    if "." not in name:
        return value
    return f"{head}{sep}{name.rsplit('.', 1)[0]}"


def sanitize_permalink(permalink: str) -> str:
    """Sanitize a permalink into a clean output-relative path.

    Spaces become hyphens, characters outside ``[0-9a-zA-Z-_/.]`` are
    dropped, repeated separators are collapsed, and template extensions
    and a leading ``./`` are stripped. The result is stable under repeated
    application; odd input degrades to an empty or minimally cleaned string.

    Args:
        permalink: Raw permalink value.

    Returns:
        The sanitized permalink.

    Examples:
        >>> sanitize_permalink("/blog//my post!.html.twig")
        '/blog/my-post.html'
    """
    cleaned = str(permalink or "").replace(" ", "-")
    cleaned = _DISALLOWED_RE.sub("", cleaned)
    cleaned = _REPEATED_SLASH_RE.sub("/", cleaned)

    previous = None
    while previous != cleaned:
        previous = cleaned
        if get_extension(cleaned) in TEMPLATE_EXTENSIONS:
            cleaned = remove_extension(cleaned)
        if cleaned.startswith("./"):
            cleaned = cleaned[2:]
    return cleaned


def is_template(path: Path | str) -> bool:
    """Check if a path is a template file (``.jinja`` or ``.twig``).

    Args:
        path: Path to check.

    Returns:
        True if the file carries a template extension.
    """
    return get_extension(Path(path).as_posix()) in TEMPLATE_EXTENSIONS


def is_markdown(path: Path | str) -> bool:
    """Check if a path is a Markdown file.

    Template extensions are ignored, so ``post.md.jinja`` counts too.
    """
    stem = Path(path).as_posix()
    while get_extension(stem) in TEMPLATE_EXTENSIONS:
        stem = remove_extension(stem)
    return get_extension(stem) in ("md", "markdown")


def is_data_file(path: Path | str) -> bool:
    """Check if a path is a YAML or JSON data file."""
    return get_extension(Path(path).as_posix()) in DATA_EXTENSIONS


def relative_posix(path: Path, root: Path) -> str:
    """Return ``path`` relative to ``root`` as a POSIX string.

    Paths outside ``root`` are returned as given.
    """
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()


def ensure_clean_dir(path: Path) -> None:
    """Ensure a directory exists and is empty.

    If the directory exists, removes all contents. Creates the
    directory if it doesn't exist.

    Args:
        path: Directory path to clean or create.
    """
    if path.exists():
        shutil.rmtree(str(path), ignore_errors=True)
        if path.exists():
            # Fallback for stubborn directories
            for item in path.rglob("*"):
                if item.is_file():
                    item.unlink()
            for item in sorted(
                [p for p in path.rglob("*") if p.is_dir()], reverse=True
            ):
                item.rmdir()
            path.rmdir()
    path.mkdir(parents=True, exist_ok=True)


def write_output_file(output_dir: Path, target_file: str, content: str) -> Path:
    """Write a compiled artifact, fully overwriting any previous output.

    Args:
        output_dir: Base output directory.
        target_file: Output-relative target path (no leading slash).
        content: Rendered content.

    Returns:
        The path that was written.
    """
    target = output_dir / target_file.lstrip("/")
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w", encoding="utf-8") as f:
        f.write(content)
    return target
