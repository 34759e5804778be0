"""Front matter parsing and evaluation for Quire.

Every source document starts with a YAML front matter block delimited by
``---`` lines, followed by a non-empty body. This module splits documents,
evaluates ``%variable`` tokens inside the front matter, derives permalinks
and exposes documents to templates through a read-only jail.

Key classes:
- FrontMatterDocument: Base class for every file-backed document.
- JailedDocument: Read-only projection of a document handed to templates.
- ExpandedValue: One concrete expansion of a pattern plus its iterators.

Key functions:
- split_front_matter: Split raw text into front matter, body and line offset.
- evaluate_string: Replace ``%variable`` tokens in a string.
- expand_value: Expand a pattern over list-valued variables.
"""

from __future__ import annotations

import itertools
import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from .utils import get_extension, relative_posix, sanitize_permalink

FRONTMATTER_RE = re.compile(
    r"\A\s*---[ \t]*\r?\n(.*?)^---[ \t]*\r?$\n?(.*)\Z", re.DOTALL | re.MULTILINE
)
VARIABLE_RE = re.compile(r"%([a-zA-Z_][a-zA-Z0-9_]*)")


class FrontMatterError(Exception):
    """Base class for errors raised while reading or evaluating front matter.

    Attributes:
        source_path: Relative path of the offending document, when known.
    """

    def __init__(self, message: str, source_path: str | None = None):
        self.message = message
        self.source_path = source_path
        super().__init__(message)

    def __str__(self) -> str:
        if self.source_path:
            return f"{self.source_path}: {self.message}"
        return self.message


class DocumentFormatError(FrontMatterError):
    """Raised when a document has no front matter block or an empty body."""


class UndefinedVariableError(FrontMatterError):
    """Raised when a ``%variable`` token references an undefined key.

    Attributes:
        token: The offending token, including the leading ``%``.
    """

    def __init__(self, token: str, source_path: str | None = None):
        self.token = token
        super().__init__(f"Front matter variable `{token}` is not defined", source_path)


@dataclass(frozen=True)
class ExpandedValue:
    """A single evaluated permalink plus the iterator values that produced it."""

    evaluated: str
    iterators: dict[str, Any] = field(default_factory=dict)


def split_front_matter(
    text: str, source: str | None = None
) -> tuple[dict[str, Any], str, int]:
    """Split raw document text into its front matter and body.

    Args:
        text: Raw file content.
        source: Name of the document, used in error messages.

    Returns:
        Tuple of (front matter mapping, trimmed body, line offset). The line
        offset is the number of source lines that precede the body.

    Raises:
        DocumentFormatError: If the delimiters are missing, the block is not
            a YAML mapping, or the body is empty.
    """
    name = source or "<string>"
    match = FRONTMATTER_RE.match(text)
    if not match:
        raise DocumentFormatError(f"'{name}' is not a valid document", source)

    raw_body = match.group(2)
    if not raw_body.strip():
        raise DocumentFormatError(f"A document ({name}) must have a body to render", source)

    try:
        front_matter = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as exc:
        raise DocumentFormatError(f"Invalid YAML front matter: {exc}", source) from exc
    if not isinstance(front_matter, dict):
        raise DocumentFormatError(
            f"Front matter must be a mapping, got {type(front_matter).__name__}",
            source,
        )

    leading = len(raw_body) - len(raw_body.lstrip())
    line_offset = text[: match.start(2) + leading].count("\n")
    return front_matter, raw_body.strip(), line_offset


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def evaluate_string(value: str, variables: Mapping[str, Any]) -> str:
    """Replace every ``%variable`` token in ``value``.

    Args:
        value: String possibly containing tokens.
        variables: Mapping the tokens are resolved against.

    Returns:
        The string with all tokens replaced by their stringified values.

    Raises:
        UndefinedVariableError: If a token names a missing key.
    """

    def repl(match: re.Match) -> str:
        name = match.group(1)
        if name not in variables:
            raise UndefinedVariableError(match.group(0))
        return _stringify(variables[name])

    return VARIABLE_RE.sub(repl, value)


def referenced_variables(value: str) -> list[str]:
    """Return the variable names referenced by ``value`` in order of first use."""
    names: list[str] = []
    for match in VARIABLE_RE.finditer(value):
        if match.group(1) not in names:
            names.append(match.group(1))
    return names


def expand_value(pattern: str, variables: Mapping[str, Any]) -> list[ExpandedValue]:
    """Expand ``pattern`` over every list-valued variable it references.

    The expansion is the cartesian product of the referenced lists, ordered
    by the first appearance of each variable in the pattern. A pattern that
    references only scalar values yields a single expansion.

    Args:
        pattern: String containing ``%variable`` tokens.
        variables: Mapping the tokens are resolved against.

    Returns:
        List of ExpandedValue objects in render order.

    Examples:
        >>> [v.evaluated for v in expand_value("/tags/%tag/", {"tag": ["a", "b"]})]
        ['/tags/a/', '/tags/b/']
    """
    names = referenced_variables(pattern)
    for name in names:
        if name not in variables:
            raise UndefinedVariableError(f"%{name}")
    iterated = [name for name in names if isinstance(variables[name], (list, tuple))]
    if not iterated:
        return [ExpandedValue(evaluate_string(pattern, variables), {})]

    expanded = []
    for combination in itertools.product(*(variables[name] for name in iterated)):
        iterators = dict(zip(iterated, combination))
        scope = {**variables, **iterators}
        expanded.append(ExpandedValue(evaluate_string(pattern, scope), iterators))
    return expanded


def parse_date(value: Any) -> datetime | None:
    """Parse a front matter ``date`` value.

    Accepts YAML-native dates, ISO formatted strings (a trailing ``Z``
    included) and Unix epoch integers (or numeric strings). Returns None
    when nothing matches.
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip()
        if text[-1:] in ("Z", "z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            pass
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


class FrontMatterDocument:
    """A source document made of a front matter block and a body.

    The document keeps three independent flags, each set at most once per
    content version and reset by ``refresh()``:

    - ``front_matter_evaluated``: ``%variable`` tokens have been replaced.
    - ``body_evaluated``: the body has been rendered by ``get_content()``.
    - ``permalink_evaluated``: the permalink has been resolved and sanitized.

    Attributes:
        path: Path to the source file.
        root: Project root the relative path is computed against.
        relative_path: POSIX path relative to ``root``.
        extension: Lowercase extension of the file.
        front_matter: The (possibly evaluated) front matter mapping.
        body: The trimmed body text.
        line_offset: Number of source lines preceding the body.
    """

    def __init__(self, path: Path, root: Path, *, text: str | None = None):
        """Read and parse a document.

        Args:
            path: Path to the source file.
            root: Project root directory.
            text: Optional in-memory source; when given the file is not read.

        Raises:
            FileNotFoundError: If the file does not exist.
            DocumentFormatError: If the file is not a valid document.
        """
        self.path = Path(path)
        self.root = Path(root)
        self.relative_path = relative_posix(self.path, self.root)
        self.extension = get_extension(self.path.name)
        self._text = text

        if text is None and not self.path.is_file():
            raise FileNotFoundError(f"The following file could not be found: {self.path}")

        self.front_matter: dict[str, Any] = {}
        self.body = ""
        self.line_offset = 0
        self.refresh()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.relative_path!r})"

    def read_source(self) -> str:
        """Return the raw source text of the document."""
        if self._text is not None:
            return self._text
        return self.path.read_text(encoding="utf-8")

    def parse_source(self, text: str) -> None:
        """Populate ``front_matter``, ``body`` and ``line_offset`` from ``text``."""
        self.front_matter, self.body, self.line_offset = split_front_matter(
            text, self.relative_path
        )

    def refresh(self) -> None:
        """Re-read the document from disk and reset every evaluated flag."""
        self.parse_source(self.read_source())
        self.declares_permalink = "permalink" in self.front_matter

        self.front_matter_evaluated = False
        self.body_evaluated = False
        self.permalink_evaluated = False
        self._content: str | None = None
        self._permalink: str | None = None
        self._redirects: list[str] = []

        self._handle_special_front_matter()

    def get(self, key: str, default: Any = None) -> Any:
        """Return a front matter value, or ``default`` when the key is missing."""
        return self.front_matter.get(key, default)

    def evaluate_front_matter(self, variables: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Evaluate ``%variable`` tokens in the front matter.

        Without ``variables`` the evaluation runs once and its result is
        memoized. With ``variables`` they are merged first, overriding any
        existing keys, and the front matter is evaluated again.

        Args:
            variables: Optional values to inject before evaluation.

        Returns:
            The evaluated front matter mapping.

        Raises:
            UndefinedVariableError: If a token references a missing key.
        """
        if variables is None and self.front_matter_evaluated:
            return self.front_matter

        if variables is not None:
            self.front_matter.update(variables)
            self._handle_special_front_matter()

        try:
            self._evaluate_node(self.front_matter)
        except UndefinedVariableError as exc:
            exc.source_path = exc.source_path or self.relative_path
            raise
        self.front_matter_evaluated = True
        return self.front_matter

    def _evaluate_node(self, node: dict | list) -> None:
        keys = node.keys() if isinstance(node, dict) else range(len(node))
        for key in list(keys):
            value = node[key]
            if isinstance(value, (dict, list)):
                self._evaluate_node(value)
            elif isinstance(value, str):
                node[key] = evaluate_string(value, self.front_matter)

    def _handle_special_front_matter(self) -> None:
        name = self.path.name
        self.front_matter.setdefault("filename", name)
        self.front_matter.setdefault("basename", name.split(".", 1)[0] or name)

        if "date" not in self.front_matter:
            return
        parsed = parse_date(self.front_matter["date"])
        if parsed is not None:
            self.front_matter["year"] = f"{parsed.year:04d}"
            self.front_matter["month"] = f"{parsed.month:02d}"
            self.front_matter["day"] = f"{parsed.day:02d}"

    def get_content(self) -> str:
        """Return the body content ready for the template engine."""
        if not self.body_evaluated:
            self._content = self.body
            self.body_evaluated = True
        return self._content or ""

    def get_permalink(self) -> str:
        """Return the sanitized permalink, resolving it on first use.

        An explicit ``permalink`` entry wins; a list uses its first element
        and treats the rest as redirects. Otherwise the permalink is derived
        from the relative path, dropping a leading ``_``-prefixed folder.
        The result is written back under ``permalink``.
        """
        if self.permalink_evaluated:
            return self._permalink or ""

        self.evaluate_front_matter()
        raw = self.front_matter.get("permalink")
        redirects: list[Any] = []
        if isinstance(raw, (list, tuple)):
            redirects = list(raw[1:])
            raw = raw[0] if raw else None
        if raw is None:
            raw = self._path_permalink()

        self._permalink = sanitize_permalink(str(raw))
        self._redirects = [sanitize_permalink(str(r)) for r in redirects if r]
        self.front_matter["permalink"] = self._permalink
        self.permalink_evaluated = True
        return self._permalink

    def get_redirects(self) -> list[str]:
        """Return the sanitized redirect sources declared with the permalink."""
        self.get_permalink()
        return list(self._redirects)

    def get_target_file(self) -> str:
        """Return the output-relative file this document compiles to."""
        permalink = self.get_permalink()
        target = permalink
        if not get_extension(permalink):
            target = permalink.rstrip("/") + "/index.html"
        return target.lstrip("/")

    def _path_permalink(self) -> str:
        folders = self.relative_path.lstrip("/").split("/")
        if len(folders) > 1 and folders[0].startswith("_"):
            folders = folders[1:]
        return "/".join(folders)

    def create_jail(self) -> JailedDocument:
        """Return a read-only view of this document for templates."""
        return JailedDocument(self)


class JailedDocument(Mapping):
    """Read-only projection of a document exposed to templates as ``this``.

    Front matter keys are available through item access (which Jinja uses
    for attribute lookups as well), together with a few computed entries:
    ``content``, ``permalink``, ``target_file`` and ``relative_path``.
    The usual mapping methods (``get``, ``keys``, ``items``, ``values``) are
    available as well; a front matter key shadowed by one of them is still
    reachable with ``this["items"]``. Two jails are equal when they wrap the
    same document.
    """

    __slots__ = ("_document",)

    _computed = ("content", "permalink", "target_file", "relative_path")

    def __init__(self, document: FrontMatterDocument):
        self._document = document

    def _lookup(self, key: str) -> Any:
        document = self._document
        if key == "content":
            return document.get_content()
        if key == "permalink":
            return document.get_permalink()
        if key == "target_file":
            return document.get_target_file()
        if key == "relative_path":
            return document.relative_path
        return document.front_matter[key]

    def __getitem__(self, key: str) -> Any:
        return self._lookup(key)

    def __contains__(self, key: object) -> bool:
        return key in self._computed or key in self._document.front_matter

    def __iter__(self) -> Iterator[str]:
        yield from self._computed
        for key in self._document.front_matter:
            if key not in self._computed:
                yield key

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, JailedDocument):
            return NotImplemented
        return other._document is self._document

    def __hash__(self) -> int:
        return hash(id(self._document))

    def __repr__(self) -> str:
        return f"JailedDocument({self._document.relative_path!r})"
