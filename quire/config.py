"""Site configuration for Quire.

Configuration lives in ``quire.yaml`` at the project root. Missing keys
fall back to ``DEFAULT_CONFIG``; the merged mapping is exposed to
templates as ``site``.

Key functions:
- load_config: Read quire.yaml and return a SiteConfig.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

CONFIG_FILE = "quire.yaml"

DEFAULT_CONFIG: dict[str, Any] = {
    "output_dir": "_site",
    "url": "",
    "pageviews": ["_pages"],
    "collections": {},
    "datasets": {},
    "redirect_template": None,
    "port": 4000,
    "ws_port": None,
}


class ConfigError(Exception):
    """Raised when quire.yaml cannot be read or has the wrong shape."""


@dataclass
class SiteConfig:
    """Resolved site configuration.

    Attributes:
        root: Project root directory.
        output_dir: Absolute output directory.
        url: Base URL applied by ``url_for``; empty for root-relative links.
        pageview_folders: Folders scanned for page views, relative to root.
        collections: Collection name to content folder.
        datasets: Dataset name to data folder.
        redirect_template: Optional path of a custom redirect template.
        port: HTTP port used by ``quire watch --serve``.
        ws_port: Live reload websocket port, or None for ``port + 1``.
        raw: The merged configuration mapping.
    """

    root: Path
    output_dir: Path
    url: str = ""
    pageview_folders: list[str] = field(default_factory=list)
    collections: dict[str, str] = field(default_factory=dict)
    datasets: dict[str, str] = field(default_factory=dict)
    redirect_template: str | None = None
    port: int = 4000
    ws_port: int | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    def read_redirect_template(self) -> str | None:
        """Return the custom redirect template source, if one is configured."""
        if not self.redirect_template:
            return None
        path = self.root / self.redirect_template
        if not path.is_file():
            raise FileNotFoundError(f"The following file could not be found: {path}")
        return path.read_text(encoding="utf-8")


def _folder_mapping(value: Any, key: str) -> dict[str, str]:
    """Normalize a collections/datasets entry into ``{name: folder}``.

    Both a mapping and a list of ``{name, folder}`` entries are accepted.
    """
    if not value:
        return {}
    if isinstance(value, Mapping):
        return {str(name): str(folder) for name, folder in value.items()}
    if isinstance(value, list):
        mapping = {}
        for entry in value:
            if not isinstance(entry, Mapping) or "name" not in entry or "folder" not in entry:
                raise ConfigError(f"Each '{key}' entry needs a 'name' and a 'folder'")
            mapping[str(entry["name"])] = str(entry["folder"])
        return mapping
    raise ConfigError(f"'{key}' must be a mapping or a list")


def load_config(
    project_root: Path, overrides: Mapping[str, Any] | None = None
) -> SiteConfig:
    """Load site configuration from quire.yaml.

    Args:
        project_root: Root directory of the project.
        overrides: Values that win over the file, e.g. from CLI options.

    Returns:
        SiteConfig with defaults applied.

    Raises:
        ConfigError: If the file is not valid YAML or not a mapping.
    """
    config_path = project_root / CONFIG_FILE
    config = DEFAULT_CONFIG.copy()
    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            try:
                loaded = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigError(f"Invalid {CONFIG_FILE}: {exc}") from exc
        if not isinstance(loaded, dict):
            raise ConfigError(f"{CONFIG_FILE} must contain a mapping")
        config.update(loaded)
    if overrides:
        config.update({key: value for key, value in overrides.items() if value is not None})

    pageviews = config.get("pageviews") or []
    if isinstance(pageviews, str):
        pageviews = [pageviews]

    return SiteConfig(
        root=project_root,
        output_dir=project_root / str(config.get("output_dir") or "_site"),
        url=str(config.get("url") or ""),
        pageview_folders=[str(folder) for folder in pageviews],
        collections=_folder_mapping(config.get("collections"), "collections"),
        datasets=_folder_mapping(config.get("datasets"), "datasets"),
        redirect_template=config.get("redirect_template"),
        port=int(config.get("port") or 4000),
        ws_port=int(config["ws_port"]) if config.get("ws_port") else None,
        raw=config,
    )
