"""The node-disk-manager configuration held in a ConfigMap."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

import yaml

CONFIG_MAP_KEY = "node-disk-manager.config"
PATH_FILTER_KEY = "path-filter"


class NDMConfigError(Exception):
    """Raised when the NDM configuration cannot be read or changed."""


class ListType(str, Enum):
    """Which list of a filter to work on."""

    INCLUDE = "include"
    EXCLUDE = "exclude"


@dataclass
class ProbeConfig:
    """Configuration of one probe."""

    key: str = ""
    name: str = ""
    state: str = ""


@dataclass
class FilterConfig:
    """Configuration of one filter; include and exclude are comma-separated."""

    key: str = ""
    name: str = ""
    state: str = ""
    include: str = ""
    exclude: str = ""


@dataclass
class TagConfig:
    """Configuration of one tag."""

    name: str = ""
    type: str = ""
    pattern: str = ""
    tag_name: str = ""


def _text(value: Any, where: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise NDMConfigError(f"failed to unmarshal NDM config: {where} must be a scalar")
    return value


def _entries(doc: Mapping[str, Any], key: str) -> list[Mapping[str, Any]]:
    items = doc.get(key)
    if items is None:
        return []
    if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
        raise NDMConfigError(f"failed to unmarshal NDM config: {key} must be a list of mappings")
    return items


@dataclass
class Config:
    """Probe, filter and tag configuration of node-disk-manager."""

    probe_configs: list[ProbeConfig] = field(default_factory=list)
    filter_configs: list[FilterConfig] = field(default_factory=list)
    tag_configs: list[TagConfig] = field(default_factory=list)

    @classmethod
    def _from_document(cls, doc: Any) -> Config:
        if doc is None:
            return cls()
        if not isinstance(doc, dict):
            raise NDMConfigError("failed to unmarshal NDM config: document must be a mapping")
        return cls(
            probe_configs=[
                ProbeConfig(
                    key=_text(p.get("key"), "key"),
                    name=_text(p.get("name"), "name"),
                    state=_text(p.get("state"), "state"),
                )
                for p in _entries(doc, "probeconfigs")
            ],
            filter_configs=[
                FilterConfig(
                    key=_text(f.get("key"), "key"),
                    name=_text(f.get("name"), "name"),
                    state=_text(f.get("state"), "state"),
                    include=_text(f.get("include"), "include"),
                    exclude=_text(f.get("exclude"), "exclude"),
                )
                for f in _entries(doc, "filterconfigs")
            ],
            tag_configs=[
                TagConfig(
                    name=_text(t.get("name"), "name"),
                    type=_text(t.get("type"), "type"),
                    pattern=_text(t.get("pattern"), "pattern"),
                    tag_name=_text(t.get("tag"), "tag"),
                )
                for t in _entries(doc, "tagconfigs")
            ],
        )

    def _path_filter(self) -> FilterConfig:
        for fc in self.filter_configs:
            if fc.key == PATH_FILTER_KEY:
                return fc
        raise NDMConfigError("No filterconfig with 'key: path-filter' found")

    @staticmethod
    def _list_type(list_type: ListType | str) -> ListType:
        try:
            return ListType(list_type)
        except ValueError:
            raise NDMConfigError("invalid filterconfig path-filter list name") from None

    def append_to_path_filter(self, list_type: ListType | str, disk_path: str) -> None:
        """Append ``disk_path`` to the path-filter's include or exclude list."""
        fc = self._path_filter()
        kind = self._list_type(list_type)
        attr = kind.value
        current = getattr(fc, attr)
        separator = "," if current else ""
        setattr(fc, attr, current + separator + disk_path)

    def remove_from_path_filter(self, list_type: ListType | str, disk_path: str) -> None:
        """Remove ``disk_path`` from the path-filter's include or exclude list."""
        fc = self._path_filter()
        kind = self._list_type(list_type)
        attr = kind.value
        remaining = getattr(fc, attr).replace("," + disk_path, "").replace(disk_path, "")
        setattr(fc, attr, remaining)

    def to_yaml(self) -> str:
        """Render the configuration as the YAML stored in the ConfigMap."""
        doc: dict[str, Any] = {}
        if self.probe_configs:
            doc["probeconfigs"] = [
                {"key": p.key, "name": p.name, "state": p.state} for p in self.probe_configs
            ]
        if self.filter_configs:
            filters = []
            for f in self.filter_configs:
                entry = {"key": f.key, "name": f.name, "state": f.state}
                if f.include:
                    entry["include"] = f.include
                if f.exclude:
                    entry["exclude"] = f.exclude
                filters.append(entry)
            doc["filterconfigs"] = filters
        if self.tag_configs:
            tags = []
            for t in self.tag_configs:
                entry = {
                    "name": t.name,
                    "type": t.type,
                    "pattern": t.pattern,
                    "tag": t.tag_name,
                }
                tags.append({k: v for k, v in entry.items() if v})
            doc["tagconfigs"] = tags
        try:
            return yaml.safe_dump(doc, sort_keys=False, default_flow_style=False)
        except yaml.YAMLError as err:
            raise NDMConfigError(f"failed to marshal NDM Config to YAML: {err}") from err


def from_config_map(config_map: Mapping[str, Any] | None) -> Config:
    """Read the NDM configuration from a ConfigMap given in its API (dict) form."""
    if config_map is None:
        raise NDMConfigError("NDM ConfigMap is 'nil'")
    data = config_map.get("data") or {}
    text = data.get(CONFIG_MAP_KEY, "") or ""
    try:
        doc = yaml.load(text, Loader=yaml.BaseLoader)
    except yaml.YAMLError as err:
        raise NDMConfigError(f"failed to unmarshal NDM config: {err}") from err
    return Config._from_document(doc)