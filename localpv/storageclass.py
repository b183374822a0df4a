"""The StorageClass object and the rules for composing its local PV settings."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

import yaml

# Annotation holding the CAS engine type of a StorageClass.
CAS_TYPE_KEY = "openebs.io/cas-type"
# Annotation holding the CAS configuration (a YAML list) of a StorageClass.
CAS_CONFIG_KEY = "cas.openebs.io/config"

LOCAL_PV_CAS_TYPE = "local"
LOCAL_PV_PROVISIONER = "openebs.io/local"

KEY_QUOTA_SOFT_LIMIT = "softLimitGrace"
KEY_QUOTA_HARD_LIMIT = "hardLimitGrace"

API_VERSION = "storage.k8s.io/v1"
KIND = "StorageClass"

# Accepts "", "123.456%", "123%", "123.%", ".45%"; rejects ".%", "%", ".", "1234.45%".
_QUOTA_LIMIT = re.compile(r"(?:|(?:[0-9]{1,3}(?:[.][0-9]*)?|[.][0-9]+)%)")


@dataclass
class TopologyLabelRequirement:
    """A label key and the values it may take."""

    key: str
    values: list[str] = field(default_factory=list)


@dataclass
class TopologySelectorTerm:
    """A set of label requirements that must all hold."""

    match_label_expressions: list[TopologyLabelRequirement] = field(default_factory=list)


@dataclass
class StorageClass:
    """A Kubernetes StorageClass, with the fields the local PV provisioner uses."""

    name: str = ""
    generate_name: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    provisioner: str = ""
    parameters: dict[str, str] = field(default_factory=dict)
    reclaim_policy: str | None = None
    volume_binding_mode: str | None = None
    allowed_topologies: list[TopologySelectorTerm] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Return the object in Kubernetes API form, leaving out empty fields."""
        metadata: dict[str, Any] = {}
        if self.name:
            metadata["name"] = self.name
        if self.generate_name:
            metadata["generateName"] = self.generate_name
        if self.labels:
            metadata["labels"] = dict(self.labels)
        if self.annotations:
            metadata["annotations"] = dict(self.annotations)

        doc: dict[str, Any] = {"apiVersion": API_VERSION, "kind": KIND, "metadata": metadata}
        if self.provisioner:
            doc["provisioner"] = self.provisioner
        if self.parameters:
            doc["parameters"] = dict(self.parameters)
        if self.reclaim_policy is not None:
            doc["reclaimPolicy"] = self.reclaim_policy
        if self.volume_binding_mode is not None:
            doc["volumeBindingMode"] = self.volume_binding_mode
        if self.allowed_topologies:
            doc["allowedTopologies"] = [
                {
                    "matchLabelExpressions": [
                        {"key": req.key, "values": list(req.values)}
                        for req in term.match_label_expressions
                    ]
                }
                for term in self.allowed_topologies
            ]
        return doc

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StorageClass:
        """Build a StorageClass from its Kubernetes API form."""
        metadata = data.get("metadata") or {}
        topologies = [
            TopologySelectorTerm(
                match_label_expressions=[
                    TopologyLabelRequirement(
                        key=str(req.get("key", "")),
                        values=[str(v) for v in req.get("values") or []],
                    )
                    for req in term.get("matchLabelExpressions") or []
                ]
            )
            for term in data.get("allowedTopologies") or []
        ]
        return cls(
            name=str(metadata.get("name") or ""),
            generate_name=str(metadata.get("generateName") or ""),
            labels=dict(metadata.get("labels") or {}),
            annotations=dict(metadata.get("annotations") or {}),
            provisioner=str(data.get("provisioner") or ""),
            parameters=dict(data.get("parameters") or {}),
            reclaim_policy=data.get("reclaimPolicy"),
            volume_binding_mode=data.get("volumeBindingMode"),
            allowed_topologies=topologies,
        )


@dataclass
class CASConfigEntry:
    """One item of the CAS configuration annotation."""

    name: str = ""
    value: str = ""
    enabled: str = ""
    data: dict[str, str] = field(default_factory=dict)
    list: list[str] = field(default_factory=list)


def _scalar(value: Any, what: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"invalid CAS config: {what} must be a scalar")
    return value


def parse_cas_config(text: str) -> list[CASConfigEntry]:
    """Parse the CAS configuration annotation into its entries.

    Raises ValueError when the text is not a YAML list of config mappings.
    """
    try:
        doc = yaml.load(text, Loader=yaml.BaseLoader)
    except yaml.YAMLError as err:
        raise ValueError(f"invalid CAS config: {err}") from err
    if doc is None:
        return []
    if not isinstance(doc, list):
        raise ValueError("invalid CAS config: expected a list")

    entries = []
    for item in doc:
        if not isinstance(item, dict):
            raise ValueError("invalid CAS config: entries must be mappings")
        data = item.get("data")
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError("invalid CAS config: data must be a mapping")
        values = item.get("list")
        if values is None:
            values = []
        if not isinstance(values, list):
            raise ValueError("invalid CAS config: list must be a sequence")
        entries.append(
            CASConfigEntry(
                name=_scalar(item.get("name"), "name"),
                value=_scalar(item.get("value"), "value"),
                enabled=_scalar(item.get("enabled"), "enabled"),
                data={_scalar(k, "data key"): _scalar(v, "data value") for k, v in data.items()},
                list=[_scalar(v, "list item") for v in values],
            )
        )
    return entries


def is_valid_path(hostpath: str) -> bool:
    """True for an absolute path that is not ``/`` nor directly under it."""
    if not hostpath.startswith("/"):
        return False
    path = hostpath.removesuffix("/")
    cut = path.rfind("/") + 1
    parent_dir = path[:cut].removesuffix("/")
    sub_dir = path[cut:].removesuffix("/")
    return bool(parent_dir) and bool(sub_dir)


def is_valid_quota_data(data: Mapping[str, str] | None) -> bool:
    """True when any soft and hard limit present are valid percentages."""
    if data is None:
        return True
    for key in (KEY_QUOTA_SOFT_LIMIT, KEY_QUOTA_HARD_LIMIT):
        if key in data and _QUOTA_LIMIT.fullmatch(data[key]) is None:
            return False
    return True


def is_valid_filesystem(filesystem: str) -> bool:
    """True for the filesystems a device volume may be formatted with."""
    return filesystem in ("xfs", "ext4")


def is_compatible_with_local_pv_cas_type(sc: StorageClass) -> bool:
    """True unless a CAS type other than local is set."""
    cas_type = sc.annotations.get(CAS_TYPE_KEY)
    return cas_type is None or cas_type in ("", LOCAL_PV_CAS_TYPE)


def _has_usable_provisioner(sc: StorageClass) -> bool:
    return not sc.provisioner or sc.provisioner == LOCAL_PV_PROVISIONER


def _is_hostpath(value: str) -> bool:
    return value in ('"hostpath"', "hostpath")


def _is_device(value: str) -> bool:
    return value in ('"device"', "device")


def _compatible(sc: StorageClass, accepts) -> bool:
    if not is_compatible_with_local_pv_cas_type(sc):
        return False
    text = sc.annotations.get(CAS_CONFIG_KEY)
    if text is not None:
        try:
            entries = parse_cas_config(text)
        except ValueError:
            return False
        if not all(accepts(entry.name.strip(), entry) for entry in entries):
            return False
    return _has_usable_provisioner(sc)


def is_compatible_with_hostpath(sc: StorageClass) -> bool:
    """True when hostpath StorageType and BasePath may be added."""

    def accepts(name: str, entry: CASConfigEntry) -> bool:
        if name == "NodeAffinityLabel":
            return True
        if name in ("XFSQuota", "EXT4Quota"):
            return is_valid_quota_data(entry.data)
        return False

    return _compatible(sc, accepts)


def is_compatible_with_quota(sc: StorageClass) -> bool:
    """True when an XFS or ext4 quota entry may be added."""

    def accepts(name: str, entry: CASConfigEntry) -> bool:
        if name == "StorageType":
            return _is_hostpath(entry.value)
        if name == "BasePath":
            return is_valid_path(entry.value)
        return name == "NodeAffinityLabel"

    return _compatible(sc, accepts)


def is_compatible_with_node_affinity_label(sc: StorageClass) -> bool:
    """True when a NodeAffinityLabels entry may be added."""

    def accepts(name: str, entry: CASConfigEntry) -> bool:
        if name == "StorageType":
            return _is_hostpath(entry.value) or _is_device(entry.value)
        if name == "BasePath":
            return is_valid_path(entry.value)
        if name in ("XFSQuota", "EXT4Quota"):
            return is_valid_quota_data(entry.data)
        return False

    return _compatible(sc, accepts)


def is_compatible_with_device(sc: StorageClass) -> bool:
    """True when the device StorageType may be added."""
    return _compatible(sc, lambda name, entry: name in ("BlockDeviceSelectors", "FSType"))


def is_compatible_with_fs_type(sc: StorageClass) -> bool:
    """True when an FSType entry may be added."""

    def accepts(name: str, entry: CASConfigEntry) -> bool:
        if name == "StorageType":
            return _is_device(entry.value)
        return name == "BlockDeviceSelectors"

    return _compatible(sc, accepts)


def is_compatible_with_block_device_tag(sc: StorageClass) -> bool:
    """True when a BlockDeviceSelectors entry may be added."""

    def accepts(name: str, entry: CASConfigEntry) -> bool:
        if name == "StorageType":
            return _is_device(entry.value)
        return name == "FSType"

    return _compatible(sc, accepts)


def write_or_append_cas_config(sc: StorageClass, config: str) -> None:
    """Set the CAS config annotation to ``config``, or append to what is there."""
    sc.annotations[CAS_CONFIG_KEY] = sc.annotations.get(CAS_CONFIG_KEY, "") + config


def append_allowed_topologies(
    sc: StorageClass, allowed_topologies: Mapping[str, Iterable[str]]
) -> None:
    """Add one selector term requiring every given label key to take one of its values."""
    term = TopologySelectorTerm(
        match_label_expressions=[
            TopologyLabelRequirement(key=key, values=list(values))
            for key, values in allowed_topologies.items()
        ]
    )
    sc.allowed_topologies.append(term)