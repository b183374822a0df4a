"""Compose a local PV StorageClass from a series of options."""

from __future__ import annotations

from typing import Callable, Iterable, Mapping

from localpv.storageclass import (
    CAS_CONFIG_KEY,
    CAS_TYPE_KEY,
    KEY_QUOTA_HARD_LIMIT,
    KEY_QUOTA_SOFT_LIMIT,
    LOCAL_PV_CAS_TYPE,
    LOCAL_PV_PROVISIONER,
    StorageClass,
    append_allowed_topologies,
    is_compatible_with_block_device_tag,
    is_compatible_with_device,
    is_compatible_with_fs_type,
    is_compatible_with_hostpath,
    is_compatible_with_node_affinity_label,
    is_compatible_with_quota,
    is_valid_filesystem,
    is_valid_path,
    is_valid_quota_data,
    write_or_append_cas_config,
)

DEFAULT_VOLUME_BINDING_MODE = "WaitForFirstConsumer"
DEFAULT_RECLAIM_POLICY = "Delete"

StorageClassOption = Callable[[StorageClass], None]


class StorageClassBuildError(Exception):
    """Raised when an option cannot be applied to a StorageClass."""


def new_storage_class(*args: StorageClassOption) -> StorageClass:
    """Return a new StorageClass with every option applied in order."""
    sc = StorageClass()
    for option in args:
        try:
            option(sc)
        except StorageClassBuildError as err:
            raise StorageClassBuildError(f"Failed to build StorageClass.: {err}") from err
    return sc


def _incompatible(what: str, annotation_word: str = "annotation") -> StorageClassBuildError:
    return StorageClassBuildError(
        f"{what} Invalid existing '{CAS_CONFIG_KEY}' {annotation_word}"
        " parameters or Provisioner name."
    )


def with_name(name: str) -> StorageClassOption:
    """Set the object name."""

    def apply(sc: StorageClass) -> None:
        if not name:
            raise StorageClassBuildError("Failed to set Name. Name is an empty string.")
        sc.name = name

    return apply


def with_generate_name(generate_name: str) -> StorageClassOption:
    """Set the name prefix; a '-' is appended to it."""

    def apply(sc: StorageClass) -> None:
        if not generate_name:
            raise StorageClassBuildError(
                "Failed to set GenerateName. Name prefix is an empty string."
            )
        sc.generate_name = generate_name + "-"

    return apply


def with_labels(labels: Mapping[str, str]) -> StorageClassOption:
    """Add the given labels."""

    def apply(sc: StorageClass) -> None:
        if not labels:
            raise StorageClassBuildError("Failed to set Labels. Input is invalid.")
        sc.labels.update(labels)

    return apply


def with_parameters(parameters: Mapping[str, str]) -> StorageClassOption:
    """Add the given parameters."""

    def apply(sc: StorageClass) -> None:
        if not parameters:
            raise StorageClassBuildError("Failed to set Parameters. Input is invalid.")
        sc.parameters.update(parameters)

    return apply


def with_local_pv() -> StorageClassOption:
    """Mark the class as local PV and set its provisioner."""

    def apply(sc: StorageClass) -> None:
        if CAS_TYPE_KEY in sc.annotations:
            raise StorageClassBuildError(f"Annotation '{CAS_TYPE_KEY}' is already set.")
        if sc.provisioner:
            raise StorageClassBuildError("Provisioner name is already set.")
        sc.annotations[CAS_TYPE_KEY] = LOCAL_PV_CAS_TYPE
        sc.provisioner = LOCAL_PV_PROVISIONER

    return apply


def with_hostpath(hostpath_dir: str) -> StorageClassOption:
    """Use the hostpath storage type rooted at ``hostpath_dir``."""

    def apply(sc: StorageClass) -> None:
        if not is_valid_path(hostpath_dir):
            raise StorageClassBuildError(
                "Invalid hostpath directory. Path must be an absolute path and "
                "must be a directory which is not directly under '/'."
            )
        if not is_compatible_with_hostpath(sc):
            raise _incompatible("Failed to set StorageType and BasePath for Hostpath.")
        config = (
            "- name: StorageType\n"
            '  value: "hostpath"\n'
            "- name: BasePath\n"
            f'  value: "{hostpath_dir}"\n'
        )
        write_or_append_cas_config(sc, config)

    return apply


def with_device() -> StorageClassOption:
    """Use the device storage type."""

    def apply(sc: StorageClass) -> None:
        if not is_compatible_with_device(sc):
            raise _incompatible("Failed to set StorageType for Device.", "annotaion")
        write_or_append_cas_config(sc, '- name: StorageType\n  value: "device"\n')

    return apply


def _quota(name: str, soft_limit: str, hard_limit: str) -> StorageClassOption:
    def apply(sc: StorageClass) -> None:
        if not is_compatible_with_quota(sc):
            raise _incompatible(f"Failed to set {name} parameters.")
        config = f'- name: {name}\n  enabled: "true"\n'
        if soft_limit or hard_limit:
            limits = {KEY_QUOTA_SOFT_LIMIT: soft_limit, KEY_QUOTA_HARD_LIMIT: hard_limit}
            if not is_valid_quota_data(limits):
                raise StorageClassBuildError(
                    f"Failed to set {name} parameters. Invalid "
                    f"{KEY_QUOTA_SOFT_LIMIT} and {KEY_QUOTA_HARD_LIMIT} values"
                )
            config += (
                "  data:\n"
                f'    {KEY_QUOTA_SOFT_LIMIT}: "{soft_limit}"\n'
                f'    {KEY_QUOTA_HARD_LIMIT}: "{hard_limit}"\n'
            )
        write_or_append_cas_config(sc, config)

    return apply


def with_xfs_quota(soft_limit: str, hard_limit: str) -> StorageClassOption:
    """Enable XFS project quota with optional soft and hard limit grace."""
    return _quota("XFSQuota", soft_limit, hard_limit)


def with_ext4_quota(soft_limit: str, hard_limit: str) -> StorageClassOption:
    """Enable ext4 project quota with optional soft and hard limit grace."""
    return _quota("EXT4Quota", soft_limit, hard_limit)


def with_volume_binding_mode(mode: str) -> StorageClassOption:
    """Set the volume binding mode; empty means WaitForFirstConsumer."""

    def apply(sc: StorageClass) -> None:
        sc.volume_binding_mode = mode or DEFAULT_VOLUME_BINDING_MODE

    return apply


def with_reclaim_policy(policy: str) -> StorageClassOption:
    """Set the reclaim policy; empty means Delete."""

    def apply(sc: StorageClass) -> None:
        sc.reclaim_policy = policy or DEFAULT_RECLAIM_POLICY

    return apply


def with_allowed_topologies(
    allowed_topologies: Mapping[str, Iterable[str]],
) -> StorageClassOption:
    """Restrict the class to nodes carrying the given label values."""

    def apply(sc: StorageClass) -> None:
        if not allowed_topologies:
            raise StorageClassBuildError("Failed to set AllowedTopologies. Input is invalid.")
        append_allowed_topologies(sc, allowed_topologies)

    return apply


def with_node_affinity_labels(node_label_keys: Iterable[str]) -> StorageClassOption:
    """Add the node label keys used for volume node affinity."""
    keys = list(node_label_keys)

    def apply(sc: StorageClass) -> None:
        if not keys:
            raise StorageClassBuildError("Failed to set NodeLabelKey. Input is invalid.")
        if not is_compatible_with_node_affinity_label(sc):
            raise _incompatible("Failed to set NodeAffinityLabel.", "annotaion")
        label_keys = "".join(f'    - "{key}"\n' for key in keys if key)
        if not label_keys:
            raise StorageClassBuildError("Failed to set NodeLabelKey. Input is invalid.")
        write_or_append_cas_config(
            sc, "- name: NodeAffinityLabels\n  list:\n" + label_keys
        )

    return apply


def with_fs_type(filesystem: str) -> StorageClassOption:
    """Set the filesystem a device volume is formatted with."""

    def apply(sc: StorageClass) -> None:
        if not is_valid_filesystem(filesystem):
            raise StorageClassBuildError(
                'Filesystem is invalid. Accepted values are "ext4" and "xfs".'
            )
        if not is_compatible_with_fs_type(sc):
            raise StorageClassBuildError(
                f"Failed to set FSType. Invalid existing '{CAS_CONFIG_KEY}' "
                "annotation parameters or Provisioner name"
            )
        write_or_append_cas_config(sc, f'- name: FSType\n  value: "{filesystem}"\n')

    return apply


def with_block_device_selectors(selectors: Mapping[str, str]) -> StorageClassOption:
    """Select block devices by the given labels; empty values are skipped."""

    def apply(sc: StorageClass) -> None:
        if not selectors:
            raise StorageClassBuildError(
                "Failed to set BlockDeviceSelectors. Input is invalid."
            )
        if not is_compatible_with_block_device_tag(sc):
            raise _incompatible("Failed to set BlockDeviceTag.", "annotaion")
        selector_map = "".join(
            f'    "{key}": "{value}"\n' for key, value in selectors.items() if value
        )
        if not selector_map:
            raise StorageClassBuildError(
                "Failed to set BlockDeviceSelectors. Input is invalid."
            )
        write_or_append_cas_config(
            sc, "- name: BlockDeviceSelectors\n  data:\n" + selector_map
        )

    return apply