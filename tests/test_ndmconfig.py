import pytest

from localpv.ndmconfig import (
    Config,
    FilterConfig,
    ListType,
    NDMConfigError,
    ProbeConfig,
    TagConfig,
    from_config_map,
)

DEFAULT_EXCLUDE = "/dev/fd0,/dev/sr0,/dev/ram,/dev/dm-,/dev/md,/dev/rbd,/dev/zd"


def path_filter(include="", exclude=""):
    return Config(filter_configs=[FilterConfig("path-filter", "path filter", "true", include, exclude)])


@pytest.mark.parametrize(
    "config, list_type, disk_path, include, exclude",
    [
        (path_filter("/dev/loop1,/dev/loop2"), ListType.INCLUDE, "/dev/loop9000",
         "/dev/loop1,/dev/loop2,/dev/loop9000", ""),
        (path_filter(), ListType.INCLUDE, "/dev/loop9000", "/dev/loop9000", ""),
        (path_filter(exclude=DEFAULT_EXCLUDE), ListType.EXCLUDE, "/dev/loop9000",
         "", DEFAULT_EXCLUDE + ",/dev/loop9000"),
        (path_filter(), ListType.EXCLUDE, "/dev/loop9000", "", "/dev/loop9000"),
    ],
)
def test_append_to_path_filter(config, list_type, disk_path, include, exclude):
    config.append_to_path_filter(list_type, disk_path)
    assert config.filter_configs[0].include == include
    assert config.filter_configs[0].exclude == exclude


@pytest.mark.parametrize(
    "config, list_type, disk_path, include, exclude",
    [
        (path_filter("/dev/loop1,/dev/loop2,/dev/loop9000"), ListType.INCLUDE, "/dev/loop9000",
         "/dev/loop1,/dev/loop2", ""),
        (path_filter("/dev/loop9000"), ListType.INCLUDE, "/dev/loop9000", "", ""),
        (path_filter(exclude=DEFAULT_EXCLUDE + ",/dev/loop9000"), ListType.EXCLUDE, "/dev/loop9000",
         "", DEFAULT_EXCLUDE),
        (path_filter(exclude="/dev/loop9000"), ListType.EXCLUDE, "/dev/loop9000", "", ""),
    ],
)
def test_remove_from_path_filter(config, list_type, disk_path, include, exclude):
    config.remove_from_path_filter(list_type, disk_path)
    assert config.filter_configs[0].include == include
    assert config.filter_configs[0].exclude == exclude


def test_list_type_accepts_plain_strings():
    config = path_filter()
    config.append_to_path_filter("exclude", "/dev/loop9000")
    assert config.filter_configs[0].exclude == "/dev/loop9000"


def test_only_first_path_filter_is_changed():
    config = Config(filter_configs=[
        FilterConfig("os-disk-exclude-filter", "os disk exclude filter", "true"),
        FilterConfig("path-filter", "path filter", "true"),
        FilterConfig("path-filter", "second", "true"),
    ])
    config.append_to_path_filter(ListType.INCLUDE, "/dev/sdb")
    assert [f.include for f in config.filter_configs] == ["", "/dev/sdb", ""]


def test_missing_path_filter():
    config = Config(filter_configs=[FilterConfig("vendor-filter", "vendor filter", "true")])
    with pytest.raises(NDMConfigError, match="path-filter"):
        config.append_to_path_filter(ListType.INCLUDE, "/dev/loop9000")
    with pytest.raises(NDMConfigError, match="path-filter"):
        config.remove_from_path_filter(ListType.EXCLUDE, "/dev/loop9000")


def test_invalid_list_type():
    with pytest.raises(NDMConfigError, match="invalid filterconfig"):
        path_filter().append_to_path_filter("both", "/dev/loop9000")
    with pytest.raises(NDMConfigError, match="invalid filterconfig"):
        path_filter().remove_from_path_filter("both", "/dev/loop9000")


NDM_CONFIG = """\
probeconfigs:
  - key: udev-probe
    name: udev probe
    state: true
filterconfigs:
  - key: path-filter
    name: path filter
    state: true
    include: ""
    exclude: "/dev/loop,/dev/fd0"
tagconfigs:
  - name: ssd tag
    type: path
    pattern: "/dev/nvme*"
    tag: fast
"""


def test_from_config_map_parses_fields():
    config = from_config_map({"data": {"node-disk-manager.config": NDM_CONFIG}})
    assert config.probe_configs == [ProbeConfig("udev-probe", "udev probe", "true")]
    assert config.filter_configs == [
        FilterConfig("path-filter", "path filter", "true", "", "/dev/loop,/dev/fd0")
    ]
    assert config.tag_configs == [TagConfig("ssd tag", "path", "/dev/nvme*", "fast")]


def test_yaml_round_trip():
    config = from_config_map({"data": {"node-disk-manager.config": NDM_CONFIG}})
    config.append_to_path_filter(ListType.EXCLUDE, "/dev/loop9000")
    again = from_config_map({"data": {"node-disk-manager.config": config.to_yaml()}})
    assert again == config


def test_empty_fields_are_omitted():
    text = path_filter().to_yaml()
    assert "include" not in text
    assert "exclude" not in text
    assert "probeconfigs" not in text


def test_empty_config_to_yaml():
    assert Config().to_yaml() == "{}\n"


def test_missing_data_gives_empty_config():
    assert from_config_map({"metadata": {"name": "ndm-config"}}) == Config()


def test_nil_config_map():
    with pytest.raises(NDMConfigError, match="'nil'"):
        from_config_map(None)


@pytest.mark.parametrize("text", ["probeconfigs: [", "probeconfigs: plain", "- a\n- b\n"])
def test_bad_yaml(text):
    with pytest.raises(NDMConfigError, match="unmarshal"):
        from_config_map({"data": {"node-disk-manager.config": text}})