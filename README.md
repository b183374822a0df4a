# localpv

A library for working with local persistent volumes on Kubernetes.

- `localpv.storageclass` holds the `StorageClass` dataclass, with
  `to_dict()` and `from_dict()` for the Kubernetes API form, and the rules
  that decide which local PV settings may be combined on one class.
- `localpv.builder` composes a `StorageClass` from a series of options:
  hostpath or block-device storage, XFS or ext4 quota, node-affinity labels,
  filesystem type, block-device selectors, topologies, binding mode and
  reclaim policy.
- `localpv.ndmconfig` reads a node-disk-manager configuration from a
  ConfigMap and edits the include and exclude lists of its path filter.
- `localpv.client` resolves cluster connection settings and builds a small
  JSON REST client.
- `localpv.kubeclient` creates, gets, lists, updates and deletes
  StorageClasses through that client.
- `localpv.logger` routes plain text writes into the `logging` system.

The only runtime dependency is PyYAML. The `test` extra adds pytest.

## Building a StorageClass

```python
from localpv.builder import (
    new_storage_class,
    with_generate_name,
    with_labels,
    with_local_pv,
    with_hostpath,
    with_xfs_quota,
    with_volume_binding_mode,
    with_reclaim_policy,
)

sc = new_storage_class(
    with_generate_name("sc-hp"),
    with_labels({"openebs.io/test-sc": "true"}),
    with_local_pv(),
    with_hostpath("/var/openebs/local"),
    with_xfs_quota("20%", "50%"),
    with_volume_binding_mode("WaitForFirstConsumer"),
    with_reclaim_policy("Delete"),
)
print(sc.to_dict())
```

Options are applied in order. Each one checks the class built so far, and an
option that does not fit raises `StorageClassBuildError`. Examples are a
hostpath on a class that already selects block devices, a relative path or
one directly under `/`, a filesystem other than `xfs` or `ext4`, a quota
limit that is not a percentage such as `75%` or `.5%`, or a provisioner other
than `openebs.io/local`. The storage settings are written into the
`cas.openebs.io/config` annotation as a YAML list, appended to what is
already there.

`with_volume_binding_mode("")` sets `WaitForFirstConsumer`, and
`with_reclaim_policy("")` sets `Delete`.

## Editing node-disk-manager filters

```python
from localpv.ndmconfig import ListType, from_config_map

config = from_config_map(config_map)
config.append_to_path_filter(ListType.EXCLUDE, "/dev/loop9000")
print(config.to_yaml())
```

`from_config_map` reads the `node-disk-manager.config` entry of a ConfigMap
given as a dictionary. `append_to_path_filter` adds a path to the
comma-separated list. `remove_from_path_filter` removes every occurrence of
the path from that list. A configuration without a `path-filter` entry, or an
unknown list name, raises `NDMConfigError`.

## Working with the cluster

`localpv.client.Client.config_for_path_or_direct()` chooses where the cluster
configuration comes from, in this order:

1. the `kube_config_path` when it is set;
2. in-cluster credentials when `is_in_cluster` is true;
3. the `OPENEBS_IO_K8S_MASTER` and `OPENEBS_IO_KUBE_CONFIG` environment
   variables when either is set;
4. in-cluster credentials otherwise.

Kubeconfig files are read for the current context's server, certificate
authority, client certificate and key, and token. Failures raise
`ConfigError`. `instance()` returns one shared `Client` per process.

```python
from localpv.kubeclient import KubeClient

kc = KubeClient(kube_config_path="/path/to/kubeconfig")
created = kc.create(sc)
classes = kc.list({"labelSelector": "openebs.io/test-sc=true"})
kc.delete_collection({"labelSelector": "openebs.io/test-sc=true"})
```

`KubeClient` obtains its clientset lazily and caches it. A missing name, a
`None` object, an empty collection or a failure to obtain the clientset raises
`KubeClientError`. Errors from the HTTP request itself are raised as the
`urllib` errors they are. Every operation is a replaceable callable
(`get_fn`, `list_fn`, `create_fn` and so on), so a fake can be supplied.

## Logging

`localpv.logger.init_logging(flush_frequency)` sets up message-only INFO
output on the `localpv` logger and returns a `LogWriter`. Every write to it
becomes a log record. When the frequency differs from the default interval,
which is 5 seconds and can be changed with `set_default_flush_interval`, a
background thread flushes the handlers at that frequency. `finish_logging()`
stops the thread and flushes. A second call to `finish_logging()` raises
`RuntimeError`.

## What this package does not do

It is a library only. It provides no command and runs no provisioner:
- nothing watches PersistentVolumeClaims;
- nothing creates or removes directories or devices on nodes;
- nothing applies quotas.

It builds and manages the StorageClass objects and configuration that such a
provisioner reads.