"""StorageClass operations against the Kubernetes API."""

from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping
from urllib.parse import quote, urlencode

from localpv.client import Client
from localpv.storageclass import StorageClass

STORAGE_CLASS_PATH = "/apis/storage.k8s.io/v1/storageclasses"

GetClientsetFn = Callable[[], Any]
GetClientsetForPathFn = Callable[[str], Any]
GetFn = Callable[[Any, str, Any], StorageClass]
ListFn = Callable[[Any, Any], "list[StorageClass]"]
DeleteFn = Callable[[Any, str, Any], None]
DeleteCollectionFn = Callable[[Any, Any, Any], None]
CreateFn = Callable[[Any, StorageClass], StorageClass]
UpdateFn = Callable[[Any, StorageClass], StorageClass]


class KubeClientError(Exception):
    """Raised when a StorageClass operation cannot be carried out."""


def _query(options: Mapping[str, Any] | None) -> str:
    if not options:
        return ""
    return "?" + urlencode(dict(options))


def _item_path(name: str) -> str:
    return f"{STORAGE_CLASS_PATH}/{quote(name, safe='')}"


def _delete_body(options: Mapping[str, Any] | None) -> dict[str, Any]:
    body: dict[str, Any] = {"apiVersion": "v1", "kind": "DeleteOptions"}
    body.update(options or {})
    return body


def _default_get_clientset() -> Any:
    return Client().clientset()


def _default_get_clientset_for_path(kube_config_path: str) -> Any:
    return Client(kube_config_path=kube_config_path).clientset()


def _default_get(cli: Any, name: str, options: Mapping[str, Any] | None) -> StorageClass:
    return StorageClass.from_dict(cli.request("GET", _item_path(name) + _query(options)))


def _default_list(cli: Any, options: Mapping[str, Any] | None) -> list[StorageClass]:
    reply = cli.request("GET", STORAGE_CLASS_PATH + _query(options))
    return [StorageClass.from_dict(item) for item in reply.get("items") or []]


def _default_delete(cli: Any, name: str, delete_options: Mapping[str, Any] | None) -> None:
    cli.request("DELETE", _item_path(name), _delete_body(delete_options))


def _default_delete_collection(
    cli: Any,
    list_options: Mapping[str, Any] | None,
    delete_options: Mapping[str, Any] | None,
) -> None:
    cli.request("DELETE", STORAGE_CLASS_PATH + _query(list_options), _delete_body(delete_options))


def _default_create(cli: Any, sc: StorageClass) -> StorageClass:
    return StorageClass.from_dict(cli.request("POST", STORAGE_CLASS_PATH, sc.to_dict()))


def _default_update(cli: Any, sc: StorageClass) -> StorageClass:
    return StorageClass.from_dict(cli.request("PUT", _item_path(sc.name), sc.to_dict()))


class KubeClient:
    """Gets, lists, creates, updates and deletes StorageClasses.

    The clientset is obtained lazily and cached. Every operation is a
    replaceable callable, which is how tests supply fakes.
    """

    def __init__(
        self,
        *,
        clientset: Any = None,
        kube_config_path: str = "",
        get_clientset: GetClientsetFn | None = None,
        get_clientset_for_path: GetClientsetForPathFn | None = None,
        get_fn: GetFn | None = None,
        list_fn: ListFn | None = None,
        create_fn: CreateFn | None = None,
        update_fn: UpdateFn | None = None,
        delete_fn: DeleteFn | None = None,
        delete_collection_fn: DeleteCollectionFn | None = None,
    ) -> None:
        self.clientset = clientset
        self.kube_config_path = kube_config_path
        self.get_clientset = get_clientset or _default_get_clientset
        self.get_clientset_for_path = get_clientset_for_path or _default_get_clientset_for_path
        self.get_fn = get_fn or _default_get
        self.list_fn = list_fn or _default_list
        self.create_fn = create_fn or _default_create
        self.update_fn = update_fn or _default_update
        self.delete_fn = delete_fn or _default_delete
        self.delete_collection_fn = delete_collection_fn or _default_delete_collection

    def _clientset_for_path_or_direct(self) -> Any:
        if self.kube_config_path:
            return self.get_clientset_for_path(self.kube_config_path)
        return self.get_clientset()

    def _clientset_or_cached(self) -> Any:
        if self.clientset is not None:
            return self.clientset
        try:
            cs = self._clientset_for_path_or_direct()
        except Exception as err:
            raise KubeClientError(f"failed to get clientset: {err}") from err
        self.clientset = cs
        return cs

    def _cli(self, context: str) -> Any:
        try:
            return self._clientset_or_cached()
        except KubeClientError as err:
            raise KubeClientError(f"{context}: {err}") from err

    def get(self, name: str, options: Mapping[str, Any] | None = None) -> StorageClass:
        """Return the StorageClass called ``name``."""
        if not name.strip():
            raise KubeClientError("failed to get StorageClass: missing StorageClass name")
        cli = self._cli(f"failed to get StorageClass {{{name}}}")
        return self.get_fn(cli, name, options)

    def list(self, options: Mapping[str, Any] | None = None) -> list[StorageClass]:
        """Return the StorageClasses matching the list options."""
        cli = self._cli(f"failed to list StorageClass listoptions: '{options}'")
        return self.list_fn(cli, options)

    def delete(self, name: str, delete_options: Mapping[str, Any] | None = None) -> None:
        """Delete the StorageClass called ``name``."""
        if not name.strip():
            raise KubeClientError("failed to delete StorageClass: missing StorageClass name")
        cli = self._cli(f"failed to delete StorageClass {{{name}}}")
        self.delete_fn(cli, name, delete_options)

    def create(self, sc: StorageClass | None) -> StorageClass:
        """Create ``sc`` in the cluster and return what the server stored."""
        if sc is None:
            raise KubeClientError("failed to create StorageClass: nil StorageClass object")
        cli = self._cli(f"failed to create StorageClass {{{sc.name}}}")
        return self.create_fn(cli, sc)

    def update(self, sc: StorageClass | None) -> StorageClass:
        """Update ``sc`` in the cluster and return what the server stored."""
        if sc is None:
            raise KubeClientError("failed to update StorageClass: nil StorageClass object")
        cli = self._cli(f"failed to update StorageClass {{{sc.name}}}")
        return self.update_fn(cli, sc)

    def create_collection(self, items: Iterable[StorageClass] | None) -> list[StorageClass]:
        """Create every StorageClass in ``items``, stopping at the first failure."""
        pending = [] if items is None else [*items]
        if not pending:
            raise KubeClientError(
                "failed to create list of StorageClasses: nil StorageClass list provided"
            )
        return [self.create(item) for item in pending]

    def delete_collection(
        self,
        list_options: Mapping[str, Any] | None = None,
        delete_options: Mapping[str, Any] | None = None,
    ) -> None:
        """Delete every StorageClass matching the list options."""
        cli = self._cli("failed to delete the collection of StorageClasses")
        self.delete_collection_fn(cli, list_options, delete_options)