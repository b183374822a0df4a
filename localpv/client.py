"""Kubernetes connection settings and a small REST client."""

from __future__ import annotations

import base64
import binascii
import json
import os
import ssl
import tempfile
import threading
import urllib.request
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

import yaml

# Environment variable naming the Kubernetes master address.
K8S_MASTER_IP_ENV_KEY = "OPENEBS_IO_K8S_MASTER"
# Environment variable naming the kubeconfig path.
KUBE_CONFIG_ENV_KEY = "OPENEBS_IO_KUBE_CONFIG"

SERVICE_ACCOUNT_DIR = Path("/var/run/secrets/kubernetes.io/serviceaccount")


class ConfigError(Exception):
    """Raised when a Kubernetes configuration cannot be obtained."""


@dataclass
class RestConfig:
    """How to reach and authenticate to a Kubernetes API server."""

    host: str = ""
    bearer_token: str = ""
    ca_file: str = ""
    ca_data: bytes = b""
    cert_file: str = ""
    key_file: str = ""
    cert_data: bytes = b""
    key_data: bytes = b""
    insecure: bool = False


def _ssl_context(config: RestConfig) -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    if config.insecure:
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    if config.ca_file:
        ctx.load_verify_locations(cafile=config.ca_file)
    if config.ca_data:
        ctx.load_verify_locations(cadata=config.ca_data.decode("ascii"))
    if config.cert_file:
        ctx.load_cert_chain(config.cert_file, config.key_file or None)
    elif config.cert_data:
        with tempfile.TemporaryDirectory() as tmp:
            cert = Path(tmp, "client.crt")
            cert.write_bytes(config.cert_data)
            key = None
            if config.key_data:
                key = Path(tmp, "client.key")
                key.write_bytes(config.key_data)
            ctx.load_cert_chain(str(cert), str(key) if key else None)
    return ctx


class RestClient:
    """A JSON client for the Kubernetes API described by a :class:`RestConfig`.

    Transport failures surface as the ``urllib`` errors they are.
    """

    def __init__(self, config: RestConfig, timeout: float = 30.0) -> None:
        self.config = config
        self.timeout = timeout
        self._context: ssl.SSLContext | None = None

    def request(self, method: str, path: str, body: Any = None) -> Any:
        """Send ``body`` as JSON to ``path`` and return the decoded reply."""
        url = self.config.host.rstrip("/") + "/" + path.lstrip("/")
        data = json.dumps(body).encode("utf-8") if body is not None else None
        req = urllib.request.Request(url, data=data, method=method.upper())
        req.add_header("Accept", "application/json")
        if data is not None:
            req.add_header("Content-Type", "application/json")
        if self.config.bearer_token:
            req.add_header("Authorization", f"Bearer {self.config.bearer_token}")
        context = None
        if url.startswith("https://"):
            if self._context is None:
                self._context = _ssl_context(self.config)
            context = self._context
        with urllib.request.urlopen(req, timeout=self.timeout, context=context) as resp:
            payload = resp.read()
        return json.loads(payload) if payload else {}


def get_env(key: str) -> str:
    """Return the value of environment variable ``key``, or an empty string."""
    return os.environ.get(key, "")


def in_cluster_config() -> RestConfig:
    """Build a config from the service account mounted into a pod."""
    host = os.environ.get("KUBERNETES_SERVICE_HOST", "")
    port = os.environ.get("KUBERNETES_SERVICE_PORT", "")
    if not host or not port:
        raise ConfigError(
            "unable to load in-cluster configuration, KUBERNETES_SERVICE_HOST "
            "and KUBERNETES_SERVICE_PORT must be defined"
        )
    try:
        token = (SERVICE_ACCOUNT_DIR / "token").read_text().strip()
    except OSError as err:
        raise ConfigError(f"failed to read service account token: {err}") from err
    ca = SERVICE_ACCOUNT_DIR / "ca.crt"
    if ":" in host:
        host = f"[{host}]"
    return RestConfig(
        host=f"https://{host}:{port}",
        bearer_token=token,
        ca_file=str(ca) if ca.is_file() else "",
    )


def _decode(value: Any, what: str) -> bytes:
    try:
        return base64.b64decode(str(value), validate=True)
    except (binascii.Error, ValueError) as err:
        raise ConfigError(f"invalid {what} in kubeconfig") from err


def _named(items: Any, name: str, kind: str) -> dict:
    for item in items or []:
        if isinstance(item, dict) and item.get("name") == name:
            return item.get(kind) or {}
    raise ConfigError(f"{kind} {name!r} not found in kubeconfig")


def _load_kubeconfig(path: Path, master_url: str) -> RestConfig:
    try:
        doc = yaml.safe_load(path.read_text())
    except OSError as err:
        raise ConfigError(f"failed to read kubeconfig {path}: {err}") from err
    except yaml.YAMLError as err:
        raise ConfigError(f"failed to parse kubeconfig {path}: {err}") from err
    if doc is None:
        doc = {}
    if not isinstance(doc, dict):
        raise ConfigError(f"invalid kubeconfig {path}")

    current = doc.get("current-context") or ""
    if not current:
        if master_url:
            return RestConfig(host=master_url)
        raise ConfigError("invalid configuration: no current context in kubeconfig")

    context = _named(doc.get("contexts"), current, "context")
    cluster = _named(doc.get("clusters"), context.get("cluster", ""), "cluster")
    user = {}
    if context.get("user"):
        user = _named(doc.get("users"), context["user"], "user")

    base = path.parent

    def resolve(value: Any) -> str:
        return str(base / str(value)) if value else ""

    config = RestConfig(
        host=str(cluster.get("server") or ""),
        ca_file=resolve(cluster.get("certificate-authority")),
        insecure=bool(cluster.get("insecure-skip-tls-verify", False)),
        cert_file=resolve(user.get("client-certificate")),
        key_file=resolve(user.get("client-key")),
    )
    if cluster.get("certificate-authority-data"):
        config.ca_data = _decode(cluster["certificate-authority-data"], "certificate authority data")
    if user.get("client-certificate-data"):
        config.cert_data = _decode(user["client-certificate-data"], "client certificate data")
    if user.get("client-key-data"):
        config.key_data = _decode(user["client-key-data"], "client key data")
    if user.get("token"):
        config.bearer_token = str(user["token"])
    elif user.get("tokenFile"):
        try:
            config.bearer_token = Path(resolve(user["tokenFile"])).read_text().strip()
        except OSError as err:
            raise ConfigError(f"failed to read token file: {err}") from err
    return config


def build_config_from_flags(master_url: str, kubeconfig_path: str) -> RestConfig:
    """Build a config from a master URL and/or a kubeconfig file.

    With neither given, the in-cluster config is used.
    """
    if not master_url and not kubeconfig_path:
        try:
            return in_cluster_config()
        except ConfigError:
            raise ConfigError(
                "invalid configuration: no configuration has been provided"
            ) from None
    if not kubeconfig_path:
        return RestConfig(host=master_url)
    config = _load_kubeconfig(Path(kubeconfig_path), master_url)
    if master_url:
        config.host = master_url
    if not config.host:
        raise ConfigError("invalid configuration: no server found for cluster")
    return config


def _require_host(config: RestConfig | None) -> RestConfig:
    if config is None or not config.host:
        raise ConfigError("host must be set in the kubernetes config")
    return config


def new_clientset(config: RestConfig) -> RestClient:
    """Return a client for the typed Kubernetes API."""
    return RestClient(_require_host(config))


def new_dynamic_client(config: RestConfig) -> RestClient:
    """Return a client able to address any Kubernetes resource."""
    return RestClient(_require_host(config))


@dataclass
class Client:
    """Chooses how to obtain a Kubernetes config and builds clients from it.

    The callables may be replaced, which is how tests supply fakes.
    """

    is_in_cluster: bool = False
    kube_config_path: str = ""
    get_in_cluster_config: Callable[[], RestConfig] = field(default=in_cluster_config)
    build_config_from_flags: Callable[[str, str], RestConfig] = field(
        default=build_config_from_flags
    )
    get_kube_clientset: Callable[[RestConfig], Any] = field(default=new_clientset)
    get_kube_dynamic_client: Callable[[RestConfig], Any] = field(default=new_dynamic_client)
    get_kube_master_ip_from_env: Callable[[str], str] = field(default=get_env)
    get_kube_config_path_from_env: Callable[[str], str] = field(default=get_env)

    def config_for_path_or_direct(self) -> RestConfig:
        """Use the kubeconfig path when set, otherwise :meth:`config`."""
        if self.kube_config_path:
            return self.config_for_path(self.kube_config_path)
        return self.config()

    def config_for_path(self, kube_config_path: str) -> RestConfig:
        """Build a config from the given kubeconfig path."""
        return self.build_config_from_flags("", kube_config_path)

    def config(self) -> RestConfig:
        """In-cluster when flagged, else from the environment, else in-cluster."""
        if self.is_in_cluster:
            return self.get_in_cluster_config()
        if (
            self.get_kube_master_ip_from_env(K8S_MASTER_IP_ENV_KEY).strip()
            or self.get_kube_config_path_from_env(KUBE_CONFIG_ENV_KEY).strip()
        ):
            return self.config_from_env()
        return self.get_in_cluster_config()

    def config_from_env(self) -> RestConfig:
        """Build a config from the master address and kubeconfig path in the environment."""
        master = self.get_kube_master_ip_from_env(K8S_MASTER_IP_ENV_KEY)
        kubeconfig = self.get_kube_config_path_from_env(KUBE_CONFIG_ENV_KEY)
        if not master.strip() and not kubeconfig.strip():
            raise ConfigError(
                "failed to get kubernetes config: missing ENV: atleast one should be set: "
                f"{{{K8S_MASTER_IP_ENV_KEY}}} or {{{KUBE_CONFIG_ENV_KEY}}}"
            )
        return self.build_config_from_flags(master, kubeconfig)

    def clientset(self) -> Any:
        """Return a new typed Kubernetes client."""
        try:
            config = self.config_for_path_or_direct()
        except Exception as err:
            raise ConfigError(
                "failed to get kubernetes clientset: "
                f"IsInCluster {{{str(self.is_in_cluster).lower()}}}: "
                f"KubeConfigPath {{{self.kube_config_path}}}: {err}"
            ) from err
        return self.get_kube_clientset(config)

    def dynamic(self) -> Any:
        """Return a new dynamic Kubernetes client."""
        try:
            config = self.config_for_path_or_direct()
        except Exception as err:
            raise ConfigError(f"failed to get dynamic client: {err}") from err
        return self.get_kube_dynamic_client(config)


_instance_lock = threading.Lock()
_instances: dict[str, Client] = {}


def instance(**kwargs: Any) -> Client:
    """Return the process-wide client, creating it from ``kwargs`` on first use."""
    with _instance_lock:
        if "client" not in _instances:
            _instances["client"] = Client(**kwargs)
        return _instances["client"]


def get_config(client: Client | None) -> RestConfig:
    """Return the Kubernetes config of ``client``."""
    if client is None:
        raise ConfigError("failed to get kubernetes config: nil client provided")
    return client.config_for_path_or_direct()