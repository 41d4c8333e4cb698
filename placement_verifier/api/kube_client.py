# File: placement_verifier/api/kube_client.py
"""
Kubernetes API client for the orchestration-layer view.

Read-only. Implements:
- Control-plane node listing (label selector, paginated)
- Machine custom-resource lookup
- install-config retrieval from the cluster-config ConfigMap
- Connection discovery from kubeconfig or in-cluster service account
"""

import base64
import logging
import os
import tempfile
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

import requests
import yaml

from ..config import KubeSettings
from .errors import CollaboratorUnavailable, ConfigError, MalformedInput
from .models import InstallConfig, NodeRecord
from .unstructured import Found, MissingKey, describe, lookup

logger = logging.getLogger("placement_verifier.kube")

SERVICE_ACCOUNT_DIR = "/var/run/secrets/kubernetes.io/serviceaccount"
DEFAULT_KUBECONFIG = os.path.join("~", ".kube", "config")
PAGE_SIZE = 500


@dataclass(frozen=True)
class KubeConnection:
    server: str
    token: Optional[str] = None
    verify: Union[bool, str] = True
    cert: Optional[Tuple[str, str]] = None
    # Files written for inline kubeconfig data; removed by KubeClient.close()
    temp_files: Tuple[str, ...] = ()


def _materialize(data_b64: str, suffix: str) -> str:
    """Write an inline base64 kubeconfig blob to a file requests can read."""
    handle = tempfile.NamedTemporaryFile(
        prefix="placement-verifier-", suffix=suffix, delete=False
    )
    with handle:
        handle.write(base64.b64decode(data_b64))
    return handle.name


def _named(entries: List[Dict[str, Any]], name: str, kind: str) -> Dict[str, Any]:
    for entry in entries or []:
        if entry.get("name") == name:
            return entry.get(kind) or {}
    raise ConfigError(f"kubeconfig has no {kind} named '{name}'")


def _from_kubeconfig(path: str, context_name: Optional[str]) -> KubeConnection:
    try:
        with open(path, "r") as f:
            kubeconfig = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read kubeconfig {path}: {e}") from e

    base_dir = os.path.dirname(os.path.abspath(path))

    def resolve(file_path: str) -> str:
        return file_path if os.path.isabs(file_path) else os.path.join(base_dir, file_path)

    context_name = context_name or kubeconfig.get("current-context")
    if not context_name:
        raise ConfigError(f"kubeconfig {path} has no current-context")

    context = _named(kubeconfig.get("contexts"), context_name, "context")
    cluster = _named(kubeconfig.get("clusters"), context.get("cluster"), "cluster")
    user = _named(kubeconfig.get("users"), context.get("user"), "user")

    server = cluster.get("server")
    if not server:
        raise ConfigError(f"kubeconfig cluster for context '{context_name}' has no server")

    temp_files: List[str] = []

    def materialize(data_b64: str, suffix: str) -> str:
        temp_files.append(_materialize(data_b64, suffix))
        return temp_files[-1]

    verify: Union[bool, str] = True
    if cluster.get("insecure-skip-tls-verify"):
        verify = False
    elif cluster.get("certificate-authority-data"):
        verify = materialize(cluster["certificate-authority-data"], ".crt")
    elif cluster.get("certificate-authority"):
        verify = resolve(cluster["certificate-authority"])

    cert = None
    if user.get("client-certificate-data") and user.get("client-key-data"):
        cert = (
            materialize(user["client-certificate-data"], ".crt"),
            materialize(user["client-key-data"], ".key"),
        )
    elif user.get("client-certificate") and user.get("client-key"):
        cert = (resolve(user["client-certificate"]), resolve(user["client-key"]))

    return KubeConnection(
        server=server,
        token=user.get("token"),
        verify=verify,
        cert=cert,
        temp_files=tuple(temp_files),
    )


def _in_cluster() -> KubeConnection:
    host = os.getenv("KUBERNETES_SERVICE_HOST")
    port = os.getenv("KUBERNETES_SERVICE_PORT", "443")
    token_path = os.path.join(SERVICE_ACCOUNT_DIR, "token")
    if not host or not os.path.exists(token_path):
        raise ConfigError("No kubeconfig found and not running inside a cluster")

    with open(token_path, "r") as f:
        token = f.read().strip()
    ca_path = os.path.join(SERVICE_ACCOUNT_DIR, "ca.crt")
    return KubeConnection(
        server=f"https://{host}:{port}",
        token=token,
        verify=ca_path if os.path.exists(ca_path) else True,
    )


def load_kube_connection(settings: KubeSettings) -> KubeConnection:
    """Resolve connection details: explicit kubeconfig, ~/.kube/config, in-cluster."""
    if settings.kubeconfig:
        return _from_kubeconfig(settings.kubeconfig, settings.context)

    default_path = os.path.expanduser(DEFAULT_KUBECONFIG)
    if os.path.exists(default_path):
        return _from_kubeconfig(default_path, settings.context)

    return _in_cluster()


def parse_install_config(text: str) -> InstallConfig:
    """Extract the declared control-plane server group policy."""
    try:
        document = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise MalformedInput(f"install-config is not valid YAML: {e}") from e

    result = lookup(
        document,
        "controlPlane",
        "platform",
        "openstack",
        "serverGroupPolicy",
        expected_type=str,
    )
    if isinstance(result, Found):
        return InstallConfig(server_group_policy=result.value or None)
    if isinstance(result, MissingKey):
        return InstallConfig(server_group_policy=None)
    raise MalformedInput(
        f"install-config serverGroupPolicy unreadable: {describe(result)}",
        {"path": result.path},
    )


class KubeClient:
    """Read-only view of nodes, machines and the install-config."""

    def __init__(
        self,
        connection: KubeConnection,
        settings: Optional[KubeSettings] = None,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.connection = connection
        self.settings = settings or KubeSettings()
        self.timeout = timeout
        self.session = session or requests.Session()
        if connection.token:
            self.session.headers["Authorization"] = f"Bearer {connection.token}"
        self.session.headers["Accept"] = "application/json"

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def close(self):
        """Close the HTTP session and remove credential files written for it."""
        self.session.close()
        for path in self.connection.temp_files:
            try:
                os.remove(path)
            except FileNotFoundError:
                pass
            else:
                logger.debug(f"Removed {path}")

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = self.connection.server.rstrip("/") + path
        logger.debug(f"GET {url} params={params}")
        try:
            response = self.session.get(
                url,
                params=params,
                timeout=self.timeout,
                verify=self.connection.verify,
                cert=self.connection.cert,
            )
            response.raise_for_status()
            return response.json()
        except requests.HTTPError as e:
            raise CollaboratorUnavailable(
                f"GET {path} returned HTTP {e.response.status_code}",
                {"url": url, "status": e.response.status_code},
            ) from e
        except (requests.RequestException, ValueError) as e:
            raise CollaboratorUnavailable(f"GET {path} failed: {e}", {"url": url}) from e

    def list_control_plane_nodes(self) -> List[NodeRecord]:
        nodes: List[NodeRecord] = []
        params: Dict[str, Any] = {
            "labelSelector": self.settings.node_label_selector,
            "limit": PAGE_SIZE,
        }
        while True:
            body = self._get("/api/v1/nodes", params=params)
            for item in body.get("items") or []:
                metadata = item.get("metadata") or {}
                spec = item.get("spec") or {}
                nodes.append(
                    NodeRecord(
                        name=metadata.get("name", ""),
                        provider_id=spec.get("providerID", ""),
                        annotations=dict(metadata.get("annotations") or {}),
                    )
                )
            token = (body.get("metadata") or {}).get("continue")
            if not token:
                break
            params = dict(params, **{"continue": token})

        logger.info(
            f"Listed {len(nodes)} nodes matching '{self.settings.node_label_selector}'"
        )
        return nodes

    def get_machine(self, namespace: str, name: str) -> Dict[str, Any]:
        s = self.settings
        return self._get(
            f"/apis/{s.machine_group}/{s.machine_version}"
            f"/namespaces/{namespace}/{s.machine_resource}/{name}"
        )

    def get_install_config(self) -> InstallConfig:
        s = self.settings
        configmap = self._get(
            f"/api/v1/namespaces/{s.install_config_namespace}/configmaps/{s.install_config_name}"
        )
        text = lookup(configmap, "data", s.install_config_key, expected_type=str)
        if not isinstance(text, Found):
            raise MalformedInput(
                f"ConfigMap {s.install_config_namespace}/{s.install_config_name}: "
                f"{describe(text)}",
                {"configmap": s.install_config_name, "key": s.install_config_key},
            )
        return parse_install_config(text.value)
