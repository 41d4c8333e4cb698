# File: placement_verifier/config.py
"""
Verifier configuration.

Loaded from an optional YAML file, then overridden from the environment.
Defaults match an OpenShift cluster installed on OpenStack.
"""

import os
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .api.errors import ConfigError

ENV_PREFIX = "PLACEMENT_VERIFIER_"


class KubeSettings(BaseModel):
    kubeconfig: Optional[str] = None
    context: Optional[str] = None
    node_label_selector: str = "node-role.kubernetes.io/master"
    provider_id_prefix: str = "openstack:///"
    machine_annotation: str = "machine.openshift.io/machine"
    machine_group: str = "machine.openshift.io"
    machine_version: str = "v1beta1"
    machine_resource: str = "machines"
    install_config_namespace: str = "kube-system"
    install_config_name: str = "cluster-config-v1"
    install_config_key: str = "install-config"


class OpenStackSettings(BaseModel):
    cloud: Optional[str] = None
    clouds_file: Optional[str] = None
    region_name: Optional[str] = None
    interface: str = "public"
    # Skips catalog lookup when set
    compute_endpoint: Optional[str] = None


class VerifierConfig(BaseModel):
    kube: KubeSettings = Field(default_factory=KubeSettings)
    openstack: OpenStackSettings = Field(default_factory=OpenStackSettings)
    max_workers: int = Field(default=4, ge=1)
    request_timeout: float = Field(default=30.0, gt=0)
    strict_membership: bool = False
    metrics_textfile: Optional[str] = None
    report_path: Optional[str] = None
    log_level: str = "INFO"
    log_file: Optional[str] = None


def _env_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for field_name in (
        "max_workers",
        "request_timeout",
        "strict_membership",
        "metrics_textfile",
        "report_path",
        "log_level",
        "log_file",
    ):
        value = environ.get(ENV_PREFIX + field_name.upper())
        if value is not None:
            overrides[field_name] = value

    kube: Dict[str, Any] = {}
    if environ.get("KUBECONFIG"):
        # Only the first entry of a path list is honoured
        kube["kubeconfig"] = environ["KUBECONFIG"].split(os.pathsep)[0]
    if kube:
        overrides["kube"] = kube

    openstack: Dict[str, Any] = {}
    for env_name, field_name in (
        ("OS_CLOUD", "cloud"),
        ("OS_CLIENT_CONFIG_FILE", "clouds_file"),
        ("OS_REGION_NAME", "region_name"),
    ):
        if environ.get(env_name):
            openstack[field_name] = environ[env_name]
    if openstack:
        overrides["openstack"] = openstack

    return overrides


def _merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(
    path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None
) -> VerifierConfig:
    """Build a VerifierConfig from `path` (YAML) and the environment."""
    environ = os.environ if environ is None else environ
    data: Dict[str, Any] = {}

    if path:
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")

    data = _merge(data, _env_overrides(environ))

    try:
        return VerifierConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
