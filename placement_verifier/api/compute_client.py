# File: placement_verifier/api/compute_client.py
"""
OpenStack compute client for the provider-side view.

Authenticates against Keystone v3 (password or application credential),
discovers the compute endpoint from the service catalog, then reads server
groups and servers from Nova. Read-only.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

import requests
import yaml

from ..config import OpenStackSettings
from .errors import CollaboratorUnavailable, ConfigError
from .models import PlacementGroup, ProviderInstance

logger = logging.getLogger("placement_verifier.compute")

CLOUDS_YAML_LOCATIONS = [
    "clouds.yaml",
    os.path.join("~", ".config", "openstack", "clouds.yaml"),
    os.path.join("/etc", "openstack", "clouds.yaml"),
]
DEFAULT_CLOUD = "openstack"
PAGE_SIZE = 1000


@dataclass(frozen=True)
class CloudAuth:
    auth_url: str
    auth_type: str = "password"
    username: Optional[str] = None
    password: Optional[str] = None
    user_id: Optional[str] = None
    user_domain_name: Optional[str] = None
    user_domain_id: Optional[str] = None
    project_name: Optional[str] = None
    project_id: Optional[str] = None
    project_domain_name: Optional[str] = None
    project_domain_id: Optional[str] = None
    application_credential_id: Optional[str] = None
    application_credential_secret: Optional[str] = None
    region_name: Optional[str] = None
    interface: str = "public"
    verify: Union[bool, str] = True


def _find_clouds_file(settings: OpenStackSettings) -> str:
    if settings.clouds_file:
        return settings.clouds_file
    for candidate in CLOUDS_YAML_LOCATIONS:
        path = os.path.expanduser(candidate)
        if os.path.exists(path):
            return path
    raise ConfigError("No clouds.yaml found; set OS_CLIENT_CONFIG_FILE")


def load_cloud_auth(settings: OpenStackSettings) -> CloudAuth:
    """Read the selected cloud entry out of clouds.yaml."""
    path = _find_clouds_file(settings)
    try:
        with open(path, "r") as f:
            clouds = (yaml.safe_load(f) or {}).get("clouds") or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    cloud_name = settings.cloud or DEFAULT_CLOUD
    cloud = clouds.get(cloud_name)
    if not cloud:
        raise ConfigError(f"Cloud '{cloud_name}' not found in {path}")

    auth = cloud.get("auth") or {}
    if not auth.get("auth_url"):
        raise ConfigError(f"Cloud '{cloud_name}' has no auth_url")

    verify: Union[bool, str] = cloud.get("verify", True)
    if verify and cloud.get("cacert"):
        verify = cloud["cacert"]

    fields = {
        key: auth.get(key)
        for key in (
            "username",
            "password",
            "user_id",
            "user_domain_name",
            "user_domain_id",
            "project_name",
            "project_id",
            "project_domain_name",
            "project_domain_id",
            "application_credential_id",
            "application_credential_secret",
        )
    }
    return CloudAuth(
        auth_url=auth["auth_url"],
        auth_type=cloud.get("auth_type", "password"),
        region_name=settings.region_name or cloud.get("region_name"),
        interface=cloud.get("interface", settings.interface),
        verify=verify,
        **fields,
    )


def _token_request_body(auth: CloudAuth) -> Dict[str, Any]:
    if auth.auth_type == "v3applicationcredential":
        return {
            "auth": {
                "identity": {
                    "methods": ["application_credential"],
                    "application_credential": {
                        "id": auth.application_credential_id,
                        "secret": auth.application_credential_secret,
                    },
                }
            }
        }

    user: Dict[str, Any] = {"password": auth.password}
    if auth.user_id:
        user["id"] = auth.user_id
    else:
        user["name"] = auth.username
        if auth.user_domain_id:
            user["domain"] = {"id": auth.user_domain_id}
        else:
            user["domain"] = {"name": auth.user_domain_name or "Default"}

    body: Dict[str, Any] = {
        "auth": {"identity": {"methods": ["password"], "password": {"user": user}}}
    }
    if auth.project_id:
        body["auth"]["scope"] = {"project": {"id": auth.project_id}}
    elif auth.project_name:
        domain = (
            {"id": auth.project_domain_id}
            if auth.project_domain_id
            else {"name": auth.project_domain_name or "Default"}
        )
        body["auth"]["scope"] = {"project": {"name": auth.project_name, "domain": domain}}
    return body


def _compute_endpoint(catalog: List[Dict[str, Any]], auth: CloudAuth) -> str:
    for service in catalog:
        if service.get("type") != "compute":
            continue
        for endpoint in service.get("endpoints") or []:
            if endpoint.get("interface") != auth.interface:
                continue
            if auth.region_name and endpoint.get("region_id", endpoint.get("region")) != auth.region_name:
                continue
            return endpoint["url"]
    raise CollaboratorUnavailable(
        "No compute endpoint in the service catalog",
        {"interface": auth.interface, "region": auth.region_name},
    )


def _group_from_body(body: Dict[str, Any]) -> PlacementGroup:
    # Microversion 2.64 replaced the policies list with a single policy
    policies = body.get("policies")
    if not policies and body.get("policy"):
        policies = [body["policy"]]
    return PlacementGroup(
        id=body.get("id", ""),
        name=body.get("name", ""),
        policies=tuple(policies or ()),
        members=frozenset(body.get("members") or ()),
    )


class ComputeClient:
    """Read-only Nova view: server groups and servers."""

    def __init__(
        self,
        endpoint: str,
        token: str,
        timeout: float = 30.0,
        verify: Union[bool, str] = True,
        session: Optional[requests.Session] = None,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self.verify = verify
        self.session = session or requests.Session()
        self.session.headers["X-Auth-Token"] = token
        self.session.headers["Accept"] = "application/json"

    def close(self):
        self.session.close()

    @classmethod
    def authenticate(
        cls,
        auth: CloudAuth,
        timeout: float = 30.0,
        compute_endpoint: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ) -> "ComputeClient":
        """Obtain a Keystone token and build a client for the compute endpoint."""
        session = session or requests.Session()
        auth_url = auth.auth_url.rstrip("/")
        if not auth_url.endswith("/v3"):
            auth_url += "/v3"

        try:
            response = session.post(
                f"{auth_url}/auth/tokens",
                json=_token_request_body(auth),
                timeout=timeout,
                verify=auth.verify,
            )
            response.raise_for_status()
            token = response.headers["X-Subject-Token"]
            catalog = response.json().get("token", {}).get("catalog") or []
        except requests.HTTPError as e:
            raise CollaboratorUnavailable(
                f"Keystone authentication returned HTTP {e.response.status_code}",
                {"auth_url": auth_url, "status": e.response.status_code},
            ) from e
        except (requests.RequestException, KeyError, ValueError) as e:
            raise CollaboratorUnavailable(
                f"Keystone authentication failed: {e}", {"auth_url": auth_url}
            ) from e

        endpoint = compute_endpoint or _compute_endpoint(catalog, auth)
        logger.info(f"Authenticated against {auth_url}; compute endpoint {endpoint}")
        return cls(endpoint, token, timeout=timeout, verify=auth.verify, session=session)

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = self.endpoint + path
        logger.debug(f"GET {url} params={params}")
        try:
            response = self.session.get(
                url, params=params, timeout=self.timeout, verify=self.verify
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

    def list_placement_groups(self) -> List[PlacementGroup]:
        groups: List[PlacementGroup] = []
        offset = 0
        while True:
            body = self._get(
                "/os-server-groups", params={"limit": PAGE_SIZE, "offset": offset}
            )
            page = body.get("server_groups") or []
            groups.extend(_group_from_body(g) for g in page)
            if len(page) < PAGE_SIZE:
                break
            offset += len(page)
        return groups

    def get_placement_group(self, group_id: str) -> PlacementGroup:
        body = self._get(f"/os-server-groups/{group_id}")
        return _group_from_body(body.get("server_group") or {})

    def get_provider_instance(self, instance_id: str) -> ProviderInstance:
        server = self._get(f"/servers/{instance_id}").get("server") or {}
        return ProviderInstance(
            id=server.get("id", instance_id),
            host_id=server.get("hostId", ""),
            name=server.get("name", ""),
        )
