"""Tests for the OpenStack compute client"""

from unittest.mock import MagicMock

import pytest
import requests
import yaml

from placement_verifier.api.compute_client import (
    PAGE_SIZE,
    CloudAuth,
    ComputeClient,
    load_cloud_auth,
)
from placement_verifier.api.errors import CollaboratorUnavailable, ConfigError
from placement_verifier.config import OpenStackSettings


def _response(body=None, status=200, headers=None):
    response = MagicMock()
    response.status_code = status
    response.json.return_value = body
    response.headers = headers or {}
    if status >= 400:
        error = requests.HTTPError(f"{status} error")
        error.response = response
        response.raise_for_status.side_effect = error
    return response


def _client(*responses):
    session = MagicMock()
    session.headers = {}
    session.get.side_effect = list(responses)
    return ComputeClient("https://nova.example/v2.1/", "tok", session=session), session


CATALOG = [
    {"type": "identity", "endpoints": [{"interface": "public", "url": "https://keystone"}]},
    {
        "type": "compute",
        "endpoints": [
            {"interface": "internal", "region_id": "RegionOne", "url": "https://nova-internal"},
            {"interface": "public", "region_id": "RegionTwo", "url": "https://nova-two"},
            {"interface": "public", "region_id": "RegionOne", "url": "https://nova-one"},
        ],
    },
]


class TestAuthenticate:
    def _session(self, response):
        session = MagicMock()
        session.headers = {}
        session.post.return_value = response
        return session

    def test_password_auth_and_catalog_lookup(self):
        session = self._session(
            _response({"token": {"catalog": CATALOG}}, headers={"X-Subject-Token": "tok-1"})
        )
        auth = CloudAuth(
            auth_url="https://keystone:5000",
            username="admin",
            password="pw",
            project_name="ocp",
            region_name="RegionOne",
        )
        client = ComputeClient.authenticate(auth, session=session)

        assert client.endpoint == "https://nova-one"
        assert session.headers["X-Auth-Token"] == "tok-1"
        url = session.post.call_args[0][0]
        assert url == "https://keystone:5000/v3/auth/tokens"
        body = session.post.call_args[1]["json"]
        assert body["auth"]["identity"]["password"]["user"]["name"] == "admin"
        assert body["auth"]["identity"]["password"]["user"]["domain"] == {"name": "Default"}
        assert body["auth"]["scope"]["project"]["name"] == "ocp"

    def test_application_credential_auth(self):
        session = self._session(
            _response({"token": {"catalog": CATALOG}}, headers={"X-Subject-Token": "tok"})
        )
        auth = CloudAuth(
            auth_url="https://keystone/v3",
            auth_type="v3applicationcredential",
            application_credential_id="id",
            application_credential_secret="secret",
        )
        ComputeClient.authenticate(auth, session=session, compute_endpoint="https://override")

        body = session.post.call_args[1]["json"]
        assert body["auth"]["identity"]["methods"] == ["application_credential"]
        assert session.post.call_args[0][0] == "https://keystone/v3/auth/tokens"

    def test_auth_failure(self):
        session = self._session(_response({}, status=401))
        with pytest.raises(CollaboratorUnavailable) as exc:
            ComputeClient.authenticate(CloudAuth(auth_url="https://keystone"), session=session)
        assert exc.value.context["status"] == 401

    def test_missing_compute_endpoint(self):
        session = self._session(
            _response({"token": {"catalog": CATALOG[:1]}}, headers={"X-Subject-Token": "tok"})
        )
        with pytest.raises(CollaboratorUnavailable):
            ComputeClient.authenticate(CloudAuth(auth_url="https://keystone"), session=session)


class TestComputeClient:
    def test_list_placement_groups(self):
        client, session = _client(
            _response(
                {
                    "server_groups": [
                        {"id": "1", "name": "masters-sg", "policies": ["anti-affinity"], "members": ["a"]},
                        {"id": "2", "name": "workers", "policy": "soft-anti-affinity", "members": []},
                    ]
                }
            )
        )
        groups = client.list_placement_groups()

        assert [g.id for g in groups] == ["1", "2"]
        assert groups[0].primary_policy == "anti-affinity"
        assert groups[1].policies == ("soft-anti-affinity",)
        assert session.get.call_args[0][0] == "https://nova.example/v2.1/os-server-groups"

    def test_list_placement_groups_pages(self):
        full_page = [{"id": str(i), "name": "g"} for i in range(PAGE_SIZE)]
        client, session = _client(
            _response({"server_groups": full_page}),
            _response({"server_groups": [{"id": "last", "name": "g"}]}),
        )
        groups = client.list_placement_groups()

        assert len(groups) == PAGE_SIZE + 1
        assert session.get.call_args_list[1][1]["params"]["offset"] == PAGE_SIZE

    def test_get_placement_group(self):
        client, _ = _client(
            _response(
                {"server_group": {"id": "1", "name": "masters-sg", "policies": ["anti-affinity"], "members": ["a", "b"]}}
            )
        )
        group = client.get_placement_group("1")
        assert group.members == frozenset({"a", "b"})

    def test_get_provider_instance(self):
        client, session = _client(_response({"server": {"id": "a", "name": "master-0", "hostId": "h1"}}))
        instance = client.get_provider_instance("a")

        assert instance.host_id == "h1"
        assert instance.name == "master-0"
        assert session.get.call_args[0][0].endswith("/servers/a")

    def test_not_found(self):
        client, _ = _client(_response({}, status=404))
        with pytest.raises(CollaboratorUnavailable):
            client.get_provider_instance("missing")

    def test_timeout(self):
        client, _ = _client(requests.Timeout("slow"))
        with pytest.raises(CollaboratorUnavailable):
            client.list_placement_groups()


class TestLoadCloudAuth:
    def _clouds(self, tmp_path, clouds):
        path = tmp_path / "clouds.yaml"
        path.write_text(yaml.safe_dump({"clouds": clouds}))
        return str(path)

    def test_selected_cloud(self, tmp_path):
        path = self._clouds(
            tmp_path,
            {
                "mycloud": {
                    "auth": {"auth_url": "https://keystone", "username": "u", "password": "p"},
                    "region_name": "RegionOne",
                    "cacert": "/etc/ca.pem",
                }
            },
        )
        auth = load_cloud_auth(OpenStackSettings(cloud="mycloud", clouds_file=path))

        assert auth.auth_url == "https://keystone"
        assert auth.username == "u"
        assert auth.region_name == "RegionOne"
        assert auth.verify == "/etc/ca.pem"

    def test_region_override(self, tmp_path):
        path = self._clouds(tmp_path, {"openstack": {"auth": {"auth_url": "https://k"}, "region_name": "A"}})
        auth = load_cloud_auth(OpenStackSettings(clouds_file=path, region_name="B"))
        assert auth.region_name == "B"

    def test_unknown_cloud(self, tmp_path):
        path = self._clouds(tmp_path, {"openstack": {"auth": {"auth_url": "https://k"}}})
        with pytest.raises(ConfigError):
            load_cloud_auth(OpenStackSettings(cloud="other", clouds_file=path))

    def test_missing_auth_url(self, tmp_path):
        path = self._clouds(tmp_path, {"openstack": {"auth": {}}})
        with pytest.raises(ConfigError):
            load_cloud_auth(OpenStackSettings(clouds_file=path))
