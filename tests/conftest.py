import os
import sys
from typing import Dict, List, Optional, Tuple

import pytest

# Make the package importable when running from a source checkout
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from placement_verifier.api.errors import CollaboratorUnavailable
from placement_verifier.api.models import (
    InstallConfig,
    NodeRecord,
    PlacementGroup,
    ProviderInstance,
)

MACHINE_NAMESPACE = "openshift-machine-api"


def make_node(name: str, instance_id: str, machine: Optional[str] = None) -> NodeRecord:
    return NodeRecord(
        name=name,
        provider_id=f"openstack:///{instance_id}",
        annotations={"machine.openshift.io/machine": machine or f"{MACHINE_NAMESPACE}/{name}"},
    )


def machine_doc(server_group_name) -> Dict:
    return {
        "apiVersion": "machine.openshift.io/v1beta1",
        "kind": "Machine",
        "spec": {"providerSpec": {"value": {"serverGroupName": server_group_name}}},
    }


class FakeOrchestration:
    """In-memory orchestration layer recording every query."""

    def __init__(self, nodes=None, machines=None, install_config=None):
        self.nodes: List[NodeRecord] = list(nodes or [])
        self.machines: Dict[Tuple[str, str], Dict] = dict(machines or {})
        self.install_config = install_config or InstallConfig()
        self.calls: List[Tuple] = []

    def list_control_plane_nodes(self):
        self.calls.append(("list_control_plane_nodes",))
        return list(self.nodes)

    def get_machine(self, namespace, name):
        self.calls.append(("get_machine", namespace, name))
        try:
            return self.machines[(namespace, name)]
        except KeyError:
            raise CollaboratorUnavailable(
                f"GET machine {namespace}/{name} returned HTTP 404", {"status": 404}
            )

    def get_install_config(self):
        self.calls.append(("get_install_config",))
        return self.install_config


class FakeCompute:
    """In-memory compute provider recording every query."""

    def __init__(self, groups=None, instances=None):
        self.groups: List[PlacementGroup] = list(groups or [])
        self.instances: Dict[str, ProviderInstance] = dict(instances or {})
        self.calls: List[Tuple] = []

    def list_placement_groups(self):
        self.calls.append(("list_placement_groups",))
        return list(self.groups)

    def get_placement_group(self, group_id):
        self.calls.append(("get_placement_group", group_id))
        for group in self.groups:
            if group.id == group_id:
                return group
        raise CollaboratorUnavailable(f"server group {group_id} not found", {"status": 404})

    def get_provider_instance(self, instance_id):
        self.calls.append(("get_provider_instance", instance_id))
        try:
            return self.instances[instance_id]
        except KeyError:
            raise CollaboratorUnavailable(f"server {instance_id} not found", {"status": 404})


def build_cluster(
    group_names=("masters-sg", "masters-sg", "masters-sg"),
    hosts=("h1", "h2", "h3"),
    policy="anti-affinity",
    members=None,
    declared_policy=None,
) -> Tuple[FakeOrchestration, FakeCompute]:
    """Three control-plane nodes with instances a, b, c."""
    instance_ids = ["a", "b", "c"]
    nodes = [make_node(f"master-{i}", iid) for i, iid in enumerate(instance_ids)]
    machines = {
        (MACHINE_NAMESPACE, node.name): machine_doc(group)
        for node, group in zip(nodes, group_names)
    }
    orchestration = FakeOrchestration(
        nodes, machines, InstallConfig(server_group_policy=declared_policy)
    )
    compute = FakeCompute(
        groups=[
            PlacementGroup(
                id="sg-1",
                name="masters-sg",
                policies=(policy,),
                members=frozenset(members if members is not None else instance_ids),
            )
        ],
        instances={
            iid: ProviderInstance(id=iid, host_id=host, name=f"master-{i}")
            for i, (iid, host) in enumerate(zip(instance_ids, hosts))
        },
    )
    return orchestration, compute


@pytest.fixture
def cluster():
    return build_cluster()
