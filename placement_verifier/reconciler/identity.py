# File: placement_verifier/reconciler/identity.py
"""
Identity resolution.

Pure transformations over already-fetched records: node → provider instance
ID and owning machine, machine document → declared server group name.
"""

from typing import Any, Dict

from ..api.errors import MalformedInput
from ..api.models import ControlPlaneNode, MachineRef, NodeRecord
from ..api.unstructured import Found, describe, lookup

DEFAULT_PROVIDER_PREFIX = "openstack:///"
DEFAULT_MACHINE_ANNOTATION = "machine.openshift.io/machine"
SERVER_GROUP_PATH = ("spec", "providerSpec", "value", "serverGroupName")


def strip_provider_prefix(provider_id: str, prefix: str = DEFAULT_PROVIDER_PREFIX) -> str:
    """Remove `prefix` if present; a provider ID without it is returned as is."""
    if provider_id.startswith(prefix):
        return provider_id[len(prefix):]
    return provider_id


def parse_machine_ref(value: str, node_name: str = "") -> MachineRef:
    """Parse a `<namespace>/<name>` machine annotation."""
    parts = value.split("/", 1)
    if len(parts) != 2 or not all(parts):
        raise MalformedInput(
            f"node {node_name}: machine annotation '{value}' is not '<namespace>/<name>'",
            {"node": node_name, "annotation": value},
        )
    return MachineRef(namespace=parts[0], name=parts[1])


def resolve_identity(
    node: NodeRecord,
    provider_prefix: str = DEFAULT_PROVIDER_PREFIX,
    machine_annotation: str = DEFAULT_MACHINE_ANNOTATION,
) -> ControlPlaneNode:
    instance_id = strip_provider_prefix(node.provider_id or "", provider_prefix)
    if not instance_id:
        raise MalformedInput(
            f"node {node.name}: provider ID '{node.provider_id}' yields an empty instance ID",
            {"node": node.name, "provider_id": node.provider_id},
        )

    annotation = node.annotations.get(machine_annotation)
    if annotation is None:
        raise MalformedInput(
            f"node {node.name}: annotation '{machine_annotation}' is missing",
            {"node": node.name, "annotation_key": machine_annotation},
        )

    return ControlPlaneNode(
        name=node.name,
        instance_id=instance_id,
        machine=parse_machine_ref(annotation, node.name),
    )


def declared_group_name(machine: Dict[str, Any], node: ControlPlaneNode) -> str:
    """Server group name declared in the machine's provider spec; never empty."""
    result = lookup(machine, *SERVER_GROUP_PATH, expected_type=str)
    if not isinstance(result, Found):
        raise MalformedInput(
            f"machine {node.machine} (instance {node.instance_id}): "
            f"the server group name should be present in the Machine definition, "
            f"{describe(result)}",
            {"machine": str(node.machine), "instance": node.instance_id},
        )
    if not result.value:
        raise MalformedInput(
            f"machine {node.machine} (instance {node.instance_id}): "
            f"the server group name should not be the empty string",
            {"machine": str(node.machine), "instance": node.instance_id},
        )
    return result.value
