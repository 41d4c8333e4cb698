# File: placement_verifier/reconciler/aggregator.py
"""
Folds per-node declarations into the expected topology: one server group
name shared by every control-plane machine plus the set of instance IDs that
must belong to it.
"""

from concurrent.futures import Executor
from typing import Any, Callable, Dict, List, Optional

from ..api.errors import InconsistentDeclaration, MalformedInput
from ..api.models import ControlPlaneNode, ExpectedTopology, normalize_instance_id
from .identity import declared_group_name

GetMachine = Callable[[str, str], Dict[str, Any]]


def fetch_machines(
    nodes: List[ControlPlaneNode], get_machine: GetMachine, executor: Optional[Executor] = None
) -> List[Dict[str, Any]]:
    """Fetch every node's machine document; results keep node order."""
    mapper = executor.map if executor is not None else map
    return list(mapper(lambda n: get_machine(n.machine.namespace, n.machine.name), nodes))


def fold_expected_topology(
    nodes: List[ControlPlaneNode], machines: List[Dict[str, Any]]
) -> ExpectedTopology:
    if not nodes:
        raise MalformedInput("no control-plane nodes found", {"node_count": 0})

    group_name = ""
    baseline: Optional[ControlPlaneNode] = None
    for node, machine in zip(nodes, machines):
        name = declared_group_name(machine, node)
        if baseline is None:
            group_name, baseline = name, node
        elif name != group_name:
            raise InconsistentDeclaration(
                f"two Control plane Machines have different serverGroupName set: "
                f"instance {baseline.instance_id} declares '{group_name}', "
                f"instance {node.instance_id} declares '{name}'",
                {
                    "baseline_instance": baseline.instance_id,
                    "baseline_group": group_name,
                    "conflicting_instance": node.instance_id,
                    "conflicting_group": name,
                },
            )

    seen: Dict[str, ControlPlaneNode] = {}
    for node in nodes:
        key = normalize_instance_id(node.instance_id)
        if key in seen:
            other = seen[key]
            raise MalformedInput(
                f"nodes {other.name} and {node.name} report the same instance "
                f"({other.instance_id}, {node.instance_id})",
                {"instance": key, "nodes": [other.name, node.name]},
            )
        seen[key] = node

    return ExpectedTopology(group_name=group_name, expected_instance_ids=frozenset(seen))


def aggregate_expected_topology(
    nodes: List[ControlPlaneNode], get_machine: GetMachine, executor: Optional[Executor] = None
) -> ExpectedTopology:
    return fold_expected_topology(nodes, fetch_machines(nodes, get_machine, executor))
