# File: placement_verifier/reconciler/physical.py
"""
Policy-specific physical distribution checks.

The resolved server group's primary policy decides whether hosts are checked.
The install-config policy is only a declared value cross-checked against it.
"""

from concurrent.futures import Executor
from typing import Callable, Dict, FrozenSet, List, Optional

from ..api.errors import MalformedInput, PhysicalPolicyViolation, PolicyMismatch
from ..api.models import (
    ANTI_AFFINITY,
    HostAssignment,
    InstallConfig,
    PlacementGroup,
    ProviderInstance,
    normalize_instance_id,
)

GetInstance = Callable[[str], ProviderInstance]


def check_declared_policy(group: PlacementGroup, install_config: InstallConfig):
    """Fail if a declared serverGroupPolicy disagrees with the group's policy."""
    declared = install_config.server_group_policy
    if declared and declared != group.primary_policy:
        actual = f"policy '{group.primary_policy}'" if group.primary_policy else "no policy"
        raise PolicyMismatch(
            f"install-config declares serverGroupPolicy '{declared}' but server group "
            f"'{group.name}' ({group.id}) has {actual}",
            {
                "group_id": group.id,
                "declared_policy": declared,
                "actual_policy": group.primary_policy,
            },
        )


def requires_distinct_hosts(group: PlacementGroup) -> bool:
    return group.primary_policy == ANTI_AFFINITY


def collect_host_assignment(
    instance_ids: FrozenSet[str], get_instance: GetInstance, executor: Optional[Executor] = None
) -> HostAssignment:
    ordered = sorted({normalize_instance_id(i) for i in instance_ids})
    mapper = executor.map if executor is not None else map
    instances: List[ProviderInstance] = list(mapper(get_instance, ordered))

    hosts: Dict[str, List[str]] = {}
    for instance_id, instance in zip(ordered, instances):
        if not instance.host_id:
            raise MalformedInput(
                f"instance {instance_id} reports no host ID",
                {"instance": instance_id},
            )
        hosts.setdefault(instance.host_id, []).append(instance_id)

    return HostAssignment(hosts={h: tuple(ids) for h, ids in hosts.items()})


def validate_anti_affinity(assignment: HostAssignment, expected_count: int):
    """Every expected instance must sit on its own host."""
    if len(assignment.hosts) == expected_count:
        return

    collisions = assignment.collisions
    details = "; ".join(
        f"{', '.join(ids)} on host {host}" for host, ids in sorted(collisions.items())
    )
    raise PhysicalPolicyViolation(
        f"Master nodes should be on different hosts when anti-affinity policy is used: "
        f"{details}",
        {
            "expected_hosts": expected_count,
            "distinct_hosts": len(assignment.hosts),
            "collisions": {h: list(ids) for h, ids in collisions.items()},
        },
    )
