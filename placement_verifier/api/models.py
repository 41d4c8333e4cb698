# File: placement_verifier/api/models.py
"""
Snapshot records shared by the collaborator clients and the reconciler.

All records are frozen: they are fetched once per verification run and never
mutated afterwards.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

ANTI_AFFINITY = "anti-affinity"


def normalize_instance_id(instance_id: str) -> str:
    """Comparison key for provider instance IDs; Nova UUIDs are case-insensitive."""
    return instance_id.lower()


class Stage(Enum):
    INIT = "init"
    RESOLVE_IDENTITIES = "resolve_identities"
    AGGREGATE_EXPECTED_TOPOLOGY = "aggregate_expected_topology"
    VALIDATE_PROVIDER_MEMBERSHIP = "validate_provider_membership"
    VALIDATE_PHYSICAL_DISTRIBUTION = "validate_physical_distribution"
    PASS = "pass"
    FAIL = "fail"


@dataclass(frozen=True)
class NodeRecord:
    """Raw orchestration-layer node as returned by the node listing."""

    name: str
    provider_id: str
    annotations: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class MachineRef:
    namespace: str
    name: str

    def __str__(self):
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class ControlPlaneNode:
    """A node with its provider instance ID and owning machine resolved."""

    name: str
    instance_id: str
    machine: MachineRef


@dataclass(frozen=True)
class ExpectedTopology:
    group_name: str
    expected_instance_ids: FrozenSet[str]


@dataclass(frozen=True)
class PlacementGroup:
    id: str
    name: str
    policies: Tuple[str, ...] = ()
    members: FrozenSet[str] = frozenset()

    @property
    def primary_policy(self) -> Optional[str]:
        return self.policies[0] if self.policies else None


@dataclass(frozen=True)
class ProviderInstance:
    id: str
    host_id: str
    name: str = ""


@dataclass(frozen=True)
class InstallConfig:
    """Cluster-wide declared configuration. `None` means not declared."""

    server_group_policy: Optional[str] = None


@dataclass(frozen=True)
class HostAssignment:
    """Physical host → instance IDs placed on it."""

    hosts: Dict[str, Tuple[str, ...]] = field(default_factory=dict)

    @property
    def collisions(self) -> Dict[str, Tuple[str, ...]]:
        return {host: ids for host, ids in self.hosts.items() if len(ids) > 1}


@dataclass
class Verdict:
    """Outcome of one verification run."""

    passed: bool
    stage: Stage
    failed_stage: Optional[Stage] = None
    error: Optional[Exception] = None
    # Nodes returned by the listing; `nodes` holds those resolved before any failure
    listed_nodes: int = 0
    nodes: List[ControlPlaneNode] = field(default_factory=list)
    topology: Optional[ExpectedTopology] = None
    group: Optional[PlacementGroup] = None
    host_assignment: Optional[HostAssignment] = None
    physical_check_skipped: bool = False
    warnings: List[str] = field(default_factory=list)
    duration_ms: float = 0
