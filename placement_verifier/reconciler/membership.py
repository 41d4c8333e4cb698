# File: placement_verifier/reconciler/membership.py
"""
Provider-side membership validation.

Resolves the declared server group name to exactly one Nova server group and
checks that every expected control-plane instance is one of its members.
"""

import logging
from dataclasses import dataclass
from typing import FrozenSet, List

from ..api.errors import GroupResolutionError, MembershipMismatch
from ..api.models import ExpectedTopology, PlacementGroup, normalize_instance_id

logger = logging.getLogger("placement_verifier.membership")


@dataclass(frozen=True)
class MembershipResult:
    group: PlacementGroup
    extra_members: FrozenSet[str] = frozenset()


def group_ids_from_name(groups: List[PlacementGroup], name: str) -> List[str]:
    """Zero or more group IDs whose name matches exactly."""
    return [g.id for g in groups if g.name == name]


def resolve_group_id(groups: List[PlacementGroup], name: str) -> str:
    ids = group_ids_from_name(groups, name)
    if not ids:
        raise GroupResolutionError(
            f"server group '{name}' was not found",
            {"group_name": name, "matches": 0},
        )
    if len(ids) > 1:
        raise GroupResolutionError(
            f"server group name '{name}' is not unique: {len(ids)} groups match",
            {"group_name": name, "matches": len(ids), "group_ids": sorted(ids)},
        )
    return ids[0]


def check_members(
    group: PlacementGroup, expected_ids: FrozenSet[str], strict: bool = False
) -> MembershipResult:
    """
    Assert expected_ids ⊆ group.members, comparing case-insensitively.

    Members outside the expected set are returned as `extra_members`; in
    strict mode they are a failure as well.
    """
    actual = {normalize_instance_id(m): m for m in group.members}
    expected = {normalize_instance_id(i): i for i in expected_ids}

    missing = sorted(expected[k] for k in expected.keys() - actual.keys())
    extra = frozenset(actual[k] for k in actual.keys() - expected.keys())

    if missing:
        raise MembershipMismatch(
            f"server group '{group.name}' ({group.id}) is missing control-plane "
            f"instances: {', '.join(missing)}",
            {
                "group_id": group.id,
                "group_name": group.name,
                "missing": missing,
                "members": sorted(group.members),
            },
        )
    if strict and extra:
        raise MembershipMismatch(
            f"server group '{group.name}' ({group.id}) has unexpected members: "
            f"{', '.join(sorted(extra))}",
            {"group_id": group.id, "group_name": group.name, "unexpected": sorted(extra)},
        )
    return MembershipResult(group=group, extra_members=extra)


def validate_provider_membership(
    compute, topology: ExpectedTopology, strict: bool = False
) -> MembershipResult:
    """
    `compute` must provide list_placement_groups() and get_placement_group(id).
    """
    group_id = resolve_group_id(compute.list_placement_groups(), topology.group_name)
    group = compute.get_placement_group(group_id)
    logger.info(
        f"Resolved server group '{topology.group_name}' to {group_id} "
        f"with {len(group.members)} members, policies {list(group.policies)}"
    )
    return check_members(group, topology.expected_instance_ids, strict=strict)
