#!/usr/bin/env python3
"""
Control-Plane Topology Verifier

Correlates three views of the control-plane machines and asserts they agree:
- Orchestration layer: which nodes are control-plane members
- Machine records: each node's instance ID and declared server group
- Compute provider: server group membership and physical host placement

Runs once, never mutates anything, and fails fast on the first stage that
detects a violation.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from ..api.diagnostic_logger import DiagnosticLogger
from ..api.errors import VerificationError
from ..api.models import Stage, Verdict
from ..metrics import record_run
from .aggregator import aggregate_expected_topology
from .identity import DEFAULT_MACHINE_ANNOTATION, DEFAULT_PROVIDER_PREFIX, resolve_identity
from .membership import validate_provider_membership
from .physical import (
    check_declared_policy,
    collect_host_assignment,
    requires_distinct_hosts,
    validate_anti_affinity,
)

logger = logging.getLogger("placement_verifier.pipeline")


class TopologyVerifier:
    """
    One-shot verification pipeline.

    `orchestration` must provide list_control_plane_nodes(),
    get_machine(namespace, name) and get_install_config().
    `compute` must provide list_placement_groups(), get_placement_group(id)
    and get_provider_instance(id).
    """

    def __init__(
        self,
        orchestration,
        compute,
        max_workers: int = 4,
        strict_membership: bool = False,
        provider_prefix: str = DEFAULT_PROVIDER_PREFIX,
        machine_annotation: str = DEFAULT_MACHINE_ANNOTATION,
        diagnostics: Optional[DiagnosticLogger] = None,
    ):
        self.orchestration = orchestration
        self.compute = compute
        self.max_workers = max_workers
        self.strict_membership = strict_membership
        self.provider_prefix = provider_prefix
        self.machine_annotation = machine_annotation
        self.diagnostics = diagnostics or DiagnosticLogger()

    def close(self):
        """Release collaborator resources (sessions, credential files)."""
        for client in (self.orchestration, self.compute):
            close = getattr(client, "close", None)
            if close is not None:
                close()

    def run(self) -> Verdict:
        """
        Perform one verification pass.

        Steps:
        1. Resolve node identities (instance ID, machine reference)
        2. Aggregate the expected topology from machine declarations
        3. Validate server group membership on the provider
        4. Validate physical host distribution (anti-affinity only)
        """
        start_time = time.time()
        verdict = Verdict(passed=False, stage=Stage.INIT)

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            try:
                self._verify(verdict, executor)
                verdict.passed = True
                verdict.stage = Stage.PASS
                self.diagnostics.log_success(
                    f"control plane placement verified for server group "
                    f"'{verdict.topology.group_name}'"
                )
            except VerificationError as e:
                verdict.failed_stage = verdict.stage
                verdict.stage = Stage.FAIL
                verdict.error = e
                self.diagnostics.log_error(
                    str(e), dict(e.context, stage=verdict.failed_stage.value)
                )

        verdict.duration_ms = (time.time() - start_time) * 1000

        record_run(
            verdict.passed,
            failure_kind=verdict.error.kind if verdict.error is not None else None,
            duration_ms=verdict.duration_ms,
            control_plane_nodes=verdict.listed_nodes,
        )

        return verdict

    def _enter(self, verdict: Verdict, stage: Stage, detail: str = ""):
        verdict.stage = stage
        self.diagnostics.log_stage(stage.value, detail)

    def _verify(self, verdict: Verdict, executor: ThreadPoolExecutor):
        self._enter(verdict, Stage.RESOLVE_IDENTITIES)
        records = self.orchestration.list_control_plane_nodes()
        verdict.listed_nodes = len(records)
        for record in records:
            verdict.nodes.append(
                resolve_identity(record, self.provider_prefix, self.machine_annotation)
            )

        self._enter(
            verdict, Stage.AGGREGATE_EXPECTED_TOPOLOGY, f"{len(verdict.nodes)} control-plane nodes"
        )
        verdict.topology = aggregate_expected_topology(
            verdict.nodes, self.orchestration.get_machine, executor
        )

        self._enter(
            verdict,
            Stage.VALIDATE_PROVIDER_MEMBERSHIP,
            f"server group '{verdict.topology.group_name}'",
        )
        membership = validate_provider_membership(
            self.compute, verdict.topology, strict=self.strict_membership
        )
        verdict.group = membership.group
        if membership.extra_members:
            message = (
                f"server group '{membership.group.name}' has members outside the "
                f"control plane: {', '.join(sorted(membership.extra_members))}"
            )
            verdict.warnings.append(message)
            self.diagnostics.log_warning(
                message, {"group_id": membership.group.id, "extra": sorted(membership.extra_members)}
            )

        self._enter(
            verdict,
            Stage.VALIDATE_PHYSICAL_DISTRIBUTION,
            f"policy '{verdict.group.primary_policy}'",
        )
        check_declared_policy(verdict.group, self.orchestration.get_install_config())
        if not requires_distinct_hosts(verdict.group):
            verdict.physical_check_skipped = True
            logger.info(
                f"Skipping host distribution check for policy '{verdict.group.primary_policy}'"
            )
            return

        verdict.host_assignment = collect_host_assignment(
            verdict.topology.expected_instance_ids,
            self.compute.get_provider_instance,
            executor,
        )
        validate_anti_affinity(
            verdict.host_assignment, len(verdict.topology.expected_instance_ids)
        )
