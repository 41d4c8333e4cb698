#!/usr/bin/env python3
"""
Control-Plane Placement Verifier - Main Entry Point

Builds the Kubernetes and OpenStack clients from configuration, runs one
verification pass and reports the verdict.

Exit codes: 0 pass, 1 verification failure, 2 configuration error.
"""

import argparse
import logging
import sys
from typing import List, Optional

from .api.compute_client import ComputeClient, load_cloud_auth
from .api.diagnostic_logger import DiagnosticLogger, configure_logging
from .api.errors import ConfigError, VerificationError
from .api.kube_client import KubeClient, load_kube_connection
from .api.models import Verdict
from .config import VerifierConfig, load_config
from .metrics import export_textfile, record_run
from .reconciler.pipeline import TopologyVerifier

EXIT_PASS = 0
EXIT_FAIL = 1
EXIT_CONFIG = 2

logger = logging.getLogger("placement_verifier.main")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="placement-verifier",
        description="Verify that control-plane instances are placed according to their server group policy",
    )
    parser.add_argument("-c", "--config", help="YAML configuration file")
    parser.add_argument("--kubeconfig", help="Path to kubeconfig (overrides KUBECONFIG)")
    parser.add_argument("--os-cloud", help="Cloud name in clouds.yaml (overrides OS_CLOUD)")
    parser.add_argument(
        "--strict-membership",
        action="store_true",
        default=None,
        help="Fail when the server group has members outside the control plane",
    )
    parser.add_argument("--max-workers", type=int, help="Parallel fetches per stage")
    parser.add_argument("--report", dest="report_path", help="Write a JSON diagnostic report here")
    parser.add_argument("--metrics-textfile", help="Write Prometheus metrics to this file")
    parser.add_argument("--log-level", help="Logging level (default INFO)")
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def apply_overrides(config: VerifierConfig, args: argparse.Namespace) -> VerifierConfig:
    """Command-line flags take precedence over file and environment."""
    updates = {
        key: getattr(args, key)
        for key in ("strict_membership", "max_workers", "report_path", "metrics_textfile", "log_level")
        if getattr(args, key) is not None
    }
    if args.kubeconfig:
        updates["kube"] = config.kube.model_copy(update={"kubeconfig": args.kubeconfig})
    if args.os_cloud:
        updates["openstack"] = config.openstack.model_copy(update={"cloud": args.os_cloud})
    config = config.model_copy(update=updates)
    if config.max_workers < 1:
        raise ConfigError("--max-workers must be at least 1")
    return config


def build_verifier(config: VerifierConfig, diagnostics: DiagnosticLogger) -> TopologyVerifier:
    """Wire collaborator clients into a verifier."""
    kube = KubeClient(
        load_kube_connection(config.kube), settings=config.kube, timeout=config.request_timeout
    )
    try:
        compute = ComputeClient.authenticate(
            load_cloud_auth(config.openstack),
            timeout=config.request_timeout,
            compute_endpoint=config.openstack.compute_endpoint,
        )
    except Exception:
        kube.close()
        raise
    return TopologyVerifier(
        kube,
        compute,
        max_workers=config.max_workers,
        strict_membership=config.strict_membership,
        provider_prefix=config.kube.provider_id_prefix,
        machine_annotation=config.kube.machine_annotation,
        diagnostics=diagnostics,
    )


def print_report(verdict: Verdict):
    print(f"\n{'='*60}")
    print("Control Plane Placement Report")
    print(f"{'='*60}")
    print(f"Status: {'PASSED' if verdict.passed else 'FAILED'}")
    print(f"Control plane nodes: {verdict.listed_nodes}")
    for node in verdict.nodes:
        print(f"  - {node.name}: instance {node.instance_id} (machine {node.machine})")
    if verdict.topology:
        print(f"Server group: {verdict.topology.group_name}")
    if verdict.group:
        print(f"  ID: {verdict.group.id}")
        print(f"  Policy: {verdict.group.primary_policy}")
    if verdict.physical_check_skipped:
        print("Host distribution: skipped (policy is not anti-affinity)")
    elif verdict.host_assignment:
        print("Host distribution:")
        for host, ids in sorted(verdict.host_assignment.hosts.items()):
            print(f"  {host}: {', '.join(ids)}")
    for warning in verdict.warnings:
        print(f"Warning: {warning}")
    if verdict.error is not None:
        print(f"\nFailed at stage: {verdict.failed_stage.value}")
        print(f"  ✗ {verdict.error}")
    print(f"Duration: {verdict.duration_ms:.0f}ms")


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    try:
        config = apply_overrides(load_config(args.config), args)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    configure_logging(config.log_level, config.log_file)
    diagnostics = DiagnosticLogger()

    try:
        verifier = build_verifier(config, diagnostics)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG
    except VerificationError as e:
        # Authentication or catalog lookup failed before the pipeline started
        diagnostics.log_error(str(e), e.context)
        diagnostics.generate_report(config.report_path)
        record_run(False, failure_kind=e.kind)
        export_textfile(config.metrics_textfile)
        return EXIT_FAIL

    try:
        verdict = verifier.run()
    finally:
        verifier.close()
    print_report(verdict)

    diagnostics.generate_report(config.report_path)
    export_textfile(config.metrics_textfile)

    return EXIT_PASS if verdict.passed else EXIT_FAIL


if __name__ == "__main__":
    sys.exit(main())
