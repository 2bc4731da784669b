#!/usr/bin/env python3
"""CLI entry point for lb-driver.

Commands:
- status: Detect whether the cluster can assign LoadBalancer addresses
- configure: Install and configure MetalLB (idempotent)
- remove: Delete the MetalLB installation manifest
- detect-range: Suggest a pool range for a node IP (no cluster access)
- preflight: Check kubectl, cluster and manifest URL
"""

import argparse
import json
import logging
import sys
import time
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from common import KubectlExecutor
from config import ConfigError, LoadBalancerSettings, load_settings
from loadbalancer import (
    LoadBalancerConfiguration,
    LoadBalancerStatus,
    ProvisioningWorkflow,
    StatusProbe,
    detect_range,
)
from readiness import format_preflight_results, run_preflight_checks

logger = logging.getLogger(__name__)


def get_version() -> str:
    """Installed package version, or 'dev' when running from a checkout."""
    try:
        return version('lb-driver')
    except PackageNotFoundError:
        return 'dev'


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lb-driver",
        description="Detect and provision LoadBalancer support (MetalLB) on a Kubernetes cluster",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {get_version()}")
    parser.add_argument("--config", "-c", type=Path, help="Settings file (YAML)")
    parser.add_argument("--context", help="kubectl context to use")
    parser.add_argument("--kubeconfig", help="kubeconfig file to use")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")

    sub = parser.add_subparsers(dest="command", metavar="<command>")

    status = sub.add_parser("status", help="Show LoadBalancer status")
    status.add_argument("--json", action="store_true", help="Output status as JSON")

    configure = sub.add_parser("configure", help="Install and configure MetalLB")
    range_group = configure.add_mutually_exclusive_group()
    range_group.add_argument("--ip-range", help="Address range A.B.C.D-A.B.C.D for the pool")
    range_group.add_argument(
        "--auto-detect",
        action="store_true",
        help="Derive the range from the node IP (default when --ip-range is not given)",
    )
    configure.add_argument("--dry-run", action="store_true", help="Show phases without executing")
    configure.add_argument("--skip-preflight", action="store_true", help="Skip preflight checks")
    configure.add_argument(
        "--verify",
        action="store_true",
        help="Re-check status after the configured reprobe delay",
    )
    configure.add_argument("--json", action="store_true", help="Output result as JSON")

    sub.add_parser("remove", help="Remove MetalLB")

    detect = sub.add_parser("detect-range", help="Suggest a pool range for a node IP")
    detect.add_argument("node_ip", help="Node InternalIP (e.g., 172.18.0.5)")

    preflight = sub.add_parser("preflight", help="Run preflight checks")
    preflight.add_argument("--skip-manifest", action="store_true", help="Do not check the manifest URL")

    return parser


def create_executor(settings: LoadBalancerSettings) -> KubectlExecutor:
    """Build the kubectl executor from settings."""
    return KubectlExecutor(
        kubectl=settings.kubectl,
        context=settings.context or None,
        kubeconfig=settings.kubeconfig or None,
        timeout=settings.command_timeout,
    )


def format_status(status: LoadBalancerStatus) -> str:
    """Human-readable status summary."""
    state = "configured" if status.is_configured else "not configured"
    details = status.provider.value
    if status.version:
        details += f", version {status.version}"
    lines = [f"LoadBalancer: {state} ({details})"]

    if status.ip_pools:
        lines.append("IP pools:")
        for pool in status.ip_pools:
            lines.append(f"  {pool.name}: {', '.join(pool.addresses) or '(no addresses)'}")

    if status.services:
        lines.append("Services with external addresses:")
        for svc in status.services:
            ports = f" ({svc.ports})" if svc.ports else ""
            lines.append(f"  {svc.namespace}/{svc.name}: {svc.external_ip}{ports}")

    if status.error:
        label = "Note" if status.is_configured else "Error"
        lines.append(f"{label}: {status.error}")

    return '\n'.join(lines)


def cmd_status(args, settings: LoadBalancerSettings, executor) -> int:
    probe = StatusProbe(executor, namespace=settings.namespace, classify_cloud=settings.classify_cloud)
    status = probe.check_status()
    if args.json:
        print(json.dumps(status.to_dict(), indent=2))
    else:
        print(format_status(status))
    return 0 if status.is_configured else 1


def cmd_configure(args, settings: LoadBalancerSettings, executor) -> int:
    try:
        lb_config = LoadBalancerConfiguration(
            ip_range=args.ip_range or '',
            auto_detect_range=args.auto_detect or not args.ip_range,
        )
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    workflow = ProvisioningWorkflow(executor, settings)
    if args.dry_run:
        workflow.preview(lb_config)
        return 0

    if not args.skip_preflight:
        passed, results = run_preflight_checks(settings, executor)
        if not passed:
            print(format_preflight_results(results))
            return 1

    result = workflow.configure(lb_config)

    status = None
    if result.success and args.verify:
        logger.info(f"Waiting {settings.reprobe_delay}s before re-checking status...")
        time.sleep(settings.reprobe_delay)
        probe = StatusProbe(executor, namespace=settings.namespace, classify_cloud=settings.classify_cloud)
        status = probe.check_status()

    if args.json:
        output = {'success': result.success, 'error': result.error}
        if status is not None:
            output['status'] = status.to_dict()
        print(json.dumps(output, indent=2))
    elif result.success:
        print("MetalLB configured.")
        if status is not None:
            print(format_status(status))
    else:
        print(f"Error: {result.error}")

    if not result.success:
        return 1
    if status is not None and not status.is_configured:
        return 1
    return 0


def cmd_remove(_args, settings: LoadBalancerSettings, executor) -> int:
    result = ProvisioningWorkflow(executor, settings).remove()
    if not result.success:
        print(f"Error: {result.error}")
        return 1
    print("MetalLB removed.")
    return 0


def cmd_detect_range(args) -> int:
    suggestion = detect_range(args.node_ip)
    if suggestion is None:
        print(f"No range suggestion for {args.node_ip}; pass --ip-range explicitly")
        return 1
    print(suggestion)
    return 0


def cmd_preflight(args, settings: LoadBalancerSettings, executor) -> int:
    passed, results = run_preflight_checks(settings, executor, check_manifest=not args.skip_manifest)
    print(format_preflight_results(results))
    return 0 if passed else 1


COMMANDS = {
    'status': cmd_status,
    'configure': cmd_configure,
    'remove': cmd_remove,
    'preflight': cmd_preflight,
}


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    if not args.command:
        parser.print_help()
        return 1

    if args.command == 'detect-range':
        return cmd_detect_range(args)

    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        print(f"Error: {e}")
        return 1

    if args.context:
        settings.context = args.context
    if args.kubeconfig:
        settings.kubeconfig = args.kubeconfig

    executor = create_executor(settings)
    return COMMANDS[args.command](args, settings, executor)


if __name__ == '__main__':
    sys.exit(main())
