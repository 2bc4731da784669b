"""Pre-flight readiness checks for LoadBalancer provisioning.

Validates prerequisites before touching the cluster:
- kubectl binary on PATH
- Cluster API reachable
- MetalLB manifest URL reachable
"""

import logging
import shutil

import requests

from common import CommandExecutor, call_executor
from config import LoadBalancerSettings

logger = logging.getLogger(__name__)


def validate_kubectl(kubectl: str = 'kubectl') -> tuple[bool, str]:
    """Check the kubectl binary can be found.

    Returns:
        (success, message) tuple
    """
    path = shutil.which(kubectl)
    if not path:
        return False, (
            f"'{kubectl}' not found on PATH.\n"
            f"  Install kubectl or set 'kubectl' in the lb-driver config file"
        )
    return True, f"kubectl found at {path}"


def validate_cluster_reachable(executor: CommandExecutor) -> tuple[bool, str]:
    """Check the cluster API answers `kubectl cluster-info`.

    Returns:
        (success, message) tuple
    """
    result = call_executor(executor, ['cluster-info'])
    if not result.success:
        detail = (result.error or result.data or '').strip() or 'no output'
        return False, f"Cluster not reachable: {detail.splitlines()[0]}"
    first_line = (result.data or '').strip().splitlines()
    return True, first_line[0] if first_line else "Cluster reachable"


def validate_manifest_url(url: str, timeout: float = 10.0) -> tuple[bool, str]:
    """Check the controller manifest can be downloaded.

    Args:
        url: Manifest URL passed to kubectl apply -f
        timeout: Request timeout in seconds

    Returns:
        (success, message) tuple
    """
    try:
        resp = requests.head(url, allow_redirects=True, timeout=timeout)

        if resp.status_code == 200:
            return True, f"Manifest reachable: {url}"

        return False, f"Unexpected response for manifest: {resp.status_code} - {url}"

    except requests.exceptions.ConnectionError as e:
        return False, f"Cannot connect to {url}: {e}"
    except requests.exceptions.Timeout:
        return False, f"Timeout fetching {url}"
    except requests.exceptions.RequestException as e:
        return False, f"Error checking manifest URL: {e}"


def run_preflight_checks(settings: LoadBalancerSettings, executor: CommandExecutor,
                         check_manifest: bool = True) -> tuple[bool, list[tuple[str, bool, str]]]:
    """Run all preflight checks.

    The cluster check is skipped when kubectl itself is missing.

    Returns:
        (success, results) where results is a list of (check, passed, message)
    """
    results: list[tuple[str, bool, str]] = []

    ok, message = validate_kubectl(settings.kubectl)
    results.append(('kubectl', ok, message))

    if ok:
        ok, message = validate_cluster_reachable(executor)
        results.append(('cluster', ok, message))

    if check_manifest:
        ok, message = validate_manifest_url(settings.manifest_url)
        results.append(('manifest', ok, message))

    for name, passed, message in results:
        if not passed:
            logger.debug(f"Preflight {name} failed: {message}")

    return all(passed for _, passed, _ in results), results


def format_preflight_results(results: list[tuple[str, bool, str]]) -> str:
    """Format preflight check results for display."""
    lines = ["\nPreflight checks:\n"]

    for _name, passed, message in results:
        first_line, *rest = message.split('\n')
        lines.append(f"{'✓' if passed else '✗'} {first_line}")
        for line in rest:
            lines.append(f"  {line}")

    lines.append("")
    if all(passed for _, passed, _ in results):
        lines.append("All checks passed. Ready to configure.")
    else:
        lines.append("Some checks failed. Fix issues before configuring.")

    return '\n'.join(lines)
