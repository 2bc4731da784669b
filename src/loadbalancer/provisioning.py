"""MetalLB installation and configuration.

configure() runs its phases strictly in order and stops at the first genuine
failure:

    detect -> install -> wait -> resolve_range -> pool -> advertisement

kubectl apply does not report "already in place" as a distinct result, so the
install, pool and advertisement phases classify success from the output text
(see apply_succeeded). The wait phase is allowed to fail: readiness is
re-checked by the caller through StatusProbe after a delay.

Two configure() calls running at once against the same cluster are not
guarded against.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

from common import ActionResult, CommandExecutor, ExecResult, Err, call_apply, call_executor, output_text
from config import LoadBalancerSettings
from loadbalancer import manifests
from loadbalancer.models import (
    LoadBalancerConfiguration,
    LoadBalancerStatus,
    NodeList,
    OperationResult,
    Provider,
    parse_resource,
)
from loadbalancer.network import detect_range, is_valid_range
from loadbalancer.probe import StatusProbe

logger = logging.getLogger(__name__)

APPLY_SUCCESS_MARKERS = ('unchanged', 'configured', 'created', 'applied')
ALREADY_EXISTS_MARKER = 'already exists'


def apply_succeeded(result: ExecResult, tolerate_existing: bool = False) -> bool:
    """Classify an apply result.

    Successful when the executor says so, or when the output contains one of
    APPLY_SUCCESS_MARKERS (plus 'already exists' if tolerate_existing).
    """
    if result.success:
        return True
    text = output_text(result).lower()
    markers = APPLY_SUCCESS_MARKERS + ((ALREADY_EXISTS_MARKER,) if tolerate_existing else ())
    return any(marker in text for marker in markers)


def controller_present(status: LoadBalancerStatus) -> bool:
    """True when the controller deployment exists, ready or not.

    check_controller() only reports a version once the deployment was found.
    """
    return status.provider is Provider.METALLB and (status.is_configured or status.version is not None)


def _failure_detail(result: ExecResult) -> str:
    return f"Output: [{(result.data or '').strip()}], Error: [{(result.error or '').strip()}]"


@dataclass
class DetectControllerAction:
    """Decide whether the controller manifest is already installed."""
    name: str
    namespace: str

    def run(self, executor: CommandExecutor, context: dict) -> ActionResult:
        start = time.time()
        status = StatusProbe(executor, namespace=self.namespace).check_controller()
        installed = controller_present(status)
        if installed:
            message = "MetalLB controller already installed"
            if status.error:
                message += f" ({status.error})"
        else:
            message = "MetalLB controller not installed"
        logger.info(f"[{self.name}] {message}")
        return ActionResult(
            success=True,
            message=message,
            duration=time.time() - start,
            context_updates={'controller_installed': installed},
        )


@dataclass
class InstallControllerAction:
    """Apply the MetalLB native manifest by URL."""
    name: str
    manifest_url: str

    def run(self, executor: CommandExecutor, context: dict) -> ActionResult:
        start = time.time()
        if context.get('controller_installed'):
            return ActionResult(
                success=True,
                message="Controller already installed, skipping manifest",
                duration=time.time() - start
            )

        logger.info(f"[{self.name}] Applying {self.manifest_url}...")
        result = call_executor(executor, ['apply', '--validate=false', '-f', self.manifest_url])
        if not apply_succeeded(result):
            return ActionResult(
                success=False,
                message=f"Failed to install MetalLB manifest. {_failure_detail(result)}",
                duration=time.time() - start
            )

        return ActionResult(
            success=True,
            message="MetalLB manifest applied",
            duration=time.time() - start
        )


@dataclass
class WaitForControllerAction:
    """Bounded wait for MetalLB pods. Never fatal."""
    name: str
    namespace: str
    selector: str = 'app=metallb'
    timeout: int = 90

    def run(self, executor: CommandExecutor, context: dict) -> ActionResult:
        start = time.time()
        logger.info(f"[{self.name}] Waiting up to {self.timeout}s for pods ({self.selector})...")
        result = call_executor(executor, [
            'wait',
            '--namespace', self.namespace,
            '--for=condition=ready',
            'pod',
            f'--selector={self.selector}',
            f'--timeout={self.timeout}s',
        ])
        if not result.success:
            return ActionResult(
                success=False,
                message=f"MetalLB pods not ready yet: {result.error or result.data}",
                duration=time.time() - start,
                continue_on_failure=True
            )

        return ActionResult(
            success=True,
            message="MetalLB pods ready",
            duration=time.time() - start
        )


@dataclass
class ResolveRangeAction:
    """Pick the pool address range: auto-detected or explicit."""
    name: str
    ip_range: str = ''
    auto_detect: bool = False

    def run(self, executor: CommandExecutor, context: dict) -> ActionResult:
        start = time.time()

        if self.auto_detect:
            node_ip = self._node_internal_ip(executor)
            ip_range = detect_range(node_ip) if node_ip else None
            if not ip_range:
                return ActionResult(
                    success=False,
                    message=f"Unable to determine IP range for LoadBalancer (node IP: {node_ip or 'unknown'})",
                    duration=time.time() - start
                )
            logger.info(f"[{self.name}] Detected range {ip_range} from node IP {node_ip}")
        else:
            ip_range = (self.ip_range or '').strip()
            if not ip_range:
                return ActionResult(
                    success=False,
                    message="Unable to determine IP range for LoadBalancer",
                    duration=time.time() - start
                )
            if not is_valid_range(ip_range):
                return ActionResult(
                    success=False,
                    message=f"Invalid IP range '{ip_range}': expected A.B.C.D-A.B.C.D",
                    duration=time.time() - start
                )

        return ActionResult(
            success=True,
            message=f"Using IP range {ip_range}",
            duration=time.time() - start,
            context_updates={'ip_range': ip_range}
        )

    def _node_internal_ip(self, executor: CommandExecutor) -> Optional[str]:
        result = call_executor(executor, ['get', 'nodes', '-o', 'json'])
        if not result.success and not (result.data or '').strip():
            logger.warning(f"[{self.name}] Could not list nodes: {result.error}")
            return None
        parsed = parse_resource(result.data, NodeList)
        if isinstance(parsed, Err):
            logger.warning(f"[{self.name}] Could not parse nodes: {parsed.message}")
            return None
        if parsed.value is None:
            return None
        for node in parsed.value.items:
            if node.internal_ip:
                return node.internal_ip
        return None


@dataclass
class ApplyIPAddressPoolAction:
    """Create or update the IPAddressPool."""
    name: str
    namespace: str
    pool_name: str

    def run(self, executor: CommandExecutor, context: dict) -> ActionResult:
        start = time.time()
        ip_range = context.get('ip_range')
        if not ip_range:
            return ActionResult(
                success=False,
                message="No ip_range in context",
                duration=time.time() - start
            )

        logger.info(f"[{self.name}] Applying IPAddressPool {self.pool_name} ({ip_range})...")
        result = call_apply(executor, manifests.ip_address_pool(self.pool_name, self.namespace, ip_range))
        if not apply_succeeded(result, tolerate_existing=True):
            return ActionResult(
                success=False,
                message=f"Failed to create IP address pool. {_failure_detail(result)}",
                duration=time.time() - start
            )

        return ActionResult(
            success=True,
            message=f"IPAddressPool {self.pool_name} applied",
            duration=time.time() - start
        )


@dataclass
class ApplyL2AdvertisementAction:
    """Create or update the L2Advertisement for the pool."""
    name: str
    namespace: str
    advertisement_name: str
    pool_name: str

    def run(self, executor: CommandExecutor, context: dict) -> ActionResult:
        start = time.time()
        logger.info(f"[{self.name}] Applying L2Advertisement {self.advertisement_name}...")
        result = call_apply(
            executor,
            manifests.l2_advertisement(self.advertisement_name, self.namespace, self.pool_name),
        )
        if not apply_succeeded(result, tolerate_existing=True):
            return ActionResult(
                success=False,
                message=f"Failed to create L2 advertisement. {_failure_detail(result)}",
                duration=time.time() - start
            )

        return ActionResult(
            success=True,
            message=f"L2Advertisement {self.advertisement_name} applied",
            duration=time.time() - start
        )


class ProvisioningWorkflow:
    """Installs, configures and removes MetalLB through a CommandExecutor."""

    def __init__(self, executor: CommandExecutor, settings: Optional[LoadBalancerSettings] = None):
        self.executor = executor
        self.settings = settings or LoadBalancerSettings()

    def get_phases(self, config: LoadBalancerConfiguration) -> list[tuple[str, Any, str]]:
        """Return list of (phase_name, action, description) tuples."""
        s = self.settings
        return [
            ('detect', DetectControllerAction(
                name='detect-controller',
                namespace=s.namespace,
            ), 'Check for an existing MetalLB controller'),

            ('install', InstallControllerAction(
                name='install-metallb',
                manifest_url=s.manifest_url,
            ), 'Apply MetalLB manifest'),

            ('wait', WaitForControllerAction(
                name='wait-for-metallb',
                namespace=s.namespace,
                timeout=s.wait_timeout,
            ), 'Wait for MetalLB pods'),

            ('resolve_range', ResolveRangeAction(
                name='resolve-range',
                ip_range=config.ip_range,
                auto_detect=config.auto_detect_range,
            ), 'Resolve pool address range'),

            ('pool', ApplyIPAddressPoolAction(
                name='apply-pool',
                namespace=s.namespace,
                pool_name=s.pool_name,
            ), 'Apply IPAddressPool'),

            ('advertisement', ApplyL2AdvertisementAction(
                name='apply-l2-advertisement',
                namespace=s.namespace,
                advertisement_name=s.l2_advertisement_name,
                pool_name=s.pool_name,
            ), 'Apply L2Advertisement'),
        ]

    def configure(self, config: LoadBalancerConfiguration) -> OperationResult:
        """Install (if needed) and configure MetalLB. Returns the first hard failure."""
        logger.info("Configuring MetalLB LoadBalancer...")
        start_time = time.time()
        context: dict[str, Any] = {}

        for phase_name, action, description in self.get_phases(config):
            logger.info(f"Running phase: {phase_name} - {description}")
            try:
                result = action.run(self.executor, context)
            except Exception as e:
                logger.exception(f"Phase {phase_name} raised exception")
                return OperationResult(success=False, error=f"Configuration failed in {phase_name}: {e}")

            if result.success:
                logger.info(f"Phase {phase_name} passed: {result.message}")
            elif result.continue_on_failure:
                logger.warning(f"Phase {phase_name} failed, continuing: {result.message}")
            else:
                logger.error(f"Phase {phase_name} failed: {result.message}")
                return OperationResult(success=False, error=result.message)
            context.update(result.context_updates or {})

        logger.info(f"MetalLB configuration completed in {time.time() - start_time:.1f}s")
        return OperationResult(success=True)

    def preview(self, config: LoadBalancerConfiguration) -> bool:
        """Show what configure() would execute without running. Returns True."""
        phases = self.get_phases(config)

        print("")
        print("═══════════════════════════════════════════════════════════════")
        print("  DRY-RUN: configure MetalLB")
        print(f"  Namespace: {self.settings.namespace}")
        print("═══════════════════════════════════════════════════════════════")
        print("")

        print("Phases to execute:")
        for i, (phase_name, action, description) in enumerate(phases, 1):
            print(f"  {i}. {phase_name}: {description}")
            print(f"         Action: {type(action).__name__}")
            if hasattr(action, 'manifest_url'):
                print(f"         Manifest: {action.manifest_url}")
            if hasattr(action, 'timeout'):
                print(f"         Timeout: {action.timeout}s")
            if isinstance(action, InstallControllerAction):
                print("         Skipped if the MetalLB controller is already installed")
            if isinstance(action, WaitForControllerAction):
                print("         Timeout does not stop configuration")
            if isinstance(action, ResolveRangeAction):
                source = 'auto-detect' if action.auto_detect else (action.ip_range or '(none)')
                print(f"         Range: {source}")
            print("")

        print("═══════════════════════════════════════════════════════════════")
        print(f"  Summary: {len(phases)} phases to execute")
        print("  Mode: DRY-RUN (no changes made)")
        print("═══════════════════════════════════════════════════════════════")
        print("")

        return True

    def remove(self) -> OperationResult:
        """Delete the MetalLB manifest. The executor's result is returned as-is."""
        logger.info(f"Removing MetalLB ({self.settings.manifest_url})...")
        result = call_executor(
            self.executor,
            ['delete', '--ignore-not-found=true', '-f', self.settings.manifest_url],
        )
        if result.success:
            logger.info("MetalLB removed")
            return OperationResult(success=True)

        error = result.error or (result.data or '').strip() or 'delete failed'
        logger.error(f"MetalLB removal failed: {error}")
        return OperationResult(success=False, error=error)
