"""LoadBalancer status detection.

Probes run in order, each falling back to the next:

1. Quick namespace probe for metallb-system
2. Namespace present: LoadBalancer Services with an external address,
   then the detailed controller probe (deployment, pods, IPAddressPools)
3. Namespace absent: LoadBalancer Services with an external address
   anywhere in the cluster (cloud or unidentified controller)

check_status() never raises. Executor failures end the probe that hit them
and surface as is_configured=False with the raw error. Unparseable JSON from
a successful call is logged and read as "absent"; from a failed call it
keeps the executor error.
"""

import logging
from typing import Optional

from common import CommandExecutor, Err, Ok, Result, call_executor
from loadbalancer.models import (
    CONTROLLER_NOT_FOUND,
    METALLB_NAMESPACE,
    Deployment,
    IPAddressPoolList,
    IPPool,
    LoadBalancerStatus,
    Namespace,
    NodeList,
    PodList,
    Provider,
    ReadinessSample,
    ServiceAddress,
    ServiceList,
    parse_resource,
)

logger = logging.getLogger(__name__)

CONTROLLER_SELECTOR = 'app=metallb,component=controller'

CLOUD_NODE_LABELS = (
    'node.kubernetes.io/instance-type',
    'topology.kubernetes.io/zone',
    'kubernetes.io/cloud-provider',
    'node.kubernetes.io/cloud-provider',
)


class StatusProbe:
    """Read-only detection of LoadBalancer capability."""

    def __init__(
        self,
        executor: CommandExecutor,
        namespace: str = METALLB_NAMESPACE,
        classify_cloud: bool = False,
    ):
        self.executor = executor
        self.namespace = namespace
        self.classify_cloud = classify_cloud

    def check_status(self) -> LoadBalancerStatus:
        """Detect whether the cluster can assign external addresses."""
        try:
            return self._check_status()
        except Exception as e:
            logger.exception("LoadBalancer status check raised")
            return LoadBalancerStatus(
                is_configured=False,
                error=f"LoadBalancer status check failed: {e}",
            )

    def _check_status(self) -> LoadBalancerStatus:
        logger.info("Checking LoadBalancer status...")
        namespace = self.probe_namespace()
        namespace_error = namespace.message if isinstance(namespace, Err) else None

        if isinstance(namespace, Ok) and namespace.value:
            logger.debug(f"Namespace {self.namespace} present")
            services = self.services_with_external_ip()
            if isinstance(services, Ok) and services.value:
                logger.info(f"{len(services.value)} LoadBalancer service(s) have external addresses")
                return LoadBalancerStatus(
                    is_configured=True,
                    provider=Provider.METALLB,
                    services=services.value,
                )
            return self.check_controller()

        logger.debug(f"Namespace {self.namespace} not found, checking for other LoadBalancers")
        services = self.services_with_external_ip()
        if isinstance(services, Err):
            return LoadBalancerStatus(is_configured=False, error=namespace_error or services.message)
        if services.value:
            provider = self._classify_provider()
            logger.info(f"LoadBalancer services have external addresses (provider: {provider.value})")
            return LoadBalancerStatus(is_configured=True, provider=provider, services=services.value)

        logger.info("No LoadBalancer controller detected")
        return LoadBalancerStatus(is_configured=False, error=namespace_error)

    def probe_namespace(self) -> Result:
        """Quick presence check; the output only has to mention the namespace.

        Returns:
            Ok(bool) or Err(message) when the executor failed outright
        """
        result = call_executor(
            self.executor,
            ['get', 'namespace', self.namespace, '--ignore-not-found', '-o', 'name'],
        )
        if self.namespace in (result.data or ''):
            return Ok(True)
        if not result.success:
            logger.warning(f"Namespace probe failed: {result.error}")
            return Err(result.error or f"failed to query namespace {self.namespace}")
        return Ok(False)

    def services_with_external_ip(self) -> Result:
        """LoadBalancer Services (all namespaces) whose first ingress has an ip or hostname.

        Returns:
            Ok(list[ServiceAddress]) or Err(message) on executor failure
        """
        fetched = self._fetch(
            ['get', 'svc', '-A', '--field-selector=spec.type=LoadBalancer', '-o', 'json'],
            ServiceList,
        )
        if isinstance(fetched, Err):
            return fetched
        if fetched.value is None:
            return Ok([])

        found: list[ServiceAddress] = []
        for svc in fetched.value.items:
            if svc.type and svc.type != 'LoadBalancer':
                continue
            if svc.external_address:
                logger.debug(f"Service {svc.namespace}/{svc.name} has external address {svc.external_address}")
                found.append(svc.to_address())
        return Ok(found)

    def check_controller(self) -> LoadBalancerStatus:
        """Detailed MetalLB probe: namespace, controller deployment, pods, pools."""
        namespace = self._fetch(
            ['get', 'namespace', self.namespace, '--ignore-not-found', '-o', 'json'],
            Namespace,
        )
        if isinstance(namespace, Err):
            return LoadBalancerStatus(is_configured=False, error=namespace.message)
        if namespace.value is None:
            return LoadBalancerStatus(is_configured=False)

        deployment = self._fetch(
            ['get', 'deployment', 'controller', '-n', self.namespace, '--ignore-not-found', '-o', 'json'],
            Deployment,
        )
        if isinstance(deployment, Err):
            return LoadBalancerStatus(is_configured=False, provider=Provider.METALLB, error=deployment.message)
        if deployment.value is None:
            return LoadBalancerStatus(is_configured=False, provider=Provider.METALLB, error=CONTROLLER_NOT_FOUND)

        sample = self._sample_readiness(deployment.value)
        ready, desired = sample.ready_replicas, sample.desired_replicas
        advisory: Optional[str] = None

        if ready == 0:
            if sample.running_tolerated_pods == 0:
                logger.warning(f"MetalLB controller not ready: {ready}/{desired}")
                return LoadBalancerStatus(
                    is_configured=False,
                    provider=Provider.METALLB,
                    version=deployment.value.version,
                    error=f"controller not ready: {ready}/{desired} replicas running",
                )
            advisory = (
                f"controller deployment reports {ready}/{desired} ready replicas, "
                f"but {sample.running_tolerated_pods} controller pod(s) are running"
            )
        elif ready < desired:
            advisory = f"controller partially ready: {ready}/{desired} replicas running"

        if advisory:
            logger.warning(f"MetalLB controller: {advisory}")

        return LoadBalancerStatus(
            is_configured=True,
            provider=Provider.METALLB,
            version=deployment.value.version,
            ip_pools=self.ip_pools(),
            error=advisory,
        )

    def ip_pools(self) -> list[IPPool]:
        """IPAddressPools in the namespace; any failure yields an empty list."""
        fetched = self._fetch(
            ['get', 'ipaddresspools.metallb.io', '-n', self.namespace, '--ignore-not-found', '-o', 'json'],
            IPAddressPoolList,
        )
        if isinstance(fetched, Err):
            logger.warning(f"Could not list IPAddressPools: {fetched.message}")
            return []
        if fetched.value is None:
            return []
        return list(fetched.value.items)

    def _sample_readiness(self, deployment: Deployment) -> ReadinessSample:
        """Count tolerated-ready controller pods, only needed when no replica is ready."""
        if deployment.ready_replicas > 0:
            return ReadinessSample(deployment.ready_replicas, deployment.desired_replicas)

        fetched = self._fetch(
            ['get', 'pods', '-n', self.namespace, '-l', CONTROLLER_SELECTOR, '-o', 'json'],
            PodList,
        )
        tolerated = 0
        if isinstance(fetched, Err):
            logger.warning(f"Could not list controller pods: {fetched.message}")
        elif fetched.value is not None:
            tolerated = sum(1 for pod in fetched.value.items if pod.tolerated_ready)
        return ReadinessSample(deployment.ready_replicas, deployment.desired_replicas, tolerated)

    def _classify_provider(self) -> Provider:
        """unknown, or cloud when enabled and nodes carry cloud-provider labels."""
        if not self.classify_cloud:
            return Provider.UNKNOWN
        fetched = self._fetch(['get', 'nodes', '-o', 'json'], NodeList)
        if isinstance(fetched, Ok) and fetched.value is not None:
            for node in fetched.value.items:
                if any(node.labels.get(label) for label in CLOUD_NODE_LABELS):
                    return Provider.CLOUD
        return Provider.UNKNOWN

    def _fetch(self, args: list[str], cls) -> Result:
        """Run a kubectl query and parse its JSON output into cls.

        Returns:
            Ok(instance), Ok(None) when absent or unparseable after success,
            Err(message) when the executor failed with no usable output
        """
        result = call_executor(self.executor, args)
        if not result.success and not (result.data or '').strip():
            return Err(result.error or f"kubectl {' '.join(args)} failed")

        parsed = parse_resource(result.data, cls)
        if isinstance(parsed, Err):
            if not result.success:
                return Err(result.error or parsed.message)
            logger.warning(f"Treating {cls.__name__} as absent: {parsed.message}")
            return Ok(None)
        return parsed
