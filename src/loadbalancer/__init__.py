"""LoadBalancer detection and MetalLB provisioning."""

from loadbalancer.models import (
    IPPool,
    LoadBalancerConfiguration,
    LoadBalancerStatus,
    OperationResult,
    Provider,
    ServiceAddress,
)
from loadbalancer.network import detect_range, is_valid_range
from loadbalancer.probe import StatusProbe
from loadbalancer.provisioning import ProvisioningWorkflow, apply_succeeded

__all__ = [
    'IPPool',
    'LoadBalancerConfiguration',
    'LoadBalancerStatus',
    'OperationResult',
    'Provider',
    'ServiceAddress',
    'detect_range',
    'is_valid_range',
    'StatusProbe',
    'ProvisioningWorkflow',
    'apply_succeeded',
]
