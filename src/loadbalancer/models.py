"""LoadBalancer data model and parsed Kubernetes resources.

kubectl returns untyped JSON. Each resource type here has a from_dict()
constructor that raises ValueError/KeyError/TypeError on a malformed shape;
parse_resource() folds those into a single Err branch.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from common import Err, Ok, Result

logger = logging.getLogger(__name__)

METALLB_NAMESPACE = 'metallb-system'
CONTROLLER_NOT_FOUND = 'controller deployment not found'


class Provider(str, Enum):
    """Best-effort classification of who hands out external addresses."""
    METALLB = 'metallb'
    CLOUD = 'cloud'
    UNKNOWN = 'unknown'
    ABSENT = 'absent'


@dataclass(frozen=True)
class IPPool:
    name: str
    addresses: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ServiceAddress:
    """A LoadBalancer Service that was observed with an external address."""
    name: str
    namespace: str
    external_ip: str
    ports: str = ''


@dataclass(frozen=True)
class LoadBalancerStatus:
    """Outcome of one status probe. A new value is built for every call."""
    is_configured: bool
    provider: Provider = Provider.ABSENT
    version: Optional[str] = None
    ip_pools: list[IPPool] = field(default_factory=list)
    error: Optional[str] = None
    services: list[ServiceAddress] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'is_configured': self.is_configured,
            'provider': self.provider.value,
            'version': self.version,
            'ip_pools': [{'name': p.name, 'addresses': list(p.addresses)} for p in self.ip_pools],
            'error': self.error,
            'services': [
                {
                    'name': s.name,
                    'namespace': s.namespace,
                    'external_ip': s.external_ip,
                    'ports': s.ports,
                }
                for s in self.services
            ],
        }


@dataclass(frozen=True)
class LoadBalancerConfiguration:
    """Caller-supplied provisioning input."""
    ip_range: str = ''
    auto_detect_range: bool = False
    provider: str = 'metallb'

    def __post_init__(self):
        if self.provider != 'metallb':
            raise ValueError(f"Unsupported LoadBalancer provider: {self.provider}")


@dataclass(frozen=True)
class OperationResult:
    """Result of configure() or remove()."""
    success: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class ReadinessSample:
    ready_replicas: int
    desired_replicas: int
    running_tolerated_pods: int = 0


# -----------------------------------------------------------------------------
# Parsed resources
# -----------------------------------------------------------------------------

def _metadata(data: dict) -> dict:
    if not isinstance(data, dict):
        raise TypeError(f"expected an object, got {type(data).__name__}")
    metadata = data['metadata']
    if not isinstance(metadata, dict):
        raise TypeError("metadata is not an object")
    return metadata


def _items(data: dict) -> list:
    if not isinstance(data, dict):
        raise TypeError(f"expected a list object, got {type(data).__name__}")
    items = data.get('items') or []
    if not isinstance(items, list):
        raise TypeError("items is not an array")
    return items


def _int(value) -> int:
    return int(value) if value is not None else 0


@dataclass(frozen=True)
class Namespace:
    name: str
    phase: str = ''

    @classmethod
    def from_dict(cls, data: dict) -> 'Namespace':
        metadata = _metadata(data)
        return cls(name=metadata['name'], phase=(data.get('status') or {}).get('phase', ''))


@dataclass(frozen=True)
class Deployment:
    name: str
    labels: dict = field(default_factory=dict)
    ready_replicas: int = 0
    desired_replicas: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> 'Deployment':
        metadata = _metadata(data)
        spec = data.get('spec') or {}
        status = data.get('status') or {}
        desired = spec.get('replicas')
        if desired is None:
            desired = status.get('replicas')
        return cls(
            name=metadata['name'],
            labels=dict(metadata.get('labels') or {}),
            ready_replicas=_int(status.get('readyReplicas')),
            desired_replicas=_int(desired),
        )

    @property
    def version(self) -> str:
        return self.labels.get('app.kubernetes.io/version') or 'unknown'


@dataclass(frozen=True)
class Pod:
    name: str
    phase: str = ''
    conditions: dict = field(default_factory=dict)  # condition type -> status

    @classmethod
    def from_dict(cls, data: dict) -> 'Pod':
        metadata = _metadata(data)
        status = data.get('status') or {}
        conditions = {
            c['type']: str(c.get('status', ''))
            for c in status.get('conditions') or []
            if isinstance(c, dict) and 'type' in c
        }
        return cls(name=metadata['name'], phase=status.get('phase', ''), conditions=conditions)

    @property
    def tolerated_ready(self) -> bool:
        """Running and either Ready or ContainersReady.

        Pod Ready can lag ContainersReady, so either condition counts.
        """
        if self.phase != 'Running':
            return False
        return self.conditions.get('Ready') == 'True' or self.conditions.get('ContainersReady') == 'True'


@dataclass(frozen=True)
class PodList:
    items: list[Pod] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> 'PodList':
        return cls(items=[Pod.from_dict(i) for i in _items(data)])


@dataclass(frozen=True)
class Service:
    name: str
    namespace: str = ''
    type: str = ''
    ingress: list[dict] = field(default_factory=list)
    ports: list[dict] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> 'Service':
        metadata = _metadata(data)
        spec = data.get('spec') or {}
        load_balancer = (data.get('status') or {}).get('loadBalancer') or {}
        ingress = load_balancer.get('ingress') or []
        if not isinstance(ingress, list):
            raise TypeError("status.loadBalancer.ingress is not an array")
        return cls(
            name=metadata['name'],
            namespace=metadata.get('namespace', ''),
            type=spec.get('type', ''),
            ingress=[i for i in ingress if isinstance(i, dict)],
            ports=[p for p in spec.get('ports') or [] if isinstance(p, dict)],
        )

    @property
    def external_address(self) -> Optional[str]:
        """First ingress ip or hostname, if populated."""
        if not self.ingress:
            return None
        return self.ingress[0].get('ip') or self.ingress[0].get('hostname') or None

    def to_address(self) -> ServiceAddress:
        ports = ', '.join(f"{p.get('port')}/{p.get('protocol', 'TCP')}" for p in self.ports)
        return ServiceAddress(
            name=self.name,
            namespace=self.namespace,
            external_ip=self.external_address or '',
            ports=ports,
        )


@dataclass(frozen=True)
class ServiceList:
    items: list[Service] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> 'ServiceList':
        """Parse each Service on its own; malformed items are skipped."""
        services = []
        for item in _items(data):
            try:
                services.append(Service.from_dict(item))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Skipping malformed Service: {e!r}")
        return cls(items=services)


@dataclass(frozen=True)
class IPAddressPoolList:
    items: list[IPPool] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> 'IPAddressPoolList':
        pools = []
        for item in _items(data):
            metadata = _metadata(item)
            addresses = (item.get('spec') or {}).get('addresses') or []
            if not isinstance(addresses, list):
                raise TypeError("spec.addresses is not an array")
            pools.append(IPPool(name=metadata['name'], addresses=[str(a) for a in addresses]))
        return cls(items=pools)


@dataclass(frozen=True)
class Node:
    name: str
    labels: dict = field(default_factory=dict)
    internal_ip: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> 'Node':
        metadata = _metadata(data)
        internal_ip = None
        for address in (data.get('status') or {}).get('addresses') or []:
            if isinstance(address, dict) and address.get('type') == 'InternalIP':
                internal_ip = address.get('address')
                break
        return cls(name=metadata['name'], labels=dict(metadata.get('labels') or {}),
                   internal_ip=internal_ip)


@dataclass(frozen=True)
class NodeList:
    items: list[Node] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict) -> 'NodeList':
        return cls(items=[Node.from_dict(i) for i in _items(data)])


def parse_resource(text: Optional[str], cls) -> Result:
    """Parse kubectl JSON output into cls.

    Returns:
        Ok(instance), Ok(None) when the output is empty (resource absent),
        or Err(message) when the text is not JSON or has the wrong shape.
    """
    text = (text or '').strip()
    if not text or text == 'null':
        return Ok(None)
    try:
        return Ok(cls.from_dict(json.loads(text)))
    except json.JSONDecodeError as e:
        return Err(f"invalid JSON for {cls.__name__}: {e}")
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        return Err(f"unexpected {cls.__name__} shape: {e!r}")
