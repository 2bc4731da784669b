"""MetalLB custom resource manifests."""

import yaml

METALLB_API_VERSION = 'metallb.io/v1beta1'


def ip_address_pool(name: str, namespace: str, ip_range: str) -> str:
    """Render an IPAddressPool manifest."""
    return yaml.safe_dump({
        'apiVersion': METALLB_API_VERSION,
        'kind': 'IPAddressPool',
        'metadata': {'name': name, 'namespace': namespace},
        'spec': {'addresses': [ip_range]},
    }, sort_keys=False)


def l2_advertisement(name: str, namespace: str, pool_name: str) -> str:
    """Render an L2Advertisement manifest announcing a single pool."""
    return yaml.safe_dump({
        'apiVersion': METALLB_API_VERSION,
        'kind': 'L2Advertisement',
        'metadata': {'name': name, 'namespace': namespace},
        'spec': {'ipAddressPools': [pool_name]},
    }, sort_keys=False)
