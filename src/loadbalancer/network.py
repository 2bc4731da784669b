"""Address range heuristics for local LoadBalancer pools.

detect_range() suggests a small pool next to a single-node development
cluster (Docker Desktop, kind). It does no CIDR checking and must not be the
only range source for multi-node or shared clusters.
"""

import ipaddress
from typing import Optional


def detect_range(node_ip: str) -> Optional[str]:
    """Suggest an address range from a node's internal IP.

    Args:
        node_ip: Node InternalIP (e.g., 172.18.0.5)

    Returns:
        Range as 'A.B.C.D-A.B.C.D', or None when no rule matches
    """
    node_ip = (node_ip or '').strip()
    parts = node_ip.split('.')

    if node_ip.startswith('172.18.'):
        return '172.18.200.1-172.18.200.100'
    if node_ip.startswith('172.') and len(parts) >= 2 and parts[1]:
        return f'172.{parts[1]}.200.1-172.{parts[1]}.200.100'
    if node_ip.startswith('10.') and len(parts) >= 2 and parts[1]:
        return f'10.{parts[1]}.200.1-10.{parts[1]}.200.100'
    if node_ip.startswith('192.168.') and len(parts) >= 3 and parts[2]:
        return f'192.168.{parts[2]}.200-192.168.{parts[2]}.250'
    return None


def is_valid_range(value: str) -> bool:
    """Check an 'A.B.C.D-A.B.C.D' range: two IPv4 addresses, start <= end."""
    if not value or value.count('-') != 1:
        return False
    start, end = (p.strip() for p in value.split('-'))
    try:
        first = ipaddress.IPv4Address(start)
        last = ipaddress.IPv4Address(end)
    except ipaddress.AddressValueError:
        return False
    return first <= last
