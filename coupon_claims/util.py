import ipaddress

from fastapi import Request


def normalize_ip(raw: str) -> str:
    """Canonical text form of an address; IPv4-mapped IPv6 collapses to IPv4."""
    value = (raw or "").strip()
    try:
        address = ipaddress.ip_address(value)
    except ValueError:
        return value
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        return str(address.ipv4_mapped)
    return str(address)


def client_identity(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return normalize_ip(first)
    if request.client and request.client.host:
        return normalize_ip(request.client.host)
    return "unknown"
