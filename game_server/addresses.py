import ipaddress
from typing import Optional

from flask import Request

from .errors import InvalidClientAddress
from .logs import log

LOOPBACK = frozenset({"127.0.0.1", "::1"})
MAPPED_PREFIX = "::ffff:"
DEFAULT_FRIEND_NAME = "Anonymous"


def _body(request: Request) -> dict:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _param(request: Request, key: str) -> Optional[str]:
    value = _body(request).get(key) or request.form.get(key) or request.args.get(key)
    return str(value) if value else None


def detect_client_ip(request: Request) -> Optional[str]:
    """Caller address: body, query, first X-Forwarded-For hop, then the peer."""
    explicit = _param(request, "ip")
    if explicit:
        return explicit.strip()

    forwarded = request.headers.get("X-Forwarded-For", "")
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop

    return request.remote_addr


def friend_name(request: Request) -> str:
    return _param(request, "name") or DEFAULT_FRIEND_NAME


def normalize_ip(value: Optional[str]) -> str:
    """Bare or CIDR address usable in a firewall rule.

    Loopback means we saw a proxy rather than the caller, so it is rejected
    along with anything that does not parse.
    """
    if not value:
        raise InvalidClientAddress(value)

    ip = value.strip()
    if ip.lower().startswith(MAPPED_PREFIX):
        ip = ip[len(MAPPED_PREFIX):]

    if not ip or ip in LOOPBACK:
        raise InvalidClientAddress(ip)

    try:
        if "/" not in ip:
            ipaddress.ip_address(ip)
            return ip
        network = ipaddress.ip_network(ip, strict=False)
    except ValueError:
        raise InvalidClientAddress(ip, f"{ip!r} is not a valid IP address or CIDR range")

    if network.prefixlen == 0:
        raise InvalidClientAddress(ip, f"{ip!r} would allow every address")
    if network.num_addresses > 1:
        log("request.wide_range", severity="WARNING", ip=ip,
            addresses=network.num_addresses)
    return ip


def to_cidr(ip: str) -> str:
    if "/" in ip:
        return ip
    prefix = 128 if ipaddress.ip_address(ip).version == 6 else 32
    return f"{ip}/{prefix}"
