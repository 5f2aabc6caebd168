"""Firewall allow-list: membership checks and the read-modify-write update.

Compute firewall rules carry no fingerprint, so a patch cannot be guarded
against a concurrent writer. Within one process every update goes through
``MUTATION_LOCK``; two function instances patching at once can still lose
one addition.
"""
import threading
from typing import Any, Iterable, List, Optional

from googleapiclient.errors import HttpError

from .addresses import to_cidr
from .config import Settings
from .errors import is_not_found

MUTATION_LOCK = threading.Lock()

RULE_DESCRIPTION = "Allow access to the game server for friends"


def _canonical(entry: str) -> str:
    try:
        return to_cidr(entry.strip())
    except ValueError:
        return entry.strip()


class AllowList:
    def __init__(self, source_ranges: Optional[Iterable[str]] = None):
        self.source_ranges: List[str] = list(source_ranges or [])

    def __len__(self):
        return len(self.source_ranges)

    def contains(self, ip: str) -> bool:
        """True when ip, bare or as its single-host CIDR, is already listed."""
        wanted = {ip, _canonical(ip)}
        return any(
            entry in wanted or _canonical(entry) in wanted for entry in self.source_ranges
        )

    def with_added(self, ip: str) -> "AllowList":
        return AllowList(self.source_ranges + [to_cidr(ip)])


def fetch_rule(compute: Any, project: str, name: str) -> Optional[dict]:
    """The named rule, or None when it does not exist yet."""
    try:
        return compute.firewalls().get(project=project, firewall=name).execute()
    except HttpError as e:
        if is_not_found(e):
            return None
        raise


def patch_source_ranges(compute: Any, project: str, name: str, allow_list: AllowList) -> dict:
    return compute.firewalls().patch(
        project=project,
        firewall=name,
        body={"sourceRanges": allow_list.source_ranges},
    ).execute()


def new_rule(settings: Settings, ip: str) -> dict:
    return {
        "name": settings.firewall_rule,
        "description": RULE_DESCRIPTION,
        "network": settings.network,
        "direction": "INGRESS",
        "allowed": [{"IPProtocol": "tcp", "ports": [settings.port]}],
        "sourceRanges": [to_cidr(ip)],
        "targetTags": [settings.target_tag],
    }


def insert_rule(compute: Any, project: str, rule: dict) -> dict:
    return compute.firewalls().insert(project=project, body=rule).execute()
