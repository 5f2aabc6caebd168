from typing import Any, Tuple

from .poller import Query


def operation_id(operation: dict) -> str:
    return operation.get("name", "")


def _last_segment(value: str) -> str:
    return value.rstrip("/").split("/")[-1]


def operation_zone(operation: dict, default: str) -> str:
    """Zone of a zonal operation.

    Later responses carry a fully qualified zone URL, so the zone is read from
    the latest handle every time instead of trusting the first one.
    """
    zone = operation.get("zone")
    return _last_segment(zone) if zone else default


def zone_operation_queries(compute: Any, project: str, zone: str) -> Tuple[Query, Query]:
    """(wait, get) pair for zoneOperations; wait blocks server-side for a while."""

    def wait(operation: dict) -> dict:
        return compute.zoneOperations().wait(
            project=project,
            zone=operation_zone(operation, zone),
            operation=_last_segment(operation_id(operation)),
        ).execute()

    def get(operation: dict) -> dict:
        return compute.zoneOperations().get(
            project=project,
            zone=operation_zone(operation, zone),
            operation=_last_segment(operation_id(operation)),
        ).execute()

    return wait, get


def global_operation_queries(compute: Any, project: str) -> Tuple[Query, Query]:
    """(wait, get) pair for globalOperations, used by firewall changes."""

    def wait(operation: dict) -> dict:
        return compute.globalOperations().wait(
            project=project, operation=_last_segment(operation_id(operation))
        ).execute()

    def get(operation: dict) -> dict:
        return compute.globalOperations().get(
            project=project, operation=_last_segment(operation_id(operation))
        ).execute()

    return wait, get
