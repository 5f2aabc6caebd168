import enum
from dataclasses import dataclass
from typing import Any, Optional

from .config import Settings


class InstanceStatus(str, enum.Enum):
    PROVISIONING = "PROVISIONING"
    STAGING = "STAGING"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"
    STOPPED = "STOPPED"
    SUSPENDING = "SUSPENDING"
    SUSPENDED = "SUSPENDED"
    REPAIRING = "REPAIRING"
    TERMINATED = "TERMINATED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_api(cls, value: Optional[str]) -> "InstanceStatus":
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class InstanceRef:
    project: str
    zone: str
    name: str

    @classmethod
    def from_settings(cls, settings: Settings) -> "InstanceRef":
        return cls(project=settings.project, zone=settings.zone, name=settings.instance)

    def params(self) -> dict:
        return {"project": self.project, "zone": self.zone, "instance": self.name}


@dataclass(frozen=True)
class Shortcut:
    """A finished response produced before any mutating call."""

    status_code: int
    payload: dict


def fetch_instance(compute: Any, ref: InstanceRef) -> dict:
    return compute.instances().get(**ref.params()).execute()


def start_instance(compute: Any, ref: InstanceRef) -> dict:
    return compute.instances().start(**ref.params()).execute()


def stop_instance(compute: Any, ref: InstanceRef) -> dict:
    return compute.instances().stop(**ref.params()).execute()


def instance_status(instance: dict) -> InstanceStatus:
    return InstanceStatus.from_api(instance.get("status"))


def external_ip(instance: dict) -> Optional[str]:
    for ni in instance.get("networkInterfaces", []):
        for ac in ni.get("accessConfigs", []):
            ip = ac.get("natIP")
            if ip:
                return ip
    return None


def internal_ip(instance: dict) -> Optional[str]:
    for ni in instance.get("networkInterfaces", []):
        ip = ni.get("networkIP")
        if ip:
            return ip
    return None


def precheck_start(instance: dict, display_name: str) -> Optional[Shortcut]:
    status = instance_status(instance)

    if status is InstanceStatus.RUNNING:
        return Shortcut(200, {
            "success": True,
            "message": f"{display_name} is already running",
            "status": status.value,
            "externalIp": external_ip(instance) or "N/A",
        })

    if status is InstanceStatus.STOPPING:
        return Shortcut(409, {
            "success": False,
            "message": "Server is currently stopping, please wait and try again",
            "status": status.value,
        })

    return None


def precheck_stop(instance: dict, display_name: str) -> Optional[Shortcut]:
    status = instance_status(instance)

    if status in (InstanceStatus.TERMINATED, InstanceStatus.STOPPED):
        return Shortcut(200, {
            "success": True,
            "message": f"{display_name} is already stopped",
            "status": status.value,
        })

    if status is InstanceStatus.STOPPING:
        return Shortcut(200, {
            "success": True,
            "message": f"{display_name} is currently stopping",
            "status": status.value,
        })

    if status is not InstanceStatus.RUNNING:
        return Shortcut(409, {
            "success": False,
            "message": f"Cannot stop server in {status.value} state",
            "status": status.value,
        })

    return None
