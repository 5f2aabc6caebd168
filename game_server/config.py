import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import ConfigurationError


DEFAULT_ZONE = "us-central1-f"
DEFAULT_INSTANCE = "instance-20250920-120747"
DEFAULT_FIREWALL_RULE = "minecraft-server-allow"
DEFAULT_PORT = "25565"
DEFAULT_TARGET_TAG = "minecraft-server"
DEFAULT_NETWORK = "global/networks/default"
DEFAULT_DISPLAY_NAME = "Minecraft server"


@dataclass(frozen=True)
class PollPolicy:
    interval: float
    max_wait: float


START_POLICY = PollPolicy(interval=3, max_wait=120)
STOP_POLICY = PollPolicy(interval=3, max_wait=120)
FIREWALL_POLICY = PollPolicy(interval=2, max_wait=60)


@dataclass(frozen=True)
class Settings:
    project: str
    zone: str = DEFAULT_ZONE
    instance: str = DEFAULT_INSTANCE
    firewall_rule: str = DEFAULT_FIREWALL_RULE
    port: str = DEFAULT_PORT
    target_tag: str = DEFAULT_TARGET_TAG
    network: str = DEFAULT_NETWORK
    display_name: str = DEFAULT_DISPLAY_NAME
    allowed_origin: str = "*"
    start_policy: PollPolicy = START_POLICY
    stop_policy: PollPolicy = STOP_POLICY
    firewall_policy: PollPolicy = FIREWALL_POLICY


def _seconds(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number of seconds, got {raw!r}")
    if value <= 0:
        raise ConfigurationError(f"{key} must be positive, got {raw!r}")
    return value


def _policy(env: Mapping[str, str], prefix: str, default: PollPolicy) -> PollPolicy:
    return PollPolicy(
        interval=_seconds(env, f"{prefix}_POLL_INTERVAL", default.interval),
        max_wait=_seconds(env, f"{prefix}_MAX_WAIT", default.max_wait),
    )


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Read settings from the environment.

    Called once per request so nothing outlives the request that read it.
    Raises ConfigurationError when the project id is missing.
    """
    env = os.environ if env is None else env

    project = env.get("GOOGLE_CLOUD_PROJECT") or env.get("GCP_PROJECT")
    if not project:
        raise ConfigurationError(
            "Project ID not found. Set GOOGLE_CLOUD_PROJECT environment variable."
        )

    return Settings(
        project=project,
        zone=env.get("MINECRAFT_ZONE") or DEFAULT_ZONE,
        instance=env.get("MINECRAFT_INSTANCE") or DEFAULT_INSTANCE,
        firewall_rule=env.get("MINECRAFT_FIREWALL_RULE") or DEFAULT_FIREWALL_RULE,
        port=env.get("MINECRAFT_PORT") or DEFAULT_PORT,
        target_tag=env.get("MINECRAFT_TARGET_TAG") or DEFAULT_TARGET_TAG,
        network=env.get("MINECRAFT_NETWORK") or DEFAULT_NETWORK,
        display_name=env.get("SERVER_DISPLAY_NAME") or DEFAULT_DISPLAY_NAME,
        allowed_origin=env.get("ALLOWED_ORIGIN", "*"),
        start_policy=_policy(env, "START", START_POLICY),
        stop_policy=_policy(env, "STOP", STOP_POLICY),
        firewall_policy=_policy(env, "FIREWALL", FIREWALL_POLICY),
    )


def allowed_origin() -> str:
    # Preflight and config errors still need CORS headers without a full Settings.
    return os.getenv("ALLOWED_ORIGIN", "*")
