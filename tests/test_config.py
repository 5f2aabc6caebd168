import pytest

from game_server.config import FIREWALL_POLICY, PollPolicy, load_settings
from game_server.errors import ConfigurationError


def test_missing_project_fails_fast():
    with pytest.raises(ConfigurationError):
        load_settings({})


def test_defaults():
    settings = load_settings({"GCP_PROJECT": "legacy-project"})

    assert settings.project == "legacy-project"
    assert settings.zone == "us-central1-f"
    assert settings.instance == "instance-20250920-120747"
    assert settings.firewall_rule == "minecraft-server-allow"
    assert settings.port == "25565"
    assert settings.firewall_policy == FIREWALL_POLICY
    assert settings.start_policy == PollPolicy(3, 120)


def test_overrides():
    settings = load_settings({
        "GOOGLE_CLOUD_PROJECT": "p1",
        "GCP_PROJECT": "ignored",
        "MINECRAFT_ZONE": "europe-west1-b",
        "STOP_POLL_INTERVAL": "5",
        "STOP_MAX_WAIT": "180",
    })

    assert settings.project == "p1"
    assert settings.zone == "europe-west1-b"
    assert settings.stop_policy == PollPolicy(5, 180)


@pytest.mark.parametrize("value", ["soon", "0", "-3"])
def test_bad_poll_values(value):
    with pytest.raises(ConfigurationError):
        load_settings({"GOOGLE_CLOUD_PROJECT": "p1", "START_MAX_WAIT": value})
