"""Cloud Functions that start, stop and open the firewall of a game server VM."""

__version__ = "1.0.0"
