"""
Planet Sync - follow and publish decentralized planets.

This package follows planets published over ENS names and plain HTTP feeds,
stores their articles in SQLite, and publishes self-owned planets to IPFS
behind an IPNS name.

Main entry point is the CLI via the `planet-sync` command.

Example:
    $ planet-sync follow vitalik.eth
    $ planet-sync sync
"""

__all__ = ["__version__", "Engine", "parse_feed", "resolve_link"]
__version__ = "0.1.0"

from .core.links import resolve_link
from .engine import Engine
from .feeds.parser import parse_feed
