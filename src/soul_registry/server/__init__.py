"""HTTP server mode for the soul registry.

Provides a lightweight stdlib-based HTTP API over
:class:`~soul_registry.registry.SoulRegistry` without requiring a web
framework.
"""
from __future__ import annotations

from soul_registry.server.app import (
    ChallengeSweeper,
    SoulRegistryHandler,
    SoulRegistryServer,
    build_registry,
    create_server,
    run_server,
)

__all__ = [
    "ChallengeSweeper",
    "SoulRegistryHandler",
    "SoulRegistryServer",
    "build_registry",
    "create_server",
    "run_server",
]
