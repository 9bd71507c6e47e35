# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Framework Integrations - FastAPI endpoints and lifespan for the relay.
"""

from snaprelay.integrations.fastapi import (
    create_app,
    get_relay_store,
    register_relay_routes,
    relay_lifespan,
)

__all__ = [
    "create_app",
    "get_relay_store",
    "register_relay_routes",
    "relay_lifespan",
]
