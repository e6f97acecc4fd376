# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Framework Integrations - FastAPI admin endpoints.
"""

from sitesnap.integrations.fastapi import (
    register_sitesnap_routes,
    setup_sitesnap_plugin,
    sitesnap_lifespan,
    verify_api_key,
)

__all__ = [
    "register_sitesnap_routes",
    "setup_sitesnap_plugin",
    "sitesnap_lifespan",
    "verify_api_key",
]
