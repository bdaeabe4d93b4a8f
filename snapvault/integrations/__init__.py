# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Adapters - Command-line front end.
"""

from snapvault.integrations.cli import build_parser, configure_logging, main

__all__ = [
    "build_parser",
    "configure_logging",
    "main",
]
