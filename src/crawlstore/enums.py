# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Enums shared across crawlstore."""

from enum import StrEnum


class EnumConnectionDirection(StrEnum):
    """Direction of a connection query relative to the requested node."""

    IN = "in"
    """Edges whose target is the node (served by a filtered per-crawl scan)."""

    OUT = "out"
    """Edges whose source is the node (served by a key range)."""


class EnumLogLevel(StrEnum):
    """Log level enumeration for runtime configuration."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


__all__ = ["EnumConnectionDirection", "EnumLogLevel"]
