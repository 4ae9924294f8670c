# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Store implementations for tests and local runs."""

from crawlstore.testing.memory_store import InMemoryColumnStore

__all__ = ["InMemoryColumnStore"]
