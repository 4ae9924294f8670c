# SPDX-FileCopyrightText: 2025 OmniNode.ai Inc.
# SPDX-License-Identifier: MIT

"""Column store clients.

Transport libraries are only imported here; the repository receives a store
through ``ProtocolColumnStore``.
"""

from crawlstore.clients.hbase_rest_client import HBaseRestStore, create_hbase_store

__all__ = ["HBaseRestStore", "create_hbase_store"]
