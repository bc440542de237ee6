# SPDX-FileCopyrightText: 2025 FanaticPythoner
# SPDX-License-Identifier: Apache-2.0

"""
Test suite for GraphAlchemy.

Tests run against ``InMemoryGraphClient``; the REST client and server probing
are exercised against httpx mocked with respx.
"""
