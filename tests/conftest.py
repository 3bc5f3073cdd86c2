# Copyright (c) Nex-AGI. All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Pytest configuration and fixtures for doclease tests.
"""

import os

import pytest

from doclease.config import ENV_PREFIX


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """Hide DOCLEASE_* variables of the developer's shell from every test."""
    for name in list(os.environ):
        if name.startswith(ENV_PREFIX):
            monkeypatch.delenv(name)
    yield


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')")
    config.addinivalue_line("markers", "sql: marks tests that run against a SQLite database")


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers automatically."""
    for item in items:
        # Real-time heartbeat tests sleep through several intervals
        if "heartbeat" in item.name or "Heartbeat" in (item.cls.__name__ if item.cls else ""):
            item.add_marker(pytest.mark.slow)

        if "sql" in item.name or "sqlite" in item.name:
            item.add_marker(pytest.mark.sql)
