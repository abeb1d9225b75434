# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Shared pytest fixtures
"""

import logging

import pytest

from agentflow.core.config import reload_config
from agentflow.workflow.logging import ExecutionLogger


@pytest.fixture
def execution_logger():
    """Quiet execution logger without timestamps"""
    return ExecutionLogger(
        log_level="debug",
        include_timestamp=False,
        logger=logging.getLogger("agentflow.tests"),
    )


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the global config at a path that does not exist"""
    monkeypatch.setenv("AGENTFLOW_CONFIG_PATH", str(tmp_path / "missing.yaml"))
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    reload_config()
    yield
    reload_config()
