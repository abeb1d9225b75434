# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Workflow execution: DAG engine, action round-loop, parser and supporting
models. Import from the submodules (agentflow.workflow.engine, ...) or from
the top-level agentflow package.
"""
