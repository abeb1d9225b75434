# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Setup configuration for agentflow, the LLM agent workflow engine
"""

from setuptools import setup, find_packages

setup(
    name="agentflow",
    version="0.1.0",
    description="DAG workflow engine for tool-using LLM agents",
    author="Jason Cafarelli",
    packages=find_packages(include=["agentflow", "agentflow.*"]),
    python_requires=">=3.9",
    install_requires=[
        "pydantic>=2.0.0",
        "httpx>=0.24.0",
        "anthropic>=0.39.0",
        "openai>=1.0.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ]
    },
)
