# SPDX-License-Identifier: MIT
# Copyright (c) 2025 webhook-telemetry contributors

"""Setup configuration for webhook-telemetry package."""

from pathlib import Path

from setuptools import find_packages, setup

# Read the README file if it exists
this_directory = Path(__file__).parent
readme_path = this_directory / "README.md"
if readme_path.exists():
    long_description = readme_path.read_text(encoding="utf-8")
else:
    long_description = "Webhook log aggregation and error deduplication for long-running services"

setup(
    name="webhook-telemetry",
    version="0.1.0",
    author="webhook-telemetry contributors",
    description="Webhook log aggregation and error deduplication for long-running services",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.10",
    install_requires=[
        "requests>=2.31.0",  # Webhook, interaction and stat-push HTTP calls
        "pymongo>=4.6.3",  # MongoDB failure store
        "psutil>=5.9.0",  # Environment telemetry in failure reports
        "prometheus-client>=0.19.0",  # Prometheus metrics collector
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "pylint>=3.0.0",
            "mypy>=1.0.0",
        ],
        "test": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
        ],
    },
)
