# SPDX-License-Identifier: MIT
# Copyright (c) 2025 webhook-telemetry contributors

"""Root conftest.py so the package imports from a source checkout."""

import sys
from pathlib import Path

_repo_root = Path(__file__).parent
if str(_repo_root) not in sys.path:
    sys.path.insert(0, str(_repo_root))
