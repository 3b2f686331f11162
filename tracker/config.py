"""Environment-variable-based configuration for the tracker CLI."""

from __future__ import annotations

import os
from pathlib import Path

API_BASE: str = os.environ.get("FITNESS_API_BASE", "http://localhost:8000")
TOKEN_DIR: Path = Path(os.environ.get("FITNESS_TOKEN_DIR", "~/.fitness-tracker")).expanduser()
HTTP_TIMEOUT_S: float = float(os.environ.get("FITNESS_HTTP_TIMEOUT", "10"))
LOG_LEVEL: str = os.environ.get("FITNESS_LOG_LEVEL", "INFO").upper()
