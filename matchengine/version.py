# matchengine/version.py
from __future__ import annotations
import os

# Single place to bump the version (overridable via env for CI/preview)
VERSION = os.getenv("MATCHENGINE_VERSION", "0.1.0")
