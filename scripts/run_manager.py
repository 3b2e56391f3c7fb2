#!/usr/bin/env python3
"""Run the valkey manager from a source checkout.

Usage examples:
  - python scripts/run_manager.py --namespace default --index 0
  - NAMESPACE=default INDEX=1 python scripts/run_manager.py --debug

Outside a cluster the manager falls back to the local kubeconfig, which makes
it possible to debug against a real StatefulSet from an IDE.
"""

from __future__ import annotations

import sys
from pathlib import Path


# Ensure repo root is on sys.path
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from valkey_manager.app.main import main  # noqa: E402


if __name__ == "__main__":
    sys.exit(main())
