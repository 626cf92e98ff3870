"""Runtime hook exposing the unpacked bundle root to the installer's resource lookup."""

from __future__ import annotations

import os
import sys
from pathlib import Path


def _resolve_bundle_root() -> Path:
    meipass = getattr(sys, "_MEIPASS", None)
    if meipass:
        return Path(meipass).resolve()
    return Path(sys.executable).resolve().parent


os.environ.setdefault("ANGLEWING_BUNDLE_ROOT", str(_resolve_bundle_root()))
