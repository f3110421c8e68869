from __future__ import annotations

from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent
OPS_ROOT = BASE_DIR / "iamc_collect"
OPS_DATA_DIR = OPS_ROOT / "data"
OPS_EXPORTS_DIR = OPS_ROOT / "exports"
OPS_REPORTS_DIR = OPS_ROOT / "reports"
