from __future__ import annotations

import re
import uuid
from datetime import date
from pathlib import Path
from typing import Optional


_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_-]+")


def daily_dir(base_dir: Path, day: Optional[date] = None) -> Path:
    d = day or date.today()
    return Path(base_dir) / f"{d.year:04d}" / f"{d.month:02d}" / f"{d.day:02d}"


def ensure_daily_dir(base_dir: Path, day: Optional[date] = None) -> Path:
    """
    `<base>/YYYY/MM/DD`, created if needed. Raises OSError when it cannot be created.
    """
    p = daily_dir(base_dir, day)
    p.mkdir(parents=True, exist_ok=True)
    return p


def suggest_png_name(target: str) -> str:
    # e.g. "octocat" -> "octocat_3f1c...e9.png"
    stem = _UNSAFE_NAME_CHARS.sub("_", (target or "").strip()).strip("_") or "profile"
    return f"{stem}_{uuid.uuid4()}.png"
