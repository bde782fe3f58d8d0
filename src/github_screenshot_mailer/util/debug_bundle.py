from __future__ import annotations

import logging
import re
import time
import zipfile
from pathlib import Path

from ..browser.session import Session


logger = logging.getLogger(__name__)


def save_debug_artifacts(session: Session, *, debug_dir: str, name_prefix: str) -> None:
    """
    Best-effort: write the current screen and HTML so a failed login can be inspected offline.
    """
    safe = re.sub(r"[^a-zA-Z0-9_-]+", "_", name_prefix).strip("_")[:60] or "debug"
    prefix = f"{safe}_{time.strftime('%Y%m%d_%H%M%S')}"
    try:
        out_dir = Path(debug_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        (out_dir / f"{prefix}.png").write_bytes(session.screenshot())
        (out_dir / f"{prefix}.html").write_text(session.page_source(), encoding="utf-8")
    except Exception:
        logger.debug("Failed to save debug artifacts.", exc_info=True)


def create_debug_bundle(*, debug_dir: str, log_file: str, out_dir: str = "data", label: str = "") -> Path:
    """
    Zip debug artifacts + the log file into one shareable archive.

    Excludes secrets: only `debug_dir` and `log_file` are read (never .env or config files).
    """
    out_root = Path(out_dir)
    out_root.mkdir(parents=True, exist_ok=True)

    stamp = time.strftime("%Y%m%d_%H%M%S")
    lbl = re.sub(r"[^a-zA-Z0-9_-]+", "_", (label or "").strip().lower()).strip("_")
    out_path = out_root / f"debug_bundle{'_' + lbl if lbl else ''}_{stamp}.zip"

    # Path("") is the cwd; a blank setting means "nothing to add".
    dbg = Path(debug_dir) if (debug_dir or "").strip() else None
    log = Path(log_file) if (log_file or "").strip() else None

    with zipfile.ZipFile(out_path, "w", compression=zipfile.ZIP_DEFLATED) as z:
        if log is not None and log.is_file():
            z.write(log, arcname=log.name)

        if dbg is not None and dbg.is_dir():
            for p in sorted(dbg.rglob("*")):
                if not p.is_file() or p == out_path:
                    continue
                try:
                    z.write(p, arcname=str(Path("debug") / p.relative_to(dbg)))
                except OSError:
                    # A file may disappear between listing and zipping.
                    continue

    return out_path
