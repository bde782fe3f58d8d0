from .dates import parse_timestamp
from .files import ensure_daily_dir, suggest_png_name

__all__ = ["parse_timestamp", "ensure_daily_dir", "suggest_png_name"]
