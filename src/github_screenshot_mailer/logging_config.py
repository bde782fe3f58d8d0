import logging
import os
from pathlib import Path
from typing import Iterable, Optional


REDACTED = "***"


class SecretRedactionFilter(logging.Filter):
    """
    Replace known secret values (login/SMTP passwords) in rendered log messages.
    """

    def __init__(self, secrets: Iterable[str]) -> None:
        super().__init__()
        # Longest first so a secret containing another is masked whole.
        self._secrets = sorted({s for s in secrets if s and len(s) >= 4}, key=len, reverse=True)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        msg = record.getMessage()
        masked = msg
        for secret in self._secrets:
            masked = masked.replace(secret, REDACTED)
        if masked != msg:
            record.msg = masked
            record.args = None
        return True


def configure_logging(
    level: str = "INFO",
    file_path: Optional[str] = None,
    secrets: Iterable[str] = (),
) -> None:
    numeric_level = getattr(logging, (level or "INFO").upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    if file_path:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    redaction = SecretRedactionFilter(secrets)
    for handler in handlers:
        handler.addFilter(redaction)

    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        handlers=handlers,
        force=True,  # the CLI configures once from env, then again from the loaded config
    )

    for noisy in ("playwright", "urllib3", "asyncio"):
        logging.getLogger(noisy).setLevel(os.getenv("NOISY_LOG_LEVEL", "WARNING"))
