from __future__ import annotations

import logging
import mimetypes
import smtplib
from email.message import EmailMessage
from pathlib import Path
from typing import Optional, Protocol, Union

from .config import SmtpConfig
from .errors import EmailDeliveryError


logger = logging.getLogger(__name__)


class Mailer(Protocol):
    def send(self, to: str, subject: str, body: str, attachment: Optional[Path] = None) -> None: ...


def build_message(
    *,
    sender: str,
    to: str,
    subject: str,
    body: str,
    attachment: Optional[Union[str, Path]] = None,
) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(body)

    if attachment is not None:
        path = Path(attachment)
        ctype, _ = mimetypes.guess_type(path.name)
        maintype, subtype = (ctype or "application/octet-stream").split("/", 1)
        msg.add_attachment(path.read_bytes(), maintype=maintype, subtype=subtype, filename=path.name)
    return msg


class SmtpMailer:
    """
    Plain SMTP delivery. STARTTLS by default; implicit TLS when `use_ssl` is set.
    """

    def __init__(self, cfg: SmtpConfig) -> None:
        self.cfg = cfg

    def _connect(self) -> smtplib.SMTP:
        cfg = self.cfg
        if cfg.use_ssl:
            return smtplib.SMTP_SSL(cfg.host, cfg.port, timeout=cfg.timeout_seconds)
        server = smtplib.SMTP(cfg.host, cfg.port, timeout=cfg.timeout_seconds)
        if cfg.use_tls:
            try:
                server.starttls()
            except (smtplib.SMTPException, OSError):
                server.close()
                raise
        return server

    def send(self, to: str, subject: str, body: str, attachment: Optional[Path] = None) -> None:
        if not self.cfg.host:
            raise EmailDeliveryError("SMTP host is not configured")

        try:
            msg = build_message(
                sender=self.cfg.from_address,
                to=to,
                subject=subject,
                body=body,
                attachment=attachment,
            )
        except OSError as e:
            raise EmailDeliveryError(f"cannot read attachment: {e}") from e

        try:
            with self._connect() as server:
                if self.cfg.username:
                    server.login(self.cfg.username, self.cfg.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise EmailDeliveryError(f"SMTP send error: {e}") from e

        logger.info("Sent email to %s (subject=%r attachment=%s)", to, subject, attachment)

    def check_connection(self) -> None:
        """Connect, authenticate and NOOP; used by `preflight`."""
        if not self.cfg.host:
            raise EmailDeliveryError("SMTP host is not configured")
        try:
            with self._connect() as server:
                if self.cfg.username:
                    server.login(self.cfg.username, self.cfg.password)
                server.noop()
        except (smtplib.SMTPException, OSError) as e:
            raise EmailDeliveryError(f"SMTP connection check failed: {e}") from e
