"""
Mail transports used by the notification dispatcher for the email channel.
"""

import logging
import re
import smtplib
from email.message import EmailMessage
from email.utils import make_msgid
from typing import Any, Dict, Optional
from starlette.concurrency import run_in_threadpool

from app.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)

_TAG_RE = re.compile(r"<[^>]*>")


class MailTransport:
    """郵件傳輸介面"""

    name = "base"

    async def send(self, to: str, subject: str, body: str) -> Dict[str, Any]:
        """發送郵件，失敗時拋出例外"""
        raise NotImplementedError


class LoggingMailTransport(MailTransport):
    """未設定 SMTP 時使用，只記錄日誌"""

    name = "logging"

    async def send(self, to: str, subject: str, body: str) -> Dict[str, Any]:
        logger.info(f"Sending email to {to}: {subject}")
        return {"message_id": make_msgid(domain="workdesk.local")}


class SmtpMailTransport(MailTransport):
    """SMTP 郵件傳輸"""

    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int,
        sender: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True
    ):
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls

    def _build_message(self, to: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message["Message-ID"] = make_msgid()
        # 純文字版本去除 HTML 標籤
        message.set_content(_TAG_RE.sub("", body))
        message.add_alternative(body, subtype="html")
        return message

    def _send_sync(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port) as smtp_client:
            if self.use_tls:
                smtp_client.starttls()
            if self.username:
                smtp_client.login(self.username, self.password or "")
            smtp_client.send_message(message)

    async def send(self, to: str, subject: str, body: str) -> Dict[str, Any]:
        message = self._build_message(to, subject, body)
        await run_in_threadpool(self._send_sync, message)
        logger.info(f"Email sent to {to}: {subject}")
        return {"message_id": message["Message-ID"]}


def build_mail_transport(config: Settings = None) -> MailTransport:
    """依設定建立郵件傳輸"""
    config = config or default_settings

    if not config.smtp_configured:
        logger.warning("SMTP is not configured, emails will only be logged")
        return LoggingMailTransport()

    credentials = config.get_smtp_credentials()
    return SmtpMailTransport(
        host=config.SMTP_HOST,
        port=config.SMTP_PORT,
        sender=config.SMTP_FROM,
        username=credentials[0] if credentials else None,
        password=credentials[1] if credentials else None,
        use_tls=config.SMTP_USE_TLS
    )
