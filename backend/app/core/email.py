"""
SMTP email sender used by the notification messenger.
"""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from app.core.config import settings

logger = logging.getLogger(__name__)

# X-Priority header values (1 = highest)
_PRIORITY_HEADERS = {"urgent": "1", "high": "2", "normal": "3", "low": "5"}


class EmailService:
    """Send plain/HTML email over SMTP."""

    def __init__(
        self,
        smtp_host: str,
        smtp_port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        from_email: str = "",
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.from_email = from_email or username

    @classmethod
    def from_settings(cls) -> "EmailService":
        return cls(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            username=settings.smtp_user,
            password=settings.smtp_password,
            use_tls=settings.smtp_use_tls,
            from_email=settings.smtp_from_email,
        )

    @property
    def configured(self) -> bool:
        return bool(self.smtp_host and self.username and self.password)

    def send(
        self,
        to: str,
        subject: str,
        body: str,
        html_body: Optional[str] = None,
        priority: str = "normal",
    ) -> bool:
        """
        Send an email.

        Returns:
            True if the SMTP server accepted the message
        """
        if not self.configured:
            logger.warning(f"Email not configured, would send to {to}: {subject}")
            return False

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = to
        msg["X-Priority"] = _PRIORITY_HEADERS.get(priority, "3")
        msg.attach(MIMEText(body, "plain"))
        if html_body:
            msg.attach(MIMEText(html_body, "html"))

        try:
            with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=10) as server:
                if self.use_tls:
                    server.starttls()
                server.login(self.username, self.password)
                server.sendmail(self.from_email, to, msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email to {to}: {e}")
            return False

        logger.info(f"Email sent to {to}: {subject}")
        return True
