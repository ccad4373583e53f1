"""
Email Service
Delivers expense summary reports over SMTP.
Supports Gmail, Outlook, and other SMTP servers.
"""
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, Optional

from app.core.config import Settings

logger = logging.getLogger(__name__)


class SmtpMailer:
    def __init__(
        self,
        host: str,
        port: int,
        from_email: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        starttls: bool = True,
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.from_email = from_email
        self.username = username
        self.password = password
        self.starttls = starttls
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "SmtpMailer":
        return cls(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            from_email=settings.SMTP_FROM,
            username=settings.SMTP_USERNAME,
            password=settings.SMTP_PASSWORD,
            starttls=settings.SMTP_STARTTLS,
        )

    def send_email(self, to_email: str, subject: str, body_text: str) -> bool:
        """
        Send a plain text email.

        Returns:
            bool: True if email sent successfully, False otherwise
        """
        msg = MIMEMultipart("alternative")
        msg["From"] = self.from_email
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.attach(MIMEText(body_text, "plain"))

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.starttls:
                    server.starttls()
                if self.username and self.password:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP authentication failed: {str(e)}")
            return False
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Error sending email to {to_email}: {str(e)}")
            return False

        logger.info(f"Email sent successfully to {to_email}")
        return True


def render_report_text(payload: Dict[str, Any]) -> str:
    lines = [
        f"Expense Summary ({payload['period']})",
        "",
        f"Hello {payload.get('name') or 'there'},",
        "",
        payload["message"],
        "",
        f"Total Spent: ${payload['total_spent']:,.2f}",
    ]

    if payload["category_breakdown"]:
        lines += ["", "Spending by Category:"]
        for item in payload["category_breakdown"]:
            lines.append(
                f"- {item['category'].capitalize()}: ${item['total']:,.2f} "
                f"({item['count']} expenses, {item['percentage']:.1f}%)"
            )

    if payload.get("insights"):
        lines += ["", "Spending Trends:"]
        lines += [f"- {insight['message']}" for insight in payload["insights"]]

    lines += ["", "This is an automated email from your Expense Tracker application."]
    return "\n".join(lines)


class EmailReportDelivery:
    """Hands a finished report payload to the SMTP server."""

    def __init__(self, mailer: SmtpMailer) -> None:
        self._mailer = mailer

    def deliver(self, payload: Dict[str, Any]) -> bool:
        email = payload.get("email")
        if not email:
            logger.warning(f"No recipient for report of user {payload.get('user_id')}, skipping email")
            return True
        subject = f"Expense Summary: {payload['period'].capitalize()}"
        return self._mailer.send_email(email, subject, render_report_text(payload))
