import html
import logging
import smtplib
import ssl
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import formataddr

from tfinance.core.config import Settings, settings

logger = logging.getLogger(__name__)

VERIFICATION_SUBJECT = "Confirm your email address - T-Finance-Web"


class MailConfigError(RuntimeError):
    pass


class MailSender:
    def __init__(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        from_email: str,
        from_name: str = "T-Finance",
        timeout: float = 30,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_email = from_email or username
        self.from_name = from_name
        self.timeout = timeout

    @classmethod
    def from_settings(cls, cfg: Settings) -> "MailSender":
        return cls(
            host=cfg.smtp_host,
            port=cfg.smtp_port,
            username=cfg.smtp_username,
            password=cfg.smtp_password,
            from_email=cfg.smtp_from_email,
            from_name=cfg.smtp_from_name,
            timeout=cfg.smtp_timeout,
        )

    def _check_config(self) -> None:
        if not self.username:
            raise MailConfigError("SMTP username is not configured (set SMTP_USERNAME)")
        if not self.password:
            raise MailConfigError("SMTP password is not configured (set SMTP_PASSWORD)")
        if not self.from_email:
            raise MailConfigError("SMTP sender is not configured (set SMTP_FROM_EMAIL)")

    def build_message(self, to_email: str, subject: str, text_body: str, html_body: str | None = None) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = formataddr((self.from_name, self.from_email))
        msg["To"] = to_email
        msg.set_content(text_body)
        if html_body:
            msg.add_alternative(html_body, subtype="html")
        return msg

    def send(self, to_email: str, subject: str, text_body: str, html_body: str | None = None) -> None:
        if not (to_email or "").strip():
            raise ValueError("Recipient email must not be empty")
        self._check_config()
        msg = self.build_message(to_email, subject, text_body, html_body)

        context = ssl.create_default_context()
        if self.port == 465:
            with smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=self.timeout) as smtp:
                smtp.login(self.username, self.password)
                smtp.send_message(msg)
        else:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                smtp.ehlo()
                smtp.starttls(context=context)
                smtp.ehlo()
                smtp.login(self.username, self.password)
                smtp.send_message(msg)
        logger.info("Email sent: to=%s subject=%s", to_email, subject)


def render_verification_email(verification_link: str, username: str, ttl_hours: int) -> tuple[str, str]:
    year = datetime.now(timezone.utc).year
    text_body = (
        f"Hello, {username}!\n\n"
        "Thank you for signing up for T-Finance. To finish registration, confirm your email address "
        "by opening the link below:\n\n"
        f"{verification_link}\n\n"
        f"The link is valid for {ttl_hours} hours.\n"
        "If you did not sign up for T-Finance, just ignore this email.\n"
    )
    link = html.escape(verification_link, quote=True)
    name = html.escape(username)
    html_body = f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .header {{ background-color: #4CAF50; color: white; padding: 20px; text-align: center; }}
        .content {{ padding: 20px; background-color: #f9f9f9; }}
        .button {{ display: inline-block; padding: 12px 24px; background-color: #4CAF50; color: white;
                   text-decoration: none; border-radius: 5px; margin: 20px 0; }}
        .footer {{ padding: 20px; text-align: center; color: #666; font-size: 12px; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="header"><h1>T-Finance-Web</h1></div>
        <div class="content">
            <h2>Hello, {name}!</h2>
            <p>Thank you for signing up for T-Finance. To finish registration, please confirm your email address.</p>
            <p style="text-align: center;"><a href="{link}" class="button">Confirm email</a></p>
            <p>Or copy this link into your browser:</p>
            <p style="word-break: break-all; color: #0066cc;">{link}</p>
            <p><strong>Important:</strong> the link is valid for {ttl_hours} hours.</p>
            <p>If you did not sign up for T-Finance, just ignore this email.</p>
        </div>
        <div class="footer"><p>&copy; {year} T-Finance. All rights reserved.</p></div>
    </div>
</body>
</html>"""
    return text_body, html_body


def send_verification_email(
    to_email: str,
    verification_link: str,
    username: str,
    sender: MailSender | None = None,
) -> bool:
    """Send the confirmation link; failures are logged and reported as ``False``.

    Runs as a background task after registration, so nothing here may raise.
    """
    sender = sender or MailSender.from_settings(settings)
    text_body, html_body = render_verification_email(
        verification_link, username or "user", settings.email_token_ttl_hours
    )
    try:
        sender.send(to_email, VERIFICATION_SUBJECT, text_body, html_body)
    except (MailConfigError, ValueError, smtplib.SMTPException, OSError):
        logger.exception("Verification email to %s was not delivered", to_email)
        return False
    return True
