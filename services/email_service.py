"""
SMTP delivery of verification codes for the Nextest portal.
"""
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import parseaddr

from fastapi import Request

from config import CODE_EXPIRY_MINUTES, Settings
from utils.logger_factory import new_logger

SUBJECT = "Código de Verificação - Portal Nextest"


class EmailDeliveryError(Exception):
    """Raised when a verification email could not be handed to the SMTP server."""


class EmailNotConfigured(EmailDeliveryError):
    pass


def build_verification_message(from_address: str, to_email: str, code: str) -> MIMEMultipart:
    msg = MIMEMultipart("alternative")
    msg["Subject"] = SUBJECT
    msg["From"] = from_address
    msg["To"] = to_email

    # Plaintext fallback for clients that don't render HTML
    text_part = f"""
Portal de Tutoriais Nextest

Seu código de verificação é: {code}

Este código expira em {CODE_EXPIRY_MINUTES} minutos.
Se você não solicitou este código, ignore este email.
"""

    html = f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <h1>Portal de Tutoriais Nextest</h1>
  <p>Seu código de verificação é:</p>
  <div style="font-size: 32px; font-weight: bold; color: #0075C5; text-align: center; padding: 20px; background: #f8f9fa; border-radius: 8px;">{code}</div>
  <p>Este código expira em {CODE_EXPIRY_MINUTES} minutos.</p>
</div>
"""

    # Attach text first, then HTML (some clients pick the first alternative)
    msg.attach(MIMEText(text_part, "plain", "utf-8"))
    msg.attach(MIMEText(html, "html", "utf-8"))
    return msg


class EmailService:
    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def configured(self) -> bool:
        return self.settings.email_configured

    def send_verification_code(self, to_email: str, code: str) -> None:
        log = new_logger("send_verification_code")
        if not self.configured:
            if not self.settings.is_production:
                log.info(f"Email not configured. Code for {to_email}: {code}")
            raise EmailNotConfigured("SMTP credentials are not configured")

        msg = build_verification_message(self.settings.smtp_from, to_email, code)
        envelope_from = parseaddr(self.settings.smtp_from)[1] or self.settings.smtp_user
        try:
            with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=10) as server:
                server.starttls()
                server.login(self.settings.smtp_user, self.settings.smtp_pass)
                server.sendmail(envelope_from, to_email, msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            log.error(f"Failed to send verification email to {to_email}: {e}")
            raise EmailDeliveryError(str(e)) from e
        log.info(f"Verification email sent to {to_email}")


def get_email_service(request: Request) -> EmailService:
    return request.app.state.email_service
