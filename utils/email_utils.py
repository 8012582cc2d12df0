import smtplib
import logging
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart

from starlette.concurrency import run_in_threadpool

from config import (
    EMAIL_SENDER,
    EMAIL_PASSWORD,
    SMTP_HOST,
    SMTP_PORT,
)
from utils.email_templates import (
    EmailTemplate,
    VERIFICATION_EMAIL,
    WELCOME_EMAIL,
    PASSWORD_RESET_EMAIL,
    RESET_SUCCESS_EMAIL,
    VerificationFields,
    WelcomeFields,
    PasswordResetFields,
    ResetSuccessFields,
)
from utils.errors import MailError

# Set up logging
logger = logging.getLogger(__name__)


class EmailConfig:
    """Email configuration class"""

    def __init__(self, smtp_host=SMTP_HOST, smtp_port=SMTP_PORT,
                 sender_email=EMAIL_SENDER, sender_password=EMAIL_PASSWORD):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.sender_email = sender_email
        self.sender_password = sender_password

    def validate_config(self):
        """Validate that all required email configuration is present"""
        if not all([self.smtp_host, self.smtp_port, self.sender_email, self.sender_password]):
            raise ValueError("Missing required email configuration. Check your environment variables.")


def create_smtp_connection(email_config: EmailConfig):
    """Create and return an authenticated SMTP connection"""
    logger.info(f"Connecting to SMTP server: {email_config.smtp_host}:{email_config.smtp_port}")

    if email_config.smtp_port == 465:
        server = smtplib.SMTP_SSL(email_config.smtp_host, email_config.smtp_port, timeout=30)
    else:
        server = smtplib.SMTP(email_config.smtp_host, email_config.smtp_port, timeout=30)
        server.ehlo()
        server.starttls()
        server.ehlo()

    try:
        server.login(email_config.sender_email, email_config.sender_password)
    except smtplib.SMTPException:
        server.close()
        raise
    return server


def send_email(email_config: EmailConfig, to_email: str, subject: str, html_body: str):
    """
    Send a single HTML email.

    Args:
        email_config: SMTP settings and sender credentials
        to_email: Recipient email address
        subject: Email subject
        html_body: HTML content of the email
    """
    email_config.validate_config()

    msg = MIMEMultipart('alternative')
    msg['From'] = email_config.sender_email
    msg['To'] = to_email
    msg['Subject'] = subject
    msg.attach(MIMEText(html_body, 'html'))

    server = create_smtp_connection(email_config)
    try:
        server.sendmail(email_config.sender_email, to_email, msg.as_string())
    finally:
        server.quit()

    logger.info(f"Email '{subject}' sent to {to_email}")


class SMTPMailer:
    """
    Sends the four account mails through SMTP.

    Every send is awaited by the caller; SMTP work runs in a worker thread and
    any failure surfaces as MailError.
    """

    def __init__(self, email_config: EmailConfig = None):
        self.email_config = email_config or EmailConfig()

    async def _deliver(self, to_email: str, template: EmailTemplate, fields):
        try:
            html_body = template.render(fields)
            await run_in_threadpool(send_email, self.email_config, to_email, template.subject, html_body)
        except Exception as e:
            logger.error(f"Failed to send '{template.subject}' to {to_email}: {e}")
            raise MailError(f"Error sending email: {e}")

    async def send_verification(self, email: str, code: str):
        await self._deliver(email, VERIFICATION_EMAIL, VerificationFields(verificationCode=code))

    async def send_welcome(self, email: str, name: str):
        await self._deliver(email, WELCOME_EMAIL, WelcomeFields(name=name))

    async def send_password_reset(self, email: str, reset_url: str):
        await self._deliver(email, PASSWORD_RESET_EMAIL, PasswordResetFields(resetURL=reset_url))

    async def send_reset_success(self, email: str):
        await self._deliver(email, RESET_SUCCESS_EMAIL, ResetSuccessFields())
