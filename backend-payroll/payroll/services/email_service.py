"""
Email service - Transactional email through a configurable provider
Supported providers: SMTP (generic, Gmail, Outlook), SendGrid, Mailgun
"""

import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from abc import ABC, abstractmethod
from typing import Optional

import requests

from payroll.utils.helpers import mask_email

logger = logging.getLogger(__name__)


class EmailProvider(ABC):
    """Abstract interface for email providers"""

    @abstractmethod
    def send(self, to: str, subject: str, html: str, text: str) -> dict:
        """Sends one email"""
        pass


class SendGridEmailProvider(EmailProvider):
    """
    SendGrid provider

    Required configuration:
        - api_key: SendGrid API key
        - from_email: Verified sender address
        - from_name: Sender name (optional)
    """

    def __init__(self, config: dict):
        self.api_key = config.get('api_key')
        self.from_email = config.get('from_email')
        self.from_name = config.get('from_name', 'PayrollPro')

        if not all([self.api_key, self.from_email]):
            raise ValueError("SendGrid config requires: api_key, from_email")

        try:
            from sendgrid import SendGridAPIClient
            from sendgrid.helpers.mail import Mail, Email, To, Content
            self.client = SendGridAPIClient(self.api_key)
            self.Mail = Mail
            self.Email = Email
            self.To = To
            self.Content = Content
        except ImportError:
            raise ImportError("Package 'sendgrid' not installed. Run: pip install sendgrid")

    def send(self, to: str, subject: str, html: str, text: str) -> dict:
        try:
            message = self.Mail(
                from_email=self.Email(self.from_email, self.from_name),
                to_emails=self.To(to),
                subject=subject
            )
            message.add_content(self.Content('text/plain', text))
            message.add_content(self.Content('text/html', html))

            response = self.client.send(message)

            if response.status_code in [200, 201, 202]:
                logger.info(f"Email SendGrid sent to {mask_email(to)}")
                return {'success': True, 'provider': 'sendgrid', 'to': to}

            logger.error(f"SendGrid error: {response.status_code}")
            return {
                'success': False,
                'provider': 'sendgrid',
                'error': f'Status code: {response.status_code}',
                'to': to
            }
        except Exception as e:
            logger.error(f"SendGrid error: {str(e)}")
            return {'success': False, 'provider': 'sendgrid', 'error': str(e), 'to': to}


class MailgunEmailProvider(EmailProvider):
    """
    Mailgun provider

    Required configuration:
        - api_key: Mailgun API key
        - domain: Verified Mailgun domain
        - from_email: Sender address
        - region: 'us' or 'eu' (default: us)
    """

    def __init__(self, config: dict):
        self.api_key = config.get('api_key')
        self.domain = config.get('domain')
        self.from_email = config.get('from_email')
        self.from_name = config.get('from_name', 'PayrollPro')
        self.region = config.get('region', 'us')
        self.timeout = config.get('timeout', 10)

        if not all([self.api_key, self.domain, self.from_email]):
            raise ValueError("Mailgun config requires: api_key, domain, from_email")

        if self.region == 'eu':
            self.base_url = f"https://api.eu.mailgun.net/v3/{self.domain}"
        else:
            self.base_url = f"https://api.mailgun.net/v3/{self.domain}"

    def send(self, to: str, subject: str, html: str, text: str) -> dict:
        try:
            response = requests.post(
                f"{self.base_url}/messages",
                auth=('api', self.api_key),
                data={
                    'from': f"{self.from_name} <{self.from_email}>",
                    'to': to,
                    'subject': subject,
                    'text': text,
                    'html': html
                },
                timeout=self.timeout
            )

            if response.status_code == 200:
                message_id = response.json().get('id')
                logger.info(f"Email Mailgun sent to {mask_email(to)}: {message_id}")
                return {'success': True, 'provider': 'mailgun', 'message_id': message_id, 'to': to}

            logger.error(f"Mailgun error: {response.status_code} {response.text[:200]}")
            return {
                'success': False,
                'provider': 'mailgun',
                'error': f'Status code: {response.status_code}',
                'to': to
            }
        except requests.RequestException as e:
            logger.error(f"Mailgun error: {str(e)}")
            return {'success': False, 'provider': 'mailgun', 'error': str(e), 'to': to}


class SMTPEmailProvider(EmailProvider):
    """
    Generic SMTP provider
    Works with Gmail, Outlook and custom SMTP servers

    Required configuration:
        - host, port: SMTP server (587 for TLS, 465 for SSL)
        - username, password: Credentials or app password
        - from_email: Sender address
        - use_tls / use_ssl
    """

    def __init__(self, config: dict):
        self.host = config.get('host')
        self.port = config.get('port', 587)
        self.username = config.get('username')
        self.password = config.get('password')
        self.from_email = config.get('from_email') or self.username
        self.from_name = config.get('from_name', 'PayrollPro')
        self.use_tls = config.get('use_tls', True)
        self.use_ssl = config.get('use_ssl', False)
        self.timeout = config.get('timeout', 10)

        if not all([self.host, self.username, self.password, self.from_email]):
            raise ValueError("SMTP config requires: host, username, password, from_email")

    def send(self, to: str, subject: str, html: str, text: str) -> dict:
        try:
            msg = MIMEMultipart('alternative')
            msg.attach(MIMEText(text, 'plain', 'utf-8'))
            msg.attach(MIMEText(html, 'html', 'utf-8'))
            msg['Subject'] = subject
            msg['From'] = f"{self.from_name} <{self.from_email}>"
            msg['To'] = to

            if self.use_ssl:
                server = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
            else:
                server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
                if self.use_tls:
                    server.starttls()

            try:
                server.login(self.username, self.password)
                server.sendmail(self.from_email, [to], msg.as_string())
            finally:
                server.quit()

            logger.info(f"Email SMTP sent to {mask_email(to)}")
            return {'success': True, 'provider': 'smtp', 'to': to}
        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP auth error: {str(e)}")
            return {
                'success': False,
                'provider': 'smtp',
                'error': 'Authentication failed. Check username/password.',
                'to': to
            }
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"SMTP error: {str(e)}")
            return {'success': False, 'provider': 'smtp', 'error': str(e), 'to': to}


class EmailService:
    """
    Main email service
    Picks the provider and exposes send(to, subject, html, text) -> bool,
    the transport contract used by OTP delivery.
    """

    PROVIDERS = {
        'sendgrid': SendGridEmailProvider,
        'mailgun': MailgunEmailProvider,
        'smtp': SMTPEmailProvider,
        'gmail': SMTPEmailProvider,
        'outlook': SMTPEmailProvider
    }

    SMTP_PRESETS = {
        'gmail': {
            'host': 'smtp.gmail.com',
            'port': 587,
            'use_tls': True
        },
        'outlook': {
            'host': 'smtp.office365.com',
            'port': 587,
            'use_tls': True
        }
    }

    def __init__(self, provider_name: str, config: dict):
        """
        Args:
            provider_name: sendgrid, mailgun, smtp, gmail, outlook
            config: Provider configuration
        """
        provider_class = self.PROVIDERS.get(provider_name.lower())

        if not provider_class:
            raise ValueError(f"Unknown Email provider: {provider_name}. Available: {list(self.PROVIDERS.keys())}")

        if provider_name.lower() in self.SMTP_PRESETS:
            config = {**self.SMTP_PRESETS[provider_name.lower()], **config}

        self.provider = provider_class(config)
        self.provider_name = provider_name

    @classmethod
    def from_app_config(cls, app_config) -> Optional['EmailService']:
        """
        Builds the service from MAIL_PROVIDER / MAIL_SETTINGS.
        Returns None when no provider is configured or its configuration is incomplete.
        """
        provider_name = app_config.get('MAIL_PROVIDER')
        if not provider_name:
            return None
        try:
            return cls(provider_name, dict(app_config.get('MAIL_SETTINGS') or {}))
        except (ValueError, ImportError) as e:
            logger.error(f"Email provider '{provider_name}' unavailable: {e}")
            return None

    def send(self, to: str, subject: str, html: str, text: str) -> bool:
        if not to or '@' not in to:
            logger.warning(f"Refusing to send email to invalid address: {to!r}")
            return False

        result = self.provider.send(to, subject, html, text)
        return bool(result.get('success'))
