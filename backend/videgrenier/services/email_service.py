# Overview: Transactional email (verification, welcome, password reset, contact form).

"""
Mailers are built once per application by build_mailer() and stored in
app.extensions["mailer"]; services fetch them with get_mailer().

- BrevoMailer: POSTs to the Brevo transactional email API with httpx.
- MemoryMailer: keeps messages in an outbox list (tests, local development).

Every failure to hand a message to the provider raises UpstreamError. Callers
decide whether that failure is fatal (verification email on signup, admin
contact notification) or best-effort (welcome, contact confirmation).
"""

from __future__ import annotations

from dataclasses import dataclass
from html import escape

import httpx
from flask import current_app

from ..errors import UpstreamError

BRAND = "Vide Grenier Kamer"


@dataclass
class EmailMessage:
    to: str
    to_name: str | None
    subject: str
    html: str
    reply_to: str | None = None


def _layout(title: str, body: str) -> str:
    return (
        "<!DOCTYPE html><html><head><meta charset=\"UTF-8\"></head>"
        "<body style=\"font-family: Arial, sans-serif; background: #f3efe7;\">"
        f"<div style=\"max-width: 600px; margin: 40px auto; background: #fff; padding: 30px;\">"
        f"<h1 style=\"color: #2a363b;\">{title}</h1>{body}"
        f"<p style=\"color: #666; font-size: 12px;\">{BRAND}</p>"
        "</div></body></html>"
    )


class Mailer:
    """Builds the application's messages; subclasses deliver them."""

    def __init__(self, *, frontend_url: str, admin_email: str | None = None):
        self.frontend_url = frontend_url.rstrip("/")
        self.admin_email = admin_email

    def deliver(self, message: EmailMessage) -> None:
        raise NotImplementedError

    def send_verification_email(self, to: str, token: str, first_name: str) -> None:
        url = f"{self.frontend_url}/verify-email?token={token}"
        body = (
            f"<p>Hi <strong>{escape(first_name)}</strong>,</p>"
            "<p>Please verify your email address to activate your account:</p>"
            f"<p><a href=\"{url}\">Verify my email</a></p>"
            f"<p>{url}</p>"
            "<p>This link will expire in 24 hours.</p>"
        )
        self.deliver(EmailMessage(
            to=to,
            to_name=first_name,
            subject=f"Verify Your Email - {BRAND}",
            html=_layout(f"Welcome to {BRAND}!", body),
        ))

    def send_welcome_email(self, to: str, first_name: str) -> None:
        body = (
            f"<p>Hi <strong>{escape(first_name)}</strong>,</p>"
            "<p>Your email is verified and your account is ready.</p>"
            f"<p><a href=\"{self.frontend_url}/login\">Log in</a></p>"
        )
        self.deliver(EmailMessage(
            to=to,
            to_name=first_name,
            subject=f"Welcome to {BRAND}!",
            html=_layout("Your account is active", body),
        ))

    def send_password_reset_email(self, to: str, token: str, first_name: str) -> None:
        url = f"{self.frontend_url}/reset-password?token={token}"
        body = (
            f"<p>Hi <strong>{escape(first_name)}</strong>,</p>"
            "<p>We received a request to reset your password.</p>"
            f"<p><a href=\"{url}\">Reset my password</a></p>"
            "<p>This link will expire in 1 hour. If you did not ask for it, ignore this email.</p>"
        )
        self.deliver(EmailMessage(
            to=to,
            to_name=first_name,
            subject=f"Reset Your Password - {BRAND}",
            html=_layout("Password reset", body),
        ))

    def send_contact_notification(self, contact: dict) -> None:
        if not self.admin_email:
            raise UpstreamError("ADMIN_EMAIL is not configured")
        body = (
            f"<p><strong>From:</strong> {escape(contact['name'])} &lt;{escape(contact['email'])}&gt;</p>"
            f"<p><strong>Subject:</strong> {escape(contact['subject'])}</p>"
            f"<p>{escape(contact['message'])}</p>"
        )
        self.deliver(EmailMessage(
            to=self.admin_email,
            to_name="Admin",
            subject=f"[Contact Form] {contact['subject']}",
            html=_layout("New contact message", body),
            reply_to=contact["email"],
        ))

    def send_contact_confirmation(self, contact: dict) -> None:
        body = (
            f"<p>Hi <strong>{escape(contact['name'])}</strong>,</p>"
            "<p>Thanks for reaching out. We received your message and will reply soon.</p>"
            f"<p><strong>Subject:</strong> {escape(contact['subject'])}</p>"
        )
        self.deliver(EmailMessage(
            to=contact["email"],
            to_name=contact["name"],
            subject=f"We received your message - {BRAND}",
            html=_layout("Message received", body),
        ))


class BrevoMailer(Mailer):
    """Brevo (ex-Sendinblue) transactional email API client."""

    def __init__(
        self,
        *,
        api_key: str,
        api_url: str,
        sender_email: str,
        sender_name: str,
        frontend_url: str,
        admin_email: str | None = None,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        super().__init__(frontend_url=frontend_url, admin_email=admin_email)
        self.api_url = api_url
        self.sender = {"email": sender_email, "name": sender_name}
        self._client = httpx.Client(
            timeout=timeout,
            transport=transport,
            headers={"api-key": api_key or "", "accept": "application/json"},
        )

    def deliver(self, message: EmailMessage) -> None:
        payload = {
            "sender": self.sender,
            "to": [{"email": message.to, "name": message.to_name or message.to}],
            "subject": message.subject,
            "htmlContent": message.html,
        }
        if message.reply_to:
            payload["replyTo"] = {"email": message.reply_to}

        try:
            response = self._client.post(self.api_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise UpstreamError(
                "Email provider rejected the message",
                details={"provider": "brevo"},
            ) from exc

        current_app.logger.info("Email '%s' sent to %s", message.subject, message.to)


class MemoryMailer(Mailer):
    """Collects messages instead of sending them. `fail` simulates provider outages."""

    def __init__(self, *, frontend_url: str, admin_email: str | None = None):
        super().__init__(frontend_url=frontend_url, admin_email=admin_email)
        self.outbox: list[EmailMessage] = []
        self.fail = False

    def deliver(self, message: EmailMessage) -> None:
        if self.fail:
            raise UpstreamError("Email provider unavailable", details={"provider": "memory"})
        self.outbox.append(message)


def build_mailer(config) -> Mailer:
    common = {
        "frontend_url": config["FRONTEND_URL"],
        "admin_email": config.get("ADMIN_EMAIL"),
    }
    if config.get("MAIL_BACKEND") == "memory":
        return MemoryMailer(**common)
    return BrevoMailer(
        api_key=config.get("BREVO_API_KEY"),
        api_url=config["BREVO_API_URL"],
        sender_email=config["EMAIL_FROM"],
        sender_name=config["EMAIL_FROM_NAME"],
        timeout=config["HTTP_TIMEOUT_SECONDS"],
        **common,
    )


def get_mailer() -> Mailer:
    return current_app.extensions["mailer"]
