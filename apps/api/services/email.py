"""Transactional email through the Mailgun HTTP API."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

import httpx

from config import parse_admin_emails, settings
from services.errors import UpstreamFailure

logger = logging.getLogger(__name__)


def mailgun_configured() -> bool:
    return bool(settings.MAILGUN_API_KEY and settings.MAILGUN_DOMAIN)


def _from_address() -> str:
    return settings.MAILGUN_FROM_EMAIL or f"noreply@{settings.MAILGUN_DOMAIN}"


def _wrap_html(content: str) -> str:
    year = datetime.now(timezone.utc).year
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\"></head>"
        "<body style=\"font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;\">"
        f"<div style=\"background-color: #dc2626; color: white; padding: 20px; text-align: center;\">"
        f"<h1 style=\"margin: 0;\">{settings.SITE_NAME}</h1></div>"
        f"<div style=\"padding: 30px; border: 1px solid #e5e7eb;\">{content}"
        f"<p style=\"color: #9ca3af; font-size: 12px; text-align: center;\">"
        f"&copy; {year} {settings.SITE_NAME}. Todos os direitos reservados.</p></div>"
        "</body></html>"
    )


async def send_email(
    *,
    to: str,
    subject: str,
    text: str,
    html: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> bool:
    """Send one message. Returns False when Mailgun is not configured.

    Raises UpstreamFailure when Mailgun rejects or cannot be reached.
    """
    if not mailgun_configured():
        logger.warning("MAILGUN_API_KEY or MAILGUN_DOMAIN is not set. Email to %s not sent.", to)
        return False

    url = f"{settings.MAILGUN_BASE_URL.rstrip('/')}/v3/{settings.MAILGUN_DOMAIN}/messages"
    data = {"from": _from_address(), "to": to, "subject": subject, "text": text}
    if html:
        data["html"] = html

    try:
        async with httpx.AsyncClient(timeout=10.0, transport=transport) as client:
            response = await client.post(url, auth=("api", settings.MAILGUN_API_KEY), data=data)
            response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.error("Mailgun send failed to=%s subject=%s: %s", to, subject, exc)
        raise UpstreamFailure("Failed to send email") from exc

    logger.info("Email sent to=%s subject=%s", to, subject)
    return True


def _greeting(username: Optional[str]) -> str:
    return f"Olá, {username}!" if username else "Olá!"


async def send_verification_email(email: str, token: str, username: Optional[str] = None) -> bool:
    link = f"{settings.PUBLIC_BASE_URL.rstrip('/')}/auth/verify?token={token}"
    text = (
        f"{_greeting(username)}\n\n"
        "Obrigado por se registrar na nossa plataforma. Verifique seu email acessando o link abaixo:\n"
        f"{link}\n\nEste link expira em 24 horas."
    )
    html = _wrap_html(
        f"<h2>{_greeting(username)}</h2>"
        "<p>Obrigado por se registrar na nossa plataforma. Para completar seu cadastro, verifique seu email:</p>"
        f"<p><a href=\"{link}\">Verificar Email</a></p>"
        "<p>Este link expira em 24 horas.</p>"
    )
    return await send_email(to=email, subject=f"Verifique sua conta - {settings.SITE_NAME}", text=text, html=html)


async def send_password_reset_email(email: str, token: str, username: Optional[str] = None) -> bool:
    link = f"{settings.PUBLIC_BASE_URL.rstrip('/')}/reset-password?token={token}"
    text = (
        f"{_greeting(username)}\n\n"
        "Recebemos uma solicitação para redefinir a senha da sua conta:\n"
        f"{link}\n\nEste link expira em 1 hora."
    )
    html = _wrap_html(
        f"<h2>{_greeting(username)}</h2>"
        "<p>Recebemos uma solicitação para redefinir a senha da sua conta.</p>"
        f"<p><a href=\"{link}\">Redefinir Senha</a></p>"
        "<p>Este link expira em 1 hora.</p>"
    )
    return await send_email(to=email, subject=f"Redefinir senha - {settings.SITE_NAME}", text=text, html=html)


async def notify_admins_of_pending_listing(
    listing_id: str,
    title: str,
    owner_email: str,
    admin_emails: Optional[Iterable[str]] = None,
) -> int:
    """Email every allow-listed admin; failures are logged and skipped."""
    recipients = list(admin_emails) if admin_emails is not None else parse_admin_emails(settings.ADMIN_EMAILS)
    link = f"{settings.PUBLIC_BASE_URL.rstrip('/')}/admin/listings"
    text = f"Novo anúncio pendente: {title}\nAnunciante: {owner_email}\nID: {listing_id}\n{link}"
    html = _wrap_html(
        f"<h2>Novo anúncio pendente</h2><p><strong>{title}</strong></p>"
        f"<p>Anunciante: {owner_email}</p><p><a href=\"{link}\">Revisar anúncios</a></p>"
    )

    sent = 0
    for recipient in recipients:
        try:
            if await send_email(to=recipient, subject=f"Anúncio pendente - {settings.SITE_NAME}", text=text, html=html):
                sent += 1
        except UpstreamFailure:
            logger.warning("Pending listing notification to %s failed", recipient)
    return sent
