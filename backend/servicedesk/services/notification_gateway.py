"""Outbound client email: status updates and custom admin messages over SMTP.

Public entry points never raise; every failure is folded into a
``NotificationResult`` so callers can record it and move on.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from typing import Any, Optional

from servicedesk.core.config import get_settings
from servicedesk.core.errors import NotificationError
from servicedesk.services.audit_log import mask_email
from servicedesk.services.email_templates import (
    TEMPLATE_CUSTOM_MESSAGE,
    TEMPLATE_STATUS_UPDATE,
    build_email_payload,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SmtpConfig:
    host: str
    port: int
    user: Optional[str]
    password: Optional[str]
    use_tls: bool
    from_email: str
    from_name: str = ""


@dataclass(frozen=True)
class NotificationResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


def smtp_config_from_settings() -> SmtpConfig:
    settings = get_settings()
    if not settings.smtp_configured:
        raise NotificationError("SMTP is not configured")
    return SmtpConfig(
        host=settings.smtp_host,
        port=int(settings.smtp_port),
        user=settings.smtp_user or None,
        password=settings.smtp_password or None,
        use_tls=bool(settings.smtp_use_tls),
        from_email=settings.email_from,
        from_name=settings.email_from_name,
    )


def _log_recipient(email: str) -> str:
    if get_settings().pii_redaction_enabled:
        return mask_email(email)
    return email


def send_email_via_smtp(
    *,
    smtp: SmtpConfig,
    to_email: str,
    subject: str,
    body_text: str,
    body_html: Optional[str] = None,
    from_name: Optional[str] = None,
) -> str:
    """Send one message and return its Message-ID."""
    msg = EmailMessage()
    display_name = from_name or smtp.from_name
    msg["From"] = formataddr((display_name, smtp.from_email)) if display_name else smtp.from_email
    msg["To"] = to_email
    msg["Subject"] = subject
    message_id = make_msgid()
    msg["Message-ID"] = message_id
    msg.set_content(body_text)
    if body_html:
        msg.add_alternative(body_html, subtype="html")

    context = ssl.create_default_context()

    # Port 465 uses implicit SSL (SMTP_SSL), anything else uses STARTTLS when enabled
    if smtp.port == 465:
        server = smtplib.SMTP_SSL(smtp.host, smtp.port, timeout=20, context=context)
    else:
        server = smtplib.SMTP(smtp.host, smtp.port, timeout=20)
        if smtp.use_tls:
            server.starttls(context=context)
    try:
        if smtp.user and smtp.password:
            server.login(smtp.user, smtp.password)
        server.send_message(msg)
    finally:
        try:
            server.quit()
        except (smtplib.SMTPException, OSError):
            logger.debug("SMTP quit failed", exc_info=True)
    return message_id


def deliver_payload(payload: dict[str, Any]) -> str:
    """Send a payload produced by ``build_email_payload``; raises on failure."""
    to_email = str(payload.get("to") or "").strip()
    subject = str(payload.get("subject") or "").strip()
    body_text = str(payload.get("body_text") or "")
    if not to_email or not subject or not body_text:
        raise NotificationError("Email payload is missing to/subject/body_text")
    try:
        return send_email_via_smtp(
            smtp=smtp_config_from_settings(),
            to_email=to_email,
            subject=subject,
            body_text=body_text,
            body_html=payload.get("body_html"),
            from_name=payload.get("from_name"),
        )
    except (smtplib.SMTPException, OSError) as exc:
        raise NotificationError(f"SMTP delivery failed: {exc}") from exc


def send_status_update(
    email: str,
    name: str,
    request_id: str,
    status: str,
    note: Optional[str] = None,
) -> NotificationResult:
    try:
        payload = build_email_payload(
            TEMPLATE_STATUS_UPDATE,
            to=email,
            client_name=name,
            request_id=request_id,
            status=status,
            admin_note=note or "",
        )
        message_id = deliver_payload(payload)
    except Exception as exc:
        logger.exception(
            "Status update email failed request_id=%s status=%s to=%s",
            request_id,
            status,
            _log_recipient(email),
        )
        return NotificationResult(success=False, error=str(exc) or exc.__class__.__name__)
    logger.info(
        "Status update email sent request_id=%s status=%s to=%s message_id=%s",
        request_id,
        status,
        _log_recipient(email),
        message_id,
    )
    return NotificationResult(success=True, message_id=message_id)


def send_custom(
    name: str,
    email: str,
    subject: str,
    message: str,
    admin_name: str = "Admin",
) -> NotificationResult:
    try:
        payload = build_email_payload(
            TEMPLATE_CUSTOM_MESSAGE,
            to=email,
            client_name=name,
            subject=subject,
            message=message,
            admin_name=admin_name,
        )
        message_id = deliver_payload(payload)
    except Exception as exc:
        logger.exception("Custom admin email failed to=%s", _log_recipient(email))
        return NotificationResult(success=False, error=str(exc) or exc.__class__.__name__)
    logger.info("Custom admin email sent to=%s message_id=%s", _log_recipient(email), message_id)
    return NotificationResult(success=True, message_id=message_id)


async def _run_bounded(label: str, func, *args: Any, timeout_seconds: Optional[float] = None) -> NotificationResult:
    """Run a blocking send off the event loop, bounded by a timeout."""
    timeout = timeout_seconds if timeout_seconds is not None else get_settings().notification_timeout_seconds
    try:
        return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("%s timed out after %ss", label, timeout)
        return NotificationResult(success=False, error=f"Notification timed out after {timeout}s")
    except Exception as exc:
        logger.exception("%s dispatch failed", label)
        return NotificationResult(success=False, error=str(exc) or exc.__class__.__name__)


async def dispatch_status_update(
    email: str,
    name: str,
    request_id: str,
    status: str,
    note: Optional[str] = None,
    *,
    timeout_seconds: Optional[float] = None,
) -> NotificationResult:
    return await _run_bounded(
        f"Status update email request_id={request_id} status={status}",
        send_status_update,
        email,
        name,
        request_id,
        status,
        note,
        timeout_seconds=timeout_seconds,
    )


async def dispatch_custom(
    name: str,
    email: str,
    subject: str,
    message: str,
    admin_name: str = "Admin",
    *,
    timeout_seconds: Optional[float] = None,
) -> NotificationResult:
    return await _run_bounded(
        f"Custom admin email to={_log_recipient(email)}",
        send_custom,
        name,
        email,
        subject,
        message,
        admin_name,
        timeout_seconds=timeout_seconds,
    )
