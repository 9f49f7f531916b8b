from __future__ import annotations

from dataclasses import dataclass
from html import escape as html_escape
from typing import Any

from servicedesk.core.config import get_settings
from servicedesk.services.email_html_base import render_branded_email, render_info_box, render_note_box

TEMPLATE_STATUS_UPDATE = "STATUS_UPDATE"
TEMPLATE_CUSTOM_MESSAGE = "CUSTOM_MESSAGE"


@dataclass(frozen=True)
class StatusCopy:
    subject_suffix: str
    heading: str
    label: str
    color: str
    background: str
    paragraphs: tuple[str, ...]
    closing: tuple[str, ...]


# ``{request_id}`` is substituted (HTML-escaped) into paragraphs.
STATUS_COPY: dict[str, StatusCopy] = {
    "reviewing": StatusCopy(
        subject_suffix="Under Review",
        heading="Request Under Review",
        label="Under Review",
        color="#2563eb",
        background="#f3f4f6",
        paragraphs=(
            "Thank you for submitting your service request. Your request <strong>{request_id}</strong>"
            " is now under review by our team.",
            "We will carefully examine your requirements and get back to you soon with further details.",
        ),
        closing=("If you have any questions, please don't hesitate to contact us.",),
    ),
    "in-progress": StatusCopy(
        subject_suffix="Work Started",
        heading="Work Started on Your Request",
        label="In Progress",
        color="#16a34a",
        background="#f0fdf4",
        paragraphs=(
            "Great news! We have started working on your service request <strong>{request_id}</strong>.",
            "Our team is now actively working on your project. We'll keep you updated on the progress"
            " and notify you once it's ready for review.",
        ),
        closing=("Thank you for your patience.",),
    ),
    "revision": StatusCopy(
        subject_suffix="Revision Required",
        heading="Revision Required",
        label="Under Revision",
        color="#ea580c",
        background="#fff7ed",
        paragraphs=(
            "Your service request <strong>{request_id}</strong> requires some revisions based on your"
            " feedback or our quality review.",
            "Our team is working on the necessary changes to ensure the final deliverable meets your expectations.",
        ),
        closing=("We'll notify you once the revisions are complete.",),
    ),
    "completed": StatusCopy(
        subject_suffix="Completed",
        heading="Your Request is Complete!",
        label="Completed",
        color="#059669",
        background="#ecfdf5",
        paragraphs=(
            "Good news! Your service request <strong>{request_id}</strong> has been completed.",
            "Our team has finished working on your project and it's ready for your review."
            " You should receive the deliverables shortly.",
        ),
        closing=(
            "Please review the deliverables and let us know if you need any adjustments.",
            "Thank you for choosing our services!",
        ),
    ),
    "delivered": StatusCopy(
        subject_suffix="Delivered",
        heading="Deliverables Sent!",
        label="Delivered",
        color="#7c3aed",
        background="#faf5ff",
        paragraphs=(
            "Your service request <strong>{request_id}</strong> has been delivered successfully.",
            "All deliverables have been sent to you. Please check your email and download the files.",
        ),
        closing=(
            "If you have any questions or need support, please don't hesitate to contact us.",
            "We hope you're satisfied with our work!",
        ),
    ),
    "cancelled": StatusCopy(
        subject_suffix="Cancelled",
        heading="Request Cancelled",
        label="Cancelled",
        color="#dc2626",
        background="#fef2f2",
        paragraphs=(
            "Your service request <strong>{request_id}</strong> has been cancelled.",
            "If this was unexpected or if you have any questions about the cancellation,"
            " please contact our support team.",
        ),
        closing=("We apologize for any inconvenience caused.",),
    ),
}


def _fallback_copy(status: str) -> StatusCopy:
    return StatusCopy(
        subject_suffix="Status Updated",
        heading="Status Update",
        label=status,
        color="#374151",
        background="#f3f4f6",
        paragraphs=("Your service request <strong>{request_id}</strong> status has been updated.",),
        closing=(),
    )


def status_copy(status: str) -> StatusCopy:
    return STATUS_COPY.get(status) or _fallback_copy(status)


def _team_signature() -> str:
    return get_settings().email_from_name or "SEOcial Media Solution Team"


def _strip_tags(fragment: str) -> str:
    return fragment.replace("<strong>", "").replace("</strong>", "")


def _paragraph(text: str) -> str:
    return f'<p style="margin:0 0 16px 0;font-size:15px;">{text}</p>'


def _html_status_update(client_name: str, request_id: str, copy: StatusCopy, admin_note: str) -> str:
    safe_id = html_escape(request_id)
    parts = [_paragraph(f"Dear {html_escape(client_name)},")]
    parts.extend(_paragraph(p.format(request_id=safe_id)) for p in copy.paragraphs)
    parts.append(
        render_info_box(
            f'<p style="margin:0;"><strong>Request ID:</strong> {safe_id}</p>'
            f'<p style="margin:5px 0 0 0;"><strong>Status:</strong> {html_escape(copy.label)}</p>',
            bg_color=copy.background,
            border_color=copy.color,
        )
    )
    parts.extend(_paragraph(p) for p in copy.closing)
    if admin_note:
        parts.append(render_note_box(admin_note))
    parts.append(_paragraph(f"Best regards,<br />{html_escape(_team_signature())}"))
    return "".join(parts)


def _text_status_update(client_name: str, request_id: str, copy: StatusCopy, admin_note: str) -> str:
    lines = [f"Dear {client_name},", ""]
    for paragraph in copy.paragraphs:
        lines.extend([_strip_tags(paragraph.format(request_id=request_id)), ""])
    lines.extend([f"Request ID: {request_id}", f"Status: {copy.label}", ""])
    for paragraph in copy.closing:
        lines.extend([paragraph, ""])
    if admin_note:
        lines.extend(["Additional Note:", admin_note, ""])
    lines.extend(["Best regards,", _team_signature()])
    return "\n".join(lines)


def _html_custom_message(client_name: str, message: str, admin_name: str) -> str:
    # Line breaks in the admin's message are preserved; markup is not.
    safe_message = html_escape(message).replace("\n", "<br />")
    return (
        f'<p style="margin:0 0 16px 0;font-size:16px;">Dear <strong>{html_escape(client_name)}</strong>,</p>'
        f'<p style="margin:0 0 24px 0;font-size:15px;line-height:1.6;color:#4b5563;">{safe_message}</p>'
        '<p style="margin:32px 0 0 0;font-size:14px;color:#6b7280;">'
        "Best regards,<br />"
        f'<span style="font-weight:600;color:#111827;">{html_escape(admin_name)}</span><br />'
        f'<span style="color:#2563eb;">{html_escape(_team_signature())}</span>'
        "</p>"
    )


# ── Main template builder ────────────────────────────────────


def build_email_payload(template_key: str, *, to: str, **context: Any) -> dict[str, Any]:
    if template_key == TEMPLATE_STATUS_UPDATE:
        request_id = str(context.get("request_id") or "").strip()
        status = str(context.get("status") or "").strip()
        if not request_id or not status:
            raise ValueError("request_id and status are required for STATUS_UPDATE")
        client_name = str(context.get("client_name") or "").strip() or "Client"
        admin_note = str(context.get("admin_note") or "").strip()
        copy = status_copy(status)
        return {
            "to": to,
            "subject": f"Service Request {request_id} - {copy.subject_suffix}",
            "body_text": _text_status_update(client_name, request_id, copy, admin_note),
            "body_html": render_branded_email(
                title=copy.heading,
                body_content=_html_status_update(client_name, request_id, copy, admin_note),
                preheader=f"Request {request_id}: {copy.label}",
                accent_color=copy.color,
            ),
        }

    if template_key == TEMPLATE_CUSTOM_MESSAGE:
        subject = str(context.get("subject") or "").strip()
        message = str(context.get("message") or "").strip()
        if not subject or not message:
            raise ValueError("subject and message are required for CUSTOM_MESSAGE")
        client_name = str(context.get("client_name") or "").strip() or "Client"
        admin_name = str(context.get("admin_name") or "").strip() or "Admin"
        return {
            "to": to,
            "subject": subject,
            "body_text": (
                f"Dear {client_name},\n\n"
                f"{message}\n\n"
                f"Best regards,\n"
                f"{admin_name}\n"
                f"{_team_signature()}"
            ),
            "body_html": render_branded_email(
                title=f"A Message from {admin_name}",
                body_content=_html_custom_message(client_name, message, admin_name),
                preheader=subject,
            ),
            "from_name": f"{admin_name} ({_team_signature()})",
        }

    raise ValueError(f"Unknown email template: {template_key}")
