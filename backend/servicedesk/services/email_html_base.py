"""
Branded HTML email base layout

Table-based, inline-CSS HTML email wrapper used by every client-facing email.
Compatible with: Outlook, Gmail, Yahoo, Apple Mail.

Usage:
    from servicedesk.services.email_html_base import render_branded_email

    html = render_branded_email(
        title="Request Under Review",
        body_content="<p>Your request <strong>REQ-...</strong> is under review.</p>",
        preheader="Your request is under review",
    )
"""

from __future__ import annotations

from datetime import datetime, timezone
from html import escape as html_escape

from servicedesk.core.config import get_settings

# ── Brand tokens ──────────────────────────────────────────────
COLOR_PRIMARY = "#2563eb"
COLOR_BG = "#f9fafb"
COLOR_WHITE = "#ffffff"
COLOR_BORDER = "#e5e7eb"
COLOR_TEXT = "#374151"
COLOR_MUTED = "#6b7280"
COLOR_HIGHLIGHT_BG = "#f3f4f6"

FONT_STACK = "Arial, 'Helvetica Neue', Helvetica, sans-serif"


def _brand_name() -> str:
    return get_settings().brand_name or "SEOcial Media Solution"


def render_branded_email(
    *,
    title: str,
    body_content: str,
    preheader: str = "",
    accent_color: str = COLOR_PRIMARY,
) -> str:
    """Render body_content inside the branded HTML email layout.

    Args:
        title: Email title, used in <title> and as the heading.
        body_content: Inner HTML content for the specific template.
        preheader: Hidden preview text shown by email clients.
        accent_color: Colour of the heading and the header rule.

    Returns:
        Complete HTML string ready for email sending.
    """
    brand = html_escape(_brand_name())
    safe_title = html_escape(title)
    year = datetime.now(timezone.utc).year

    # Preheader trick: hidden text that shows in email client preview
    preheader_html = ""
    if preheader:
        preheader_html = (
            f'<div style="display:none;font-size:1px;color:{COLOR_BG};line-height:1px;'
            f'max-height:0;max-width:0;opacity:0;overflow:hidden;">'
            f"{html_escape(preheader)}"
            f"</div>"
        )

    return f"""\
<!DOCTYPE html>
<html lang="en" xmlns="http://www.w3.org/1999/xhtml">
<head>
  <meta charset="UTF-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1.0" />
  <title>{safe_title}</title>
</head>
<body style="margin:0;padding:0;background-color:{COLOR_BG};font-family:{FONT_STACK};">
{preheader_html}
<table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="background-color:{COLOR_BG};">
  <tr>
    <td align="center" style="padding:24px 16px;">
      <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="600" style="max-width:600px;width:100%;background-color:{COLOR_WHITE};border:1px solid {COLOR_BORDER};border-radius:12px;overflow:hidden;">
        <tr>
          <td style="padding:24px 32px 16px 32px;border-bottom:3px solid {accent_color};">
            <h2 style="margin:0;color:{accent_color};font-family:{FONT_STACK};font-size:22px;">{safe_title}</h2>
          </td>
        </tr>
        <tr>
          <td style="padding:28px 32px;color:{COLOR_TEXT};font-family:{FONT_STACK};font-size:15px;line-height:1.6;">
{body_content}
          </td>
        </tr>
        <tr>
          <td style="padding:20px 32px;background-color:{COLOR_BG};border-top:1px solid {COLOR_BORDER};text-align:center;font-family:{FONT_STACK};font-size:12px;color:{COLOR_MUTED};">
            &copy; {year} {brand}. All rights reserved.
          </td>
        </tr>
      </table>
    </td>
  </tr>
</table>
</body>
</html>"""


def render_info_box(content: str, *, bg_color: str = COLOR_HIGHLIGHT_BG, border_color: str = COLOR_BORDER) -> str:
    """Render a highlighted info box for displaying key details."""
    return (
        f'<table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%"'
        f' style="margin:16px 0;">'
        f"<tr>"
        f'<td style="padding:15px 20px;background-color:{bg_color};border-radius:5px;'
        f"border-left:4px solid {border_color};font-family:{FONT_STACK};font-size:15px;"
        f'line-height:1.6;color:{COLOR_TEXT};">'
        f"{content}"
        f"</td>"
        f"</tr>"
        f"</table>"
    )


def render_note_box(note: str) -> str:
    """Render the italic 'Additional Note' panel for admin notes."""
    return (
        f'<div style="background-color:{COLOR_BG};padding:15px;margin:20px 0;border-radius:5px;'
        f'border:1px solid {COLOR_BORDER};">'
        f'<h4 style="margin:0 0 10px 0;color:{COLOR_TEXT};">Additional Note:</h4>'
        f'<p style="margin:0;font-style:italic;">{html_escape(note)}</p>'
        f"</div>"
    )
