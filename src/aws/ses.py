"""
Transactional email over AWS SES.

Sends purchase confirmations, intake notifications and operator alerts.
Message builders return an EmailEnvelope; SESMailer.send turns it into an
SES SendEmail call.
"""

import asyncio
import logging
from html import escape
from typing import Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ..errors import RelayFailure, RelayUnavailable
from ..types.email import EmailEnvelope, IntakeSubmission, PurchaseEmailParams

logger = logging.getLogger(__name__)

SERVICE_NAME = "ses"
CHARSET = "UTF-8"
SUPPORT_EMAIL = "hello@kiln.studio"

CURRENCY_SYMBOLS: Dict[str, str] = {"usd": "$", "eur": "€", "gbp": "£", "cad": "CA$", "aud": "A$"}
ZERO_DECIMAL_CURRENCIES = frozenset({"jpy", "krw", "vnd", "clp", "isk", "ugx"})

_BASE_STYLE = """
    body { margin: 0; padding: 0; background-color: #13161F; color: #FAF6F0;
           font-family: 'SF Mono', Monaco, Inconsolata, 'Fira Code', monospace;
           font-size: 14px; line-height: 1.6; }
    .container { max-width: 600px; margin: 0 auto; padding: 48px 24px; }
    .header { border-bottom: 1px solid rgba(250,246,240,0.15); padding-bottom: 24px; margin-bottom: 32px; }
    .logo { font-family: 'Averia Serif Libre', Georgia, serif; font-size: 32px; margin: 0 0 8px 0; }
    .status { font-size: 12px; color: #0036D8; text-transform: uppercase; letter-spacing: 0.1em; }
    .section { margin-bottom: 32px; }
    .label { font-size: 11px; color: #8A8580; text-transform: uppercase; letter-spacing: 0.1em; margin: 0 0 8px 0; }
    .value { color: #E8E4DE; margin: 0; }
    .button { display: inline-block; background-color: #0036D8; color: #FFFFFF; text-decoration: none;
              padding: 16px 24px; font-size: 12px; text-transform: uppercase; letter-spacing: 0.1em; }
    .muted { word-break: break-all; color: #8A8580; font-size: 12px; }
    .description { background-color: #1A1D27; padding: 16px; white-space: pre-wrap; color: #E8E4DE; }
    .divider { height: 1px; background-color: rgba(250,246,240,0.08); margin: 32px 0; }
"""


def format_price(amount: int, currency: str) -> str:
    """Format an amount in minor units, e.g. (4900, "usd") -> "$49.00"."""
    code = (currency or "usd").lower()
    symbol = CURRENCY_SYMBOLS.get(code, f"{code.upper()} ")
    if code in ZERO_DECIMAL_CURRENCIES:
        return f"{symbol}{amount:,}"
    return f"{symbol}{amount / 100:,.2f}"


def _html_page(title: str, status: str, sections: str) -> str:
    return (
        "<!DOCTYPE html>\n<html>\n<head>\n"
        '  <meta charset="utf-8">\n'
        '  <meta name="viewport" content="width=device-width, initial-scale=1.0">\n'
        f"  <title>{escape(title)}</title>\n"
        f"  <style>{_BASE_STYLE}</style>\n"
        "</head>\n<body>\n"
        '  <div class="container">\n'
        '    <div class="header">\n'
        '      <h1 class="logo">KILN</h1>\n'
        f'      <span class="status">// {escape(status)}</span>\n'
        "    </div>\n"
        f"{sections}"
        "  </div>\n</body>\n</html>"
    )


def _section(label: str, body: str) -> str:
    return (
        '    <div class="section">\n'
        f'      <p class="label">{escape(label)}</p>\n'
        f"      {body}\n"
        "    </div>\n"
    )


_DIVIDER = '    <div class="divider"></div>\n'


# =============================================================================
# Message builders
# =============================================================================


def build_purchase_confirmation(params: PurchaseEmailParams, source: str) -> EmailEnvelope:
    """Confirmation with the download link, sent to the customer."""
    price = format_price(params.amount, params.currency)

    text = (
        "KILN — PURCHASE CONFIRMED\n\n"
        f"Order: {params.order_id}\n"
        f"Product: {params.product_name} ({params.product_code})\n"
        f"Amount: {price}\n"
        "Status: PAYMENT CONFIRMED\n\n"
        "DOWNLOAD\n"
        f"Your purchase is ready: {params.download_url}\n\n"
        "This link expires in 7 days. Re-downloads are available anytime by contacting support.\n\n"
        "WHAT'S INCLUDED\n"
        f"{params.product_name} ships with documentation on how it was made and why. "
        "If something is unclear, reply to this email.\n\n"
        "SUPPORT\n"
        f"Questions: {SUPPORT_EMAIL}\n"
        "Receipt: Available in your Stripe confirmation email\n\n"
        "—\nKILN\nhttps://kiln.studio\n\n"
        "This email was sent because you completed a purchase at kiln.studio.\n"
    )

    url = escape(params.download_url)
    name = escape(params.product_name)
    html = _html_page(
        "Purchase Confirmed — KILN",
        "PURCHASE CONFIRMED",
        _section("ORDER", f'<p class="value">{escape(params.order_id)}</p>')
        + _section(
            "PRODUCT",
            f'<h2 class="logo">{name}</h2><p class="value">{escape(params.product_code)}</p>',
        )
        + _section("AMOUNT", f'<p class="value">{escape(price)}</p>')
        + _DIVIDER
        + _section(
            "DOWNLOAD",
            '<p class="value">Your purchase is ready. This link expires in 7 days.</p>'
            f'<p><a href="{url}" class="button">DOWNLOAD FILES →</a></p>'
            f'<p class="muted">{url}</p>',
        )
        + _DIVIDER
        + _section(
            "WHAT'S INCLUDED",
            f'<p class="value">{name} ships with documentation on how it was made and why. '
            "If something is unclear, reply to this email.</p>",
        )
        + _DIVIDER
        + _section(
            "SUPPORT",
            f'<p class="value">Questions: <a href="mailto:{SUPPORT_EMAIL}">{SUPPORT_EMAIL}</a></p>'
            '<p class="value">Receipt: Available in your Stripe confirmation email</p>'
            '<p class="muted">This email was sent because you completed a purchase at kiln.studio.</p>',
        ),
    )

    return EmailEnvelope(
        source=source,
        to=[params.to],
        subject=f"Purchase Confirmed — {params.product_name}",
        text_body=text,
        html_body=html,
    )


def build_intake_notification(
    submission: IntakeSubmission,
    source: str,
    recipient: str,
) -> EmailEnvelope:
    """Operator notification for a project inquiry; replies go to the submitter."""
    company_line = f"\nCompany: {submission.company}" if submission.company else ""
    text = (
        "KILN — NEW PROJECT INQUIRY\n\n"
        "FROM\n"
        f"Name: {submission.name}\n"
        f"Email: {submission.email}{company_line}\n\n"
        "PROJECT DETAILS\n"
        f"Type: {submission.project_type}\n"
        f"Budget: {submission.budget}\n"
        f"Timeline: {submission.timeline}\n\n"
        "DESCRIPTION\n"
        f"{submission.description}\n\n"
        "—\n"
        f"Reply directly to {submission.email} to respond.\n"
    )

    email = escape(submission.email)
    first_name = submission.name.split(" ")[0].upper()
    company_html = (
        f'<p class="value">{escape(submission.company)}</p>' if submission.company else ""
    )
    html = _html_page(
        "New Project Inquiry — KILN",
        "NEW PROJECT INQUIRY",
        _section(
            "FROM",
            f'<p class="value">{escape(submission.name)}</p>'
            f'<p class="value"><a href="mailto:{email}">{email}</a></p>'
            f"{company_html}",
        )
        + _DIVIDER
        + _section("PROJECT TYPE", f'<p class="value">{escape(submission.project_type)}</p>')
        + _section("BUDGET", f'<p class="value">{escape(submission.budget)}</p>')
        + _section("TIMELINE", f'<p class="value">{escape(submission.timeline)}</p>')
        + _section(
            "PROJECT DESCRIPTION",
            f'<div class="description">{escape(submission.description)}</div>',
        )
        + _DIVIDER
        + _section(
            "REPLY",
            f'<a href="mailto:{email}?subject=Re: Project Inquiry — KILN" class="button">'
            f"REPLY TO {escape(first_name)} →</a>",
        ),
    )

    return EmailEnvelope(
        source=source,
        to=[recipient],
        subject=f"New Inquiry: {submission.project_type} — {submission.name}",
        text_body=text,
        html_body=html,
        reply_to=[submission.email],
    )


def build_purchase_without_download_alert(
    source: str,
    recipient: str,
    session_id: str,
    product_code: str,
    product_name: str,
    customer_email: str,
    customer_name: Optional[str] = None,
) -> EmailEnvelope:
    """Plain-text operator alert for a paid order that has no downloadable artifact."""
    text = (
        "KILN — PURCHASE WITHOUT DOWNLOAD\n\n"
        "A customer completed a purchase but no download link could be generated.\n\n"
        f"Session ID: {session_id}\n"
        f"Product: {product_name} ({product_code})\n"
        f"Customer: {customer_name or '—'} <{customer_email}>\n\n"
        "Action: Add the product file to S3 / PRODUCT_FILE_MAP or set Stripe product "
        "metadata s3_path, then send the customer a download link manually.\n\n"
        "—\nKILN\n"
    )
    return EmailEnvelope(
        source=source,
        to=[recipient],
        subject=f"[KILN] Purchase without download: {product_code}",
        text_body=text,
    )


# =============================================================================
# Sender
# =============================================================================


class SESMailer:
    """Sends EmailEnvelope messages through an SES client."""

    def __init__(self, ses_client: Any) -> None:
        self._ses = ses_client

    @staticmethod
    def to_request(envelope: EmailEnvelope) -> Dict[str, Any]:
        """SendEmail keyword arguments for an envelope."""
        body: Dict[str, Any] = {"Text": {"Data": envelope.text_body, "Charset": CHARSET}}
        if envelope.html_body is not None:
            body["Html"] = {"Data": envelope.html_body, "Charset": CHARSET}

        request: Dict[str, Any] = {
            "Source": envelope.source,
            "Destination": {"ToAddresses": list(envelope.to)},
            "Message": {
                "Subject": {"Data": envelope.subject, "Charset": CHARSET},
                "Body": body,
            },
        }
        if envelope.reply_to:
            request["ReplyToAddresses"] = list(envelope.reply_to)
        return request

    async def send(self, envelope: EmailEnvelope) -> str:
        """
        Send one email.

        Returns:
            SES message id

        Raises:
            RelayFailure: SES rejected the message
            RelayUnavailable: SES could not be reached
        """
        try:
            response = await asyncio.to_thread(self._ses.send_email, **self.to_request(envelope))
        except ClientError as e:
            error = e.response.get("Error", {})
            status = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 400)
            logger.error(
                f"SES rejected email: {error.get('Code', 'unknown')}",
                extra={"subject": envelope.subject},
            )
            raise RelayFailure(SERVICE_NAME, status, error.get("Message", ""))
        except BotoCoreError as e:
            logger.error(f"SES request failed: {type(e).__name__}", extra={"subject": envelope.subject})
            raise RelayUnavailable(SERVICE_NAME, cause=e)

        message_id = response.get("MessageId", "")
        logger.info("Email sent", extra={"subject": envelope.subject, "message_id": message_id})
        return message_id
