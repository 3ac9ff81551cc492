"""Transactional email templates and fire-and-forget dispatch.

``notify`` never raises: a failed send is logged and reported as ``False``
so the calling operation carries on.
"""

import html
import logging
from dataclasses import dataclass

from gigescrow.services.email import EmailSender

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html_body: str


def format_amount(amount: int | None, currency: str | None) -> str:
    if amount is None or not currency:
        return ""
    return f"{amount / 100:,.2f} {currency}"


def _box(rows: dict[str, str], background: str) -> str:
    lines = "".join(
        f"<p><strong>{label}:</strong> {html.escape(value)}</p>"
        for label, value in rows.items() if value
    )
    return f'<div style="background: {background}; padding: 20px; border-radius: 8px;">{lines}</div>'


def render(template: str, **ctx: object) -> RenderedEmail:
    """Render one of the transactional templates. Unknown names raise KeyError."""
    name = html.escape(str(ctx.get("user_name") or "there"))
    amount = format_amount(ctx.get("amount"), ctx.get("currency"))  # type: ignore[arg-type]
    job_title = str(ctx.get("job_title") or "")
    tx_id = str(ctx.get("transaction_id") or "")

    if template == "payment":
        return RenderedEmail(
            "Payment Received - Escrow Secured",
            f"<h1>Payment Confirmed</h1><p>Hello {name},</p>"
            f"<p>Your payment has been received and secured in escrow.</p>"
            + _box({"Job": job_title, "Amount": amount, "Transaction ID": tx_id}, "#d1ecf1")
            + "<p>The funds will be released to the talent once the work is approved.</p>",
        )
    if template == "release":
        return RenderedEmail(
            "Payment Released to Your Wallet",
            f"<h1>Payment Released</h1><p>Hello {name},</p>"
            f"<p>Escrowed funds have been released to your wallet.</p>"
            + _box({"Job": job_title, "Amount": amount, "Transaction ID": tx_id}, "#f4f4f4")
            + "<p>You can now withdraw these funds from your wallet.</p>",
        )
    if template == "payout":
        return RenderedEmail(
            "Withdrawal Initiated",
            f"<h1>Withdrawal Initiated</h1><p>Hello {name},</p>"
            + _box({"Amount": amount, "Transaction ID": tx_id}, "#f4f4f4")
            + "<p>Transfers usually arrive within one business day.</p>",
        )
    if template == "payment_proof_submitted":
        return RenderedEmail(
            "Payment Proof Awaiting Verification",
            "<h1>New Payment Proof</h1>"
            + _box({
                "Transaction ID": tx_id,
                "Amount": amount,
                "Proof": str(ctx.get("proof_url") or ""),
            }, "#fff3cd")
            + "<p>Please review and verify this manual transfer.</p>",
        )
    if template == "payment_verified":
        return RenderedEmail(
            "Manual Payment Verified",
            f"<h1>Payment Verified</h1><p>Hello {name},</p>"
            + _box({"Amount": amount, "Transaction ID": tx_id}, "#d4edda")
            + "<p>Your funds are now held in escrow.</p>",
        )
    if template == "payment_rejected":
        return RenderedEmail(
            "Manual Payment Rejected",
            f"<h1>Payment Rejected</h1><p>Hello {name},</p>"
            + _box({
                "Amount": amount,
                "Transaction ID": tx_id,
                "Reason": str(ctx.get("reason") or ""),
            }, "#f8d7da"),
        )
    if template == "dispute_raised":
        return RenderedEmail(
            "Dispute Raised on Contract",
            f"<h1>Dispute Raised</h1><p>Hello {name},</p>"
            "<p>A dispute has been raised on one of your contracts.</p>"
            + _box({"Job": job_title, "Reason": str(ctx.get("reason") or "")}, "#fff3cd")
            + "<p>Our admin team will review it and work towards a resolution.</p>",
        )
    if template == "dispute_resolved":
        return RenderedEmail(
            "Dispute Resolved",
            f"<h1>Dispute Resolved</h1><p>Hello {name},</p>"
            + _box({"Job": job_title, "Resolution": str(ctx.get("resolution") or "")}, "#d4edda"),
        )
    if template == "dispute_escalated":
        hours = ctx.get("hours", 48)
        return RenderedEmail(
            "Dispute Escalated - Requires Senior Admin Attention",
            f"<h2>Hello {name},</h2>"
            f"<p>A dispute has been escalated to you as it has been unresolved for more than {hours} hours.</p>"
            + _box({"Contract": job_title, "Reason": str(ctx.get("reason") or "")}, "#fff3cd")
            + "<p>Please review and resolve this dispute as soon as possible.</p>",
        )
    raise KeyError(f"Unknown email template: {template}")


async def notify(sender: EmailSender, to: str | None, template: str, **ctx: object) -> bool:
    """Send a templated email. Returns False (and logs) on any failure."""
    if not to:
        logger.warning("Skipping %s notification: no recipient", template)
        return False
    try:
        email = render(template, **ctx)
        await sender.send(to, email.subject, email.html_body)
    except Exception:
        logger.exception("Failed to send %s notification to %s", template, to)
        return False
    return True
