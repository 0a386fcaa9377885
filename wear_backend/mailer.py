from html import escape
from typing import Dict, Optional, Tuple

import resend
from flask import current_app

from .auth import OTP_EXPIRATION_MINUTES, PASSWORD_RESET_EXPIRATION_MINUTES


def send_email_via_resend(payload: Dict[str, object], api_key: str):
    configured_api_key = (api_key or "").strip()
    if not configured_api_key:
        return False, "Resend API key is not configured."

    previous_api_key = getattr(resend, "api_key", None)
    resend.api_key = configured_api_key
    try:
        response = resend.Emails.send(payload)
    except Exception as exc:
        return False, str(exc)
    finally:
        resend.api_key = previous_api_key

    if not isinstance(response, dict) or not response.get("id"):
        return False, str(response)

    return True, None


def deliver(recipient: str, subject: str, html_body: str, text_body: str) -> Tuple[bool, Optional[str]]:
    api_key = current_app.config.get("RESEND_API_KEY", "")
    if not api_key:
        current_app.logger.warning(
            "RESEND_API_KEY is not set; skipped '%s' email to %s", subject, recipient
        )
        return False, "Resend API key is not configured."

    payload: Dict[str, object] = {
        "from": current_app.config["MAIL_SENDER"],
        "to": [recipient],
        "subject": subject,
        "html": html_body,
        "text": text_body,
    }
    sent, error = send_email_via_resend(payload, api_key)
    if not sent:
        current_app.logger.error("Email '%s' to %s failed: %s", subject, recipient, error)
    return sent, error


def wrap_html(title: str, body: str) -> str:
    return (
        "<!doctype html><html><body style=\"font-family: Arial, sans-serif; color: #111;\">"
        f"<h2>{escape(title)}</h2>{body}"
        "<p style=\"color: #777; font-size: 12px;\">Wear Store</p>"
        "</body></html>"
    )


def send_verification_email(recipient_email: str, otp: str):
    html_body = wrap_html(
        "Verify your email",
        f"<p>Your verification code is <strong style=\"font-size: 20px;\">{escape(otp)}</strong>.</p>"
        f"<p>The code expires in {OTP_EXPIRATION_MINUTES} minutes.</p>",
    )
    text_body = (
        f"Your Wear verification code is {otp}. "
        f"Enter it within {OTP_EXPIRATION_MINUTES} minutes to confirm this email."
    )
    return deliver(recipient_email, "Verify your email address", html_body, text_body)


def send_password_reset_email(recipient_email: str, token: str):
    html_body = wrap_html(
        "Reset your password",
        f"<p>Use this token to reset your password:</p><p><code>{escape(token)}</code></p>"
        f"<p>It is valid for {PASSWORD_RESET_EXPIRATION_MINUTES} minutes. "
        "If you did not ask for a reset you can ignore this email.</p>",
    )
    text_body = (
        f"Use this token to reset your Wear password within "
        f"{PASSWORD_RESET_EXPIRATION_MINUTES} minutes: {token}"
    )
    return deliver(recipient_email, "Password reset request", html_body, text_body)


def send_order_confirmation_email(order, recipient_email: Optional[str]):
    if not recipient_email:
        return False, "Missing customer email for the order receipt."

    currency = order.currency or "USD"
    lines = []
    for item in order.items:
        name = item.product.name if item.product else "Item"
        size = f" ({item.size})" if item.size else ""
        lines.append(
            f"{name}{size} x{item.quantity} - {currency} {item.unit_price_cents * item.quantity / 100:.2f}"
        )
    total = order.total_amount_cents / 100

    html_rows = "".join(f"<li>{escape(line)}</li>" for line in lines)
    html_body = wrap_html(
        "Thank you for your order",
        f"<p>Order <strong>{escape(order.id)}</strong></p><ul>{html_rows}</ul>"
        f"<p>Total: <strong>{currency} {total:.2f}</strong></p>",
    )
    text_body = (
        f"Thank you for your purchase! Order {order.id}.\n"
        + "\n".join(lines)
        + f"\nTotal: {currency} {total:.2f}."
    )
    return deliver(recipient_email, "Your order confirmation", html_body, text_body)
