"""
Transactional email

Every send is best-effort: failures are logged and reported as False, never
raised, so a broken mail provider cannot fail a registration or an order.
"""
import logging
from typing import Dict, List, Optional

import resend
from fastapi import Depends

from config import Settings, get_settings

logger = logging.getLogger(__name__)


class ResendTransport:
    """Delivers messages through the Resend API."""

    def __init__(self, api_key: str):
        self.api_key = (api_key or "").strip()
        if self.api_key:
            # the SDK reads a module-level key; set once, shared by every send
            resend.api_key = self.api_key

    def send(self, sender: str, to: List[str], subject: str, html: str, text: str) -> bool:
        if not self.api_key:
            logger.warning("Email transport not configured; skipping '%s' to %s", subject, ", ".join(to))
            return False
        payload: Dict[str, object] = {
            "from": sender,
            "to": to,
            "subject": subject,
            "html": html,
            "text": text,
        }
        response = resend.Emails.send(payload)
        if not response or not response.get("id"):
            raise RuntimeError(f"Unexpected response from Resend: {response}")
        return True


class Notifier:
    def __init__(self, transport, sender: str, shop_name: str = "Tailoring Shop"):
        self.transport = transport
        self.sender = sender
        self.shop_name = shop_name

    def _deliver(self, kind: str, recipient: Optional[str], subject: str, html: str, text: str) -> bool:
        if not recipient:
            logger.warning("No recipient for %s email", kind)
            return False
        try:
            sent = self.transport.send(self.sender, [recipient], subject, html, text)
        except Exception:
            logger.exception("Failed to send %s email to %s", kind, recipient)
            return False
        if sent:
            logger.info("Sent %s email to %s", kind, recipient)
        return bool(sent)

    def send_welcome(self, user: dict) -> bool:
        name = user.get("first_name") or user.get("username", "")
        subject = f"Welcome to {self.shop_name}"
        text = (
            f"Hi {name},\n\n"
            f"Your account '{user.get('username', '')}' is ready. "
            "Browse our fabrics and place your first tailoring order any time.\n\n"
            f"{self.shop_name}"
        )
        html = (
            f"<h2>Welcome, {name}!</h2>"
            f"<p>Your account <strong>{user.get('username', '')}</strong> is ready.</p>"
            f"<p>{self.shop_name}</p>"
        )
        return self._deliver("welcome", user.get("email"), subject, html, text)

    def send_password_reset(self, email: str, reset_link: str, ttl_minutes: int = 60) -> bool:
        subject = "Password Reset Request"
        text = (
            f"Use the link below to reset your password:\n{reset_link}\n\n"
            f"This link will expire in {ttl_minutes} minutes."
        )
        html = (
            "<h2>Password Reset Request</h2>"
            "<p>Click the link below to reset your password:</p>"
            f'<a href="{reset_link}">Reset Password</a>'
            f"<p>This link will expire in {ttl_minutes} minutes.</p>"
        )
        return self._deliver("password reset", email, subject, html, text)

    def send_order_confirmation(self, user: Optional[dict], order: dict) -> bool:
        try:
            lines = [
                f"{item['name']} x{item['quantity']} (Rs. {item['price']:.2f})"
                for item in order.get("items", [])
            ]
            number = order.get("order_number", "")
            subject = f"Order {number} confirmed"
            text = (
                f"Thank you for your order {number}.\n"
                f"Items: {', '.join(lines)}.\n"
                f"Delivery charge: Rs. {order.get('delivery_charge', 0):.2f}\n"
                f"Total: Rs. {order.get('total_amount', 0):.2f}\n\n"
                f"{self.shop_name}"
            )
            html = (
                f"<h2>Thank you for your order {number}</h2>"
                "<ul>" + "".join(f"<li>{line}</li>" for line in lines) + "</ul>"
                f"<p>Total: <strong>Rs. {order.get('total_amount', 0):.2f}</strong></p>"
            )
        except Exception:
            logger.exception("Could not render confirmation for order %s", order.get("order_number"))
            return False
        return self._deliver("order confirmation", (user or {}).get("email"), subject, html, text)


def get_notifier(settings: Settings = Depends(get_settings)) -> Notifier:
    return Notifier(ResendTransport(settings.email_api_key), settings.email_sender, settings.shop_name)
