# rental_admin/services/mailer.py
import logging
import smtplib
from email.message import EmailMessage

from flask import current_app

from ..errors import ApiError, ValidationError

logger = logging.getLogger(__name__)

EMAIL_TEMPLATES = {
    "order_confirmation": "Order confirmation #{id}",
    "processing_notification": "Your order #{id} is being processed",
    "shipping_notification": "Your order #{id} has been shipped",
    "completion_notification": "Your order #{id} has been completed",
    "payment_reminder": "Payment reminder - Order #{id}",
    "custom": "Update on your order #{id}",
}

EMAIL_BODIES = {
    "order_confirmation": "We received your order #{id} for a total of ${total}.",
    "processing_notification": "Your order #{id} is being prepared.",
    "shipping_notification": "Your order #{id} is on its way.",
    "completion_notification": "Your order #{id} has been completed. Thank you for renting with us.",
    "payment_reminder": "Order #{id} has a pending balance of ${total}. A reserve of ${reserve} confirms it.",
    "custom": "There is an update on your order #{id}.",
}


def outbox():
    """Messages recorded while MAIL_SUPPRESS_SEND is on."""
    return current_app.extensions.setdefault("mail_outbox", [])


def send_email(to, subject, body, html=None, attachments=None):
    """
    Send one message, or record it in the outbox when sending is suppressed.

    `attachments` is a list of (filename, bytes, maintype, subtype).
    """
    cfg = current_app.config
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = cfg.get("MAIL_DEFAULT_SENDER")
    msg["To"] = to
    msg.set_content(body)
    if html:
        msg.add_alternative(html, subtype="html")
    for filename, content, maintype, subtype in attachments or []:
        msg.add_attachment(content, maintype=maintype, subtype=subtype, filename=filename)

    if cfg.get("MAIL_SUPPRESS_SEND") or not cfg.get("MAIL_SERVER"):
        outbox().append(msg)
        logger.info("mail suppressed to=%s subject=%s", to, subject)
        return msg

    try:
        with smtplib.SMTP(cfg["MAIL_SERVER"], cfg.get("MAIL_PORT", 587), timeout=30) as smtp:
            if cfg.get("MAIL_USE_TLS"):
                smtp.starttls()
            if cfg.get("MAIL_USERNAME"):
                smtp.login(cfg["MAIL_USERNAME"], cfg.get("MAIL_PASSWORD") or "")
            smtp.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.exception("mail delivery failed to=%s", to)
        raise ApiError(f"Email delivery failed: {e}", 502)

    logger.info("mail sent to=%s subject=%s", to, subject)
    return msg


def send_order_email(order, email_type, message=None, attachments=None):
    if email_type not in EMAIL_TEMPLATES:
        raise ValidationError("Invalid email type")
    if not order.billing_email:
        raise ValidationError("order has no billing email")

    fields = {
        "id": order.id,
        "total": f"{float(order.calculated_total or 0):,.0f}",
        "reserve": f"{float(order.reserve or 0):,.0f}",
    }
    lines = [f"Hello {order.customer_name or 'customer'},", "", EMAIL_BODIES[email_type].format(**fields)]
    if message:
        lines += ["", message]
    if order.budget_url:
        lines += ["", f"Budget: {order.budget_url}"]

    send_email(order.billing_email, EMAIL_TEMPLATES[email_type].format(**fields), "\n".join(lines),
               attachments=attachments)
    return {"to": order.billing_email, "type": email_type,
            "subject": EMAIL_TEMPLATES[email_type].format(**fields)}
