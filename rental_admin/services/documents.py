# rental_admin/services/documents.py
import logging
import os

from flask import current_app, render_template
from werkzeug.utils import secure_filename

from ..errors import ValidationError
from ..extensions import db
from ..model import OrderDocument
from ..utils.dates import utcnow
from ..utils.money import round_money
from . import mailer
from .pricing import IVA_RATE, RESERVE_RATE

logger = logging.getLogger(__name__)

DOCUMENT_KINDS = ("budget", "contract", "warranty", "other")
ALLOWED_EXTENSIONS = {"pdf", "png", "jpg", "jpeg", "webp", "html"}


def _allowed(filename):
    return "." in filename and filename.rsplit(".", 1)[1].lower() in ALLOWED_EXTENSIONS


def document_url(filename):
    return f"/api/orders/documents/{filename}"


def _unique_path(filename):
    folder = current_app.config["DOCUMENTS_DIR"]
    os.makedirs(folder, exist_ok=True)
    abs_path = os.path.join(folder, filename)
    base, ext = os.path.splitext(filename)
    counter = 1
    while os.path.exists(abs_path):
        filename = f"{base}-{counter}{ext}"
        abs_path = os.path.join(folder, filename)
        counter += 1
    return filename, abs_path


def _record(order, kind, filename):
    doc = OrderDocument(kind=kind, filename=filename, url=document_url(filename))
    order.documents.append(doc)
    return doc


def render_budget(order):
    return render_template(
        "budget.html",
        order=order,
        iva_percent=int(IVA_RATE * 100),
        reserve_percent=int(RESERVE_RATE * 100),
        line_total=lambda item: round_money(round_money(item.price) * item.quantity * (order.num_days or 1)),
        generated_at=utcnow(),
    )


def generate_budget(order, send_email=True):
    """Render the budget for `order`, store it and optionally mail it to the customer."""
    html = render_budget(order)
    filename, abs_path = _unique_path(f"budget-order-{order.id}-{utcnow():%Y%m%d%H%M%S}.html")
    with open(abs_path, "w", encoding="utf-8") as fh:
        fh.write(html)

    doc = _record(order, "budget", filename)
    order.budget_url = doc.url
    db.session.commit()
    logger.info("budget generated order=%s file=%s", order.id, filename)

    email = None
    if send_email and order.billing_email:
        email = mailer.send_order_email(
            order, "order_confirmation",
            attachments=[(filename, html.encode("utf-8"), "text", "html")],
        )
    return {"budget_url": order.budget_url, "document": doc.as_api(), "email": email}


def save_upload(order, file_storage, kind="other"):
    if not file_storage or not file_storage.filename:
        raise ValidationError("file is required")
    if kind not in DOCUMENT_KINDS:
        raise ValidationError(f"kind must be one of {', '.join(DOCUMENT_KINDS)}")
    if not _allowed(file_storage.filename):
        raise ValidationError("Unsupported file type")

    name = secure_filename(file_storage.filename)
    filename, abs_path = _unique_path(f"order-{order.id}-{kind}-{name}")
    file_storage.save(abs_path)

    doc = _record(order, kind, filename)
    db.session.commit()
    logger.info("document uploaded order=%s kind=%s file=%s", order.id, kind, filename)
    return doc


def document_path(filename):
    """Absolute path of a stored document, or None when it does not exist."""
    safe = secure_filename(filename)
    if not safe or safe != filename:
        return None
    path = os.path.join(current_app.config["DOCUMENTS_DIR"], safe)
    return path if os.path.isfile(path) else None
