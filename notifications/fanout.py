"""Order and payment notification fan-out.

Every order transition notifies the parties of the order. Each recipient is
written independently, so one failed insert never blocks or rolls back the
notifications of the other recipients.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Tuple

from django.conf import settings
from django.db import models

from .models import Notification
from .services import NotificationService

logger = logging.getLogger(__name__)


class Audience(models.TextChoices):
    RETAILER = "retailer", "Retailer"
    WHOLESALER = "wholesaler", "Wholesaler"
    DELIVERY_PARTNER = "delivery_partner", "Delivery partner"
    ALL = "all", "All parties"


class PaymentOutcome(models.TextChoices):
    SUCCESS = "success", "Success"
    FAILED = "failed", "Failed"
    PENDING = "pending", "Pending"


CATEGORY_BY_STATUS = {
    "confirmed": Notification.Category.SUCCESS,
    "delivered": Notification.Category.SUCCESS,
    "placed": Notification.Category.INFO,
    "dispatched": Notification.Category.INFO,
    "rejected": Notification.Category.ERROR,
}

# Past-tense phrase used in "... has been <phrase>".
STATUS_PHRASES = {
    "placed": "placed",
    "confirmed": "confirmed",
    "rejected": "rejected",
    "dispatched": "dispatched",
    "delivered": "delivered",
    "assigned": "assigned to a delivery partner",
    "picked_up": "picked up",
    "in_transit": "marked in transit",
    "failed": "marked as a failed delivery attempt",
}

CURRENCY_SYMBOLS = {"INR": "₹", "USD": "$", "EUR": "€"}

AUDIENCE_ROLES = {
    "retailer": ("retailer",),
    "wholesaler": ("wholesaler",),
    "delivery_partner": ("delivery_partner",),
    "all": ("retailer", "wholesaler", "delivery_partner"),
}


@dataclass
class FanoutReport:
    notified: List[Tuple[str, str]] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def notified_roles(self) -> List[str]:
        return [role for role, _ in self.notified]


def category_for_status(status: str) -> str:
    return CATEGORY_BY_STATUS.get(str(status), Notification.Category.INFO)


def format_status(status: str) -> str:
    return status.replace("_", " ").title()


def format_amount(amount) -> str:
    currency = getattr(settings, "ORDER_CURRENCY", "INR")
    value = Decimal(amount).quantize(Decimal("0.01"))
    symbol = CURRENCY_SYMBOLS.get(currency)
    return f"{symbol}{value}" if symbol else f"{currency} {value}"


def _recipient_for(order, role):
    if role == Audience.RETAILER:
        return order.retailer
    if role == Audience.WHOLESALER:
        return order.wholesaler
    partner = order.delivery_partner
    if partner is None or partner.user_id is None:
        return None
    return partner.user


def _compose(order, status: str, role: str):
    """Return (title, message, entity_type, action_url) for one recipient."""
    short = order.short_id
    label = format_status(status)
    phrase = STATUS_PHRASES.get(str(status), label.lower())

    if role == Audience.RETAILER:
        if status == "rejected" and order.rejection_reason:
            message = f"Your order #{short} has been rejected: {order.rejection_reason}"
        else:
            message = f"Your order #{short} has been {phrase}."
        return f"Order {label}", message, Notification.EntityType.ORDER, f"/orders/{order.id}"

    if role == Audience.WHOLESALER:
        if status == "placed":
            title = "New Order Received"
            message = f"{order.retailer.display_name} placed order #{short} for {format_amount(order.total_amount)}."
        else:
            title = f"Order {label}"
            message = f"Order #{short} from {order.retailer.display_name} has been {phrase}."
        return title, message, Notification.EntityType.ORDER, f"/orders/{order.id}"

    if status == "dispatched":
        title = "Order Ready for Pickup"
        message = f"Order #{short} from {order.wholesaler.display_name} is ready for pickup and delivery."
    else:
        title = f"Delivery Update: {label}"
        message = f"Delivery for order #{short} has been {phrase}."
    return title, message, Notification.EntityType.DELIVERY, f"/delivery/orders/{order.id}"


def notify_order_status(order, status: str, audience: str = Audience.ALL) -> FanoutReport:
    """Notify every party in ``audience`` that ``order`` reached ``status``.

    Recipient failures are logged and listed on the returned report. Each
    insert runs in its own savepoint, so the caller's transaction survives
    them.
    """
    audience = str(audience)
    if audience not in AUDIENCE_ROLES:
        raise ValueError(f"Unknown notification audience '{audience}'")

    report = FanoutReport()
    category = category_for_status(status)
    for role in AUDIENCE_ROLES[audience]:
        recipient = _recipient_for(order, role)
        if recipient is None:
            report.skipped.append(role)
            continue
        title, message, entity_type, action_url = _compose(order, status, role)
        try:
            notification = NotificationService.notify(
                user=recipient,
                title=title,
                message=message,
                category=category,
                related_entity_type=entity_type,
                related_entity_id=order.id,
                action_url=action_url,
            )
        except Exception:
            logger.exception("Failed to notify %s for order=%s status=%s", role, order.id, status)
            report.failed.append(role)
            continue
        report.notified.append((role, str(notification.id)))

    if report.failed:
        logger.warning(
            "Partial fan-out for order=%s status=%s failed=%s notified=%s",
            order.id,
            status,
            report.failed,
            report.notified_roles,
        )
    return report


PAYMENT_COPY = {
    "success": (
        "Payment Successful",
        "Payment of {amount} for order #{short} has been received.",
        Notification.Category.SUCCESS,
    ),
    "failed": (
        "Payment Failed",
        "Payment for order #{short} has failed. Please try again or contact support.",
        Notification.Category.ERROR,
    ),
    "pending": (
        "Payment Processing",
        "Payment for order #{short} is being processed. We'll notify you once it's completed.",
        Notification.Category.INFO,
    ),
}


def notify_payment(order, outcome: str, user, amount=None) -> Optional[Notification]:
    """Notify a single user about a payment outcome for ``order``.

    Returns the stored notification, or ``None`` when the write failed.
    """
    outcome = str(outcome)
    if outcome not in PAYMENT_COPY:
        raise ValueError(f"Unknown payment outcome '{outcome}'")
    title, template, category = PAYMENT_COPY[outcome]
    message = template.format(
        amount=format_amount(order.total_amount if amount is None else amount),
        short=order.short_id,
    )
    try:
        return NotificationService.notify(
            user=user,
            title=title,
            message=message,
            category=category,
            related_entity_type=Notification.EntityType.PAYMENT,
            related_entity_id=order.id,
            action_url=f"/orders/{order.id}",
        )
    except Exception:
        logger.exception("Failed to send %s payment notification for order=%s user=%s", outcome, order.id, user.id)
        return None
