import logging
from typing import Optional

from django.db import IntegrityError, transaction
from django.db.models import Max

from account.models import DeliveryPartner
from notifications.fanout import Audience, notify_order_status
from order.exceptions import Conflict, InvalidTransition, NotFound, Unauthorized
from order.models import Order
from order.resolution import parse_uuid
from order.state_machine import (
    compare_and_swap,
    is_assigned_delivery_partner,
    is_order_wholesaler,
    transition,
)

from .models import DeliveryProof, DeliveryStatusUpdate

logger = logging.getLogger(__name__)

Step = DeliveryStatusUpdate.Status

PARTNER_STEPS = (Step.PICKED_UP, Step.IN_TRANSIT, Step.DELIVERED, Step.FAILED)

STEP_RANK = {
    "assigned": 0,
    "picked_up": 1,
    "in_transit": 2,
    "delivered": 3,
    "failed": 3,
}

# Location pings while on the road repeat this step.
REPEATABLE_STEPS = (Step.IN_TRANSIT,)


def _ensure_delivery_actor(order, actor):
    if actor.is_operator or is_assigned_delivery_partner(order, actor):
        return
    raise Unauthorized("Only the delivery partner assigned to this order can update its delivery")


def _lock_order(order) -> Order:
    locked = Order.objects.select_for_update().filter(pk=order.pk).first()
    if locked is None:
        raise NotFound(f"Order {order.pk} no longer exists")
    return locked


def _append_event(order, status, actor, latitude=None, longitude=None, notes=None) -> DeliveryStatusUpdate:
    """Append the next event to the order's timeline. The order row must be locked."""
    last = order.delivery_updates.aggregate(last=Max("sequence"))["last"] or 0
    return DeliveryStatusUpdate.objects.create(
        order=order,
        delivery_partner_id=order.delivery_partner_id,
        sequence=last + 1,
        status=status,
        latitude=latitude,
        longitude=longitude,
        notes=notes or "",
        recorded_by=actor,
    )


def _latest_step(order) -> Optional[str]:
    return (
        order.delivery_updates.order_by("-sequence").values_list("status", flat=True).first()
    )


def _check_step_order(order, status):
    latest = _latest_step(order)
    if latest is None:
        return
    if latest in (Step.DELIVERED, Step.FAILED):
        raise InvalidTransition(
            f"Delivery of order #{order.short_id} already ended as '{latest}'; reassign it to try again"
        )
    if STEP_RANK[str(status)] < STEP_RANK[latest] or (status == latest and status not in REPEATABLE_STEPS):
        raise InvalidTransition(
            f"Cannot record '{status}' after '{latest}' for order #{order.short_id}"
        )


@transaction.atomic
def assign_delivery_partner(order, partner_id, actor, instructions=None, estimated_delivery=None) -> Order:
    if not is_order_wholesaler(order, actor):
        raise Unauthorized("Only the wholesaler for this order can assign a delivery partner")

    partner_uuid = parse_uuid(partner_id)
    partner = DeliveryPartner.objects.filter(id=partner_uuid, is_active=True).first() if partner_uuid else None
    if partner is None:
        raise NotFound("Delivery partner not found or inactive")

    fields = {"delivery_partner": partner}
    if instructions is not None:
        fields["delivery_instructions"] = instructions
    if estimated_delivery is not None:
        fields["estimated_delivery"] = estimated_delivery

    if order.status == Order.Status.CONFIRMED:
        transition(order, Order.Status.DISPATCHED, actor, extra_fields=fields)
    elif order.status == Order.Status.DISPATCHED:
        compare_and_swap(order, Order.Status.DISPATCHED, Order.Status.DISPATCHED, fields)
        notify_order_status(order, Order.Status.DISPATCHED, Audience.ALL)
    else:
        raise InvalidTransition(
            f"Order must be confirmed before a delivery partner can be assigned (current status: {order.status})"
        )

    locked = _lock_order(order)
    _append_event(locked, Step.ASSIGNED, actor, notes=instructions)
    logger.info("Order %s assigned to delivery partner=%s by user=%s", order.id, partner.id, actor.id)
    return order


@transaction.atomic
def record_status_update(order, actor, status, latitude=None, longitude=None, notes=None) -> DeliveryStatusUpdate:
    if status not in PARTNER_STEPS:
        raise InvalidTransition(f"Unknown delivery status '{status}'")
    _ensure_delivery_actor(order, actor)

    locked = _lock_order(order)
    if locked.status != Order.Status.DISPATCHED:
        raise InvalidTransition(
            f"Delivery updates need a dispatched order; order #{locked.short_id} is {locked.status}"
        )
    _check_step_order(locked, status)

    event = _append_event(locked, status, actor, latitude=latitude, longitude=longitude, notes=notes)
    if status == Step.DELIVERED:
        transition(locked, Order.Status.DELIVERED, actor, via_delivery_pipeline=True)
    else:
        notify_order_status(locked, status, Audience.ALL)

    # Keep the caller's instance in step with what was written.
    order.status = locked.status
    order.updated_at = locked.updated_at
    logger.info("Delivery update #%s %s recorded for order=%s by user=%s", event.sequence, status, order.id, actor.id)
    return event


@transaction.atomic
def submit_delivery_proof(order, actor, receiver_name, photo_url=None, signature_url=None, notes=None) -> DeliveryProof:
    _ensure_delivery_actor(order, actor)
    if order.status not in (Order.Status.DISPATCHED, Order.Status.DELIVERED):
        raise InvalidTransition(
            f"Proof of delivery needs a dispatched or delivered order; order #{order.short_id} is {order.status}"
        )
    receiver_name = (receiver_name or "").strip()
    if not receiver_name:
        raise InvalidTransition("Receiver name is required")
    if DeliveryProof.objects.filter(order_id=order.pk).exists():
        raise Conflict("Proof of delivery has already been submitted for this order")

    try:
        with transaction.atomic():
            proof = DeliveryProof.objects.create(
                order=order,
                delivery_partner_id=order.delivery_partner_id,
                receiver_name=receiver_name,
                photo_url=photo_url or "",
                signature_url=signature_url or "",
                notes=notes or "",
                submitted_by=actor,
            )
    except IntegrityError as exc:
        raise Conflict("Proof of delivery has already been submitted for this order") from exc

    if order.status == Order.Status.DISPATCHED:
        record_status_update(order, actor, Step.DELIVERED, notes=f"Received by {receiver_name}")
    return proof


def timeline(order):
    return order.delivery_updates.select_related("delivery_partner").order_by("created_at", "sequence")


def proof(order) -> Optional[DeliveryProof]:
    return DeliveryProof.objects.filter(order_id=order.pk).first()
