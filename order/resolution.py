"""Resolve loosely-formed order identifiers to a single order.

Callers hand us whatever they have on screen: a full UUID, the eight
character short id printed on receipts, the id of a notification that
pointed at the order, a human reference number, or a fragment of the id.
Strategies are tried in a fixed order and the first hit wins.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional

from django.conf import settings
from django.db import DatabaseError, connection

from notifications.models import Notification

from .exceptions import NotFound, Upstream
from .models import Order

logger = logging.getLogger(__name__)


def parse_uuid(value) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None


@dataclass(frozen=True)
class ResolvedOrder:
    order: Order
    strategy: str


class OrderResolver:
    STRATEGIES = ("direct", "prefix", "notification", "reference", "substring")
    # Identifiers a person copies off a receipt; for paths that change money or status.
    EXACT_STRATEGIES = ("direct", "prefix", "reference")

    def __init__(self, queryset=None, candidate_limit: Optional[int] = None, strategies=None):
        if queryset is None:
            queryset = Order.objects.select_related(
                "retailer", "wholesaler", "delivery_partner"
            ).prefetch_related("items")
        self.queryset = queryset
        self.candidate_limit = candidate_limit or settings.ORDER_LOOKUP_CANDIDATE_LIMIT
        self.short_id_length = settings.ORDER_SHORT_ID_LENGTH
        self.strategies = tuple(strategies or self.STRATEGIES)

    def resolve(self, token) -> ResolvedOrder:
        token = str(token or "").strip()
        if not token:
            raise NotFound("An order identifier is required")

        try:
            for strategy in self.strategies:
                order = getattr(self, f"_by_{strategy}")(token)
                if order is not None:
                    logger.info("Resolved order=%s from token=%r via %s", order.id, token, strategy)
                    return ResolvedOrder(order=order, strategy=strategy)
        except DatabaseError as exc:
            logger.exception("Order lookup failed for token=%r", token)
            raise Upstream("Order lookup is temporarily unavailable") from exc

        logger.info("No order matched token=%r", token)
        raise NotFound(f"Order not found: {token}")

    def _by_direct(self, token: str) -> Optional[Order]:
        order_id = parse_uuid(token)
        if order_id is None:
            return None
        return self.queryset.filter(id=order_id).first()

    def _candidate_ids(self) -> List[str]:
        """Newest orders first; orders created in the same instant fall back to id order."""
        ids = Order.objects.order_by("-created_at", "-id").values_list("id", flat=True)[: self.candidate_limit]
        return [str(order_id) for order_id in ids]

    def _by_prefix(self, token: str) -> Optional[Order]:
        if len(token) != self.short_id_length:
            return None
        needle = token.lower()
        matches = [order_id for order_id in self._candidate_ids() if order_id.startswith(needle)]
        if not matches:
            return None
        if len(matches) > 1:
            logger.warning(
                "Short id %r matches %d orders, using the newest (%s)", token, len(matches), matches[0]
            )
        return self.queryset.filter(id=matches[0]).first()

    def _by_notification(self, token: str) -> Optional[Order]:
        notification_id = parse_uuid(token)
        if notification_id is None:
            return None
        entity_id = (
            Notification.objects.filter(id=notification_id)
            .exclude(related_entity_id="")
            .values_list("related_entity_id", flat=True)
            .first()
        )
        if entity_id is None:
            return None
        return self._by_direct(entity_id)

    def _has_reference_column(self) -> bool:
        try:
            with connection.cursor() as cursor:
                columns = connection.introspection.get_table_description(cursor, Order._meta.db_table)
        except DatabaseError:
            logger.warning("Could not inspect %s columns, skipping reference lookup", Order._meta.db_table)
            return False
        return any(column.name == "reference_number" for column in columns)

    def _by_reference(self, token: str) -> Optional[Order]:
        if not self._has_reference_column():
            return None
        return self.queryset.filter(reference_number=token).first()

    def _by_substring(self, token: str) -> Optional[Order]:
        needle = token.lower()
        for order_id in self._candidate_ids():
            if needle in order_id:
                return self.queryset.filter(id=order_id).first()
        return None
