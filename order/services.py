import logging
import uuid
from decimal import Decimal

from django.db import transaction

from account.models import User
from catalog.models import Product
from notifications.fanout import Audience, notify_order_status

from .exceptions import InvalidTransition, NotFound, Unauthorized
from .models import Order, OrderItem
from .resolution import parse_uuid

logger = logging.getLogger(__name__)


class OrderService:

    @staticmethod
    def generate_reference_number():
        while True:
            reference = f"ORD-{uuid.uuid4().hex[:8].upper()}"
            if not Order.objects.filter(reference_number=reference).exists():
                return reference

    @staticmethod
    def _merge_items(items):
        quantities = {}
        for item in items:
            product_id = parse_uuid(item.get("product_id"))
            if product_id is None:
                raise InvalidTransition(f"Invalid product id '{item.get('product_id')}'")
            quantity = int(item.get("quantity") or 0)
            if quantity < 1:
                raise InvalidTransition("Quantity must be at least 1")
            quantities[product_id] = quantities.get(product_id, 0) + quantity
        return quantities

    @staticmethod
    @transaction.atomic
    def place_order(retailer, wholesaler_id, items, payment_method=Order.PaymentMethod.COD, notes=""):

        # 1. Parties
        if retailer.role != User.Role.RETAILER:
            raise Unauthorized("Only retailers can place orders")
        wholesaler = None
        wholesaler_uuid = parse_uuid(wholesaler_id)
        if wholesaler_uuid is not None:
            wholesaler = User.objects.filter(id=wholesaler_uuid, role=User.Role.WHOLESALER, is_active=True).first()
        if wholesaler is None:
            raise NotFound("Wholesaler not found")
        if not items:
            raise InvalidTransition("An order needs at least one item")
        if payment_method not in Order.PaymentMethod.values:
            raise InvalidTransition(f"Unsupported payment method '{payment_method}'")

        # 2. Lock products and check stock
        quantities = OrderService._merge_items(items)
        products = {
            product.id: product
            for product in Product.objects.select_for_update().filter(id__in=quantities.keys())
        }

        lines = []
        total = Decimal("0.00")
        for product_id, quantity in quantities.items():
            product = products.get(product_id)
            if product is None or product.wholesaler_id != wholesaler.id:
                raise NotFound(f"Product {product_id} is not sold by {wholesaler.display_name}")
            if not product.is_active:
                raise InvalidTransition(f"{product.name} is no longer available")
            if quantity > product.stock_quantity:
                raise InvalidTransition(
                    f"Insufficient stock for {product.name}: {product.stock_quantity} left, {quantity} requested"
                )
            lines.append((product, quantity))
            total += product.price * quantity

        # 3. Order with price snapshots
        order = Order.objects.create(
            reference_number=OrderService.generate_reference_number(),
            retailer=retailer,
            wholesaler=wholesaler,
            total_amount=total,
            payment_method=payment_method,
            notes=notes or "",
        )
        OrderItem.objects.bulk_create(
            [
                OrderItem(
                    order=order,
                    product=product,
                    product_name=product.name,
                    price=product.price,
                    quantity=quantity,
                )
                for product, quantity in lines
            ]
        )

        # 4. Reserve stock
        for product, quantity in lines:
            product.stock_quantity -= quantity
            product.save(update_fields=["stock_quantity", "updated_at"])

        logger.info("Order %s placed by retailer=%s for wholesaler=%s total=%s", order.id, retailer.id, wholesaler.id, total)

        notify_order_status(order, Order.Status.PLACED, Audience.ALL)
        return order
