from decimal import Decimal

from account.models import DeliveryPartner, User
from catalog.models import Product

from .models import Order
from .services import OrderService


class MarketplaceFixtures:
    """Parties and a product shared by the order flow test cases."""

    def create_marketplace(self):
        self.retailer = User.objects.create_user(
            email="retailer@example.com",
            password="pass1234",
            role=User.Role.RETAILER,
            business_name="Corner Store",
        )
        self.wholesaler = User.objects.create_user(
            email="wholesaler@example.com",
            password="pass1234",
            role=User.Role.WHOLESALER,
            business_name="Bulk Foods",
        )
        self.other_wholesaler = User.objects.create_user(
            email="other-wholesaler@example.com",
            password="pass1234",
            role=User.Role.WHOLESALER,
            business_name="Other Foods",
        )
        self.partner_user = User.objects.create_user(
            email="rider@example.com",
            password="pass1234",
            role=User.Role.DELIVERY_PARTNER,
            first_name="Ravi",
        )
        self.partner = DeliveryPartner.objects.create(user=self.partner_user, name="Ravi", phone_number="9800000000")
        self.operator = User.objects.create_user(
            email="ops@example.com",
            password="pass1234",
            role=User.Role.ADMIN,
        )
        self.product = Product.objects.create(
            wholesaler=self.wholesaler,
            name="Basmati Rice 5kg",
            price=Decimal("250.00"),
            stock_quantity=10,
        )

    def place_order(self, quantity=2, payment_method=Order.PaymentMethod.COD):
        return OrderService.place_order(
            retailer=self.retailer,
            wholesaler_id=self.wholesaler.id,
            items=[{"product_id": str(self.product.id), "quantity": quantity}],
            payment_method=payment_method,
        )

    def advance(self, order, status):
        """Walk ``order`` forward to ``status`` through the real services."""
        from delivery.services import assign_delivery_partner, record_status_update

        from .state_machine import transition

        path = [Order.Status.CONFIRMED, Order.Status.DISPATCHED, Order.Status.DELIVERED]
        for step in path[: path.index(status) + 1]:
            if order.status != Order.Status.PLACED and path.index(step) <= path.index(order.status):
                continue
            if step == Order.Status.CONFIRMED:
                transition(order, step, self.wholesaler)
            elif step == Order.Status.DISPATCHED:
                assign_delivery_partner(order, self.partner.id, self.wholesaler, instructions="Back door")
            else:
                record_status_update(order, self.partner_user, "delivered")
        order.refresh_from_db()
        return order
