import logging

from django.conf import settings
from rest_framework import exceptions, permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from account.models import User
from delivery.services import assign_delivery_partner

from .exceptions import InvalidTransition, NotFound, OrderFlowError
from .models import Order
from .resolution import OrderResolver
from .serializers import (
    AssignDeliverySerializer,
    OrderCreateSerializer,
    OrderSerializer,
    OrderSnapshotSerializer,
    OrderStatusUpdateSerializer,
)
from .services import OrderService
from .state_machine import can_view_order, transition

logger = logging.getLogger(__name__)


def order_queryset():
    return Order.objects.select_related(
        "retailer", "wholesaler", "delivery_partner"
    ).prefetch_related("items")


def get_order(pk, user=None) -> Order:
    order = order_queryset().filter(pk=pk).first()
    if order is None or (user is not None and not can_view_order(order, user)):
        raise NotFound(f"Order {pk} not found")
    return order


def orders_for(user):
    queryset = order_queryset()
    if user.is_operator:
        return queryset
    if user.role == User.Role.WHOLESALER:
        return queryset.filter(wholesaler=user)
    if user.role == User.Role.DELIVERY_PARTNER:
        return queryset.filter(delivery_partner__user=user)
    return queryset.filter(retailer=user)


class OrderFlowView(APIView):
    """Renders service errors as ``{"detail", "code"}`` with their HTTP status."""

    permission_classes = [permissions.IsAuthenticated]

    def handle_exception(self, exc):
        if isinstance(exc, OrderFlowError):
            if exc.http_status >= 500:
                logger.error("%s failed: %s", type(self).__name__, exc.detail)
            return Response(exc.to_payload(), status=exc.http_status)

        if isinstance(exc, exceptions.ValidationError):
            response = super().handle_exception(exc)
            response.data = {"detail": "Invalid request data", "code": "invalid", "errors": response.data}
            return response

        if isinstance(exc, exceptions.APIException):
            response = super().handle_exception(exc)
            if isinstance(response.data, dict):
                response.data.setdefault("code", exc.default_code)
            return response

        logger.exception("Unexpected error in %s", type(self).__name__)
        return Response(
            {"detail": "Something went wrong. Please try again.", "code": "server_error"},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )


class OrderCreateView(OrderFlowView):
    def post(self, request):
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order = OrderService.place_order(
            retailer=request.user,
            wholesaler_id=data["wholesaler_id"],
            items=data["items"],
            payment_method=data["payment_method"],
            notes=data.get("notes", ""),
        )
        order = get_order(order.pk)
        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)


class ListOrdersView(OrderFlowView):
    def get(self, request):
        queryset = orders_for(request.user)
        status_filter = request.query_params.get("status")
        if status_filter:
            if status_filter not in Order.Status.values:
                raise InvalidTransition(f"Unknown order status '{status_filter}'")
            queryset = queryset.filter(status=status_filter)
        return Response({"orders": OrderSerializer(queryset, many=True).data})


class OrderResolveView(OrderFlowView):
    def get(self, request, token):
        resolved = OrderResolver(queryset=order_queryset()).resolve(token)
        if not can_view_order(resolved.order, request.user):
            raise NotFound(f"Order not found: {token}")
        return Response({"strategy": resolved.strategy, "order": OrderSerializer(resolved.order).data})


class OrderSnapshotView(OrderFlowView):
    def get(self, request, pk):
        order = get_order(pk, request.user)
        serializer = OrderSnapshotSerializer(order, context={"currency": settings.ORDER_CURRENCY})
        return Response(serializer.data)


class OrderStatusUpdateView(OrderFlowView):
    def post(self, request, pk):
        serializer = OrderStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        target = data.pop("status")
        partner_id = data.pop("delivery_partner_id", None)

        order = get_order(pk, request.user)
        if partner_id is not None:
            if target != Order.Status.DISPATCHED:
                raise InvalidTransition("A delivery partner can only be set when dispatching an order")
            assign_delivery_partner(
                order,
                partner_id,
                request.user,
                instructions=data.get("delivery_instructions"),
                estimated_delivery=data.get("estimated_delivery"),
            )
            return Response({"success": True, "order": OrderSerializer(get_order(pk)).data})

        result = transition(order, target, request.user, extra_fields=data)
        return Response(
            {
                "success": True,
                "previous_status": result.previous_status,
                "order": OrderSerializer(get_order(pk)).data,
                "notifications": {
                    "notified": result.fanout.notified_roles,
                    "failed": result.fanout.failed,
                },
            }
        )


class AssignDeliveryView(OrderFlowView):
    def post(self, request, pk):
        serializer = AssignDeliverySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order = get_order(pk, request.user)
        assign_delivery_partner(
            order,
            data["delivery_partner_id"],
            request.user,
            instructions=data.get("delivery_instructions"),
            estimated_delivery=data.get("estimated_delivery"),
        )
        return Response({"success": True, "order": OrderSerializer(get_order(pk)).data})
