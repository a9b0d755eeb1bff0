from rest_framework import status
from rest_framework.response import Response

from account.models import DeliveryPartner
from account.serializers import DeliveryPartnerSerializer
from order.views import OrderFlowView, get_order

from . import services
from .serializers import (
    DeliveryProofSerializer,
    DeliveryStatusUpdateSerializer,
    RecordDeliveryUpdateSerializer,
    SubmitProofSerializer,
)


class DeliveryPartnerListView(OrderFlowView):
    def get(self, request):
        partners = DeliveryPartner.objects.filter(is_active=True)
        if request.query_params.get("available", "").lower() in ("1", "true", "yes"):
            partners = partners.filter(is_available=True)
        return Response({"partners": DeliveryPartnerSerializer(partners, many=True).data})


class DeliveryUpdateView(OrderFlowView):
    def get(self, request, pk):
        order = get_order(pk, request.user)
        updates = services.timeline(order)
        return Response({"updates": DeliveryStatusUpdateSerializer(updates, many=True).data})

    def post(self, request, pk):
        serializer = RecordDeliveryUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order = get_order(pk, request.user)
        event = services.record_status_update(
            order,
            request.user,
            data["status"],
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
            notes=data.get("notes"),
        )
        return Response(
            {
                "success": True,
                "order_status": order.status,
                "update": DeliveryStatusUpdateSerializer(event).data,
            },
            status=status.HTTP_201_CREATED,
        )


class DeliveryProofView(OrderFlowView):
    def post(self, request, pk):
        serializer = SubmitProofSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        order = get_order(pk, request.user)
        proof = services.submit_delivery_proof(
            order,
            request.user,
            data["receiver_name"],
            photo_url=data.get("photo_url"),
            signature_url=data.get("signature_url"),
            notes=data.get("notes"),
        )
        return Response(
            {"success": True, "order_status": order.status, "proof": DeliveryProofSerializer(proof).data},
            status=status.HTTP_201_CREATED,
        )


class DeliveryTrackingView(OrderFlowView):
    def get(self, request, pk):
        order = get_order(pk, request.user)
        proof = services.proof(order)
        partner = order.delivery_partner
        return Response(
            {
                "order_id": str(order.id),
                "status": order.status,
                "delivery_partner": DeliveryPartnerSerializer(partner).data if partner else None,
                "delivery_instructions": order.delivery_instructions,
                "estimated_delivery": order.estimated_delivery,
                "updates": DeliveryStatusUpdateSerializer(services.timeline(order), many=True).data,
                "proof": DeliveryProofSerializer(proof).data if proof else None,
            }
        )
