from rest_framework.response import Response

from order.views import OrderFlowView, get_order

from .serializers import MarkCodReceivedSerializer, TransactionSerializer
from .services import mark_payment_received, payment_status, transactions_for


class CodMarkReceivedView(OrderFlowView):
    def post(self, request):
        serializer = MarkCodReceivedSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = mark_payment_received(
            serializer.validated_data["order_id"],
            request.user,
            amount=serializer.validated_data.get("amount"),
        )
        return Response(
            {
                "success": True,
                "created": result.created,
                "order_id": str(result.order.id),
                "payment_status": result.order.payment_status,
                "transaction": TransactionSerializer(result.transaction).data,
            }
        )


class CodPaymentStatusView(OrderFlowView):
    def get(self, request, pk):
        order = get_order(pk, request.user)
        data = payment_status(order)
        ledger = data.pop("transaction")
        data["transaction"] = TransactionSerializer(ledger).data if ledger else None
        return Response(data)


class TransactionListView(OrderFlowView):
    def get(self, request):
        transactions = transactions_for(request.user)
        return Response({"transactions": TransactionSerializer(transactions, many=True).data})
