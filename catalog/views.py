import uuid

from rest_framework import permissions
from rest_framework.generics import ListCreateAPIView

from .models import Product
from .serializers import ProductSerializer


class ProductListCreateView(ListCreateAPIView):
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = ProductSerializer

    def get_queryset(self):
        queryset = Product.objects.filter(is_active=True).order_by("name")
        wholesaler_id = self.request.query_params.get("wholesaler")
        if wholesaler_id:
            try:
                queryset = queryset.filter(wholesaler_id=uuid.UUID(wholesaler_id))
            except ValueError:
                return queryset.none()
        return queryset
