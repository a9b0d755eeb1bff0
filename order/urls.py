from django.urls import path

from .views import (
    AssignDeliveryView,
    ListOrdersView,
    OrderCreateView,
    OrderResolveView,
    OrderSnapshotView,
    OrderStatusUpdateView,
)

urlpatterns = [
    path('create/', OrderCreateView.as_view(), name='order-create'),
    path('orders/', ListOrdersView.as_view(), name='user-orders'),
    path('orders/resolve/<str:token>/', OrderResolveView.as_view(), name='order-resolve'),
    path('orders/<uuid:pk>/snapshot/', OrderSnapshotView.as_view(), name='order-snapshot'),
    path('orders/<uuid:pk>/status/', OrderStatusUpdateView.as_view(), name='order-status-update'),
    path('orders/<uuid:pk>/assign-delivery/', AssignDeliveryView.as_view(), name='order-assign-delivery'),
]
