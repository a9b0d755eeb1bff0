from django.urls import path

from .views import DeliveryPartnerListView, DeliveryProofView, DeliveryTrackingView, DeliveryUpdateView

urlpatterns = [
    path("partners/", DeliveryPartnerListView.as_view(), name="delivery-partners"),
    path("orders/<uuid:pk>/updates/", DeliveryUpdateView.as_view(), name="delivery-updates"),
    path("orders/<uuid:pk>/proof/", DeliveryProofView.as_view(), name="delivery-proof"),
    path("orders/<uuid:pk>/tracking/", DeliveryTrackingView.as_view(), name="delivery-tracking"),
]
