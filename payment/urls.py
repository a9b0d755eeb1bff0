from django.urls import path

from .views import CodMarkReceivedView, CodPaymentStatusView, TransactionListView

urlpatterns = [
    path("cod/mark-received/", CodMarkReceivedView.as_view(), name="cod-mark-received"),
    path("cod/<uuid:pk>/status/", CodPaymentStatusView.as_view(), name="cod-payment-status"),
    path("transactions/", TransactionListView.as_view(), name="transaction-list"),
]
