from .cod import (
    CodReconciliation,
    compute_fee,
    mark_payment_received,
    payment_status,
    transactions_for,
)

__all__ = [
    "CodReconciliation",
    "compute_fee",
    "mark_payment_received",
    "payment_status",
    "transactions_for",
]
