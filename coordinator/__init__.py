from .cache import ActorCache
from .client import ApiClient, ApiResult
from .coordinator import OrderCoordinator
from .polling import DeliveryTrackingPoller

__all__ = ["ActorCache", "ApiClient", "ApiResult", "DeliveryTrackingPoller", "OrderCoordinator"]
