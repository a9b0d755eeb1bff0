from rest_framework import permissions, status
from rest_framework.generics import ListAPIView
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import Notification
from .serializers import DeviceTokenSerializer, NotificationSerializer
from .services import NotificationService


class InboxPagination(PageNumberPagination):
    page_size = 25
    page_size_query_param = "page_size"
    max_page_size = 100


class DeviceTokenView(APIView):
    """Register or retire the push token of the caller's device."""

    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = DeviceTokenSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        device = NotificationService.register_device(
            request.user,
            serializer.validated_data["token"],
            serializer.validated_data["device_type"],
        )
        return Response(DeviceTokenSerializer(device).data)

    def delete(self, request):
        token = str(request.data.get("token") or "").strip()
        return Response({"deactivated": NotificationService.deactivate_devices(request.user, token)})


class NotificationListView(ListAPIView):
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = NotificationSerializer
    pagination_class = InboxPagination

    def get_queryset(self):
        qs = Notification.objects.filter(user=self.request.user).order_by("-created_at")
        if self.request.query_params.get("unread", "").lower() in ("1", "true", "yes"):
            qs = qs.filter(is_read=False)
        return qs


class NotificationUnreadView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        unread = NotificationService.unread_for(request.user)
        return Response(
            {
                "count": unread.count(),
                "results": NotificationSerializer(unread[:50], many=True).data,
            }
        )


class NotificationReadView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def patch(self, request, pk):
        notification = NotificationService.mark_read(request.user, pk)
        if notification is None:
            return Response({"detail": "Notification not found", "code": "not_found"}, status=status.HTTP_404_NOT_FOUND)
        return Response({"id": str(notification.id), "is_read": notification.is_read})


class NotificationMarkAllReadView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        updated = NotificationService.mark_all_read(request.user)
        return Response({"updated": updated}, status=status.HTTP_200_OK)
