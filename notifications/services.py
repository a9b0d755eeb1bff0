import json
import logging
from typing import Any, Dict, Optional

from django.conf import settings
from django.db import transaction

from .models import DeviceToken, Notification

logger = logging.getLogger(__name__)

class NotificationService:
    """Inbox writes for order parties, with Firebase push as a best-effort hint."""

    _push_enabled = None

    @staticmethod
    def _firebase_credentials():
        from firebase_admin import credentials

        raw_json = getattr(settings, "FCM_SERVICE_ACCOUNT_JSON", "")
        if raw_json:
            return credentials.Certificate(json.loads(raw_json))
        key_file = getattr(settings, "FCM_SERVICE_ACCOUNT_FILE", "")
        if key_file:
            return credentials.Certificate(key_file)
        return None

    @classmethod
    def _push_ready(cls) -> bool:
        """Initialise the default Firebase app once; False when push is off."""
        if cls._push_enabled is not None:
            return cls._push_enabled

        import firebase_admin

        if firebase_admin._apps:
            cls._push_enabled = True
            return True
        try:
            cred = cls._firebase_credentials()
            if cred is None:
                logger.info("No FCM service account configured, order updates stay inbox-only")
                cls._push_enabled = False
                return False
            project = getattr(settings, "FCM_PROJECT_ID", "")
            firebase_admin.initialize_app(cred, {"projectId": project} if project else None)
        except Exception:
            logger.exception("Firebase app could not be initialised")
            return False
        cls._push_enabled = True
        return True

    @classmethod
    @transaction.atomic
    def notify(
        cls,
        *,
        user,
        title: str,
        message: str,
        category: str = Notification.Category.INFO,
        related_entity_type: str = "",
        related_entity_id: str = "",
        action_url: str = "",
    ) -> Notification:
        """Store an inbox row for ``user`` and queue a push hint.

        The push goes out only once the surrounding transaction commits, so a
        device that refetches on receipt never sees a rolled-back change.
        """
        notification = Notification.objects.create(
            user=user,
            title=title,
            message=message,
            category=category,
            related_entity_type=related_entity_type,
            related_entity_id=str(related_entity_id or ""),
            action_url=action_url,
        )
        data = {
            "notification_id": str(notification.id),
            "entity_type": related_entity_type,
            "entity_id": notification.related_entity_id,
            "action_url": action_url,
        }
        transaction.on_commit(lambda: cls._push_safely(user=user, title=title, message=message, data=data))
        return notification

    @classmethod
    def _push_safely(cls, *, user, title: str, message: str, data: Dict[str, Any]) -> None:
        try:
            cls._send_push_to_user(user=user, title=title, message=message, data=data)
        except Exception:
            logger.exception("Push send failed for user=%s entity=%s", user.id, data.get("entity_id"))

    @staticmethod
    def _is_dead_token(exc) -> bool:
        from firebase_admin import messaging

        if isinstance(exc, messaging.UnregisteredError):
            return True
        code = str(getattr(exc, "code", "") or exc).lower().replace("_", "-")
        return "registration-token-not-registered" in code or "invalid-argument" in code

    @classmethod
    def _send_push_to_user(cls, *, user, title: str, message: str, data: Dict[str, Any]) -> int:
        """Push to every active device of ``user``; returns how many accepted it."""
        if not cls._push_ready():
            return 0

        from firebase_admin import messaging
        from firebase_admin.exceptions import FirebaseError

        payload = {key: str(value) for key, value in data.items()}
        sent = 0
        for device in DeviceToken.objects.filter(user=user, is_active=True).only("id", "token"):
            push = messaging.Message(
                notification=messaging.Notification(title=title, body=message),
                data=payload,
                token=device.token,
            )
            try:
                messaging.send(push)
            except FirebaseError as exc:
                if cls._is_dead_token(exc):
                    DeviceToken.objects.filter(pk=device.pk).update(is_active=False)
                logger.warning("Push to device=%s rejected: %s", device.pk, getattr(exc, "code", exc))
                continue
            sent += 1
        return sent

    @staticmethod
    def register_device(user, token: str, device_type: str) -> DeviceToken:
        # A token moves with the device, so a new login takes it over.
        device, _ = DeviceToken.objects.update_or_create(
            token=token,
            defaults={"user": user, "device_type": device_type, "is_active": True},
        )
        return device

    @staticmethod
    def deactivate_devices(user, token: str = "") -> int:
        devices = DeviceToken.objects.filter(user=user, is_active=True)
        if token:
            devices = devices.filter(token=token)
        return devices.update(is_active=False)

    @staticmethod
    def unread_for(user, limit: Optional[int] = None):
        qs = Notification.objects.filter(user=user, is_read=False).order_by("-created_at")
        return qs[:limit] if limit else qs

    @staticmethod
    def mark_read(user, notification_id) -> Optional[Notification]:
        notification = Notification.objects.filter(id=notification_id, user=user).first()
        if notification is None:
            return None
        if not notification.is_read:
            notification.is_read = True
            notification.save(update_fields=["is_read"])
        return notification

    @staticmethod
    def mark_all_read(user) -> int:
        return Notification.objects.filter(user=user, is_read=False).update(is_read=True)
