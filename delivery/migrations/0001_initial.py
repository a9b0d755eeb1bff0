from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("account", "0001_initial"),
        ("order", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="DeliveryStatusUpdate",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("sequence", models.PositiveIntegerField()),
                ("status", models.CharField(choices=[("assigned", "Assigned"), ("picked_up", "Picked Up"), ("in_transit", "In Transit"), ("delivered", "Delivered"), ("failed", "Failed")], max_length=20)),
                ("latitude", models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ("longitude", models.DecimalField(blank=True, decimal_places=6, max_digits=9, null=True)),
                ("notes", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("delivery_partner", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="status_updates", to="account.deliverypartner")),
                ("order", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="delivery_updates", to="order.order")),
                ("recorded_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="delivery_updates", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["created_at", "sequence"],
            },
        ),
        migrations.AddConstraint(
            model_name="deliverystatusupdate",
            constraint=models.UniqueConstraint(fields=("order", "sequence"), name="delivery_update_order_seq_uniq"),
        ),
        migrations.CreateModel(
            name="DeliveryProof",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("receiver_name", models.CharField(max_length=120)),
                ("photo_url", models.URLField(blank=True, max_length=500)),
                ("signature_url", models.URLField(blank=True, max_length=500)),
                ("notes", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("delivery_partner", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="proofs", to="account.deliverypartner")),
                ("order", models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name="delivery_proof", to="order.order")),
                ("submitted_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="delivery_proofs", to=settings.AUTH_USER_MODEL)),
            ],
        ),
    ]
