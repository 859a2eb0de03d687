# Generated manually for standalone django-tourops package

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Reservation",
            fields=[
                ("id", models.CharField(max_length=64, primary_key=True, serialize=False)),
                (
                    "product_id",
                    models.CharField(help_text="Product this reservation books", max_length=64),
                ),
                ("tour_date", models.DateField(help_text="Calendar date of the tour")),
                (
                    "total_people",
                    models.PositiveIntegerField(
                        default=0, help_text="Headcount across all passenger categories"
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("recruiting", "Recruiting"),
                            ("confirmed", "Confirmed"),
                            ("completed", "Completed"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                (
                    "prepaid_tip",
                    models.DecimalField(
                        decimal_places=2,
                        default=0,
                        help_text="Gratuity prepaid with the booking",
                        max_digits=12,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "indexes": [
                    models.Index(
                        fields=["product_id", "tour_date"],
                        name="tourops_resv_product_date_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(prepaid_tip__gte=0),
                        name="tourops_reservation_tip_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Tour",
            fields=[
                ("id", models.CharField(max_length=64, primary_key=True, serialize=False)),
                ("product_id", models.CharField(max_length=64)),
                ("tour_date", models.DateField()),
                (
                    "reservation_ids",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Ids of reservations rostered on this tour",
                    ),
                ),
                ("guide_id", models.CharField(blank=True, default="", max_length=255)),
                ("assistant_id", models.CharField(blank=True, default="", max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "ordering": ["tour_date", "id"],
                "indexes": [
                    models.Index(
                        fields=["product_id", "tour_date"],
                        name="tourops_tour_product_date_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="TipShare",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("tour_id", models.CharField(max_length=64, unique=True)),
                ("guide_id", models.CharField(blank=True, default="", max_length=255)),
                ("assistant_id", models.CharField(blank=True, default="", max_length=255)),
                ("has_assistant", models.BooleanField(default=False)),
                ("guide_percent", models.DecimalField(decimal_places=6, max_digits=9)),
                (
                    "assistant_percent",
                    models.DecimalField(decimal_places=6, default=0, max_digits=9),
                ),
                ("op_percent", models.DecimalField(decimal_places=6, max_digits=9)),
                ("guide_amount", models.DecimalField(decimal_places=4, max_digits=19)),
                (
                    "assistant_amount",
                    models.DecimalField(decimal_places=4, default=0, max_digits=19),
                ),
                ("op_amount", models.DecimalField(decimal_places=4, max_digits=19)),
                (
                    "total_tip",
                    models.DecimalField(
                        decimal_places=4,
                        help_text="Shareable pool the percents apply to",
                        max_digits=19,
                    ),
                ),
                ("deduct_card_fee", models.BooleanField(default=False)),
                ("recorded_at", models.DateTimeField(auto_now_add=True)),
            ],
        ),
        migrations.CreateModel(
            name="TipShareOp",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("member_id", models.CharField(max_length=255)),
                ("percent", models.DecimalField(decimal_places=6, max_digits=9)),
                ("amount", models.DecimalField(decimal_places=4, max_digits=19)),
                (
                    "position",
                    models.PositiveSmallIntegerField(
                        default=0, help_text="Order in which the member was added"
                    ),
                ),
                (
                    "tip_share",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="op_shares",
                        to="django_tourops.tipshare",
                    ),
                ),
            ],
            options={
                "ordering": ["position", "id"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("tip_share", "member_id"),
                        name="tourops_one_share_per_op_member",
                    ),
                ],
            },
        ),
    ]
