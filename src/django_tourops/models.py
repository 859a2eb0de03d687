"""Reservation, Tour and tip-share models backing the Django stores."""

from django.db import models

from django_tourops.snapshots import ReservationStatus


class Reservation(models.Model):
    """
    Customer reservation for a product on a date.

    total_people is the authoritative headcount used in capacity math.

    Usage:
        Reservation.objects.create(
            id="R-1001",
            product_id="ANTELOPE",
            tour_date=date(2026, 5, 1),
            total_people=4,
            status=ReservationStatus.CONFIRMED,
        )
    """

    id = models.CharField(primary_key=True, max_length=64)
    product_id = models.CharField(
        max_length=64,
        help_text="Product this reservation books",
    )
    tour_date = models.DateField(help_text="Calendar date of the tour")
    total_people = models.PositiveIntegerField(
        default=0,
        help_text="Headcount across all passenger categories",
    )
    status = models.CharField(
        max_length=20,
        choices=ReservationStatus.choices,
        default=ReservationStatus.PENDING,
        db_index=True,
    )
    prepaid_tip = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=0,
        help_text="Gratuity prepaid with the booking",
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        app_label = "django_tourops"
        indexes = [
            models.Index(fields=["product_id", "tour_date"], name="tourops_resv_product_date_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(prepaid_tip__gte=0),
                name="tourops_reservation_tip_non_negative",
            ),
        ]

    def __str__(self):
        return f"{self.id} ({self.product_id} {self.tour_date}, {self.total_people} pax)"


class Tour(models.Model):
    """
    One schedulable tour instance.

    Tours sharing product_id and tour_date are siblings and compete for the
    same reservations. reservation_ids is only written through the roster
    services.
    """

    id = models.CharField(primary_key=True, max_length=64)
    product_id = models.CharField(max_length=64)
    tour_date = models.DateField()
    reservation_ids = models.JSONField(
        default=list,
        blank=True,
        help_text="Ids of reservations rostered on this tour",
    )
    guide_id = models.CharField(max_length=255, blank=True, default="")
    assistant_id = models.CharField(max_length=255, blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        app_label = "django_tourops"
        indexes = [
            models.Index(fields=["product_id", "tour_date"], name="tourops_tour_product_date_idx"),
        ]
        ordering = ["tour_date", "id"]

    def __str__(self):
        return f"Tour {self.id} ({self.product_id} {self.tour_date})"


class TipShare(models.Model):
    """
    Saved revenue split of one tour's prepaid gratuity (ledger parent row).

    Written before its TipShareOp children; a TipShare without children
    means the OP sub-pool has no members.
    """

    tour_id = models.CharField(max_length=64, unique=True)
    guide_id = models.CharField(max_length=255, blank=True, default="")
    assistant_id = models.CharField(max_length=255, blank=True, default="")
    has_assistant = models.BooleanField(default=False)

    guide_percent = models.DecimalField(max_digits=9, decimal_places=6)
    assistant_percent = models.DecimalField(max_digits=9, decimal_places=6, default=0)
    op_percent = models.DecimalField(max_digits=9, decimal_places=6)

    guide_amount = models.DecimalField(max_digits=19, decimal_places=4)
    assistant_amount = models.DecimalField(max_digits=19, decimal_places=4, default=0)
    op_amount = models.DecimalField(max_digits=19, decimal_places=4)

    total_tip = models.DecimalField(
        max_digits=19,
        decimal_places=4,
        help_text="Shareable pool the percents apply to",
    )
    deduct_card_fee = models.BooleanField(default=False)

    recorded_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        app_label = "django_tourops"

    def __str__(self):
        return f"Tip share for tour {self.tour_id} ({self.total_tip})"


class TipShareOp(models.Model):
    """One OP member's share of a TipShare (ledger child row)."""

    tip_share = models.ForeignKey(
        TipShare,
        on_delete=models.CASCADE,
        related_name="op_shares",
    )
    member_id = models.CharField(max_length=255)
    percent = models.DecimalField(max_digits=9, decimal_places=6)
    amount = models.DecimalField(max_digits=19, decimal_places=4)
    position = models.PositiveSmallIntegerField(
        default=0,
        help_text="Order in which the member was added",
    )

    class Meta:
        app_label = "django_tourops"
        ordering = ["position", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["tip_share", "member_id"],
                name="tourops_one_share_per_op_member",
            ),
        ]

    def __str__(self):
        return f"{self.member_id}: {self.amount}"
