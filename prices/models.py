from django.conf import settings
from django.db import models
from django.utils import timezone


class BaseModel(models.Model):
    """Abstract base with audit timestamps (HackSoft Styleguide pattern)."""

    created_at = models.DateTimeField(db_index=True, default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class FuelType(models.TextChoices):
    REGULAR = "regular", "Regular"
    PREMIUM = "premium", "Premium"
    DIESEL = "diesel", "Diesel"
    PREMIUM_DIESEL = "premium_diesel", "Premium diesel"
    CNG = "cng", "CNG"


class Schedule(models.TextChoices):
    DAY = "day", "Day"
    NIGHT = "night", "Night"


class PriceSource(models.TextChoices):
    OFFICIAL = "official", "Official"
    CROWD = "crowd", "Crowd"


class Station(BaseModel):
    external_id = models.CharField(
        max_length=64, unique=True, help_text="Identity key from the source feed"
    )
    name = models.CharField(max_length=255)
    company = models.CharField(max_length=255, blank=True, db_index=True)
    tax_id = models.CharField(max_length=32, blank=True)
    address = models.CharField(max_length=255, blank=True)
    locality = models.CharField(max_length=120, blank=True, db_index=True)
    province = models.CharField(max_length=120, blank=True, db_index=True)
    region = models.CharField(max_length=60, blank=True)
    latitude = models.FloatField()
    longitude = models.FloatField()
    source = models.CharField(max_length=20, default=PriceSource.OFFICIAL)

    class Meta:
        ordering = ["name"]
        verbose_name = "Fuel Station"
        verbose_name_plural = "Fuel Stations"

    def __str__(self) -> str:
        return f"{self.name} ({self.locality}, {self.province})"


class Price(BaseModel):
    """Current price per (station, fuel type, schedule, source)."""

    station = models.ForeignKey(
        Station, on_delete=models.CASCADE, related_name="prices"
    )
    fuel_type = models.CharField(max_length=20, choices=FuelType.choices)
    schedule = models.CharField(
        max_length=10, choices=Schedule.choices, default=Schedule.DAY
    )
    price = models.DecimalField(max_digits=10, decimal_places=3)
    valid_from = models.DateTimeField(db_index=True)
    source = models.CharField(max_length=10, choices=PriceSource.choices)
    is_validated = models.BooleanField(default=False)
    reported_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-valid_from"]
        constraints = [
            models.UniqueConstraint(
                fields=["station", "fuel_type", "schedule", "source"],
                name="unique_current_price",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.station_id} {self.fuel_type}/{self.schedule} ${self.price}"


class PriceHistory(models.Model):
    """Append-only snapshot written when a current price changes."""

    station = models.ForeignKey(
        Station, on_delete=models.CASCADE, related_name="price_history"
    )
    fuel_type = models.CharField(max_length=20, choices=FuelType.choices)
    schedule = models.CharField(max_length=10, choices=Schedule.choices)
    price = models.DecimalField(max_digits=10, decimal_places=3)
    valid_from = models.DateTimeField(db_index=True)
    source = models.CharField(max_length=10, choices=PriceSource.choices)
    is_validated = models.BooleanField(default=False)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-valid_from"]
        verbose_name_plural = "Price history"


class CrowdReport(models.Model):
    """A single user-submitted price observation. Never mutated."""

    station = models.ForeignKey(
        Station, on_delete=models.CASCADE, related_name="crowd_reports"
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="crowd_reports",
    )
    fuel_type = models.CharField(max_length=20, choices=FuelType.choices)
    schedule = models.CharField(
        max_length=10, choices=Schedule.choices, default=Schedule.DAY
    )
    price = models.DecimalField(max_digits=10, decimal_places=3)
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(db_index=True, default=timezone.now)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["station", "schedule", "created_at"],
                name="crowd_station_window_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.station_id} {self.fuel_type}/{self.schedule} ${self.price}"
