import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


FUEL_TYPE_CHOICES = [
    ("regular", "Regular"),
    ("premium", "Premium"),
    ("diesel", "Diesel"),
    ("premium_diesel", "Premium diesel"),
    ("cng", "CNG"),
]
SCHEDULE_CHOICES = [("day", "Day"), ("night", "Night")]
SOURCE_CHOICES = [("official", "Official"), ("crowd", "Crowd")]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Station",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("external_id", models.CharField(help_text="Identity key from the source feed", max_length=64, unique=True)),
                ("name", models.CharField(max_length=255)),
                ("company", models.CharField(blank=True, db_index=True, max_length=255)),
                ("tax_id", models.CharField(blank=True, max_length=32)),
                ("address", models.CharField(blank=True, max_length=255)),
                ("locality", models.CharField(blank=True, db_index=True, max_length=120)),
                ("province", models.CharField(blank=True, db_index=True, max_length=120)),
                ("region", models.CharField(blank=True, max_length=60)),
                ("latitude", models.FloatField()),
                ("longitude", models.FloatField()),
                ("source", models.CharField(default="official", max_length=20)),
            ],
            options={
                "verbose_name": "Fuel Station",
                "verbose_name_plural": "Fuel Stations",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Price",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("fuel_type", models.CharField(choices=FUEL_TYPE_CHOICES, max_length=20)),
                ("schedule", models.CharField(choices=SCHEDULE_CHOICES, default="day", max_length=10)),
                ("price", models.DecimalField(decimal_places=3, max_digits=10)),
                ("valid_from", models.DateTimeField(db_index=True)),
                ("source", models.CharField(choices=SOURCE_CHOICES, max_length=10)),
                ("is_validated", models.BooleanField(default=False)),
                ("reported_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("station", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="prices", to="prices.station")),
            ],
            options={
                "ordering": ["-valid_from"],
            },
        ),
        migrations.AddConstraint(
            model_name="price",
            constraint=models.UniqueConstraint(
                fields=("station", "fuel_type", "schedule", "source"),
                name="unique_current_price",
            ),
        ),
        migrations.CreateModel(
            name="PriceHistory",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("fuel_type", models.CharField(choices=FUEL_TYPE_CHOICES, max_length=20)),
                ("schedule", models.CharField(choices=SCHEDULE_CHOICES, max_length=10)),
                ("price", models.DecimalField(decimal_places=3, max_digits=10)),
                ("valid_from", models.DateTimeField(db_index=True)),
                ("source", models.CharField(choices=SOURCE_CHOICES, max_length=10)),
                ("is_validated", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("station", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="price_history", to="prices.station")),
            ],
            options={
                "verbose_name_plural": "Price history",
                "ordering": ["-valid_from"],
            },
        ),
        migrations.CreateModel(
            name="CrowdReport",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("fuel_type", models.CharField(choices=FUEL_TYPE_CHOICES, max_length=20)),
                ("schedule", models.CharField(choices=SCHEDULE_CHOICES, default="day", max_length=10)),
                ("price", models.DecimalField(decimal_places=3, max_digits=10)),
                ("notes", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("station", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="crowd_reports", to="prices.station")),
                ("user", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="crowd_reports", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.AddIndex(
            model_name="crowdreport",
            index=models.Index(
                fields=["station", "schedule", "created_at"],
                name="crowd_station_window_idx",
            ),
        ),
    ]
