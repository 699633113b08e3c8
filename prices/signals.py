from django.db.models.signals import post_save
from django.dispatch import receiver

from prices.cache import invalidate_stations
from prices.models import CrowdReport


@receiver(post_save, sender=CrowdReport, dispatch_uid="crowd_report_invalidates_station")
def crowd_report_saved(sender, instance: CrowdReport, created: bool, **kwargs):
    """A new crowd report changes the consolidated view of its station only."""
    invalidate_stations([instance.station_id])
