from django.core.management.base import BaseCommand
from django.utils import timezone

from clinic.services import dashboard, inventory, lab, pos
from clinic.services.realtime import broadcast_refresh

WARMERS = (
    (inventory.STATS_CACHE_KEY, inventory.pharmacy_stats),
    (lab.STATS_CACHE_KEY, lab.lab_stats),
    (pos.STATS_CACHE_KEY, pos.pos_stats),
    (dashboard.STATS_CACHE_KEY, dashboard.dashboard_stats),
)


class Command(BaseCommand):
    help = "Warm the statistics caches and broadcast a WebSocket refresh event."

    def handle(self, *args, **options):
        now = timezone.now()
        keys_refreshed = []
        for key, warm in WARMERS:
            warm(use_cache=False)
            keys_refreshed.append(key)

        if not broadcast_refresh(keys_refreshed):
            self.stdout.write(self.style.WARNING("No channel layer configured; refresh not broadcast"))
        self.stdout.write(self.style.SUCCESS(f"Refreshed {len(keys_refreshed)} keys at {now}"))
