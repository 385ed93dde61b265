from django.core.management.base import BaseCommand
from services.caching import get_offer_cache


class Command(BaseCommand):
    help = "Purge dead offer cache entries within a time budget."

    def add_arguments(self, parser):
        parser.add_argument(
            "--time-budget",
            type=float,
            default=None,
            help="Seconds the sweep may run (default: DISPATCH['CACHE_SWEEP_TIME_BUDGET']).",
        )

    def handle(self, *args, **options):
        result = get_offer_cache().sweep(options["time_budget"])

        self.stdout.write(
            self.style.SUCCESS(
                f"Removed {result['removed']} cache entr{'y' if result['removed'] == 1 else 'ies'} "
                f"from the {result['backend']} backend in {result['elapsed']}s."
            )
        )
