from django.core.management.base import BaseCommand

from services.matching import sweep_expired_offers


class Command(BaseCommand):
    help = "Expire order offers whose response window has closed and offer the orders to the next delivery person."

    def handle(self, *args, **options):
        result = sweep_expired_offers()

        self.stdout.write(
            self.style.SUCCESS(
                f"Expired {result.expired_count} offer(s), found {result.stranded_count} order(s) without an offer; "
                f"redistributed {len(result.redistributed_order_ids)} order(s): "
                f"{result.dispatched_count} offered, {result.exhausted_count} without delivery person."
            )
        )
