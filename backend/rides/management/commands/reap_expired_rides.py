from django.core.management.base import BaseCommand

from services.ride_management import reap_overdue_rides


class Command(BaseCommand):
    help = (
        "Expire requested rides whose broadcast deadline has passed and close "
        "notifications left pending on resolved rides. Run from cron or after a "
        "worker restart to recover lost deadline timers."
    )

    def handle(self, *args, **options):
        rides_expired, notifications_expired = reap_overdue_rides()

        self.stdout.write(
            self.style.SUCCESS(
                f"Expired {rides_expired} ride(s); closed {notifications_expired} pending notification(s)."
            )
        )
