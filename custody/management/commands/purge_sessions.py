from django.core.management.base import BaseCommand

from custody.services.sessions import purge_expired


class Command(BaseCommand):
    help = "Delete expired admin sessions."

    def handle(self, *args, **options):
        deleted = purge_expired()
        self.stdout.write(self.style.SUCCESS(f"Purged {deleted} expired session(s)."))
