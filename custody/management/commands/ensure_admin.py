from django.core.management.base import BaseCommand, CommandError

from custody.models import AdminAccount, Hospital
from custody.services.sessions import hash_password


class Command(BaseCommand):
    help = "Create or reset an admin for a hospital with a bcrypt-hashed password (idempotent)."

    def add_arguments(self, parser):
        parser.add_argument('--username', required=True)
        parser.add_argument('--password', required=True)
        parser.add_argument('--hospital', type=int, required=True, help="Hospital id")
        parser.add_argument('--hospital-name', default='', help="Create the hospital with this name if missing")

    def handle(self, *args, **opts):
        hospital = Hospital.objects.filter(pk=opts['hospital']).first()
        if hospital is None:
            if not opts['hospital_name']:
                raise CommandError(f"Hospital {opts['hospital']} does not exist; pass --hospital-name to create it.")
            hospital = Hospital.objects.create(id=opts['hospital'], name=opts['hospital_name'])
            self.stdout.write(f"created hospital {hospital}")

        admin, created = AdminAccount.objects.update_or_create(
            username=opts['username'],
            defaults={'password': hash_password(opts['password']), 'hospital': hospital},
        )
        verb = 'created' if created else 'updated'
        self.stdout.write(self.style.SUCCESS(f"{verb}: {admin.username} -> hospital {hospital.id}"))
