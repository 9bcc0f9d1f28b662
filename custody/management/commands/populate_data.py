"""
Management command to populate the database with the sample dataset.

Writes the same hospitals and bags that fallback mode serves, so a fresh
database behaves like the demo.  Existing rows with the same ids are left
alone.
"""
from django.core.management.base import BaseCommand
from django.core.management.color import no_style
from django.db import connection, transaction

from custody.models import AdminAccount, Hospital
from custody.services.fallback import sample_entries, sample_hospitals
from custody.services.inventory import KIND_MODELS
from custody.services.sessions import hash_password


class Command(BaseCommand):
    help = 'Populate database with the sample hospitals and inventory'

    def add_arguments(self, parser):
        parser.add_argument('--admin-password', default='',
                            help="Also create admin<hospital id> accounts with this password")

    @transaction.atomic
    def handle(self, *args, **options):
        self.stdout.write('Creating sample data...')

        hospitals = self.create_hospitals()
        created = self.create_entries()
        self.reset_sequences()
        if options['admin_password']:
            self.create_admins(hospitals, options['admin_password'])

        self.stdout.write(self.style.SUCCESS(
            f'Sample data ready: {len(hospitals)} hospital(s), {created} new bag(s).'
        ))

    def create_hospitals(self):
        hospitals = []
        for record in sample_hospitals():
            hospital, _ = Hospital.objects.get_or_create(
                id=record.id,
                defaults={'name': record.name, 'location': record.location, 'contact_phone': record.contact_phone},
            )
            hospitals.append(hospital)
        return hospitals

    def create_entries(self):
        created = 0
        for entry in sample_entries():
            model = KIND_MODELS[entry.kind]
            defaults = {
                'hospital_id': entry.hospital_id,
                'donor_name': entry.donor_name,
                'blood_type': entry.blood_type,
                'amount': entry.amount,
                'expiration_date': entry.expiration_date,
                'active': entry.active,
            }
            if model.has_rh:
                defaults['rh'] = entry.rh
            _, was_created = model.objects.get_or_create(bag_id=entry.bag_id, defaults=defaults)
            created += int(was_created)
        return created

    def reset_sequences(self):
        # rows were inserted with explicit ids; move postgres sequences past them
        statements = connection.ops.sequence_reset_sql(no_style(), [Hospital, *KIND_MODELS.values()])
        with connection.cursor() as cursor:
            for sql in statements:
                cursor.execute(sql)

    def create_admins(self, hospitals, password):
        for hospital in hospitals:
            username = f'admin{hospital.id}'
            _, was_created = AdminAccount.objects.get_or_create(
                username=username,
                defaults={'password': hash_password(password), 'hospital': hospital},
            )
            if was_created:
                self.stdout.write(f'  created {username}')
