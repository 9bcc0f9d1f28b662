import datetime as dt
from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError
from django.utils import timezone

from custody.models import AdminAccount, AdminSession, Hospital, PlasmaEntry, PlateletEntry, RedBloodEntry
from custody.services import sessions
from custody.services.fallback import sample_entries, sample_hospitals

pytestmark = pytest.mark.django_db


def run(*args, **kwargs) -> str:
    out = StringIO()
    call_command(*args, stdout=out, **kwargs)
    return out.getvalue()


def test_purge_sessions_removes_expired_rows(admins):
    now = timezone.now()
    AdminSession.objects.create(token='a' * 43, admin=admins[0], expires_at=now - dt.timedelta(hours=1))
    AdminSession.objects.create(token='b' * 43, admin=admins[0], expires_at=now + dt.timedelta(hours=1))
    out = run('purge_sessions')
    assert 'Purged 1 expired session(s).' in out
    assert list(AdminSession.objects.values_list('token', flat=True)) == ['b' * 43]


def test_ensure_admin_creates_hospital_and_hashed_admin(db):
    out = run('ensure_admin', '--username', 'root', '--password', 'Bootstrap-Pass-1',
              '--hospital', '7', '--hospital-name', 'Seventh Hospital')
    assert 'created: root -> hospital 7' in out
    admin = AdminAccount.objects.get(username='root')
    assert admin.hospital_id == 7
    assert admin.password.startswith('$2b$')
    assert sessions.verify_credentials('root', 'Bootstrap-Pass-1') is not None


def test_ensure_admin_is_idempotent(hospitals):
    run('ensure_admin', '--username', 'root', '--password', 'first-Pass-1', '--hospital', '1')
    out = run('ensure_admin', '--username', 'root', '--password', 'second-Pass-2', '--hospital', '2')
    assert 'updated' in out
    admin = AdminAccount.objects.get(username='root')
    assert admin.hospital_id == 2
    assert sessions.verify_credentials('root', 'second-Pass-2') is not None
    assert sessions.verify_credentials('root', 'first-Pass-1') is None


def test_ensure_admin_requires_existing_or_named_hospital(db):
    with pytest.raises(CommandError):
        run('ensure_admin', '--username', 'root', '--password', 'x', '--hospital', '42')


def test_populate_data_loads_sample_dataset(db):
    out = run('populate_data', '--admin-password', 'Sample-Admin-1')
    assert Hospital.objects.count() == len(sample_hospitals())
    entries = sample_entries()
    assert RedBloodEntry.objects.count() == sum(1 for e in entries if e.kind == 'RedBlood')
    assert PlasmaEntry.objects.count() == sum(1 for e in entries if e.kind == 'Plasma')
    assert PlateletEntry.objects.count() == sum(1 for e in entries if e.kind == 'Platelets')
    assert AdminAccount.objects.filter(username__startswith='admin').count() == 3
    assert 'Sample data ready' in out

    # a second run adds nothing
    out = run('populate_data')
    assert '0 new bag(s)' in out


def test_populated_ids_do_not_block_new_rows(db):
    run('populate_data')
    bag = RedBloodEntry.objects.create(
        hospital_id=1, donor_name='New', blood_type='O', rh='+', amount=450,
        expiration_date=timezone.localdate() + dt.timedelta(days=5),
    )
    assert bag.bag_id > max(e.bag_id for e in sample_entries() if e.kind == 'RedBlood')


def test_inventory_report_for_one_hospital(hospitals, make_entry):
    make_entry('RedBlood', hospitals[0], 'O', '+', amount=450)
    make_entry('RedBlood', hospitals[1], 'A', '-', amount=450)
    out = run('inventory_report', '--hospital', '1', '--entries')
    assert 'Hospital 1' in out and 'Hospital 2' not in out
    assert 'RedBlood' in out and '450 ml' in out


def test_inventory_report_across_hospitals(hospitals, make_entry):
    make_entry('RedBlood', hospitals[0])
    make_entry('Plasma', hospitals[2], 'AB')
    out = run('inventory_report', '--all-hospitals')
    assert 'Hospital 1' in out and 'Hospital 3' in out


def test_inventory_report_needs_exactly_one_scope(db):
    with pytest.raises(CommandError):
        run('inventory_report')
    with pytest.raises(CommandError):
        run('inventory_report', '--hospital', '1', '--all-hospitals')
