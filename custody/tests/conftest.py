import datetime as dt

import pytest
from django.core.cache import cache
from django.utils import timezone

from custody.models import AdminAccount, Hospital, PlasmaEntry, PlateletEntry, RedBloodEntry
from custody.records import SessionRecord
from custody.services.connection import ConnectionStatusCache, StoreGateway, set_gateway

TEST_PASSWORD = 'Plasma-Bag-2291'


@pytest.fixture(autouse=True)
def custody_settings(settings):
    settings.CUSTODY = {
        **settings.CUSTODY,
        'DATABASE_CONFIGURED': True,
        'FALLBACK_MODE': False,
        'AUTO_FALLBACK': False,
        'RETRY_WAIT_MIN': 0,
        'RETRY_WAIT_MAX': 0,
        'REHASH_LEGACY_PASSWORDS': False,
    }
    return settings


@pytest.fixture(autouse=True)
def gateway(custody_settings):
    gw = StoreGateway(ConnectionStatusCache())
    previous = set_gateway(gw)
    yield gw
    set_gateway(previous)


@pytest.fixture(autouse=True)
def clear_cache():
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def today():
    return timezone.localdate()


@pytest.fixture
def hospitals(db):
    return [
        Hospital.objects.create(id=i, name=f'Hospital {i}', location='Test', contact_phone=f'555-020{i}')
        for i in (1, 2, 3)
    ]


@pytest.fixture
def admin_password():
    return TEST_PASSWORD


@pytest.fixture
def admins(hospitals):
    # legacy plain-text credentials
    return [
        AdminAccount.objects.create(username='admin1', password=TEST_PASSWORD, hospital=hospitals[0]),
        AdminAccount.objects.create(username='admin2', password=TEST_PASSWORD, hospital=hospitals[1]),
    ]


@pytest.fixture
def make_session():
    def _make(hospital_id, admin_id=1, username='tester'):
        now = timezone.now()
        return SessionRecord(
            token='t' * 43,
            admin_id=admin_id,
            hospital_id=hospital_id,
            username=username,
            expires_at=now + dt.timedelta(hours=1),
            created_at=now,
        )
    return _make


@pytest.fixture
def make_entry(today):
    models = {'RedBlood': RedBloodEntry, 'Plasma': PlasmaEntry, 'Platelets': PlateletEntry}

    def _make(kind, hospital, blood_type='O', rh='+', amount=450, days=30, active=True, donor='Donor'):
        model = models[kind]
        fields = dict(
            hospital=hospital,
            donor_name=donor,
            blood_type=blood_type,
            amount=amount,
            expiration_date=today + dt.timedelta(days=days),
            active=active,
        )
        if model.has_rh:
            fields['rh'] = rh
        return model.objects.create(**fields)
    return _make
