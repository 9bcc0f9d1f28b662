"""
Sample dataset served while the gateway is in fallback mode.

The dataset is fixed: the same hospitals and bags every time.  Expiration
dates are stored as offsets from today so that the valid/expired split
stays meaningful whenever the demo runs.  Records are frozen dataclasses
inside tuples, so nothing handed out here can be mutated in place, and
writes made in fallback mode never reach it.
"""
from __future__ import annotations

import datetime as dt
from itertools import count

from django.utils import timezone

from custody.models import ComponentKind
from custody.records import EntryRecord, HospitalRecord

SAMPLE_DATA_LABEL = 'sample-data'

SAMPLE_HOSPITALS = (
    HospitalRecord(id=1, name='Sample General Hospital', location='North District', contact_phone='555-0101'),
    HospitalRecord(id=2, name='Sample Regional Medical Center', location='East District', contact_phone='555-0102'),
    HospitalRecord(id=3, name='Sample Community Hospital', location='South District', contact_phone='555-0103'),
)

# kind, hospital, blood type, rh, bag volumes (ml), days until expiry, active
_SAMPLE_STOCK = (
    (ComponentKind.REDBLOOD, 1, 'O', '+', (450,) * 12, 30, True),
    (ComponentKind.REDBLOOD, 1, 'A', '-', (450, 450), 20, True),
    (ComponentKind.REDBLOOD, 1, 'B', '-', (450,), 15, False),
    (ComponentKind.REDBLOOD, 2, 'O', '+', (450, 450), 25, True),
    (ComponentKind.REDBLOOD, 2, 'A', '-', (450,) * 13, 28, True),
    (ComponentKind.REDBLOOD, 3, 'B', '+', (450,) * 4, -2, True),
    (ComponentKind.PLASMA, 1, 'AB', None, (250,) * 6, 300, True),
    (ComponentKind.PLASMA, 2, 'O', None, (250,) * 3, 200, True),
    (ComponentKind.PLASMA, 3, 'O', None, (250,) * 24, 250, True),
    (ComponentKind.PLATELETS, 1, 'O', '+', (300,) * 3, 4, True),
    (ComponentKind.PLATELETS, 3, 'O', '+', (300,) * 20, 5, True),
)

_FIRST_SAMPLE_BAG_ID = 9001


def sample_hospitals() -> tuple[HospitalRecord, ...]:
    return SAMPLE_HOSPITALS


def sample_hospital(hospital_id: int) -> HospitalRecord | None:
    return next((h for h in SAMPLE_HOSPITALS if h.id == hospital_id), None)


def sample_entries(today: dt.date | None = None) -> tuple[EntryRecord, ...]:
    """Materialise the sample bags against ``today``."""
    today = today or timezone.localdate()
    bag_ids = {kind: count(_FIRST_SAMPLE_BAG_ID) for kind in ComponentKind}
    entries = []
    for kind, hospital_id, blood_type, rh, volumes, days, active in _SAMPLE_STOCK:
        for amount in volumes:
            bag_id = next(bag_ids[kind])
            entries.append(EntryRecord(
                kind=kind,
                bag_id=bag_id,
                hospital_id=hospital_id,
                donor_name=f'Sample Donor {bag_id}',
                blood_type=blood_type,
                rh=rh,
                amount=amount,
                expiration_date=today + dt.timedelta(days=days),
                active=active,
            ))
    return tuple(entries)
