"""
Typed records exchanged between the services and their callers.

Rows coming out of the store are converted into these frozen dataclasses
at the service boundary.  Nothing past a service returns a model instance
or a loosely-shaped dict, and :meth:`as_dict` is the single place where a
record is turned into the camelCase payload the portal front-end reads.
"""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass

from custody.models import ComponentKind


@dataclass(frozen=True)
class HospitalRecord:
    id: int
    name: str
    location: str = ''
    contact_phone: str = ''

    @classmethod
    def from_model(cls, obj) -> 'HospitalRecord':
        return cls(id=obj.id, name=obj.name, location=obj.location, contact_phone=obj.contact_phone)

    def as_dict(self) -> dict:
        return {'id': self.id, 'name': self.name, 'location': self.location, 'contactPhone': self.contact_phone}


@dataclass(frozen=True)
class SessionRecord:
    """The identity a valid token resolves to.

    ``hospital_id`` is copied from the admin when the session is resolved
    and never changes for the lifetime of the record.
    """
    token: str
    admin_id: int
    hospital_id: int
    username: str
    expires_at: dt.datetime
    created_at: dt.datetime

    def as_dict(self) -> dict:
        return {
            'adminId': self.admin_id,
            'hospitalId': self.hospital_id,
            'username': self.username,
            'expiresAt': self.expires_at.isoformat(),
        }


@dataclass(frozen=True)
class EntryRecord:
    kind: ComponentKind
    bag_id: int
    hospital_id: int
    donor_name: str
    blood_type: str
    rh: str | None
    amount: int
    expiration_date: dt.date
    active: bool = True

    @classmethod
    def from_model(cls, obj) -> 'EntryRecord':
        return cls(
            kind=ComponentKind(obj.kind),
            bag_id=obj.bag_id,
            hospital_id=obj.hospital_id,
            donor_name=obj.donor_name,
            blood_type=obj.blood_type,
            rh=getattr(obj, 'rh', None) if obj.has_rh else None,
            amount=int(obj.amount),
            expiration_date=obj.expiration_date,
            active=bool(obj.active),
        )

    def is_expired(self, today: dt.date) -> bool:
        return self.expiration_date <= today

    def as_dict(self) -> dict:
        return {
            'type': self.kind.value,
            'bagId': self.bag_id,
            'hospitalId': self.hospital_id,
            'donorName': self.donor_name,
            'bloodType': self.blood_type,
            'rh': self.rh,
            'amount': self.amount,
            'expirationDate': self.expiration_date.isoformat(),
            'active': self.active,
        }


@dataclass(frozen=True)
class StockLine:
    """Aggregated valid, active stock of one combination at one hospital."""
    hospital_id: int
    kind: ComponentKind
    blood_type: str
    rh: str
    count: int
    total_amount: int

    @property
    def combination(self) -> tuple[ComponentKind, str, str]:
        return (self.kind, self.blood_type, self.rh)

    def as_dict(self) -> dict:
        return {
            'hospitalId': self.hospital_id,
            'type': self.kind.value,
            'bloodType': self.blood_type,
            'rh': self.rh,
            'count': self.count,
            'totalAmount': self.total_amount,
        }


@dataclass(frozen=True)
class InventorySummary:
    """Counts over one hospital's active bags plus valid stock per combination."""
    hospital_id: int
    total_count: int
    valid_count: int
    expired_count: int
    expiring_soon_count: int
    lines: tuple[StockLine, ...] = ()

    def as_dict(self) -> dict:
        return {
            'hospitalId': self.hospital_id,
            'totalCount': self.total_count,
            'validCount': self.valid_count,
            'expiredCount': self.expired_count,
            'expiringSoonCount': self.expiring_soon_count,
            'byType': [line.as_dict() for line in self.lines],
        }


@dataclass(frozen=True)
class SurplusLine:
    hospital_id: int
    hospital_name: str
    kind: ComponentKind
    blood_type: str
    rh: str
    count: int
    total_amount: int
    level: str

    def as_dict(self) -> dict:
        return {
            'hospitalId': self.hospital_id,
            'hospitalName': self.hospital_name,
            'type': self.kind.value,
            'bloodType': self.blood_type,
            'rh': self.rh,
            'count': self.count,
            'totalAmount': self.total_amount,
            'surplusLevel': self.level,
        }


@dataclass(frozen=True)
class NeedLine:
    """Another hospital short of a combination, as seen by the caller."""
    hospital_id: int
    hospital_name: str
    kind: ComponentKind
    blood_type: str
    rh: str
    count: int
    total_amount: int
    level: str
    your_count: int = 0

    def as_dict(self) -> dict:
        return {
            'hospitalId': self.hospital_id,
            'hospitalName': self.hospital_name,
            'type': self.kind.value,
            'bloodType': self.blood_type,
            'rh': self.rh,
            'count': self.count,
            'totalAmount': self.total_amount,
            'surplusLevel': self.level,
            'yourCount': self.your_count,
        }


@dataclass(frozen=True)
class SurplusAlert:
    """A combination the caller is low on, held in surplus elsewhere."""
    kind: ComponentKind
    blood_type: str
    rh: str
    hospital_id: int
    hospital_name: str
    hospital_phone: str
    count: int
    total_amount: int
    level: str
    your_count: int

    def as_dict(self) -> dict:
        return {
            'type': self.kind.value,
            'bloodType': self.blood_type,
            'rh': self.rh,
            'hospitalId': self.hospital_id,
            'hospitalName': self.hospital_name,
            'hospitalPhone': self.hospital_phone,
            'count': self.count,
            'totalAmount': self.total_amount,
            'surplusLevel': self.level,
            'yourCount': self.your_count,
        }


@dataclass(frozen=True)
class LevelCounts:
    surplus: int = 0
    optimal: int = 0
    low: int = 0
    critical: int = 0

    def as_dict(self) -> dict:
        return {'surplus': self.surplus, 'optimal': self.optimal, 'low': self.low, 'critical': self.critical}


# wire keys of the per-kind buckets in a surplus summary
SUMMARY_KEYS = {
    ComponentKind.REDBLOOD: 'redBlood',
    ComponentKind.PLASMA: 'plasma',
    ComponentKind.PLATELETS: 'platelets',
}


@dataclass(frozen=True)
class SurplusSummary:
    hospital_id: int
    redblood: LevelCounts = LevelCounts()
    plasma: LevelCounts = LevelCounts()
    platelets: LevelCounts = LevelCounts()

    def for_kind(self, kind: ComponentKind) -> LevelCounts:
        return getattr(self, kind.value.lower())

    def as_dict(self) -> dict:
        payload = {'hospitalId': self.hospital_id}
        for kind, key in SUMMARY_KEYS.items():
            payload[key] = self.for_kind(kind).as_dict()
        return payload


@dataclass(frozen=True)
class TransferRecord:
    id: int | None
    from_hospital_id: int
    to_hospital_id: int
    kind: ComponentKind
    blood_type: str
    rh: str
    amount: int
    units: int
    created_at: dt.datetime | None

    @classmethod
    def from_model(cls, obj) -> 'TransferRecord':
        return cls(
            id=obj.id,
            from_hospital_id=obj.from_hospital_id,
            to_hospital_id=obj.to_hospital_id,
            kind=ComponentKind(obj.component),
            blood_type=obj.blood_type,
            rh=obj.rh or '',
            amount=int(obj.amount),
            units=int(obj.units),
            created_at=obj.created_at,
        )

    def as_dict(self) -> dict:
        return {
            'id': self.id,
            'fromHospitalId': self.from_hospital_id,
            'toHospitalId': self.to_hospital_id,
            'type': self.kind.value,
            'bloodType': self.blood_type,
            'rh': self.rh,
            'amount': self.amount,
            'units': self.units,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }
