"""
Inventory lifecycle for the three component kinds.

Every operation that touches one bag loads the bag first, authorizes the
caller against the hospital stored on the row and only then writes.  A bag
moves between active and soft-deleted and nowhere else; nothing here
removes a row.

While the gateway is in fallback mode reads are answered from
:mod:`custody.services.fallback` and writes are acknowledged without
touching anything.
"""
from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, replace

from django.core.cache import cache
from django.db.models import Count, Q, Sum
from django.utils import timezone
from django.utils.dateparse import parse_date

from custody.conf import custody_setting
from custody.errors import NotFound, ValidationFailed
from custody.models import (
    BLOOD_TYPE_CHOICES,
    RH_CHOICES,
    ComponentKind,
    PlasmaEntry,
    PlateletEntry,
    RedBloodEntry,
)
from custody.records import EntryRecord, InventorySummary, SessionRecord, StockLine
from custody.services.authz import authorize, require_session, requested_hospital
from custody.services.connection import get_gateway
from custody.services.fallback import sample_entries

logger = logging.getLogger(__name__)

KIND_MODELS = {
    ComponentKind.REDBLOOD: RedBloodEntry,
    ComponentKind.PLASMA: PlasmaEntry,
    ComponentKind.PLATELETS: PlateletEntry,
}
KIND_ORDER = list(ComponentKind)

BLOOD_TYPES = tuple(value for value, _ in BLOOD_TYPE_CHOICES)
RH_VALUES = tuple(value for value, _ in RH_CHOICES)

EXPIRATION_CHOICES = ('all', 'valid', 'expired', 'expiring-soon')
EXPIRING_SOON_DAYS = 7


def resolve_kind(raw) -> ComponentKind:
    """Accept ``RedBlood`` as well as the URL form ``redblood``."""
    if isinstance(raw, ComponentKind):
        return raw
    wanted = str(raw or '').strip().lower()
    for kind in ComponentKind:
        if kind.value.lower() == wanted:
            return kind
    raise ValidationFailed('Unknown component type. Use RedBlood, Plasma or Platelets.')


def model_for(kind):
    return KIND_MODELS[resolve_kind(kind)]


def summary_cache_key(hospital_id: int, today: dt.date) -> str:
    return f'custody:summary:{hospital_id}:{today.isoformat()}'


@dataclass(frozen=True)
class EntryFilters:
    kind: ComponentKind | None = None
    blood_type: str | None = None
    rh: str | None = None
    expiration: str = 'all'
    expires_from: dt.date | None = None
    expires_to: dt.date | None = None
    include_inactive: bool = False

    def __post_init__(self):
        if self.expiration not in EXPIRATION_CHOICES:
            raise ValidationFailed(f"expiration must be one of {', '.join(EXPIRATION_CHOICES)}.")
        if self.blood_type and self.blood_type not in BLOOD_TYPES:
            raise ValidationFailed('bloodType must be one of A, B, AB, O.')
        if self.rh and self.rh not in RH_VALUES:
            raise ValidationFailed("rh must be '+' or '-'.")

    def kinds(self) -> list[ComponentKind]:
        kinds = [self.kind] if self.kind else list(KIND_ORDER)
        if self.rh:
            # plasma carries no Rh and cannot match an Rh filter
            kinds = [k for k in kinds if KIND_MODELS[k].has_rh]
        return kinds

    def apply(self, qs, today: dt.date):
        if not self.include_inactive:
            qs = qs.filter(active=True)
        if self.blood_type:
            qs = qs.filter(blood_type=self.blood_type)
        if self.rh and qs.model.has_rh:
            qs = qs.filter(rh=self.rh)
        if self.expiration == 'valid':
            qs = qs.filter(expiration_date__gt=today)
        elif self.expiration == 'expired':
            qs = qs.filter(expiration_date__lte=today)
        elif self.expiration == 'expiring-soon':
            qs = qs.filter(expiration_date__gt=today,
                           expiration_date__lte=today + dt.timedelta(days=EXPIRING_SOON_DAYS))
        if self.expires_from:
            qs = qs.filter(expiration_date__gte=self.expires_from)
        if self.expires_to:
            qs = qs.filter(expiration_date__lte=self.expires_to)
        return qs

    def matches(self, entry: EntryRecord, today: dt.date) -> bool:
        if entry.kind not in self.kinds():
            return False
        if not self.include_inactive and not entry.active:
            return False
        if self.blood_type and entry.blood_type != self.blood_type:
            return False
        if self.rh and entry.rh != self.rh:
            return False
        expired = entry.is_expired(today)
        if self.expiration == 'valid' and expired:
            return False
        if self.expiration == 'expired' and not expired:
            return False
        if self.expiration == 'expiring-soon' and (
                expired or entry.expiration_date > today + dt.timedelta(days=EXPIRING_SOON_DAYS)):
            return False
        if self.expires_from and entry.expiration_date < self.expires_from:
            return False
        if self.expires_to and entry.expiration_date > self.expires_to:
            return False
        return True


def _sorted(entries) -> list[EntryRecord]:
    return sorted(entries, key=lambda e: (KIND_ORDER.index(e.kind), e.expiration_date, e.bag_id))


def _as_date(value) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    try:
        parsed = parse_date(str(value))
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValidationFailed('expirationDate must be a date (YYYY-MM-DD).')
    return parsed


def _as_bag_id(raw) -> int:
    try:
        bag_id = int(raw)
    except (TypeError, ValueError):
        raise ValidationFailed('bagId must be an integer.')
    if bag_id <= 0:
        raise ValidationFailed('bagId must be positive.')
    return bag_id


def clean_entry_fields(kind, fields: dict) -> dict:
    """Validate the mutable fields of an entry for ``kind``.

    Rh is required for red cells and platelets and dropped for plasma.
    """
    model = model_for(kind)
    required = ['donor_name', 'blood_type', 'amount', 'expiration_date']
    if model.has_rh:
        required.append('rh')
    missing = [name for name in required if fields.get(name) in (None, '')]
    if missing:
        raise ValidationFailed(f"Missing required field(s): {', '.join(missing)}.")

    donor_name = str(fields['donor_name']).strip()
    if not donor_name or len(donor_name) > 255:
        raise ValidationFailed('donorName must be 1-255 characters.')
    blood_type = str(fields['blood_type']).strip().upper()
    if blood_type not in BLOOD_TYPES:
        raise ValidationFailed('bloodType must be one of A, B, AB, O.')
    raw_amount = fields['amount']
    if isinstance(raw_amount, bool):
        raise ValidationFailed('amount must be a positive integer (ml).')
    try:
        amount = int(raw_amount)
    except (TypeError, ValueError):
        raise ValidationFailed('amount must be a positive integer (ml).')
    if amount <= 0:
        raise ValidationFailed('amount must be a positive integer (ml).')

    cleaned = {
        'donor_name': donor_name,
        'blood_type': blood_type,
        'amount': amount,
        'expiration_date': _as_date(fields['expiration_date']),
    }
    if model.has_rh:
        rh = str(fields['rh']).strip()
        if rh not in RH_VALUES:
            raise ValidationFailed("rh must be '+' or '-'.")
        cleaned['rh'] = rh
    return cleaned


def _load(kind: ComponentKind, bag_id: int) -> EntryRecord:
    model = KIND_MODELS[kind]

    def _query():
        obj = model.objects.filter(pk=bag_id).first()
        return EntryRecord.from_model(obj) if obj is not None else None

    def _sample():
        return next((e for e in sample_entries() if e.kind == kind and e.bag_id == bag_id), None)

    entry = get_gateway().read(_query, _sample)
    if entry is None:
        raise NotFound('Inventory entry not found.')
    return entry


def _invalidate_summary(hospital_id: int) -> None:
    cache.delete(summary_cache_key(hospital_id, timezone.localdate()))


def _write(operation, hospital_id: int, simulated=None):
    gateway = get_gateway()
    simulated_only = gateway.fallback_mode
    result = gateway.write(operation, simulated=simulated)
    if not simulated_only:
        _invalidate_summary(hospital_id)
    return result


# ---------------------------------------------------------------------------
# single-bag operations
# ---------------------------------------------------------------------------
def create_entry(session: SessionRecord | None, kind, fields: dict, hospital_id=None) -> EntryRecord:
    """Add a bag for the caller's hospital.

    In fallback mode the returned record has ``bag_id`` 0; nothing is stored.
    """
    kind = resolve_kind(kind)
    hid = requested_hospital(session, hospital_id)
    cleaned = clean_entry_fields(kind, fields)
    model = KIND_MODELS[kind]
    simulated = EntryRecord(kind=kind, bag_id=0, hospital_id=hid, active=True, **{'rh': None, **cleaned})

    def _create():
        return EntryRecord.from_model(model.objects.create(hospital_id=hid, active=True, **cleaned))

    record = _write(_create, hid, simulated=simulated)
    logger.info("Created %s bag %s for hospital %s", kind.value, record.bag_id, hid)
    return record


def update_entry(session: SessionRecord | None, kind, bag_id, fields: dict) -> EntryRecord:
    require_session(session)
    kind = resolve_kind(kind)
    entry = _load(kind, _as_bag_id(bag_id))
    authorize(session, entry.hospital_id)
    cleaned = clean_entry_fields(kind, fields)
    model = KIND_MODELS[kind]
    _write(lambda: model.objects.filter(pk=entry.bag_id).update(**cleaned), entry.hospital_id)
    logger.info("Updated %s bag %s", kind.value, entry.bag_id)
    return replace(entry, **cleaned)


def _set_active(session, kind, bag_id, active: bool) -> EntryRecord:
    require_session(session)
    kind = resolve_kind(kind)
    entry = _load(kind, _as_bag_id(bag_id))
    authorize(session, entry.hospital_id)
    if entry.active == active:
        return entry
    model = KIND_MODELS[kind]
    _write(lambda: model.objects.filter(pk=entry.bag_id).update(active=active), entry.hospital_id)
    logger.info("%s %s bag %s", 'Restored' if active else 'Soft-deleted', kind.value, entry.bag_id)
    return replace(entry, active=active)


def soft_delete(session: SessionRecord | None, kind, bag_id) -> EntryRecord:
    """Mark a bag inactive. Deleting an inactive bag changes nothing."""
    return _set_active(session, kind, bag_id, False)


def restore(session: SessionRecord | None, kind, bag_id) -> EntryRecord:
    return _set_active(session, kind, bag_id, True)


# ---------------------------------------------------------------------------
# listings
# ---------------------------------------------------------------------------
def collect_entries(hospital_id: int | None, filters: EntryFilters, *, deleted_only: bool = False,
                    today: dt.date | None = None) -> list[EntryRecord]:
    """Entries matching ``filters``; ``hospital_id=None`` spans every hospital.

    Not tenant-scoped.  Callers authorize before calling.
    """
    today = today or timezone.localdate()
    kinds = filters.kinds()

    def _query():
        found = []
        for kind in kinds:
            qs = KIND_MODELS[kind].objects.all()
            if hospital_id is not None:
                qs = qs.filter(hospital_id=hospital_id)
            if deleted_only:
                qs = qs.filter(active=False)
            qs = filters.apply(qs, today).order_by('expiration_date', 'bag_id')
            found.extend(EntryRecord.from_model(obj) for obj in qs)
        return found

    def _sample():
        return _sorted(
            e for e in sample_entries(today)
            if (hospital_id is None or e.hospital_id == hospital_id)
            and (not deleted_only or not e.active)
            and filters.matches(e, today)
        )

    return get_gateway().read(_query, _sample)


def list_entries(session: SessionRecord | None, hospital_id=None,
                 filters: EntryFilters | None = None) -> list[EntryRecord]:
    hid = requested_hospital(session, hospital_id)
    return collect_entries(hid, filters or EntryFilters())


def list_deleted(session: SessionRecord | None, kind=None) -> list[EntryRecord]:
    session = require_session(session)
    filters = EntryFilters(kind=resolve_kind(kind) if kind else None, include_inactive=True)
    return collect_entries(session.hospital_id, filters, deleted_only=True)


def search_entries(session: SessionRecord | None, query: str, kind=None) -> list[EntryRecord]:
    """Find the caller's bags by bag id (numeric query) or donor name substring."""
    session = require_session(session)
    query = (query or '').strip()
    if not query:
        return []
    if len(query) > 100:
        raise ValidationFailed('Search query is too long.')
    kinds = [resolve_kind(kind)] if kind else list(KIND_ORDER)
    hid = session.hospital_id
    by_bag = query.isdecimal()

    def _query():
        found = []
        for k in kinds:
            qs = KIND_MODELS[k].objects.filter(hospital_id=hid)
            qs = qs.filter(pk=int(query)) if by_bag else qs.filter(donor_name__icontains=query)
            found.extend(EntryRecord.from_model(obj) for obj in qs.order_by('expiration_date', 'bag_id'))
        return found

    def _sample():
        needle = query.lower()
        return _sorted(
            e for e in sample_entries()
            if e.hospital_id == hid and e.kind in kinds
            and (e.bag_id == int(query) if by_bag else needle in e.donor_name.lower())
        )

    return get_gateway().read(_query, _sample)


# ---------------------------------------------------------------------------
# aggregates
# ---------------------------------------------------------------------------
def aggregate_entries(entries, today: dt.date) -> list[StockLine]:
    """Valid, active stock per hospital and combination, computed in memory."""
    totals: dict[tuple, tuple[int, int]] = {}
    for e in entries:
        if not e.active or e.is_expired(today):
            continue
        key = (e.hospital_id, e.kind, e.blood_type, e.rh or '')
        count, total = totals.get(key, (0, 0))
        totals[key] = (count + 1, total + e.amount)
    lines = [StockLine(hospital_id=h, kind=k, blood_type=b, rh=r, count=c, total_amount=t)
             for (h, k, b, r), (c, t) in totals.items()]
    return _sorted_lines(lines)


def _sorted_lines(lines) -> list[StockLine]:
    return sorted(lines, key=lambda l: (l.hospital_id, KIND_ORDER.index(l.kind), l.blood_type, l.rh))


def stock_levels(hospital_id: int | None = None, today: dt.date | None = None) -> list[StockLine]:
    """Aggregate valid, active stock; ``hospital_id=None`` covers every hospital.

    Not tenant-scoped.  Surplus comparisons need other hospitals' totals.
    """
    today = today or timezone.localdate()

    def _query():
        lines = []
        for kind, model in KIND_MODELS.items():
            qs = model.objects.filter(active=True, expiration_date__gt=today)
            if hospital_id is not None:
                qs = qs.filter(hospital_id=hospital_id)
            group = ['hospital_id', 'blood_type'] + (['rh'] if model.has_rh else [])
            rows = qs.values(*group).annotate(count=Count('bag_id'), total=Sum('amount')).order_by(*group)
            for row in rows:
                lines.append(StockLine(
                    hospital_id=row['hospital_id'],
                    kind=kind,
                    blood_type=row['blood_type'],
                    rh=row.get('rh') or '',
                    count=row['count'],
                    total_amount=int(row['total'] or 0),
                ))
        return _sorted_lines(lines)

    def _sample():
        entries = [e for e in sample_entries(today) if hospital_id is None or e.hospital_id == hospital_id]
        return aggregate_entries(entries, today)

    return get_gateway().read(_query, _sample)


def _tally(hospital_id: int, today: dt.date) -> dict:
    soon = today + dt.timedelta(days=EXPIRING_SOON_DAYS)

    def _query():
        tally = {'total': 0, 'valid': 0, 'expired': 0, 'soon': 0}
        for model in KIND_MODELS.values():
            row = model.objects.filter(hospital_id=hospital_id, active=True).aggregate(
                total=Count('bag_id'),
                valid=Count('bag_id', filter=Q(expiration_date__gt=today)),
                expired=Count('bag_id', filter=Q(expiration_date__lte=today)),
                soon=Count('bag_id', filter=Q(expiration_date__gt=today, expiration_date__lte=soon)),
            )
            for name in tally:
                tally[name] += row[name] or 0
        return tally

    def _sample():
        active = [e for e in sample_entries(today) if e.hospital_id == hospital_id and e.active]
        return {
            'total': len(active),
            'valid': sum(1 for e in active if not e.is_expired(today)),
            'expired': sum(1 for e in active if e.is_expired(today)),
            'soon': sum(1 for e in active if today < e.expiration_date <= soon),
        }

    return get_gateway().read(_query, _sample)


def inventory_summary(session: SessionRecord | None, hospital_id=None) -> InventorySummary:
    hid = requested_hospital(session, hospital_id)
    today = timezone.localdate()
    gateway = get_gateway()
    key = summary_cache_key(hid, today)
    if not gateway.fallback_mode:
        cached = cache.get(key)
        if cached is not None:
            return cached

    tally = _tally(hid, today)
    summary = InventorySummary(
        hospital_id=hid,
        total_count=tally['total'],
        valid_count=tally['valid'],
        expired_count=tally['expired'],
        expiring_soon_count=tally['soon'],
        lines=tuple(stock_levels(hid, today)),
    )
    # a read may have tripped automatic fallback; sample figures are not cached
    if not gateway.fallback_mode:
        cache.set(key, summary, custody_setting('SUMMARY_CACHE_TTL'))
    return summary
