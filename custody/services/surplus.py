"""
Surplus detection and the inter-hospital transfer ledger.

Stock is compared per combination of component kind, blood type and Rh
(plasma aggregates with an empty Rh).  Only active bags that have not yet
expired count towards a total.  Thresholds are in ml and come from
``CUSTODY["SURPLUS_THRESHOLDS"]``.

Recording a transfer appends to the ledger and nothing else: the sending
and receiving hospitals adjust their own inventory with the ordinary
update and soft-delete operations.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass

from django.core.exceptions import ImproperlyConfigured
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from custody.conf import DEFAULTS, custody_setting
from custody.errors import NotFound, ValidationFailed
from custody.models import ComponentKind, Hospital, SurplusTransfer
from custody.records import (
    HospitalRecord,
    LevelCounts,
    NeedLine,
    SessionRecord,
    StockLine,
    SurplusAlert,
    SurplusLine,
    SurplusSummary,
    TransferRecord,
)
from custody.services.authz import authorize, require_session, requested_hospital
from custody.services.connection import get_gateway
from custody.services.fallback import sample_hospitals
from custody.services.inventory import BLOOD_TYPES, KIND_MODELS, KIND_ORDER, RH_VALUES, resolve_kind, stock_levels

logger = logging.getLogger(__name__)

LEVEL_CRITICAL_LOW = 'critical-low'
LEVEL_LOW = 'low'
LEVEL_OPTIMAL = 'optimal'
LEVEL_SURPLUS = 'surplus'
LEVEL_HIGH_SURPLUS = 'high-surplus'

Combination = tuple[ComponentKind, str, str]


@dataclass(frozen=True)
class SurplusPolicy:
    critical_low: int = 500
    low: int = 1500
    optimal: int = 3000
    surplus: int = 5000
    high_surplus: int = 8000

    def __post_init__(self):
        ordered = (self.critical_low, self.low, self.optimal, self.surplus, self.high_surplus)
        if list(ordered) != sorted(ordered) or ordered[0] < 0:
            raise ImproperlyConfigured(
                'SURPLUS_THRESHOLDS must satisfy 0 <= CRITICAL_LOW <= LOW <= OPTIMAL <= SURPLUS <= HIGH_SURPLUS'
            )

    @classmethod
    def from_settings(cls) -> 'SurplusPolicy':
        configured = {**DEFAULTS['SURPLUS_THRESHOLDS'], **(custody_setting('SURPLUS_THRESHOLDS') or {})}
        return cls(
            critical_low=int(configured['CRITICAL_LOW']),
            low=int(configured['LOW']),
            optimal=int(configured['OPTIMAL']),
            surplus=int(configured['SURPLUS']),
            high_surplus=int(configured['HIGH_SURPLUS']),
        )

    def level_for(self, amount: int) -> str:
        if amount < self.critical_low:
            return LEVEL_CRITICAL_LOW
        if amount < self.low:
            return LEVEL_LOW
        if amount <= self.surplus:
            return LEVEL_OPTIMAL
        if amount < self.high_surplus:
            return LEVEL_SURPLUS
        return LEVEL_HIGH_SURPLUS

    def is_surplus(self, amount: int) -> bool:
        return amount > self.surplus

    def is_low(self, amount: int) -> bool:
        return amount < self.low

    def bucket(self, amount: int) -> str:
        """Summary bucket: ``surplus``, ``optimal``, ``low`` or ``critical``."""
        if self.is_surplus(amount):
            return 'surplus'
        if amount >= self.optimal:
            return 'optimal'
        if amount >= self.low:
            return 'low'
        return 'critical'


def level_for(amount: int, policy: SurplusPolicy | None = None) -> str:
    return (policy or SurplusPolicy.from_settings()).level_for(amount)


def _hospital_directory() -> dict[int, HospitalRecord]:
    return get_gateway().read(
        lambda: {h.id: HospitalRecord.from_model(h) for h in Hospital.objects.order_by('id')},
        lambda: {h.id: h for h in sample_hospitals()},
    )


def _hospital_name(directory, hospital_id: int) -> str:
    record = directory.get(hospital_id)
    return record.name if record else f'Hospital {hospital_id}'


def _index(lines: list[StockLine]) -> dict[int, dict[Combination, StockLine]]:
    by_hospital: dict[int, dict[Combination, StockLine]] = defaultdict(dict)
    for line in lines:
        by_hospital[line.hospital_id][line.combination] = line
    return by_hospital


def _ordered(combinations) -> list[Combination]:
    return sorted(set(combinations), key=lambda c: (KIND_ORDER.index(c[0]), c[1], c[2]))


def _normalise_combination(raw) -> Combination:
    kind, blood_type, rh = raw
    kind = resolve_kind(kind)
    return (kind, blood_type, rh if KIND_MODELS[kind].has_rh else '')


# ---------------------------------------------------------------------------
# surplus queries
# ---------------------------------------------------------------------------
def surplus_for(session: SessionRecord | None, hospital_id=None) -> list[SurplusLine]:
    """Combinations the hospital holds above the surplus threshold."""
    hid = requested_hospital(session, hospital_id)
    policy = SurplusPolicy.from_settings()
    directory = _hospital_directory()
    return [
        SurplusLine(
            hospital_id=hid,
            hospital_name=_hospital_name(directory, hid),
            kind=line.kind,
            blood_type=line.blood_type,
            rh=line.rh,
            count=line.count,
            total_amount=line.total_amount,
            level=policy.level_for(line.total_amount),
        )
        for line in stock_levels(hid)
        if policy.is_surplus(line.total_amount)
    ]


def hospitals_needing(session: SessionRecord | None, exclude_hospital_id=None,
                      combinations=None) -> list[NeedLine]:
    """Other hospitals below the low threshold for a combination.

    ``combinations`` restricts the search to ``(kind, blood_type, rh)``
    triples; by default every combination held anywhere is considered.  A
    hospital holding none of a combination counts as needing it.
    """
    own = requested_hospital(session, exclude_hospital_id)
    policy = SurplusPolicy.from_settings()
    lines = stock_levels()
    stock = _index(lines)
    if combinations is None:
        wanted = _ordered(line.combination for line in lines)
    else:
        wanted = _ordered(_normalise_combination(c) for c in combinations)
    directory = _hospital_directory()
    others = [hid for hid in sorted(directory) if hid != own]

    needs = []
    for combo in wanted:
        yours = stock[own].get(combo)
        found = []
        for hid in others:
            line = stock[hid].get(combo)
            total = line.total_amount if line else 0
            if not policy.is_low(total):
                continue
            found.append(NeedLine(
                hospital_id=hid,
                hospital_name=_hospital_name(directory, hid),
                kind=combo[0],
                blood_type=combo[1],
                rh=combo[2],
                count=line.count if line else 0,
                total_amount=total,
                level=policy.level_for(total),
                your_count=yours.count if yours else 0,
            ))
        needs.extend(sorted(found, key=lambda n: (n.total_amount, n.hospital_id)))
    return needs


def hospitals_needing_surplus(session: SessionRecord | None, hospital_id=None) -> list[NeedLine]:
    """Hospitals short of what ``hospital_id`` holds in surplus."""
    surplus = surplus_for(session, hospital_id)
    if not surplus:
        return []
    return hospitals_needing(session, hospital_id,
                             combinations=[(s.kind, s.blood_type, s.rh) for s in surplus])


def surplus_alerts(session: SessionRecord | None) -> list[SurplusAlert]:
    """Combinations the caller is low on that another hospital holds in surplus."""
    session = require_session(session)
    own = session.hospital_id
    policy = SurplusPolicy.from_settings()
    lines = stock_levels()
    stock = _index(lines)
    directory = _hospital_directory()

    alerts = []
    for combo in _ordered(line.combination for line in lines):
        yours = stock[own].get(combo)
        if not policy.is_low(yours.total_amount if yours else 0):
            continue
        donors = [
            stock[hid][combo] for hid in stock
            if hid != own and combo in stock[hid] and policy.is_surplus(stock[hid][combo].total_amount)
        ]
        for line in sorted(donors, key=lambda l: (-l.total_amount, l.hospital_id)):
            hospital = directory.get(line.hospital_id)
            alerts.append(SurplusAlert(
                kind=combo[0],
                blood_type=combo[1],
                rh=combo[2],
                hospital_id=line.hospital_id,
                hospital_name=_hospital_name(directory, line.hospital_id),
                hospital_phone=hospital.contact_phone if hospital else '',
                count=line.count,
                total_amount=line.total_amount,
                level=policy.level_for(line.total_amount),
                your_count=yours.count if yours else 0,
            ))
    return alerts


def surplus_summary(session: SessionRecord | None, hospital_id=None) -> SurplusSummary:
    """Per kind, how many of the hospital's combinations fall in each bucket."""
    hid = requested_hospital(session, hospital_id)
    policy = SurplusPolicy.from_settings()
    buckets = {kind: defaultdict(int) for kind in KIND_ORDER}
    for line in stock_levels(hid):
        buckets[line.kind][policy.bucket(line.total_amount)] += 1
    counts = {kind.value.lower(): LevelCounts(**bucket) for kind, bucket in buckets.items()}
    return SurplusSummary(hospital_id=hid, **counts)


# ---------------------------------------------------------------------------
# transfer ledger
# ---------------------------------------------------------------------------
def _positive(value, name: str) -> int:
    if isinstance(value, bool):
        raise ValidationFailed(f'{name} must be a positive integer.')
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f'{name} must be a positive integer.')
    if number <= 0:
        raise ValidationFailed(f'{name} must be a positive integer.')
    return number


def record_transfer(session: SessionRecord | None, from_hospital_id, to_hospital_id, kind,
                    blood_type: str, rh: str | None, amount, units=1) -> TransferRecord:
    """Append one ledger row; the caller must belong to the sending hospital."""
    require_session(session)
    try:
        source = int(from_hospital_id)
        destination = int(to_hospital_id)
    except (TypeError, ValueError):
        raise ValidationFailed('fromHospitalId and toHospitalId must be integers.')
    authorize(session, source)

    kind = resolve_kind(kind)
    blood_type = str(blood_type or '').strip().upper()
    if blood_type not in BLOOD_TYPES:
        raise ValidationFailed('bloodType must be one of A, B, AB, O.')
    if KIND_MODELS[kind].has_rh:
        rh = str(rh or '').strip()
        if rh not in RH_VALUES:
            raise ValidationFailed("rh must be '+' or '-'.")
    else:
        rh = ''
    amount = _positive(amount, 'amount')
    units = _positive(units, 'units')
    if source == destination:
        raise ValidationFailed('A hospital cannot transfer to itself.')

    gateway = get_gateway()
    exists = gateway.read(
        lambda: Hospital.objects.filter(pk=destination).exists(),
        lambda: any(h.id == destination for h in sample_hospitals()),
    )
    if not exists:
        raise NotFound('Destination hospital not found.')

    simulated = TransferRecord(
        id=None, from_hospital_id=source, to_hospital_id=destination, kind=kind,
        blood_type=blood_type, rh=rh, amount=amount, units=units, created_at=timezone.now(),
    )

    def _append():
        row = SurplusTransfer.objects.create(
            from_hospital_id=source, to_hospital_id=destination, component=kind.value,
            blood_type=blood_type, rh=rh, amount=amount, units=units,
        )
        return TransferRecord.from_model(row)

    record = gateway.write(_append, simulated=simulated)
    logger.info("Transfer recorded: %s %s%s %sml x%s from %s to %s",
                kind.value, blood_type, rh, amount, units, source, destination)
    return record


def transfer_history(session: SessionRecord | None, hospital_id=None) -> list[TransferRecord]:
    """Transfers sent or received by the hospital, newest first.

    An uninitialised ledger table reads as an empty history.
    """
    hid = requested_hospital(session, hospital_id)

    def _query():
        # savepoint: a missing table must not poison an enclosing postgres transaction
        with transaction.atomic():
            rows = SurplusTransfer.objects.filter(
                Q(from_hospital_id=hid) | Q(to_hospital_id=hid)
            ).order_by('-created_at', '-id')
            return [TransferRecord.from_model(row) for row in rows]

    return get_gateway().read(_query, list, missing_relation_default=[])


