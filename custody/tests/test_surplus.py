import pytest
from django.core.exceptions import ImproperlyConfigured
from django.db import OperationalError

from custody.errors import Forbidden, NotFound, Unauthorized, ValidationFailed
from custody.models import ComponentKind, SurplusTransfer
from custody.services import surplus
from custody.services.surplus import SurplusPolicy, level_for

pytestmark = pytest.mark.django_db


@pytest.fixture
def network(hospitals, make_entry):
    """Hospital 1 over-stocked on red cells, hospital 2 on plasma."""
    h1, h2, h3 = hospitals
    make_entry('RedBlood', h1, 'O', '+', amount=6000)
    make_entry('Plasma', h1, 'AB', amount=2000)
    make_entry('RedBlood', h2, 'O', '+', amount=900)
    make_entry('Plasma', h2, 'AB', amount=6000)
    make_entry('Plasma', h3, 'AB', amount=3000)
    return hospitals


# ---------------------------------------------------------------------------
# thresholds
# ---------------------------------------------------------------------------
@pytest.mark.parametrize('amount, level', [
    (0, 'critical-low'),
    (499, 'critical-low'),
    (500, 'low'),
    (1499, 'low'),
    (1500, 'optimal'),
    (5000, 'optimal'),
    (5001, 'surplus'),
    (7999, 'surplus'),
    (8000, 'high-surplus'),
])
def test_level_for_default_thresholds(amount, level):
    assert level_for(amount) == level


@pytest.mark.parametrize('amount, bucket', [
    (9000, 'surplus'),
    (5001, 'surplus'),
    (5000, 'optimal'),
    (3000, 'optimal'),
    (2999, 'low'),
    (1500, 'low'),
    (1499, 'critical'),
    (0, 'critical'),
])
def test_summary_buckets(amount, bucket):
    assert SurplusPolicy().bucket(amount) == bucket


def test_surplus_and_low_are_strict():
    policy = SurplusPolicy()
    assert not policy.is_surplus(5000) and policy.is_surplus(5001)
    assert policy.is_low(1499) and not policy.is_low(1500)


def test_thresholds_come_from_settings(custody_settings):
    custody_settings.CUSTODY = {
        **custody_settings.CUSTODY,
        'SURPLUS_THRESHOLDS': {'CRITICAL_LOW': 100, 'LOW': 200, 'OPTIMAL': 300, 'SURPLUS': 400,
                               'HIGH_SURPLUS': 1000},
    }
    assert level_for(450) == 'surplus'
    assert level_for(150) == 'low'


def test_partial_threshold_override_keeps_defaults(custody_settings):
    custody_settings.CUSTODY = {**custody_settings.CUSTODY, 'SURPLUS_THRESHOLDS': {'HIGH_SURPLUS': 6000}}
    policy = SurplusPolicy.from_settings()
    assert policy.surplus == 5000 and policy.high_surplus == 6000


def test_thresholds_must_ascend():
    with pytest.raises(ImproperlyConfigured):
        SurplusPolicy(critical_low=500, low=100)
    with pytest.raises(ImproperlyConfigured):
        SurplusPolicy(critical_low=-1)


# ---------------------------------------------------------------------------
# surplus queries
# ---------------------------------------------------------------------------
def test_surplus_for_lists_combinations_above_threshold(network, make_session):
    lines = surplus.surplus_for(make_session(1))
    assert [(l.kind, l.blood_type, l.rh, l.total_amount, l.level) for l in lines] == [
        (ComponentKind.REDBLOOD, 'O', '+', 6000, 'surplus'),
    ]
    assert lines[0].hospital_name == 'Hospital 1'


def test_surplus_ignores_expired_and_inactive_bags(hospitals, make_entry, make_session):
    make_entry('RedBlood', hospitals[0], amount=6000, days=-1)
    make_entry('RedBlood', hospitals[0], amount=6000, active=False)
    assert surplus.surplus_for(make_session(1)) == []


def test_surplus_for_other_hospital_is_forbidden(network, make_session):
    with pytest.raises(Forbidden):
        surplus.surplus_for(make_session(1), 2)


def test_hospitals_needing_surplus_includes_zero_stock(network, make_session):
    needs = surplus.hospitals_needing_surplus(make_session(1))
    assert [(n.hospital_id, n.total_amount, n.level) for n in needs] == [
        (3, 0, 'critical-low'),
        (2, 900, 'low'),
    ]
    assert all(n.kind == ComponentKind.REDBLOOD and n.your_count == 1 for n in needs)


def test_hospitals_needing_surplus_is_empty_without_surplus(network, make_session):
    assert surplus.hospitals_needing_surplus(make_session(3)) == []


def test_hospitals_needing_across_all_combinations(network, make_session):
    needs = surplus.hospitals_needing(make_session(2))
    assert [(n.hospital_id, n.kind, n.blood_type, n.total_amount) for n in needs] == [
        (3, ComponentKind.REDBLOOD, 'O', 0),
    ]


def test_hospitals_needing_for_given_combination(network, make_session):
    needs = surplus.hospitals_needing(make_session(2), combinations=[('Plasma', 'AB', '+')])
    assert [(n.hospital_id, n.rh) for n in needs] == []
    needs = surplus.hospitals_needing(make_session(2), combinations=[('Platelets', 'A', '-')])
    assert [(n.hospital_id, n.total_amount) for n in needs] == [(1, 0), (3, 0)]


def test_surplus_alerts_point_to_donor_hospital(network, make_session):
    alerts = surplus.surplus_alerts(make_session(2))
    assert len(alerts) == 1
    alert = alerts[0]
    assert (alert.kind, alert.blood_type, alert.rh) == (ComponentKind.REDBLOOD, 'O', '+')
    assert alert.hospital_id == 1
    assert alert.hospital_phone == '555-0201'
    assert alert.your_count == 1
    assert alert.as_dict()['surplusLevel'] == 'surplus'


def test_surplus_alerts_cover_combinations_held_nowhere_locally(network, make_session):
    alerts = surplus.surplus_alerts(make_session(3))
    assert [(a.hospital_id, a.kind, a.your_count) for a in alerts] == [(1, ComponentKind.REDBLOOD, 0)]


def test_surplus_alerts_list_largest_donor_first(hospitals, make_entry, make_session):
    h1, h2, h3 = hospitals
    make_entry('RedBlood', h2, 'A', '-', amount=7000)
    make_entry('RedBlood', h3, 'A', '-', amount=9000)
    alerts = surplus.surplus_alerts(make_session(1))
    assert [(a.hospital_id, a.level) for a in alerts] == [(3, 'high-surplus'), (2, 'surplus')]


def test_surplus_alerts_require_session():
    with pytest.raises(Unauthorized):
        surplus.surplus_alerts(None)


def test_surplus_summary_buckets_per_kind(network, make_session):
    summary = surplus.surplus_summary(make_session(1))
    payload = summary.as_dict()
    assert payload['hospitalId'] == 1
    assert payload['redBlood'] == {'surplus': 1, 'optimal': 0, 'low': 0, 'critical': 0}
    assert payload['plasma'] == {'surplus': 0, 'optimal': 0, 'low': 1, 'critical': 0}
    assert payload['platelets'] == {'surplus': 0, 'optimal': 0, 'low': 0, 'critical': 0}


# ---------------------------------------------------------------------------
# transfer ledger
# ---------------------------------------------------------------------------
def test_transfer_appends_exactly_one_row(hospitals, make_session):
    record = surplus.record_transfer(make_session(1), 1, 2, 'Plasma', 'O', '+', 450, 1)
    assert record.id is not None
    assert record.rh == ''
    row = SurplusTransfer.objects.get()
    assert (row.from_hospital_id, row.to_hospital_id, row.component) == (1, 2, 'Plasma')
    assert (row.blood_type, row.rh, row.amount, row.units) == ('O', '', 450, 1)


def test_transfer_from_another_hospital_is_forbidden(hospitals, make_session):
    with pytest.raises(Forbidden):
        surplus.record_transfer(make_session(2), 1, 2, 'Plasma', 'O', '', 450, 1)
    assert SurplusTransfer.objects.count() == 0


def test_transfer_does_not_move_inventory(hospitals, make_entry, make_session):
    bag = make_entry('RedBlood', hospitals[0], amount=6000)
    surplus.record_transfer(make_session(1), 1, 2, 'RedBlood', 'O', '+', 450, 1)
    bag.refresh_from_db()
    assert bag.amount == 6000 and bag.hospital_id == 1 and bag.active


@pytest.mark.parametrize('args', [
    (1, 1, 'RedBlood', 'O', '+', 450, 1),
    (1, 2, 'RedBlood', 'O', None, 450, 1),
    (1, 2, 'RedBlood', 'X', '+', 450, 1),
    (1, 2, 'RedBlood', 'O', '+', 0, 1),
    (1, 2, 'RedBlood', 'O', '+', 450, 0),
    (1, 2, 'RedBlood', 'O', '+', True, 1),
    ('one', 2, 'RedBlood', 'O', '+', 450, 1),
])
def test_transfer_validation(hospitals, make_session, args):
    with pytest.raises(ValidationFailed):
        surplus.record_transfer(make_session(1), *args)
    assert SurplusTransfer.objects.count() == 0


def test_transfer_to_unknown_hospital(hospitals, make_session):
    with pytest.raises(NotFound):
        surplus.record_transfer(make_session(1), 1, 99, 'Plasma', 'O', '', 450, 1)


def test_history_of_new_hospital_is_empty(hospitals, make_session):
    assert surplus.transfer_history(make_session(3)) == []


def test_history_is_newest_first_and_covers_both_directions(hospitals, make_session):
    s1, s2 = make_session(1), make_session(2)
    first = surplus.record_transfer(s1, 1, 2, 'Plasma', 'O', '', 250, 1)
    second = surplus.record_transfer(s2, 2, 1, 'RedBlood', 'A', '-', 450, 2)
    third = surplus.record_transfer(s1, 1, 3, 'Platelets', 'O', '+', 300, 1)

    assert [t.id for t in surplus.transfer_history(s1)] == [third.id, second.id, first.id]
    assert [t.id for t in surplus.transfer_history(s2)] == [second.id, first.id]
    assert [t.id for t in surplus.transfer_history(make_session(3))] == [third.id]


def test_history_of_other_hospital_is_forbidden(hospitals, make_session):
    with pytest.raises(Forbidden):
        surplus.transfer_history(make_session(1), 2)


def test_history_reads_empty_when_ledger_table_is_missing(hospitals, make_session, monkeypatch):
    def missing(*args, **kwargs):
        raise OperationalError('no such table: surplus_transfers')

    monkeypatch.setattr(SurplusTransfer.objects, 'filter', missing)
    assert surplus.transfer_history(make_session(1)) == []


def test_fallback_transfer_is_simulated(gateway, make_session):
    gateway.enter_fallback('test')
    record = surplus.record_transfer(make_session(1), 1, 2, 'Plasma', 'O', '', 450, 1)
    assert record.id is None
    assert record.as_dict()['fromHospitalId'] == 1
    gateway.leave_fallback()
    assert SurplusTransfer.objects.count() == 0


def test_fallback_surplus_uses_sample_dataset(gateway, make_session):
    gateway.enter_fallback('test')
    lines = surplus.surplus_for(make_session(1))
    # 12 sample O+ red cell bags of 450 ml
    assert [(l.kind, l.blood_type, l.rh, l.total_amount) for l in lines] == [
        (ComponentKind.REDBLOOD, 'O', '+', 5400),
    ]
    assert lines[0].hospital_name == 'Sample General Hospital'
