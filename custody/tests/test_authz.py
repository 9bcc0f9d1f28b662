import pytest

from custody.errors import ErrorKind, Forbidden, Unauthorized, ValidationFailed
from custody.services.authz import authorize, require_session, requested_hospital


def test_same_hospital_is_allowed(make_session):
    assert authorize(make_session(1), 1) is None


def test_other_hospital_is_forbidden(make_session):
    with pytest.raises(Forbidden) as exc:
        authorize(make_session(1), 2)
    assert exc.value.kind == ErrorKind.FORBIDDEN
    assert exc.value.status_code == 403


def test_missing_session_is_unauthorized():
    with pytest.raises(Unauthorized):
        authorize(None, 1)
    with pytest.raises(Unauthorized):
        require_session(None)


def test_missing_resource_hospital_is_forbidden(make_session):
    with pytest.raises(Forbidden):
        authorize(make_session(1), None)


def test_requested_hospital_defaults_to_session(make_session):
    assert requested_hospital(make_session(3)) == 3
    assert requested_hospital(make_session(3), '') == 3


def test_requested_hospital_checks_explicit_id(make_session):
    assert requested_hospital(make_session(2), '2') == 2
    with pytest.raises(Forbidden):
        requested_hospital(make_session(2), '1')


def test_requested_hospital_rejects_garbage(make_session):
    with pytest.raises(ValidationFailed):
        requested_hospital(make_session(2), 'two')
