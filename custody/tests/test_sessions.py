import datetime as dt
import logging

import bcrypt
import pytest
from django.contrib.auth.hashers import make_password
from django.utils import timezone

from custody.errors import Conflict, NotFound, Unauthorized, ValidationFailed
from custody.models import AdminAccount, AdminSession
from custody.services import sessions

pytestmark = pytest.mark.django_db


# ---------------------------------------------------------------------------
# credential verification
# ---------------------------------------------------------------------------
def test_legacy_plain_text_password_is_accepted(admins, admin_password, caplog):
    with caplog.at_level(logging.INFO, logger='custody.services.sessions'):
        admin = sessions.verify_credentials('admin1', admin_password)
    assert admin is not None and admin.username == 'admin1'
    assert 'legacy-plain' in caplog.text
    assert admin_password not in caplog.text


def test_legacy_plain_text_rejects_other_passwords(admins, admin_password):
    assert sessions.verify_credentials('admin1', 'not-the-password') is None
    assert sessions.verify_credentials('admin1', admin_password.lower()) is None
    assert sessions.verify_credentials('admin1', '') is None


def test_bcrypt_hash_is_accepted(hospitals, caplog):
    stored = bcrypt.hashpw(b'Correct-Horse-9', bcrypt.gensalt(rounds=4)).decode()
    AdminAccount.objects.create(username='hashed', password=stored, hospital=hospitals[0])
    with caplog.at_level(logging.INFO, logger='custody.services.sessions'):
        assert sessions.verify_credentials('hashed', 'Correct-Horse-9') is not None
    assert 'via hashed credential' in caplog.text
    assert sessions.verify_credentials('hashed', 'Correct-Horse-8') is None
    assert sessions.verify_credentials('hashed', stored + 'x') is None


@pytest.mark.parametrize('hasher', [sessions.hash_password, make_password])
def test_stored_hash_is_not_accepted_as_password(hospitals, hasher):
    stored = hasher('Plasma-Bag-2291')
    AdminAccount.objects.create(username='hashed', password=stored, hospital=hospitals[0])
    assert sessions.verify_credentials('hashed', stored) is None
    assert sessions.match_credential(stored, stored) is None
    assert sessions.verify_credentials('hashed', 'Plasma-Bag-2291') is not None


def test_2a_prefixed_bcrypt_hash_is_accepted(hospitals):
    stored = bcrypt.hashpw(b'Correct-Horse-9', bcrypt.gensalt(rounds=4, prefix=b'2a')).decode()
    assert stored.startswith('$2a$')
    AdminAccount.objects.create(username='hashed2a', password=stored, hospital=hospitals[0])
    assert sessions.verify_credentials('hashed2a', 'Correct-Horse-9') is not None


def test_django_hasher_string_is_accepted(hospitals):
    AdminAccount.objects.create(username='django', password=make_password('Correct-Horse-9'), hospital=hospitals[0])
    assert sessions.verify_credentials('django', 'Correct-Horse-9') is not None
    assert sessions.verify_credentials('django', 'wrong') is None


def test_unknown_username_is_rejected(admins, admin_password):
    assert sessions.verify_credentials('nobody', admin_password) is None


def test_match_credential_handles_malformed_hash():
    assert sessions.match_credential('secret', '$2b$garbage') is None
    assert sessions.match_credential('secret', None) is None


# ---------------------------------------------------------------------------
# login / validate / logout
# ---------------------------------------------------------------------------
def test_login_then_validate_resolves_hospital(admins, admin_password):
    token = sessions.login('admin2', admin_password)
    session = sessions.validate(token)
    assert session is not None
    assert session.hospital_id == 2
    assert session.admin_id == admins[1].id
    assert session.expires_at > timezone.now() + dt.timedelta(hours=23)


def test_login_with_bad_credentials_is_generic(admins):
    with pytest.raises(Unauthorized) as wrong_password:
        sessions.login('admin1', 'nope')
    with pytest.raises(Unauthorized) as unknown_user:
        sessions.login('ghost', 'nope')
    assert wrong_password.value.message == unknown_user.value.message
    assert AdminSession.objects.count() == 0


def test_tokens_are_unique_per_login(admins, admin_password):
    first = sessions.login('admin1', admin_password)
    second = sessions.login('admin1', admin_password)
    assert first != second
    assert len(first) >= 43


def test_logged_out_token_never_validates_again(admins, admin_password):
    token = sessions.login('admin1', admin_password)
    sessions.logout(token)
    assert sessions.validate(token) is None
    assert sessions.validate(token) is None
    assert not AdminSession.objects.filter(token=token).exists()


def test_logout_is_idempotent(admins, admin_password):
    token = sessions.login('admin1', admin_password)
    sessions.logout(token)
    sessions.logout(token)
    sessions.logout('never-issued-token-abcdefghijklmnop')
    sessions.logout(None)
    sessions.logout('')


def test_expired_token_is_rejected_without_purge(admins):
    AdminSession.objects.create(
        token='e' * 43, admin=admins[0], expires_at=timezone.now() - dt.timedelta(minutes=1)
    )
    assert sessions.validate('e' * 43) is None
    # still present: rejection does not depend on cleanup
    assert AdminSession.objects.filter(token='e' * 43).exists()


@pytest.mark.parametrize('token', [None, '', 'short', 'has spaces in it and more', 'x' * 200, 12345])
def test_malformed_tokens_fail_closed(admins, token):
    assert sessions.validate(token) is None


def test_login_purges_expired_sessions(admins, admin_password):
    AdminSession.objects.create(
        token='old' + 'o' * 40, admin=admins[0], expires_at=timezone.now() - dt.timedelta(hours=1)
    )
    sessions.login('admin1', admin_password)
    assert not AdminSession.objects.filter(token='old' + 'o' * 40).exists()
    assert AdminSession.objects.count() == 1


def test_purge_expired_counts_rows(admins):
    past = timezone.now() - dt.timedelta(seconds=1)
    for i in range(3):
        AdminSession.objects.create(token=f'{i}' * 43, admin=admins[0], expires_at=past)
    AdminSession.objects.create(token='live' * 11, admin=admins[0], expires_at=timezone.now() + dt.timedelta(hours=1))
    assert sessions.purge_expired() == 3
    assert AdminSession.objects.count() == 1


def test_token_collision_is_a_conflict_not_an_overwrite(admins, admin_password, monkeypatch):
    fixed = 'c' * 43
    AdminSession.objects.create(token=fixed, admin=admins[1], expires_at=timezone.now() + dt.timedelta(hours=1))
    monkeypatch.setattr(sessions.secrets, 'token_urlsafe', lambda nbytes=None: fixed)

    with pytest.raises(Conflict):
        sessions.login('admin1', admin_password)

    row = AdminSession.objects.get(token=fixed)
    assert row.admin_id == admins[1].id


def test_legacy_password_rehashed_when_enabled(admins, admin_password, custody_settings):
    custody_settings.CUSTODY = {**custody_settings.CUSTODY, 'REHASH_LEGACY_PASSWORDS': True}
    sessions.login('admin1', admin_password)
    admins[0].refresh_from_db()
    assert admins[0].password.startswith('$2b$')
    # the migrated account still logs in
    assert sessions.validate(sessions.login('admin1', admin_password)) is not None


def test_legacy_password_left_alone_by_default(admins, admin_password):
    sessions.login('admin1', admin_password)
    admins[0].refresh_from_db()
    assert admins[0].password == admin_password


# ---------------------------------------------------------------------------
# registration
# ---------------------------------------------------------------------------
def test_register_admin_stores_bcrypt_hash(hospitals):
    admin_id = sessions.register_admin('newadmin', 'Another-Strong-77', 3)
    admin = AdminAccount.objects.get(pk=admin_id)
    assert admin.hospital_id == 3
    assert admin.password.startswith('$2b$')
    assert sessions.verify_credentials('newadmin', 'Another-Strong-77') is not None


def test_register_admin_unknown_hospital(hospitals):
    with pytest.raises(NotFound):
        sessions.register_admin('newadmin', 'Another-Strong-77', 99)


def test_register_admin_duplicate_username(admins):
    with pytest.raises(Conflict):
        sessions.register_admin('admin1', 'Another-Strong-77', 1)


def test_register_admin_rejects_weak_password(hospitals):
    with pytest.raises(ValidationFailed):
        sessions.register_admin('weak', '1234', 1)
    assert not AdminAccount.objects.filter(username='weak').exists()
