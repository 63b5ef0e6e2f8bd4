from datetime import datetime, timedelta, timezone
import json

import pytest

from app.core.exceptions import (
    AuthenticationError,
    BadRequestError,
    ConfigurationError,
    DuplicateEmailError,
    InactiveAccountError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
)
from app.models.audit import AuditLog
from app.models.role import Permission, Role, RolePermission
from app.models.security import SecurityLog
from app.models.user import User, UserStatus
from app.services.auth_service import AuthService, FORGOT_PASSWORD_MESSAGE, ensure_default_role
from app.services.credential_store import CredentialStore
from app.services.rbac_seed import DEFAULT_ROLES
from conftest import make_auth_config


def _register(service, email="alice@x.com", password="Secret#1", name="Alice", **kwargs):
    return service.register(email=email, password=password, name=name, **kwargs)


def _role(db, name):
    return db.query(Role).filter(Role.name == name).one()


def _events(db, event=None):
    query = db.query(SecurityLog).order_by(SecurityLog.id)
    if event:
        query = query.filter(SecurityLog.event == event)
    return query.all()


# ----------------------------------------------------------------------
# register
# ----------------------------------------------------------------------

def test_register_uses_default_role_and_issues_tokens(auth_service, db):
    result = _register(auth_service)

    assert result.message == "Registration successful"
    assert result.user.email == "alice@x.com"
    assert result.user.status == "ACTIVE"
    assert result.user.role.name == "Subordinate"
    assert result.user.permissions == list(DEFAULT_ROLES["Subordinate"][1])
    assert result.tokens.access_token
    assert result.tokens.refresh_token
    assert result.tokens.expires_in == "15m"

    claims = auth_service.codec.decode_access_token(result.tokens.access_token)
    assert claims["sub"] == result.user.id
    assert claims["role"] == "Subordinate"
    assert claims["permissions"] == result.user.permissions


def test_register_response_has_no_secrets(auth_service):
    dumped = _register(auth_service).user.model_dump(by_alias=True)
    assert "passwordHash" not in dumped
    assert "password_hash" not in dumped
    assert "passwordResetToken" not in dumped
    assert "passwordResetExpires" not in dumped


def test_register_hashes_password(auth_service, db):
    _register(auth_service)
    stored = db.query(User).filter(User.email == "alice@x.com").one()
    assert stored.password_hash != "Secret#1"
    assert auth_service.hasher.verify("Secret#1", stored.password_hash)


def test_register_with_explicit_role(auth_service, db):
    manager = _role(db, "Manager")
    result = _register(auth_service, role_id=manager.id)
    assert result.user.role.name == "Manager"
    assert "users:manage" not in result.user.permissions
    assert "products:write" in result.user.permissions


def test_register_unknown_role_is_bad_request(auth_service, db):
    with pytest.raises(BadRequestError):
        _register(auth_service, role_id="no-such-role")
    assert db.query(User).count() == 0


def test_register_writes_audit_and_security_events(auth_service, db):
    result = _register(auth_service, ip_address="10.0.0.1", user_agent="pytest")

    audit = db.query(AuditLog).one()
    assert audit.entity == "User"
    assert audit.action == "CREATE"
    assert audit.entity_id == result.user.id
    assert audit.actor_user_id == result.user.id
    assert audit.actor_role == "Subordinate"
    assert audit.before_json is None
    assert json.loads(audit.after_json) == {
        "email": "alice@x.com",
        "name": "Alice",
        "roleId": result.user.role.id,
    }

    event = _events(db, "REGISTER_SUCCESS")[0]
    assert event.user_id == result.user.id
    assert event.ip_address == "10.0.0.1"
    assert event.user_agent == "pytest"
    assert event.success is True


def test_register_duplicate_email_conflicts_without_partial_user(auth_service, db):
    _register(auth_service)
    with pytest.raises(DuplicateEmailError) as excinfo:
        _register(auth_service, name="Other")

    assert excinfo.value.status_code == 409
    assert db.query(User).filter(User.email == "alice@x.com").count() == 1
    failed = _events(db, "REGISTER_FAILED")
    assert len(failed) == 1
    assert failed[0].success is False
    assert json.loads(failed[0].metadata_json) == {"error": "User with this email already exists"}


def test_register_email_match_is_case_sensitive(auth_service, db):
    _register(auth_service)
    _register(auth_service, email="Alice@x.com")
    assert db.query(User).count() == 2


def test_register_unique_violation_from_store_maps_to_conflict(auth_service, db, monkeypatch):
    _register(auth_service)
    real_exists = auth_service.store.email_exists
    calls = []

    # A concurrent insert slips past the pre-check; the flush hits the unique index
    def racing_exists(email):
        calls.append(email)
        return False if len(calls) == 1 else real_exists(email)

    monkeypatch.setattr(auth_service.store, "email_exists", racing_exists)

    with pytest.raises(DuplicateEmailError):
        _register(auth_service)
    assert len(calls) == 2
    assert db.query(User).count() == 1
    assert db.query(AuditLog).count() == 1


def test_register_without_default_role_is_configuration_error(db):
    service = AuthService(db, make_auth_config(default_role_name="Missing"))
    with pytest.raises(ConfigurationError):
        _register(service)
    assert db.query(User).count() == 0
    assert len(_events(db, "REGISTER_FAILED")) == 1


def test_ensure_default_role(db, auth_config):
    assert ensure_default_role(db, auth_config) == _role(db, "Subordinate").id
    with pytest.raises(ConfigurationError):
        ensure_default_role(db, make_auth_config(default_role_name="Missing"))


# ----------------------------------------------------------------------
# login
# ----------------------------------------------------------------------

def test_login_success_updates_last_login(auth_service, db):
    _register(auth_service)
    before = datetime.now(timezone.utc) - timedelta(seconds=1)

    result = auth_service.login("alice@x.com", "Secret#1", "127.0.0.1", "pytest")

    assert result.message == "Login successful"
    assert result.user.last_login_at is not None
    assert result.user.last_login_at >= before
    stored = CredentialStore(db).find_by_email("alice@x.com")
    assert stored.last_login_at is not None
    assert len(_events(db, "LOGIN_SUCCESS")) == 1


def test_login_permissions_match_role_at_login_time(auth_service, db):
    _register(auth_service)
    result = auth_service.login("alice@x.com", "Secret#1")
    claims = auth_service.codec.decode_access_token(result.tokens.access_token)
    expected = [rp.permission.key for rp in _role(db, "Subordinate").role_permissions]
    assert claims["permissions"] == expected


def test_login_failures_share_external_message(auth_service, db):
    _register(auth_service)

    with pytest.raises(InvalidCredentialsError) as wrong_password:
        auth_service.login("alice@x.com", "Wrong")
    with pytest.raises(InvalidCredentialsError) as unknown_user:
        auth_service.login("nobody@x.com", "Secret#1")

    assert wrong_password.value.message == unknown_user.value.message == "Invalid credentials"
    assert wrong_password.value.status_code == unknown_user.value.status_code == 401

    reasons = [e.error_message for e in _events(db, "LOGIN_FAILED")]
    assert reasons == ["Invalid password", "User not found"]


def test_login_inactive_account(auth_service, db):
    _register(auth_service)
    db.query(User).update({User.status: UserStatus.SUSPENDED.value})
    db.commit()

    with pytest.raises(InactiveAccountError) as excinfo:
        auth_service.login("alice@x.com", "Secret#1")
    assert excinfo.value.message == "Account is inactive"
    assert _events(db, "LOGIN_FAILED")[-1].error_message == "Account inactive"


def test_login_unexpected_error_becomes_generic_unauthorized(auth_service, db, monkeypatch):
    _register(auth_service)

    def boom(*args, **kwargs):
        raise RuntimeError("connection reset")

    monkeypatch.setattr(auth_service.store, "touch_last_login", boom)

    with pytest.raises(AuthenticationError) as excinfo:
        auth_service.login("alice@x.com", "Secret#1")
    assert excinfo.value.message == "Login failed"
    assert _events(db, "LOGIN_FAILED")[-1].error_message == "connection reset"


def test_failing_security_log_write_does_not_break_login(auth_service, db, monkeypatch):
    _register(auth_service)

    def unavailable(**kwargs):
        raise RuntimeError("log table unavailable")

    monkeypatch.setattr("app.services.security_log_service.SecurityLog", unavailable)

    result = auth_service.login("alice@x.com", "Secret#1")
    assert result.message == "Login successful"
    assert CredentialStore(db).find_by_email("alice@x.com").last_login_at is not None


# ----------------------------------------------------------------------
# refresh
# ----------------------------------------------------------------------

def test_refresh_issues_new_pair(auth_service):
    registered = _register(auth_service)
    tokens = auth_service.refresh_token(registered.tokens.refresh_token)
    assert tokens.access_token != registered.tokens.access_token
    assert tokens.refresh_token != registered.tokens.refresh_token
    assert auth_service.codec.decode_refresh_token(tokens.refresh_token)["sub"] == registered.user.id


def test_refresh_reflects_current_role(auth_service, db):
    registered = _register(auth_service)
    admin = _role(db, "Admin")
    db.query(User).filter(User.id == registered.user.id).update({User.role_id: admin.id})
    db.commit()

    tokens = auth_service.refresh_token(registered.tokens.refresh_token)
    claims = auth_service.codec.decode_access_token(tokens.access_token)
    assert claims["role"] == "Admin"
    assert "users:manage" in claims["permissions"]


def test_refresh_reflects_permission_changes_within_role(auth_service, db):
    registered = _register(auth_service)
    subordinate = _role(db, "Subordinate")
    extra = Permission(key="reports:export", module="reports", name="Export reports")
    db.add(extra)
    db.flush()
    db.add(RolePermission(role_id=subordinate.id, permission_id=extra.id))
    db.commit()

    tokens = auth_service.refresh_token(registered.tokens.refresh_token)
    claims = auth_service.codec.decode_access_token(tokens.access_token)
    assert claims["permissions"][-1] == "reports:export"


def test_old_refresh_token_stays_valid_after_refresh(auth_service):
    registered = _register(auth_service)
    auth_service.refresh_token(registered.tokens.refresh_token)
    # No rotation chain: the first refresh token still works
    assert auth_service.refresh_token(registered.tokens.refresh_token).access_token


def test_refresh_rejects_access_token_and_garbage(auth_service):
    registered = _register(auth_service)
    for bad in (registered.tokens.access_token, "not-a-jwt"):
        with pytest.raises(InvalidRefreshTokenError) as excinfo:
            auth_service.refresh_token(bad)
        assert excinfo.value.message == "Invalid refresh token"


def test_refresh_rejects_inactive_or_deleted_user(auth_service, db):
    registered = _register(auth_service)
    db.query(User).update({User.status: UserStatus.INACTIVE.value})
    db.commit()
    with pytest.raises(InvalidRefreshTokenError):
        auth_service.refresh_token(registered.tokens.refresh_token)

    db.query(User).delete()
    db.commit()
    with pytest.raises(InvalidRefreshTokenError):
        auth_service.refresh_token(registered.tokens.refresh_token)


def test_refresh_rejects_expired_token(db):
    service = AuthService(db, make_auth_config(refresh_ttl=timedelta(seconds=-1)))
    registered = _register(service)
    with pytest.raises(InvalidRefreshTokenError):
        service.refresh_token(registered.tokens.refresh_token)


# ----------------------------------------------------------------------
# logout
# ----------------------------------------------------------------------

def test_logout_logs_event(auth_service, db):
    registered = _register(auth_service)
    assert auth_service.logout(registered.user.id).message == "Logout successful"
    event = _events(db, "LOGOUT")[0]
    assert event.email == "alice@x.com"


def test_logout_unknown_user_still_succeeds(auth_service, db):
    assert auth_service.logout("missing").message == "Logout successful"
    assert _events(db, "LOGOUT") == []


def test_logout_swallows_store_errors(auth_service, monkeypatch):
    def boom(user_id):
        raise RuntimeError("db down")

    monkeypatch.setattr(auth_service.store, "find_by_id", boom)
    assert auth_service.logout("any").message == "Logout completed"


# ----------------------------------------------------------------------
# change password
# ----------------------------------------------------------------------

def test_change_password(auth_service, db):
    registered = _register(auth_service)
    result = auth_service.change_password(registered.user.id, "Secret#1", "Changed#22")
    assert result.message == "Password changed successfully"

    with pytest.raises(InvalidCredentialsError):
        auth_service.login("alice@x.com", "Secret#1")
    assert auth_service.login("alice@x.com", "Changed#22").tokens.access_token
    assert len(_events(db, "PASSWORD_CHANGE")) == 1


def test_change_password_wrong_current(auth_service):
    registered = _register(auth_service)
    with pytest.raises(BadRequestError) as excinfo:
        auth_service.change_password(registered.user.id, "Nope", "Changed#22")
    assert excinfo.value.message == "Current password is incorrect"
    assert excinfo.value.status_code == 400


def test_change_password_unknown_user(auth_service):
    with pytest.raises(AuthenticationError):
        auth_service.change_password("missing", "Secret#1", "Changed#22")


# ----------------------------------------------------------------------
# forgot / reset password
# ----------------------------------------------------------------------

def test_forgot_password_is_uniform(auth_service, db):
    _register(auth_service)
    known = auth_service.forgot_password("alice@x.com")
    unknown = auth_service.forgot_password("nobody@x.com")
    assert known.message == unknown.message == FORGOT_PASSWORD_MESSAGE
    assert len(_events(db, "PASSWORD_RESET_REQUEST")) == 1


def test_forgot_password_sets_token_for_fifteen_minutes(auth_service, db):
    _register(auth_service)
    start = datetime.now(timezone.utc)
    auth_service.forgot_password("alice@x.com")

    account = CredentialStore(db).find_by_email("alice@x.com")
    assert account.password_reset_token
    assert account.password_reset_expires is not None
    delta = account.password_reset_expires - start
    assert timedelta(minutes=14, seconds=55) < delta <= timedelta(minutes=15, seconds=5)


def test_forgot_password_overwrites_previous_token(auth_service, db):
    _register(auth_service)
    store = CredentialStore(db)
    auth_service.forgot_password("alice@x.com")
    first = store.find_by_email("alice@x.com").password_reset_token
    auth_service.forgot_password("alice@x.com")
    second = store.find_by_email("alice@x.com").password_reset_token

    assert first != second
    with pytest.raises(BadRequestError):
        auth_service.reset_password(first, "NewSecret#1")
    assert auth_service.reset_password(second, "NewSecret#1").message == "Password reset successful"


def test_reset_password_consumes_token_once(auth_service, db):
    _register(auth_service)
    auth_service.forgot_password("alice@x.com")
    token = CredentialStore(db).find_by_email("alice@x.com").password_reset_token

    assert auth_service.reset_password(token, "NewSecret#1").message == "Password reset successful"

    account = CredentialStore(db).find_by_email("alice@x.com")
    assert account.password_reset_token is None
    assert account.password_reset_expires is None

    with pytest.raises(BadRequestError) as excinfo:
        auth_service.reset_password(token, "Another#1")
    assert excinfo.value.message == "Invalid or expired reset token"
    assert len(_events(db, "PASSWORD_RESET_SUCCESS")) == 1


def test_reset_password_rejects_expired_token(auth_service, db):
    _register(auth_service)
    auth_service.forgot_password("alice@x.com")
    user = db.query(User).filter(User.email == "alice@x.com").one()
    token = user.password_reset_token
    user.password_reset_expires = datetime.now(timezone.utc) - timedelta(seconds=1)
    db.commit()

    with pytest.raises(BadRequestError):
        auth_service.reset_password(token, "NewSecret#1")
    assert auth_service.login("alice@x.com", "Secret#1").tokens.access_token


def test_reset_fails_when_token_is_replaced_mid_flight(auth_service, db, monkeypatch):
    _register(auth_service)
    store = auth_service.store
    auth_service.forgot_password("alice@x.com")
    old_token = store.find_by_email("alice@x.com").password_reset_token
    real_find = store.find_by_valid_reset_token

    # A newer forgot-password lands between the lookup and the update
    def find_then_reissue(token, now):
        account = real_find(token, now)
        auth_service.forgot_password("alice@x.com")
        return account

    monkeypatch.setattr(store, "find_by_valid_reset_token", find_then_reissue)

    with pytest.raises(BadRequestError) as excinfo:
        auth_service.reset_password(old_token, "NewSecret#1")
    assert excinfo.value.message == "Invalid or expired reset token"

    newer = CredentialStore(db).find_by_email("alice@x.com").password_reset_token
    assert newer is not None
    assert newer != old_token
    assert auth_service.login("alice@x.com", "Secret#1").tokens.access_token
    assert _events(db, "PASSWORD_RESET_SUCCESS") == []


def test_reset_token_consumed_by_concurrent_reset(auth_service, db, monkeypatch):
    _register(auth_service)
    store = auth_service.store
    auth_service.forgot_password("alice@x.com")
    token = store.find_by_email("alice@x.com").password_reset_token
    real_find = store.find_by_valid_reset_token

    # Another request consumes the same token right after our lookup
    def find_then_consume(token_, now):
        account = real_find(token_, now)
        assert store.consume_reset_token(account.id, token_, auth_service.hasher.hash("Racer#123"), now)
        return account

    monkeypatch.setattr(store, "find_by_valid_reset_token", find_then_consume)

    with pytest.raises(BadRequestError):
        auth_service.reset_password(token, "NewSecret#1")
    assert auth_service.login("alice@x.com", "Racer#123").tokens.access_token


def test_consume_reset_token_is_compare_and_set(auth_service, db):
    _register(auth_service)
    store = auth_service.store
    auth_service.forgot_password("alice@x.com")
    account = store.find_by_email("alice@x.com")
    now = datetime.now(timezone.utc)

    assert not store.consume_reset_token(account.id, "other-token", "hash", now)
    assert not store.consume_reset_token(account.id, account.password_reset_token, "hash", now + timedelta(hours=1))
    assert store.consume_reset_token(account.id, account.password_reset_token, "hash", now)
    assert not store.consume_reset_token(account.id, account.password_reset_token, "hash", now)


def test_reset_password_unknown_token(auth_service):
    with pytest.raises(BadRequestError):
        auth_service.reset_password("never-issued", "NewSecret#1")


# ----------------------------------------------------------------------
# validate_user
# ----------------------------------------------------------------------

def test_validate_user(auth_service, db):
    _register(auth_service)
    user = auth_service.validate_user("alice@x.com", "Secret#1")
    assert user is not None
    assert user.email == "alice@x.com"
    assert not hasattr(user, "password_hash")

    assert auth_service.validate_user("alice@x.com", "Wrong") is None
    assert auth_service.validate_user("nobody@x.com", "Secret#1") is None

    db.query(User).update({User.status: UserStatus.INACTIVE.value})
    db.commit()
    assert auth_service.validate_user("alice@x.com", "Secret#1") is None


def test_validate_user_does_not_log(auth_service, db):
    _register(auth_service)
    count = len(_events(db))
    auth_service.validate_user("alice@x.com", "Wrong")
    assert len(_events(db)) == count


# ----------------------------------------------------------------------
# End-to-end scenario
# ----------------------------------------------------------------------

def test_account_lifecycle_scenario(auth_service, db):
    registered = _register(auth_service)
    assert registered.user.permissions == list(DEFAULT_ROLES["Subordinate"][1])

    with pytest.raises(InvalidCredentialsError):
        auth_service.login("alice@x.com", "Wrong")

    logged_in = auth_service.login("alice@x.com", "Secret#1")
    assert logged_in.user.last_login_at is not None

    assert auth_service.forgot_password("alice@x.com").message == FORGOT_PASSWORD_MESSAGE
    token = CredentialStore(db).find_by_email("alice@x.com").password_reset_token
    assert token is not None

    auth_service.reset_password(token, "NewSecret#1")
    with pytest.raises(InvalidCredentialsError):
        auth_service.login("alice@x.com", "Secret#1")
    assert auth_service.login("alice@x.com", "NewSecret#1").tokens.access_token
