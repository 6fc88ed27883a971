import threading

import pytest

from components.authservice.contracts import Principal, Role, UserQuery
from components.authservice.errors import (
    AccountDisabled, AccountNotFound, DuplicateAccount, Forbidden, InvalidCredentials,
    InvalidResetCode, TokenInvalid, TokenReuseDetected, Unauthorized, ValidationError,
)
from components.authservice.service import FORGOT_PASSWORD_MESSAGE


def principal_of(svc, email, password):
    pair = svc.login(email, password).unwrap()
    return svc.tokens.verify_access(pair.access_token)


@pytest.fixture
def root(svc):
    svc.create_super_admin("root@x.com", "rootpw", bootstrap_token="boot-123").unwrap()
    return principal_of(svc, "root@x.com", "rootpw")


# ---- signup / login ----
def test_signup_normalizes_email_and_rejects_duplicates(svc):
    view = svc.sign_up("  A@X.com ", "P@ss1").unwrap()
    assert view.email == "a@x.com"
    assert view.role == Role.USER and view.is_active
    assert not hasattr(view, "password_hash")

    res = svc.sign_up("a@X.COM", "other")
    assert not res.ok
    assert isinstance(res.error, DuplicateAccount)


def test_signup_refuses_elevated_roles_and_bad_input(svc):
    assert isinstance(svc.sign_up("b@x.com", "pw", role=Role.ADMIN).error, Forbidden)
    assert isinstance(svc.sign_up("not-an-email", "pw").error, ValidationError)
    assert isinstance(svc.sign_up("c@x.com", "").error, ValidationError)


def test_login_issues_tokens_for_the_account(svc):
    view = svc.sign_up("a@x.com", "P@ss1").unwrap()
    pair = svc.login("A@x.com", "P@ss1").unwrap()
    principal = svc.tokens.verify_access(pair.access_token)
    assert principal.account_id == view.id
    assert principal.role == Role.USER


def test_login_failures_do_not_reveal_account_existence(svc):
    svc.sign_up("a@x.com", "P@ss1").unwrap()
    unknown = svc.login("ghost@x.com", "P@ss1").error
    wrong = svc.login("a@x.com", "nope").error
    assert type(unknown) is type(wrong) is InvalidCredentials
    assert unknown.to_payload() == wrong.to_payload()


def test_disabled_account_cannot_login_even_with_correct_password(svc):
    view = svc.sign_up("a@x.com", "P@ss1").unwrap()
    svc.accounts.update_active_status(view.id, False)
    assert isinstance(svc.login("a@x.com", "P@ss1").error, AccountDisabled)
    # wrong password still reads as bad credentials
    assert isinstance(svc.login("a@x.com", "bad").error, InvalidCredentials)


def test_login_upgrades_outdated_hash(svc):
    view = svc.sign_up("a@x.com", "P@ss1").unwrap()
    svc.hasher.iterations = 2_000
    svc.login("a@x.com", "P@ss1").unwrap()
    assert "$2000$" in svc.accounts.find_by_id(view.id).password_hash


# ---- refresh ----
def test_end_to_end_signup_login_refresh(svc):
    svc.sign_up("a@x.com", "P@ss1").unwrap()
    pair = svc.login("a@x.com", "P@ss1").unwrap()
    new_pair = svc.refresh_tokens(pair.refresh_token).unwrap()
    assert new_pair.refresh_token != pair.refresh_token

    replay = svc.refresh_tokens(pair.refresh_token)
    assert isinstance(replay.error, TokenReuseDetected)
    with pytest.raises(TokenReuseDetected):
        replay.unwrap()


def test_refresh_with_garbage_is_invalid(svc):
    assert isinstance(svc.refresh_tokens("garbage").error, TokenInvalid)


# ---- passwords ----
def test_change_password(svc):
    view = svc.sign_up("a@x.com", "P@ss1").unwrap()
    pair = svc.login("a@x.com", "P@ss1").unwrap()

    assert isinstance(svc.change_password(view.id, "wrong", "new-pass").error, InvalidCredentials)
    assert svc.change_password(view.id, "P@ss1", "new-pass").ok

    assert isinstance(svc.login("a@x.com", "P@ss1").error, InvalidCredentials)
    assert svc.login("a@x.com", "new-pass").ok
    # sessions are revoked by default
    assert isinstance(svc.refresh_tokens(pair.refresh_token).error, TokenInvalid)
    assert isinstance(svc.change_password("missing", "a", "b").error, AccountNotFound)


def test_change_password_can_keep_sessions(svc):
    svc.cfg.revoke_sessions_on_password_change = False
    view = svc.sign_up("a@x.com", "P@ss1").unwrap()
    pair = svc.login("a@x.com", "P@ss1").unwrap()
    svc.change_password(view.id, "P@ss1", "new-pass").unwrap()
    assert svc.refresh_tokens(pair.refresh_token).ok


def test_forgot_password_is_indistinguishable(svc, notifier):
    svc.sign_up("a@x.com", "P@ss1").unwrap()
    known = svc.forgot_password("a@x.com")
    unknown = svc.forgot_password("ghost@x.com")
    malformed = svc.forgot_password("not-an-email")
    assert known.ok and unknown.ok and malformed.ok
    assert known.value == unknown.value == malformed.value
    assert known.value.message == FORGOT_PASSWORD_MESSAGE
    assert [m["email"] for m in notifier.sent] == ["a@x.com"]


def test_reset_password_flow(svc, notifier):
    svc.sign_up("a@x.com", "P@ss1").unwrap()
    old_pair = svc.login("a@x.com", "P@ss1").unwrap()
    svc.forgot_password("a@x.com").unwrap()
    code = notifier.last_code("a@x.com")

    assert svc.verify_reset_code("a@x.com", code).value is True
    assert svc.reset_password("a@x.com", code, "fresh-pass").ok
    assert isinstance(svc.reset_password("a@x.com", code, "again").error, InvalidResetCode)

    assert svc.login("a@x.com", "fresh-pass").ok
    assert isinstance(svc.refresh_tokens(old_pair.refresh_token).error, TokenInvalid)


def test_reset_code_expires(svc, notifier, clock):
    svc.sign_up("a@x.com", "P@ss1").unwrap()
    svc.forgot_password("a@x.com").unwrap()
    code = notifier.last_code("a@x.com")
    clock.advance(svc.cfg.reset_code_ttl_seconds + 1)
    assert svc.verify_reset_code("a@x.com", code).value is False
    assert isinstance(svc.reset_password("a@x.com", code, "x").error, InvalidResetCode)


def test_invalid_new_password_does_not_burn_code(svc, notifier):
    svc.sign_up("a@x.com", "P@ss1").unwrap()
    svc.forgot_password("a@x.com").unwrap()
    code = notifier.last_code("a@x.com")
    assert isinstance(svc.reset_password("a@x.com", code, "").error, ValidationError)
    assert svc.reset_password("a@x.com", code, "fresh-pass").ok


# ---- administration ----
def test_bootstrap_super_admin_is_one_time(svc, root):
    assert root.role == Role.SUPER_ADMIN
    again = svc.create_super_admin("second@x.com", "pw", bootstrap_token="boot-123")
    assert isinstance(again.error, Forbidden)


def test_super_admin_creation_requires_token_or_super_admin(svc):
    assert isinstance(svc.create_super_admin("r@x.com", "pw").error, Forbidden)
    assert isinstance(svc.create_super_admin("r@x.com", "pw", bootstrap_token="wrong").error, Forbidden)

    svc.sign_up("u@x.com", "pw").unwrap()
    user = principal_of(svc, "u@x.com", "pw")
    assert isinstance(svc.create_super_admin("r@x.com", "pw", principal=user).error, Forbidden)


def test_super_admin_can_create_another(svc, root):
    view = svc.create_super_admin("second@x.com", "pw", principal=root).unwrap()
    assert view.role == Role.SUPER_ADMIN


def test_update_user_role(svc, root):
    target = svc.sign_up("u@x.com", "pw").unwrap()
    pair = svc.login("u@x.com", "pw").unwrap()
    updated = svc.update_user_role(root, target.id, Role.ADMIN).unwrap()
    assert updated.role == Role.ADMIN
    # old refresh tokens would still mint the previous role
    assert isinstance(svc.refresh_tokens(pair.refresh_token).error, TokenInvalid)
    assert isinstance(svc.update_user_role(root, "missing", Role.ADMIN).error, AccountNotFound)
    assert isinstance(svc.update_user_role(root, root.account_id, Role.USER).error, Forbidden)


def test_update_account_status_policy(svc, root):
    admin_view = svc.sign_up("adm@x.com", "pw").unwrap()
    svc.update_user_role(root, admin_view.id, Role.ADMIN).unwrap()
    admin = principal_of(svc, "adm@x.com", "pw")
    user_view = svc.sign_up("u@x.com", "pw").unwrap()

    status = svc.update_account_status(admin, user_view.id, False).unwrap()
    assert status.is_active is False
    assert isinstance(svc.login("u@x.com", "pw").error, AccountDisabled)

    # admins cannot touch super admins or themselves
    assert isinstance(svc.update_account_status(admin, root.account_id, False).error, Forbidden)
    assert isinstance(svc.update_account_status(admin, admin.account_id, False).error, Forbidden)
    assert isinstance(svc.update_account_status(admin, "missing", True).error, AccountNotFound)

    # the stored role is authorized, not the one the principal claims
    other = svc.sign_up("v@x.com", "pw").unwrap()
    claims_admin = Principal(account_id=other.id, role=Role.ADMIN)
    assert isinstance(svc.update_account_status(claims_admin, user_view.id, True).error, Forbidden)
    ghost = Principal(account_id="missing", role=Role.SUPER_ADMIN)
    assert isinstance(svc.update_account_status(ghost, user_view.id, True).error, Unauthorized)

    assert svc.update_account_status(root, admin_view.id, False).unwrap().is_active is False


def test_disabled_admin_loses_admin_operations(svc, root):
    adm = svc.sign_up("adm@x.com", "pw").unwrap()
    svc.update_user_role(root, adm.id, Role.ADMIN).unwrap()
    admin = principal_of(svc, "adm@x.com", "pw")
    victim = svc.sign_up("u@x.com", "pw").unwrap()

    svc.update_account_status(root, adm.id, False).unwrap()

    assert isinstance(svc.update_account_status(admin, victim.id, False).error, AccountDisabled)
    assert svc.accounts.find_by_id(victim.id).is_active
    assert isinstance(svc.get_all_users(UserQuery(), actor=admin).error, AccountDisabled)
    assert isinstance(svc.get_user_status(victim.id, actor=admin).error, AccountDisabled)


def test_demoted_admin_loses_admin_operations(svc, root):
    adm = svc.sign_up("adm@x.com", "pw").unwrap()
    svc.update_user_role(root, adm.id, Role.ADMIN).unwrap()
    admin = principal_of(svc, "adm@x.com", "pw")
    victim = svc.sign_up("u@x.com", "pw").unwrap()

    svc.update_user_role(root, adm.id, Role.USER).unwrap()

    assert admin.role == Role.ADMIN
    assert isinstance(svc.update_account_status(admin, victim.id, False).error, Forbidden)
    assert isinstance(svc.get_all_users(UserQuery(), actor=admin).error, Forbidden)


def test_demoted_super_admin_cannot_change_roles(svc, root):
    second = svc.create_super_admin("second@x.com", "pw", principal=root).unwrap()
    svc.update_user_role(root, second.id, Role.USER).unwrap()
    stale = Principal(account_id=second.id, role=Role.SUPER_ADMIN)
    target = svc.sign_up("u@x.com", "pw").unwrap()
    assert isinstance(svc.update_user_role(stale, target.id, Role.ADMIN).error, Forbidden)
    assert isinstance(svc.create_super_admin("x@x.com", "pw", principal=stale).error, Forbidden)


def test_concurrent_bootstrap_has_exactly_one_winner(svc):
    outcomes = []
    barrier = threading.Barrier(8)

    def worker(i):
        barrier.wait()
        res = svc.create_super_admin(f"root{i}@x.com", "rootpw", bootstrap_token="boot-123")
        outcomes.append(res.ok)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count(True) == 1
    supers = svc.get_all_users(UserQuery(role=Role.SUPER_ADMIN)).unwrap()
    assert supers.total == 1


def test_logout_revokes_only_that_login(svc):
    svc.sign_up("a@x.com", "P@ss1").unwrap()
    first = svc.login("a@x.com", "P@ss1").unwrap()
    second = svc.login("a@x.com", "P@ss1").unwrap()

    assert svc.logout(first.refresh_token).ok
    assert isinstance(svc.refresh_tokens(first.refresh_token).error, TokenInvalid)
    assert svc.refresh_tokens(second.refresh_token).ok
    assert isinstance(svc.logout("garbage").error, TokenInvalid)


def test_lookup_and_listing(svc, root):
    for i in range(5):
        svc.sign_up(f"user{i}@x.com", "pw").unwrap()
    svc.sign_up("other@y.com", "pw").unwrap()

    first = svc.get_all_users(UserQuery(page=1, page_size=2, email_prefix="user")).unwrap()
    assert first.total == 5 and len(first.items) == 2
    third = svc.get_all_users(UserQuery(page=3, page_size=2, email_prefix="user")).unwrap()
    assert len(third.items) == 1

    supers = svc.get_all_users(UserQuery(role=Role.SUPER_ADMIN)).unwrap()
    assert [u.email for u in supers.items] == ["root@x.com"]
    assert supers.page_size == svc.cfg.default_page_size

    capped = svc.get_all_users(UserQuery(page_size=10_000)).unwrap()
    assert capped.page_size == svc.cfg.max_page_size

    status = svc.get_user_status(root.account_id).unwrap()
    assert status.email == "root@x.com" and status.role == Role.SUPER_ADMIN
    assert isinstance(svc.find_user_by_id("missing").error, AccountNotFound)


def test_user_query_rejects_unknown_filters():
    with pytest.raises(Exception):
        UserQuery(password_hash="x")
