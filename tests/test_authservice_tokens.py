import threading

import pytest

from components.authservice.contracts import Role
from components.authservice.errors import (
    AccountDisabled, TokenExpired, TokenInvalid, TokenReuseDetected,
)


@pytest.fixture
def account(svc):
    view = svc.sign_up("a@x.com", "P@ss1").unwrap()
    return svc.accounts.find_by_id(view.id)


def test_issue_then_verify_access_roundtrip(svc, account):
    pair = svc.tokens.issue(account)
    principal = svc.tokens.verify_access(pair.access_token)
    assert principal.account_id == account.id
    assert principal.role == Role.USER
    assert pair.token_type == "Bearer"
    assert pair.expires_in == svc.cfg.access_ttl_seconds


def test_access_token_expires(svc, account, clock):
    pair = svc.tokens.issue(account)
    clock.advance(svc.cfg.access_ttl_seconds)
    with pytest.raises(TokenExpired):
        svc.tokens.verify_access(pair.access_token)


def test_token_types_are_not_interchangeable(svc, account):
    pair = svc.tokens.issue(account)
    with pytest.raises(TokenInvalid):
        svc.tokens.verify_access(pair.refresh_token)
    with pytest.raises(TokenInvalid):
        svc.tokens.rotate(pair.access_token)


def test_rotate_is_single_use_and_revokes_family(svc, account):
    first = svc.tokens.issue(account)
    second = svc.tokens.rotate(first.refresh_token)
    assert second.refresh_token != first.refresh_token

    with pytest.raises(TokenReuseDetected):
        svc.tokens.rotate(first.refresh_token)

    # the successor belonged to the same family and is now dead too
    with pytest.raises(TokenInvalid):
        svc.tokens.rotate(second.refresh_token)

    # access tokens stay structurally valid until they expire
    assert svc.tokens.verify_access(first.access_token).account_id == account.id
    assert svc.tokens.verify_access(second.access_token).account_id == account.id


def test_reuse_only_revokes_the_affected_family(svc, account):
    laptop = svc.tokens.issue(account)
    phone = svc.tokens.issue(account)
    svc.tokens.rotate(laptop.refresh_token)
    with pytest.raises(TokenReuseDetected):
        svc.tokens.rotate(laptop.refresh_token)
    assert svc.tokens.rotate(phone.refresh_token).refresh_token


def test_refresh_token_expires(svc, account, clock):
    pair = svc.tokens.issue(account)
    clock.advance(svc.cfg.refresh_ttl_seconds + 1)
    with pytest.raises(TokenExpired):
        svc.tokens.rotate(pair.refresh_token)


def test_revoke_all_invalidates_every_family(svc, account):
    a = svc.tokens.issue(account)
    b = svc.tokens.issue(account)
    assert svc.tokens.revoke_all(account.id) == 2
    for pair in (a, b):
        with pytest.raises(TokenInvalid):
            svc.tokens.rotate(pair.refresh_token)


def test_rotate_rejects_disabled_account(svc, account):
    pair = svc.tokens.issue(account)
    svc.accounts.update_active_status(account.id, False)
    with pytest.raises(AccountDisabled):
        svc.tokens.rotate(pair.refresh_token)


def test_rotation_carries_current_role(svc, account):
    pair = svc.tokens.issue(account)
    svc.accounts.update_role(account.id, Role.ADMIN)
    rotated = svc.tokens.rotate(pair.refresh_token)
    assert svc.tokens.verify_access(rotated.access_token).role == Role.ADMIN


def test_concurrent_rotation_has_exactly_one_winner(svc, account):
    pair = svc.tokens.issue(account)
    outcomes = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        try:
            svc.tokens.rotate(pair.refresh_token)
            outcomes.append("ok")
        except TokenReuseDetected:
            outcomes.append("reuse")

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count("ok") == 1
    assert outcomes.count("reuse") == 7
