from datetime import datetime, timedelta, timezone

import jwt
import pytest

from dashboard.auth.jwt_handler import RefreshTokenStore, TokenService
from dashboard.core.errors import InvalidToken

ACCESS_SECRET = 'access-secret-for-tests-0123456789abcdef'
REFRESH_SECRET = 'refresh-secret-for-tests-0123456789abcdef'
CLAIMS = {'id': 'user-1', 'email': 'ana@example.org', 'name': 'Ana', 'role': 'admin'}


class FrozenClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def service(clock) -> TokenService:
    return TokenService(ACCESS_SECRET, REFRESH_SECRET, clock=clock)


def test_token_service_rejects_shared_or_missing_secrets() -> None:
    with pytest.raises(ValueError):
        TokenService(ACCESS_SECRET, ACCESS_SECRET)
    with pytest.raises(ValueError):
        TokenService('', REFRESH_SECRET)


def test_access_token_carries_claims_and_type(service) -> None:
    tokens = service.issue_token_pair(CLAIMS)

    payload = service.verify_access_token(tokens.access_token)

    assert payload['id'] == 'user-1'
    assert payload['email'] == 'ana@example.org'
    assert payload['role'] == 'admin'
    assert payload['type'] == 'access'
    assert payload['sub'] == 'user-1'


def test_refresh_token_only_carries_user_and_token_id(service) -> None:
    tokens = service.issue_token_pair(CLAIMS)

    payload = service.verify_refresh_token(tokens.refresh_token)

    assert payload['id'] == 'user-1'
    assert payload['type'] == 'refresh'
    assert payload['jti'] in service.store
    assert 'email' not in payload
    assert 'role' not in payload


def test_access_token_is_accepted_until_expiry_and_rejected_at_expiry(service, clock) -> None:
    token = service.create_access_token(CLAIMS)

    clock.advance(minutes=14, seconds=59)
    assert service.verify_access_token(token)['id'] == 'user-1'

    clock.advance(seconds=1)
    with pytest.raises(InvalidToken):
        service.verify_access_token(token)


def test_access_token_is_never_accepted_as_refresh_token(service) -> None:
    tokens = service.issue_token_pair(CLAIMS)

    with pytest.raises(InvalidToken):
        service.verify_refresh_token(tokens.access_token)
    with pytest.raises(InvalidToken):
        service.refresh_access_token(tokens.access_token)
    with pytest.raises(InvalidToken):
        service.verify_access_token(tokens.refresh_token)


def test_wrong_type_tag_is_rejected_even_with_matching_key(service, clock) -> None:
    issued = int(clock.now.timestamp())
    forged = jwt.encode(
        {'sub': 'user-1', 'id': 'user-1', 'type': 'refresh', 'iat': issued, 'exp': issued + 60},
        ACCESS_SECRET,
        algorithm='HS256',
    )

    with pytest.raises(InvalidToken) as exception_info:
        service.verify_access_token(forged)

    assert exception_info.value.message == 'Wrong token type'


def test_refresh_keeps_full_claim_set(service) -> None:
    tokens = service.issue_token_pair(CLAIMS)

    access_token = service.refresh_access_token(tokens.refresh_token)
    payload = service.verify_access_token(access_token)

    assert payload['id'] == 'user-1'
    assert payload['email'] == 'ana@example.org'
    assert payload['name'] == 'Ana'
    assert payload['role'] == 'admin'


def test_refresh_reloads_claims_when_given_a_loader(service) -> None:
    tokens = service.issue_token_pair(CLAIMS)

    access_token = service.refresh_access_token(
        tokens.refresh_token, load_claims=lambda user_id: {**CLAIMS, 'id': user_id, 'role': 'user'}
    )

    assert service.verify_access_token(access_token)['role'] == 'user'
    assert service.verify_access_token(service.refresh_access_token(tokens.refresh_token))['role'] == 'user'


def test_refresh_for_vanished_user_revokes_token(service) -> None:
    tokens = service.issue_token_pair(CLAIMS)

    with pytest.raises(InvalidToken):
        service.refresh_access_token(tokens.refresh_token, load_claims=lambda _user_id: None)
    with pytest.raises(InvalidToken):
        service.refresh_access_token(tokens.refresh_token)


def test_refresh_is_repeatable_until_invalidated(service) -> None:
    tokens = service.issue_token_pair(CLAIMS)

    assert service.refresh_access_token(tokens.refresh_token)
    assert service.refresh_access_token(tokens.refresh_token)

    assert service.invalidate_refresh_token(tokens.refresh_token) is True
    with pytest.raises(InvalidToken):
        service.refresh_access_token(tokens.refresh_token)


def test_invalidate_is_idempotent(service) -> None:
    tokens = service.issue_token_pair(CLAIMS)

    assert service.invalidate_refresh_token(tokens.refresh_token) is True
    assert service.invalidate_refresh_token(tokens.refresh_token) is False
    assert service.invalidate_refresh_token('not-a-token') is False
    assert service.invalidate_refresh_token('') is False


def test_expired_refresh_token_can_still_be_invalidated(service, clock) -> None:
    tokens = service.issue_token_pair(CLAIMS)
    token_id = service.read_refresh_token_id(tokens.refresh_token)

    clock.advance(days=8)

    with pytest.raises(InvalidToken):
        service.refresh_access_token(tokens.refresh_token)
    assert service.read_refresh_token_id(tokens.refresh_token) == token_id
    assert service.invalidate_refresh_token(tokens.refresh_token) is True


def _forge(payload_type: str, secret: str, clock) -> str:
    issued = int(clock.now.timestamp())
    return jwt.encode(
        {'sub': 'user-1', 'id': 'user-1', 'jti': 'forged', 'type': payload_type, 'iat': issued, 'exp': issued + 60},
        secret,
        algorithm='HS256',
    )


def test_cross_key_signatures_are_rejected(service, clock) -> None:
    with pytest.raises(InvalidToken):
        service.verify_refresh_token(_forge('refresh', ACCESS_SECRET, clock))
    with pytest.raises(InvalidToken):
        service.verify_access_token(_forge('access', REFRESH_SECRET, clock))

    assert service.verify_access_token(_forge('access', ACCESS_SECRET, clock))['id'] == 'user-1'


def test_access_token_requires_user_id(service) -> None:
    with pytest.raises(ValueError):
        service.create_access_token({'email': 'ana@example.org'})


def test_store_purges_expired_records_on_issue(service, clock) -> None:
    first = service.issue_token_pair(CLAIMS)
    clock.advance(days=7, seconds=1)

    service.issue_token_pair(CLAIMS)

    assert len(service.store) == 1
    assert service.read_refresh_token_id(first.refresh_token) not in service.store


def test_refresh_token_store_discard_reports_removal() -> None:
    store = RefreshTokenStore()
    assert store.discard('missing') is False
