import pytest

from dashboard.core import config
from dashboard.core.errors import ErrorKind, InvalidToken, PendingApproval, UpstreamFailure, error_for_kind


def test_validate_runtime_config_accepts_test_environment() -> None:
    config.validate_runtime_config()


def test_validate_runtime_config_names_every_missing_option(monkeypatch) -> None:
    monkeypatch.setattr(config, 'JWT_SECRET', '')
    monkeypatch.setattr(config, 'SUPABASE_URL', '')

    with pytest.raises(RuntimeError) as exception_info:
        config.validate_runtime_config()

    assert 'JWT_SECRET' in str(exception_info.value)
    assert 'SUPABASE_URL' in str(exception_info.value)


def test_validate_runtime_config_rejects_shared_jwt_secret(monkeypatch) -> None:
    monkeypatch.setattr(config, 'JWT_REFRESH_SECRET', config.JWT_SECRET)

    with pytest.raises(RuntimeError):
        config.validate_runtime_config()


@pytest.mark.parametrize(
    ('value', 'expected'),
    [(None, False), ('true', True), (' YES ', True), ('0', False), ('off', False)],
)
def test_get_bool(value, expected) -> None:
    assert config._get_bool(value) is expected


def test_get_list_splits_and_strips() -> None:
    assert config._get_list(' /admin, /downloads ,', []) == ['/admin', '/downloads']
    assert config._get_list(None, ['/admin']) == ['/admin']


def test_error_kinds_map_to_status_codes() -> None:
    assert InvalidToken().status_code == 401
    assert PendingApproval().status_code == 403
    assert UpstreamFailure().status_code == 500
    assert error_for_kind(ErrorKind.NOT_FOUND, 'gone').status_code == 404
    assert error_for_kind(ErrorKind.NOT_FOUND, 'gone').message == 'gone'
