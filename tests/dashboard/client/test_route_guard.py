from dashboard.client.auth_context import AuthContext
from dashboard.client.route_guard import GuardAction, GuardDecision, RouteGuard


def test_shows_loading_before_session_is_known(fake_api) -> None:
    guard = RouteGuard(AuthContext(fake_api))

    assert guard.evaluate() == GuardDecision(GuardAction.LOADING)


def test_renders_for_authenticated_user(fake_api) -> None:
    fake_api.user = {'id': 'user-1', 'role': 'user'}
    context = AuthContext(fake_api)
    context.mount()

    assert RouteGuard(context).evaluate() == GuardDecision(GuardAction.RENDER)


def test_non_admin_is_sent_to_landing_page(fake_api) -> None:
    fake_api.user = {'id': 'user-1', 'role': 'user'}
    context = AuthContext(fake_api)
    context.mount()

    decision = RouteGuard(context, require_admin=True).evaluate()

    assert decision == GuardDecision(GuardAction.REDIRECT, '/dashboard')


def test_admin_renders_admin_view(fake_api) -> None:
    fake_api.user = {'id': 'user-1', 'role': 'admin'}
    context = AuthContext(fake_api)
    context.mount()

    assert RouteGuard(context, require_admin=True).evaluate().action == GuardAction.RENDER


def test_refresh_attempts_are_bounded(fake_api) -> None:
    context = AuthContext(fake_api)
    context.mount()
    guard = RouteGuard(context)

    first = guard.evaluate()
    second = guard.evaluate()

    assert first.action == GuardAction.NOTHING
    assert second.action == GuardAction.NOTHING
    assert fake_api.calls.count('refresh') == 2


def test_successful_refresh_renders_and_resets_attempts(fake_api) -> None:
    context = AuthContext(fake_api)
    context.mount()
    fake_api.refresh_ok = True
    fake_api.user = {'id': 'user-1', 'role': 'user'}
    guard = RouteGuard(context)

    decision = guard.evaluate()

    assert decision.action == GuardAction.RENDER
    assert guard.refresh_attempts == 0
    assert fake_api.calls.count('refresh') == 1
