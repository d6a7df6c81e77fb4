import json
import os
import uuid

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('APP_ENV', 'test')
os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('SUPABASE_URL', 'http://provider.test')
os.environ.setdefault('SUPABASE_ANON_KEY', 'anon-key')
os.environ.setdefault('SUPABASE_SERVICE_ROLE_KEY', 'service-key')
os.environ.setdefault('JWT_SECRET', 'access-secret-for-tests-0123456789abcdef')
os.environ.setdefault('JWT_REFRESH_SECRET', 'refresh-secret-for-tests-0123456789abcdef')
os.environ.setdefault('DATA_FEED_BASE_URL', 'http://feed.test')

from dashboard.auth.identity import IdentityProviderClient  # noqa: E402
from dashboard.auth.jwt_handler import TokenService  # noqa: E402
from dashboard.core.errors import Conflict, InvalidCredentials, InvalidToken, PendingApproval  # noqa: E402
from dashboard.database import Base, get_db  # noqa: E402
from dashboard.feeds.client import DataFeedClient  # noqa: E402
from dashboard.models.user import ROLE_ADMIN, ROLE_USER, User  # noqa: E402

ACCESS_SECRET = 'access-secret-for-tests-0123456789abcdef'
REFRESH_SECRET = 'refresh-secret-for-tests-0123456789abcdef'
ANON_KEY = 'anon-key'
SERVICE_KEY = 'service-key'


class FakeIdentityProvider:
    """In-memory stand-in for the provider's REST auth API, served through httpx.MockTransport."""

    def __init__(self):
        self.accounts: dict[str, dict] = {}
        self.sessions: dict[str, str] = {}
        self.refresh_tokens: dict[str, str] = {}
        self.requests: list[tuple[str, str]] = []
        self.unavailable = False

    def add_account(self, email: str, password: str, user_id: str | None = None, confirmed: bool = True) -> str:
        user_id = user_id or str(uuid.uuid4())
        self.accounts[user_id] = {'id': user_id, 'email': email, 'password': password, 'confirmed': confirmed}
        return user_id

    def issue_session(self, user_id: str) -> dict:
        access_token = f'provider-access-{uuid.uuid4()}'
        refresh_token = f'provider-refresh-{uuid.uuid4()}'
        self.sessions[access_token] = user_id
        self.refresh_tokens[refresh_token] = user_id
        account = self.accounts[user_id]
        return {
            'access_token': access_token,
            'refresh_token': refresh_token,
            'expires_in': 3600,
            'token_type': 'bearer',
            'user': {'id': user_id, 'email': account['email']},
        }

    def _find_by_email(self, email: str) -> dict | None:
        return next((account for account in self.accounts.values() if account['email'] == email), None)

    def _create(self, body: dict) -> httpx.Response:
        if self._find_by_email(body.get('email')) is not None:
            return httpx.Response(422, json={'error_code': 'user_already_exists', 'msg': 'User already registered'})
        user_id = self.add_account(body['email'], body['password'], confirmed=bool(body.get('email_confirm', True)))
        return httpx.Response(200, json={'id': user_id, 'email': body['email']})

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append((request.method, path))
        if self.unavailable:
            raise httpx.ConnectError('provider down', request=request)

        body = json.loads(request.content) if request.content else {}
        bearer = request.headers.get('authorization', '').removeprefix('Bearer ')

        if path.startswith('/auth/v1/admin/'):
            if bearer != SERVICE_KEY:
                return httpx.Response(403, json={'error_code': 'not_admin', 'msg': 'User not allowed'})
            if path == '/auth/v1/admin/users' and request.method == 'POST':
                return self._create(body)
            user_id = path.rsplit('/', 1)[-1]
            if user_id not in self.accounts:
                return httpx.Response(404, json={'error_code': 'user_not_found', 'msg': 'User not found'})
            if request.method == 'DELETE':
                del self.accounts[user_id]
                return httpx.Response(200, json={})
            account = self.accounts[user_id]
            return httpx.Response(200, json={'id': user_id, 'email': account['email']})

        if path == '/auth/v1/token':
            grant_type = request.url.params.get('grant_type')
            if grant_type == 'password':
                account = self._find_by_email(body.get('email'))
                if account is None or account['password'] != body.get('password'):
                    return httpx.Response(
                        400, json={'error_code': 'invalid_credentials', 'msg': 'Invalid login credentials'}
                    )
                if not account['confirmed']:
                    return httpx.Response(400, json={'error_code': 'email_not_confirmed', 'msg': 'Email not confirmed'})
                return httpx.Response(200, json=self.issue_session(account['id']))
            user_id = self.refresh_tokens.pop(body.get('refresh_token'), None)
            if user_id is None:
                return httpx.Response(
                    400, json={'error_code': 'refresh_token_not_found', 'msg': 'Invalid Refresh Token'}
                )
            return httpx.Response(200, json=self.issue_session(user_id))

        if path == '/auth/v1/signup':
            return self._create({**body, 'email_confirm': True})

        if path == '/auth/v1/logout':
            self.sessions.pop(bearer, None)
            return httpx.Response(204)

        if path == '/auth/v1/user':
            user_id = self.sessions.get(bearer)
            if user_id is None or user_id not in self.accounts:
                return httpx.Response(401, json={'error_code': 'bad_jwt', 'msg': 'invalid JWT'})
            if request.method == 'PUT':
                self.accounts[user_id]['password'] = body['password']
            return httpx.Response(200, json={'id': user_id, 'email': self.accounts[user_id]['email']})

        return httpx.Response(404, json={'msg': 'no route'})

    def client(self) -> IdentityProviderClient:
        http_client = httpx.Client(base_url='http://provider.test', transport=httpx.MockTransport(self.handle))
        return IdentityProviderClient('http://provider.test', ANON_KEY, SERVICE_KEY, http_client=http_client)


class FakeDataFeed:
    """Blob container stand-in: maps a relative path to a body string or an HTTP status."""

    def __init__(self, files: dict | None = None):
        self.files = dict(files or {})
        self.requests: list[str] = []

    def add_json(self, path: str, document) -> None:
        self.files[path] = json.dumps(document)

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.lstrip('/')
        self.requests.append(path)
        content = self.files.get(path, 404)
        if isinstance(content, int):
            return httpx.Response(content, text='missing')
        return httpx.Response(200, text=content)

    def client(self) -> DataFeedClient:
        http_client = httpx.Client(base_url='http://feed.test', transport=httpx.MockTransport(self.handle))
        return DataFeedClient('http://feed.test', http_client=http_client)


@pytest.fixture
def db_engine():
    engine = create_engine('sqlite://', connect_args={'check_same_thread': False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session_factory(db_engine):
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(db_session_factory):
    session = db_session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def feed() -> FakeDataFeed:
    return FakeDataFeed()


@pytest.fixture
def token_service() -> TokenService:
    return TokenService(access_secret=ACCESS_SECRET, refresh_secret=REFRESH_SECRET)


@pytest.fixture
def add_user(db, provider):
    """Create a provider account plus its profile row."""

    def _add_user(
        email: str,
        password: str = 'correct-horse',
        role: str = ROLE_USER,
        is_verified: bool | None = True,
        name: str = 'Test User',
        with_account: bool = True,
    ) -> User:
        user_id = provider.add_account(email, password) if with_account else str(uuid.uuid4())
        user = User(id=user_id, name=name, email=email, role=role, is_verified=is_verified)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _add_user


@pytest.fixture
def admin_user(add_user) -> User:
    return add_user('admin@example.org', password='admin-password', role=ROLE_ADMIN, name='Admin User')


@pytest.fixture
def app(db_session_factory, provider, feed, token_service):
    from dashboard.main import app as dashboard_app

    def override_get_db():
        session = db_session_factory()
        try:
            yield session
        finally:
            session.close()

    previous_state = (
        dashboard_app.state.token_service,
        dashboard_app.state.identity_client,
        dashboard_app.state.feed_client,
    )
    dashboard_app.state.token_service = token_service
    dashboard_app.state.identity_client = provider.client()
    dashboard_app.state.feed_client = feed.client()
    dashboard_app.dependency_overrides[get_db] = override_get_db
    yield dashboard_app
    dashboard_app.dependency_overrides.clear()
    (
        dashboard_app.state.token_service,
        dashboard_app.state.identity_client,
        dashboard_app.state.feed_client,
    ) = previous_state


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    return TestClient(app)


class FakeDashboardApi:
    """Scriptable stand-in for `DashboardApiClient` used by the client-state tests."""

    def __init__(self, user: dict | None = None):
        self.user = user
        self.password = 'correct-horse'
        self.refresh_ok = False
        self.logout_error: Exception | None = None
        self.during_me = None
        self.during_login = None
        self.listeners = []
        self.calls: list[str] = []

    def on_session_change(self, listener):
        self.listeners.append(listener)
        return lambda: self.listeners.remove(listener)

    def emit(self, event, payload=None) -> None:
        for listener in list(self.listeners):
            listener(event, payload)

    def me(self):
        self.calls.append('me')
        if self.during_me is not None:
            self.during_me()
        return self.user

    def login(self, email: str, password: str) -> dict:
        self.calls.append('login')
        if self.during_login is not None:
            self.during_login()
        if password != self.password:
            raise InvalidCredentials()
        if email.startswith('pending'):
            raise PendingApproval()
        self.user = {'id': 'user-1', 'email': email, 'role': 'admin' if email.startswith('admin') else 'user'}
        return self.user

    def register(self, name: str, email: str, password: str) -> dict:
        self.calls.append('register')
        if email == 'taken@example.org':
            raise Conflict('User already exists')
        return {'message': 'Registration successful. Please wait for admin approval.', 'status': 'pending_approval'}

    def refresh(self) -> str:
        self.calls.append('refresh')
        if not self.refresh_ok:
            raise InvalidToken('Refresh token not provided')
        return 'new-access-token'

    def logout(self) -> None:
        self.calls.append('logout')
        if self.logout_error is not None:
            raise self.logout_error
        self.user = None


@pytest.fixture
def fake_api() -> FakeDashboardApi:
    return FakeDashboardApi()


@pytest.fixture
def api_client(client):
    from dashboard.client.api_client import DashboardApiClient

    return DashboardApiClient(client)
