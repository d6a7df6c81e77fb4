import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from dashboard import database
from dashboard.auth.identity import IdentityProviderClient
from dashboard.auth.jwt_handler import TokenService
from dashboard.core import config
from dashboard.core.handlers import register_exception_handlers
from dashboard.feeds.client import DataFeedClient
from dashboard.middleware.session_gate import setup_session_gate
from dashboard.models import user
from dashboard.routes import auth_routes, data_routes, download_routes, user_routes

logger = logging.getLogger(__name__)


def initialize_database() -> None:
    try:
        user.Base.metadata.create_all(bind=database.engine)
        database.ensure_users_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


def create_app() -> FastAPI:
    config.validate_runtime_config()
    logging.basicConfig(level=config.LOG_LEVEL)

    app = FastAPI(title='Climate Finance Dashboard API')
    app.state.token_service = TokenService.from_config()
    app.state.identity_client = IdentityProviderClient.from_config()
    app.state.feed_client = DataFeedClient.from_config()

    setup_session_gate(app)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ALLOW_ORIGINS,
        allow_credentials=True,
        allow_methods=['*'],
        allow_headers=['*'],
    )
    register_exception_handlers(app)

    @app.on_event('startup')
    def startup() -> None:
        initialize_database()

    @app.on_event('shutdown')
    def shutdown() -> None:
        app.state.identity_client.close()
        app.state.feed_client.close()

    @app.get('/')
    def root():
        return {'status': 'Climate Finance Dashboard API Running'}

    app.include_router(auth_routes.router, prefix='/api/auth')
    app.include_router(user_routes.router, prefix='/api/users')
    app.include_router(user_routes.admin_router, prefix='/api/admin')
    app.include_router(data_routes.router, prefix='/api')
    app.include_router(download_routes.router, prefix='/downloads')
    return app


app = create_app()
