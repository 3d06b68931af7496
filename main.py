# In main.py

import datetime
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.concurrency import run_in_threadpool

from google.cloud import firestore
from google.cloud import storage as gcs # <-- GCS client for image uploads

import AuthAndUser as auth
from config import Settings, get_settings
from domain.user import Role
from errors import DuplicateUsername, register_exception_handlers
from firestore_storage import FirestoreStorage
from sessions import FirestoreSessionStore, InMemorySessionStore, SessionManager, SessionStore
from storage import MemoryStorage, Storage

# Import routers
from routers import about, comments, messages, posts, projects, subscribers, uploads, users

logger = logging.getLogger('uvicorn.error')


async def ensure_admin(storage: Storage, settings: Settings) -> None:
    """Create the configured admin account on first start."""
    if not settings.admin_password:
        return
    if await storage.get_user_by_username(settings.admin_username) is not None:
        return
    password_hash = await run_in_threadpool(auth.get_password_hash, settings.admin_password)
    try:
        await storage.create_user(
            settings.admin_username,
            password_hash,
            role=Role.ADMIN,
            display_name=settings.admin_display_name,
        )
        logger.info(f"Admin account '{settings.admin_username}' created.")
    except DuplicateUsername:
        logger.info(f"Admin account '{settings.admin_username}' was created concurrently.")


def create_app(
    settings: Optional[Settings] = None,
    storage: Optional[Storage] = None,
    session_store: Optional[SessionStore] = None,
    gcs_client: Optional[gcs.Client] = None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Application startup: Initializing resources...")
        app.state.db = None
        data_store, sessions_store = storage, session_store
        if settings.storage_backend == "firestore" and (data_store is None or sessions_store is None):
            app.state.db = firestore.AsyncClient()
            logger.info("Firestore Async client initialized.")
            if data_store is None:
                data_store = FirestoreStorage(app.state.db)
            if sessions_store is None:
                sessions_store = FirestoreSessionStore(app.state.db)
        if data_store is None:
            data_store = MemoryStorage()
        if sessions_store is None:
            sessions_store = InMemorySessionStore()

        app.state.gcs_client = gcs_client
        if app.state.gcs_client is None and settings.storage_backend == "firestore":
            try:
                app.state.gcs_client = gcs.Client()
                logger.info("Google Cloud Storage client initialized.")
            except Exception as e:
                logger.error(f"Failed to initialize GCS client, image uploads disabled: {e}")

        session_manager = SessionManager(
            sessions_store,
            max_age=datetime.timedelta(days=settings.session_max_age_days),
            cookie_name=settings.session_cookie_name,
            secure=settings.cookie_secure,
            store_timeout=settings.store_timeout_seconds,
        )
        app.state.settings = settings
        app.state.storage = data_store
        app.state.sessions = session_manager
        app.state.authenticator = auth.Authenticator(data_store, session_manager)

        await ensure_admin(data_store, settings)

        yield
        logger.info("Application shutdown: Cleaning up resources...")
        if app.state.db:
            try:
                await app.state.db.close() # Close the async client
                logger.info("Firestore Async client closed.")
            except Exception as e:
                logger.error(f"Error closing Firestore client: {e}")

    app = FastAPI(title="Blog API", lifespan=lifespan)
    logger.setLevel(settings.log_level.upper())

    register_exception_handlers(app)
    for module in (users, posts, projects, comments, messages, subscribers, about, uploads):
        app.include_router(module.router)

    app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.allowed_hosts)
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    return app


app = create_app()
