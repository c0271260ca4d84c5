"""FastAPI dependency injection for the equipment API.

Lifecycle Management:
- Provisioning client: entered at startup, shared across requests
- Session store: PostgreSQL when DATABASE_URL is set, in-memory otherwise
- Session registry and in-flight guard: one per process

Security:
- API key authentication (X-API-Key) on every equipment endpoint
- DISABLE_AUTH=true turns authentication off for development
"""

import logging
import secrets
from typing import Optional

import asyncpg
from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

from ...api.client import ProvisioningClient
from ...config import EngineSettings
from ..adapters import InMemorySessionStore, PostgresSessionStore, ProvisioningAPIAdapter
from ..domain.ports import ISessionStore
from ..domain.validation import QuantityCapPolicy
from ..use_cases import (
    CompleteWorkUseCase,
    DispatchSignalUseCase,
    EditEquipmentUseCase,
    InFlightGuard,
    LoadCatalogUseCase,
    SaveCompositionUseCase,
    SessionRegistry,
)

logger = logging.getLogger(__name__)

# ========== API Key Authentication ==========

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# ========== Global State ==========

_settings: Optional[EngineSettings] = None
_db_pool: Optional[asyncpg.Pool] = None
_client: Optional[ProvisioningClient] = None
_adapter: Optional[ProvisioningAPIAdapter] = None
_store: Optional[ISessionStore] = None
_registry = SessionRegistry()
_guard = InFlightGuard()


def get_settings() -> EngineSettings:
    global _settings
    if _settings is None:
        _settings = EngineSettings.from_env()
    return _settings


async def verify_api_key(
    api_key: Optional[str] = Security(api_key_header),
) -> bool:
    """Verify the API key from the request header.

    Security model:
    - If DISABLE_AUTH=true (dev mode): authentication is disabled
    - Otherwise: API_KEY is required (fail-closed)

    Raises:
        HTTPException: 500 if API_KEY is unset, 401 if missing or invalid
    """
    settings = get_settings()
    if settings.disable_auth:
        logger.warning("Authentication disabled (DISABLE_AUTH=true). Only use this in development!")
        return True

    if not settings.api_key:
        logger.error("API_KEY not set - rejecting request.")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server misconfiguration: API_KEY not set",
        )

    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Provide X-API-Key header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if not secrets.compare_digest(api_key, settings.api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    return True


# ========== Startup / Shutdown ==========


async def init_services(settings: Optional[EngineSettings] = None) -> None:
    """Initialize the session store and provisioning client.

    Should be called on application startup.
    """
    global _settings, _db_pool, _client, _adapter, _store

    if settings is not None:
        _settings = settings
    settings = get_settings()

    if settings.database_url:
        _db_pool = await asyncpg.create_pool(settings.database_url, min_size=1, max_size=5)
        store = PostgresSessionStore(_db_pool)
        await store.ensure_schema()
        _store = store
        logger.info("Session store: PostgreSQL")
    else:
        _store = InMemorySessionStore()
        logger.info("Session store: in-memory (DATABASE_URL not set)")

    if settings.provisioning_base_url:
        _client = ProvisioningClient(
            base_url=settings.provisioning_base_url,
            api_token=settings.provisioning_api_token,
        )
        await _client.__aenter__()
        _adapter = ProvisioningAPIAdapter(_client)
        logger.info("Provisioning client initialized")
    else:
        logger.warning("PROVISIONING_BASE_URL not set - backend operations unavailable")


async def close_services() -> None:
    """Close the provisioning client and database pool."""
    global _db_pool, _client, _adapter, _store

    if _client:
        await _client.__aexit__(None, None, None)
        _client = None
    _adapter = None

    if _db_pool:
        await _db_pool.close()
        _db_pool = None
    _store = None

    logger.info("Equipment services closed")


# ========== Dependency Functions ==========


def get_registry() -> SessionRegistry:
    return _registry


def get_guard() -> InFlightGuard:
    return _guard


def get_store() -> ISessionStore:
    global _store
    if _store is None:
        _store = InMemorySessionStore()
    return _store


def get_policy() -> QuantityCapPolicy:
    return QuantityCapPolicy.from_settings(get_settings())


def get_provisioning_adapter() -> ProvisioningAPIAdapter:
    """Get the shared provisioning adapter.

    Raises:
        HTTPException: 503 if the backend is not configured
    """
    if _adapter is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Provisioning backend not configured",
        )
    return _adapter


def get_load_use_case() -> LoadCatalogUseCase:
    return LoadCatalogUseCase(
        catalog_api=get_provisioning_adapter(),
        store=get_store(),
        registry=get_registry(),
        guard=get_guard(),
    )


def get_edit_use_case() -> EditEquipmentUseCase:
    return EditEquipmentUseCase(
        registry=get_registry(),
        store=get_store(),
        policy=get_policy(),
    )


def get_save_use_case() -> SaveCompositionUseCase:
    return SaveCompositionUseCase(
        composition_api=get_provisioning_adapter(),
        registry=get_registry(),
        policy=get_policy(),
        loader=get_load_use_case(),
        guard=get_guard(),
    )


def get_signal_use_case() -> DispatchSignalUseCase:
    return DispatchSignalUseCase(
        dispatcher=get_provisioning_adapter(),
        registry=get_registry(),
        store=get_store(),
        reg_uid=get_settings().reg_uid,
        guard=get_guard(),
    )


def get_complete_use_case() -> CompleteWorkUseCase:
    return CompleteWorkUseCase(
        registry=get_registry(),
        store=get_store(),
        reg_uid=get_settings().reg_uid,
    )
