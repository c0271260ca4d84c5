"""Infrastructure adapters for the equipment engine.

These adapters implement the domain ports against the provisioning backend
and PostgreSQL, and translate between backend rows and domain entities.
"""

from .export_mapper import (
    ExportBundle,
    export_session,
    import_local_session,
    payload_to_session,
    session_to_payload,
)
from .field_mapper import CatalogFieldMapper
from .provisioning_api import ProvisioningAPIAdapter, build_composition_parameters
from .session_store import InMemorySessionStore, PostgresSessionStore

__all__ = [
    "CatalogFieldMapper",
    "ProvisioningAPIAdapter",
    "build_composition_parameters",
    "InMemorySessionStore",
    "PostgresSessionStore",
    "ExportBundle",
    "export_session",
    "import_local_session",
    "session_to_payload",
    "payload_to_session",
]
