"""Bootstrap — one call that wires settings, logging and the versioned session manager.

Invariants:
    - Settings read once (get_settings() is cached) unless passed explicitly
    - The returned manager is also installed as infrastructure.database.db_manager

Design Decisions:
    - Explicit registry argument: the caller lists its versioned types, nothing is discovered
"""

import logging

from softtrack.config import Settings, get_settings
from softtrack.infrastructure.database import DatabaseSessionManager, init_db
from softtrack.infrastructure.observability import setup_logging
from softtrack.services.registry import VersionedRegistry

logger = logging.getLogger(__name__)


def bootstrap(
    registry: VersionedRegistry,
    settings: Settings | None = None,
    configure_logging: bool = True,
) -> DatabaseSessionManager:
    """Configure logging and initialize the database session manager."""
    settings = settings or get_settings()
    if configure_logging:
        setup_logging(settings.log_level, settings.log_format)
    manager = init_db(
        settings.database_url,
        registry,
        actor=settings.default_actor,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        lock_rows_on_write=settings.lock_rows_on_write,
    )
    logger.info(
        f"SoftTrack initialized with {len(registry.models)} versioned type(s)",
    )
    return manager
