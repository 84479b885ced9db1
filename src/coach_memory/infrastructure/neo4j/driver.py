"""Neo4j driver and connection management."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from neo4j import AsyncDriver, AsyncGraphDatabase

from coach_memory.core.base import ErrorLevel
from coach_memory.core.config import Settings
from coach_memory.core.decorators import with_error_handling
from coach_memory.core.logging import get_logger
from coach_memory.infrastructure.neo4j.queries import MemoryQueries

logger = get_logger(__name__)


@asynccontextmanager
async def create_neo4j_driver(
    settings: Settings,
    max_connection_pool_size: int = 50,
    max_connection_lifetime: int = 3600,
) -> AsyncIterator[AsyncDriver]:
    """Open a verified driver for the lifetime of the block.

    Args:
        settings: Process settings carrying the connection details
        max_connection_pool_size: Maximum size of the connection pool
        max_connection_lifetime: Maximum lifetime of connections in seconds

    Yields:
        AsyncDriver: Connected Neo4j driver
    """
    logger.info(
        "Creating Neo4j driver",
        uri=settings.neo4j_uri,
        pool_size=max_connection_pool_size,
        connection_lifetime=max_connection_lifetime,
    )

    driver = AsyncGraphDatabase.driver(
        settings.neo4j_uri,
        auth=(settings.neo4j_user, settings.neo4j_password),
        max_connection_pool_size=max_connection_pool_size,
        max_connection_lifetime=max_connection_lifetime,
    )

    try:
        await driver.verify_connectivity()
        logger.info("Neo4j connection established")
        yield driver
    finally:
        await driver.close()
        logger.info("Neo4j driver closed")


@with_error_handling(error_level=ErrorLevel.ERROR)
async def ensure_schema(driver: AsyncDriver) -> None:
    """Create the id constraint and owner index if they are missing."""
    async with driver.session() as session:
        for statement in MemoryQueries.create_constraints():
            await session.run(statement)
    logger.info("Neo4j schema ensured")
