"""
Health checks for liveness and readiness probes.

Checks:
- Database connectivity
- Operator directory freshness
"""
from typing import Any, Dict, Optional

import structlog
from sqlalchemy import text

from pawapay_marketplace.core.operator_directory import OperatorDirectory
from pawapay_marketplace.database.connection import Database

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """Raised when health check fails."""

    pass


class HealthCheck:
    """Health check service for the database and operator cache."""

    def __init__(self, database: Database, directory: Optional[OperatorDirectory] = None):
        self.database = database
        self.directory = directory

    async def check_database(self) -> Dict[str, Any]:
        """
        Check database connectivity.

        Raises:
            HealthCheckError: If database check fails
        """
        try:
            async with self.database.session() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()
        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            raise HealthCheckError(f"Database health check failed: {e}") from e

        return {
            "status": "healthy",
            "service": "database",
            "message": "Database connection successful",
        }

    def check_operator_directory(self) -> Dict[str, Any]:
        """Report cache state without triggering a refresh."""
        if self.directory is None:
            return {"status": "unknown", "service": "operator_directory"}
        if not self.directory.is_loaded:
            return {
                "status": "degraded",
                "service": "operator_directory",
                "message": "Operator directory not loaded yet",
            }
        return {
            "status": "healthy" if not self.directory.is_stale() else "degraded",
            "service": "operator_directory",
            "age_seconds": self.directory.age_seconds(),
        }

    async def check_all(self) -> Dict[str, Any]:
        """Overall health; the database is the only hard dependency."""
        checks: Dict[str, Any] = {}
        overall = "healthy"
        try:
            checks["database"] = await self.check_database()
        except HealthCheckError as e:
            checks["database"] = {"status": "unhealthy", "service": "database", "message": str(e)}
            overall = "unhealthy"

        checks["operator_directory"] = self.check_operator_directory()
        if overall == "healthy" and checks["operator_directory"]["status"] == "degraded":
            overall = "degraded"

        return {"status": overall, "checks": checks}

    async def liveness(self) -> Dict[str, Any]:
        return {"status": "alive"}

    async def readiness(self) -> Dict[str, Any]:
        """
        Raises:
            HealthCheckError: If the database is unreachable
        """
        await self.check_database()
        return {"status": "ready"}
