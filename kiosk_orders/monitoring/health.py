"""
Health checks for liveness and readiness probes.

Checks:
- Database connectivity
- Which payment providers are configured
"""
from typing import Any, Dict, Optional

import structlog

from kiosk_orders.config import Settings, get_settings
from kiosk_orders.database.store import OrderStore

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """Raised when a health check fails."""


class HealthCheck:
    """Health check service for the order backend's dependencies."""

    def __init__(self, store: OrderStore, settings: Optional[Settings] = None) -> None:
        self.store = store
        self.settings = settings or get_settings()

    async def check_database(self) -> Dict[str, Any]:
        """
        Check database connectivity.

        Raises:
            HealthCheckError: If the database cannot be reached
        """
        try:
            await self.store.ping()
        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            raise HealthCheckError(f"Database health check failed: {e}") from e

        return {
            "status": "healthy",
            "service": "database",
            "message": "Database connection successful",
        }

    def check_providers(self) -> Dict[str, Any]:
        # Unconfigured providers are reported, not treated as unhealthy.
        return {
            "status": "healthy",
            "service": "payment_providers",
            "card": self.settings.card_configured,
            "swish": self.settings.swish_configured,
            "telegram": bool(self.settings.telegram_bot_token),
        }

    async def check_all(self) -> Dict[str, Any]:
        checks: Dict[str, Any] = {}
        all_healthy = True

        try:
            checks["database"] = await self.check_database()
        except HealthCheckError as e:
            checks["database"] = {
                "status": "unhealthy",
                "service": "database",
                "error": str(e),
            }
            all_healthy = False

        checks["payment_providers"] = self.check_providers()

        return {
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }

    async def liveness(self) -> Dict[str, Any]:
        """Report that the process is running. No dependencies are checked."""
        return {
            "status": "alive",
            "message": "Application is running",
        }

    async def readiness(self) -> Dict[str, Any]:
        return await self.check_all()
