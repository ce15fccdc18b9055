"""Status endpoints.

Read-only reporting surface over a running orchestrator.
- GET /health: liveness plus pool and proxy summary
- GET /status: cache, proxy, anti-block, pool, session and request stats
- GET /status/anti-block: anti-block report and recommendations
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter

from scrapeguard.models.responses import ApiResponse, HealthStatus

if TYPE_CHECKING:
    from scrapeguard.services.orchestrator import ExtractionOrchestrator


def create_status_router(*, orchestrator: ExtractionOrchestrator) -> APIRouter:
    """Factory that creates the status router bound to *orchestrator*."""

    status_router = APIRouter(tags=["status"])

    @status_router.get("/health")
    async def health() -> dict:
        pool_stats = orchestrator.pool.get_stats()
        proxy_stats = orchestrator.proxy_manager.get_stats()

        return ApiResponse[HealthStatus].ok(
            HealthStatus(
                pool_capacity=pool_stats["capacity"],
                pool_active=pool_stats["active"],
                proxies_healthy=proxy_stats["healthy"],
                in_cooldown=orchestrator.detector.is_in_cooldown(),
            )
        )

    @status_router.get("/status")
    async def status() -> dict:
        """Full statistics for every component."""
        return ApiResponse[dict].ok(orchestrator.get_stats())

    @status_router.get("/status/anti-block")
    async def anti_block() -> dict:
        report = orchestrator.detector.generate_report()
        return ApiResponse[dict].ok(report, severity=report["severity"])

    return status_router
