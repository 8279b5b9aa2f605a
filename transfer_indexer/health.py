"""
Health check server for indexer monitoring.

Provides HTTP endpoints for health checks and per-token progress.
"""

import asyncio

from aiohttp import web
from loguru import logger

from transfer_indexer.services.indexer import EntityPhase, IndexingOrchestrator, OrchestratorState

ORCHESTRATOR_KEY = web.AppKey("orchestrator", IndexingOrchestrator)


async def health_handler(request: web.Request) -> web.Response:
    """
    Health check endpoint.

    Returns:
        JSON response with orchestrator and per-token status
    """
    orchestrator = request.app[ORCHESTRATOR_KEY]

    try:
        snapshot = orchestrator.status()
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return web.json_response({"status": "unhealthy", "error": str(e)}, status=503)

    entities = snapshot["entities"]
    failed = [e for e in entities if e["phase"] == EntityPhase.FAILED.value]
    if orchestrator.state is not OrchestratorState.RUNNING:
        status = orchestrator.state.value
    elif entities and len(failed) == len(entities):
        status = "unhealthy"
    elif failed:
        status = "degraded"
    else:
        status = "healthy"

    return web.json_response(
        {
            "status": status,
            "orchestrator": snapshot["state"],
            "tokens_count": len(entities),
            "failed_count": len(failed),
            "tokens": entities,
        },
        status=503 if status == "unhealthy" else 200,
    )


async def readiness_handler(request: web.Request) -> web.Response:
    """
    Readiness check endpoint.

    Returns:
        JSON response indicating if every token finished startup
    """
    orchestrator = request.app[ORCHESTRATOR_KEY]
    if orchestrator.state is not OrchestratorState.RUNNING:
        return web.json_response({"status": "not_ready", "ready": False}, status=503)

    return web.json_response({"status": "ready", "ready": True})


async def liveness_handler(request: web.Request) -> web.Response:
    """
    Liveness check endpoint.

    Returns:
        JSON response indicating if the process is alive
    """
    return web.json_response({"status": "alive", "alive": True})


def create_health_app(orchestrator: IndexingOrchestrator) -> web.Application:
    """Build the aiohttp application bound to an orchestrator."""
    app = web.Application()
    app[ORCHESTRATOR_KEY] = orchestrator
    app.router.add_get("/health", health_handler)
    app.router.add_get("/readiness", readiness_handler)
    app.router.add_get("/liveness", liveness_handler)
    return app


async def start_health_server(
    orchestrator: IndexingOrchestrator,
    host: str = "0.0.0.0",
    port: int = 8081,
) -> web.AppRunner:
    """
    Start health check server.

    Args:
        orchestrator: Orchestrator to report on
        host: Host to bind to
        port: Port to bind to

    Returns:
        AppRunner for cleanup
    """
    runner = web.AppRunner(create_health_app(orchestrator))
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"Health check server started on {host}:{port}")
    logger.info(f"  - Health: http://{host}:{port}/health")
    logger.info(f"  - Readiness: http://{host}:{port}/readiness")
    logger.info(f"  - Liveness: http://{host}:{port}/liveness")

    return runner


async def stop_health_server(runner: web.AppRunner, timeout: int = 5) -> None:
    """
    Stop health check server gracefully.

    Args:
        runner: AppRunner to cleanup
        timeout: Maximum time to wait for cleanup in seconds
    """
    logger.info("Stopping health check server...")
    try:
        await asyncio.wait_for(runner.cleanup(), timeout=timeout)
        logger.info("Health check server stopped successfully")
    except TimeoutError:
        logger.warning(f"Health check server cleanup timed out after {timeout}s")
    except Exception as e:
        logger.error(f"Error stopping health check server: {e}")
