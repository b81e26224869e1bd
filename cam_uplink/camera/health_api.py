"""
Health API - Read-only status endpoints for the uplink

Served in-process by uvicorn next to the streaming tasks when the status
API is enabled.
"""

from datetime import datetime

from fastapi import FastAPI

from cam_uplink import __version__


def create_status_app(manager) -> FastAPI:
    """
    Build the status app for a running UplinkManager

    Endpoints:
        GET /health       liveness and camera id
        GET /api/status   telemetry, network state, running profile, stats
        GET /api/config   effective configuration
    """
    app = FastAPI(
        title="Camera Uplink Status",
        description="Read-only status of the adaptive camera uplink",
        version=__version__,
    )

    @app.get("/health")
    async def health_check():
        """Public health check endpoint"""
        return {
            "status": "healthy" if manager.is_healthy() else "degraded",
            "service": "cam-uplink",
            "camera_id": manager.camera_id,
            "timestamp": datetime.now().isoformat(),
            "version": __version__,
            "encoder_running": manager.encoder.is_running,
            "uplink_connected": manager.transport.connected,
        }

    @app.get("/api/status")
    async def get_status():
        """Snapshot of the whole pipeline"""
        return manager.get_status()

    @app.get("/api/config")
    async def get_app_config():
        """Current configuration"""
        return {
            **manager.config.to_public_dict(),
            "timestamp": datetime.now().isoformat(),
        }

    return app
