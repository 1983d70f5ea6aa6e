"""
FastAPI service for scheduled alerts.

Provides:
- POST /scheduled-alerts/process - Manual processing run
- POST /scheduled-alerts/cron - Processing run for external schedulers
- GET /scheduled-alerts/due - Due alerts, nothing claimed
- POST/PATCH /scheduled-alerts - Authoring
- GET /health - Service health check
"""

from src.api.app import create_app

__all__ = ["create_app"]
