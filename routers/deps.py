"""
Router Dependencies
Version: 1.0
"""

from fastapi import HTTPException, Request

from services.container import Services


def get_services(request: Request) -> Services:
    # Built in main.py lifespan
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service not ready")
    return services
