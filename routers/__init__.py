"""
HTTP Routers
Version: 1.0

Each router takes the wired services from app.state.services (see deps.py).
"""
