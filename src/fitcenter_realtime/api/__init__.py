"""API routers for the realtime service."""
