"""Fitness center realtime service.

Packages:
- config: Configuration management
- observability: Structured logging
- models: Pydantic data models
- services: Channel registry, reconnection, realtime facade and sessions
- api / middleware: FastAPI surface
"""

__version__ = "0.1.0"
