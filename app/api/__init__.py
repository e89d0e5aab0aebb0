"""
API package - FastAPI routes, schemas and dependencies.
"""

from app.api.routes import agents, tools, websocket, workflows

__all__ = ["agents", "tools", "websocket", "workflows"]
