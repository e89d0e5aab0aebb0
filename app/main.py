"""
AgentDeck - FastAPI Application Entry Point.

Build agent workflows as graphs and run them step by step, with live
progress streamed to the client.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from app.config import settings
from app.api.deps import shutdown_sessions
from app.api.routes import agents, tools, websocket, workflows
from app.agents.registry import agent_registry
from app.storage.memory import execution_log_storage, run_storage, workflow_storage
from app.workflows.demo import DEMO_WORKFLOW_ID, register_demo_workflow

# Import builtin agents and tools to register them
import app.agents.builtin  # noqa: F401
import app.tools.builtin  # noqa: F401


# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    if settings.AGENTS_DIR:
        agent_registry.load_directory(settings.AGENTS_DIR)

    # Register the demo workflow
    await register_demo_workflow()

    yield

    # Shutdown
    logger.info("Shutting down...")
    await shutdown_sessions()


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="""
## Agent Workflow API

Compose agents into workflows and run them one step at a time.

### Features
- **Agents**: Named configurations of model, system prompt and tools
- **Workflows**: Graphs of agent and delay nodes, run from the goal node
- **Threading**: Each step receives the goal and the previous step's result
- **Browser Sessions**: One headless browser per run for browser tools
- **Real-time Updates**: Server-Sent Events and WebSocket progress streams

### Quick Start
1. List available agents: `GET /agents`
2. Save a workflow: `POST /workflows`
3. Run it: `POST /workflows/{workflow_id}/run`
4. Or stream an unsaved graph: `POST /workflows/run-stream`
5. Try a single agent: `POST /agents/{agent_name}/run`

### Demo Workflow
A pre-registered research workflow is available with ID: `research-demo`
    """,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(workflows.router)
app.include_router(agents.router)
app.include_router(tools.router)
app.include_router(websocket.router)


# ============================================================
# Root Endpoints
# ============================================================

@app.get("/", tags=["Root"])
async def root():
    """API root - returns basic info and links."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "description": "Agent workflow engine with live progress streaming",
        "docs": "/docs",
        "redoc": "/redoc",
        "endpoints": {
            "workflows": "/workflows",
            "run_stream": "/workflows/run-stream",
            "agents": "/agents",
            "agent_run": "/agents/{agent_name}/run",
            "tools": "/tools",
            "websocket_run": "/ws/run/{workflow_id}",
            "websocket_subscribe": "/ws/subscribe/{execution_id}",
        },
        "demo_workflow": DEMO_WORKFLOW_ID,
    }


@app.get("/health", tags=["Root"])
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "agents_count": len(agent_registry),
        "workflows_count": len(workflow_storage),
        "runs_count": len(run_storage),
        "log_entries_count": len(execution_log_storage),
        "websocket_connections": len(websocket.manager),
    }


# ============================================================
# Error Handlers
# ============================================================

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors."""
    logger.exception(f"Unhandled error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "detail": str(exc) if settings.DEBUG else "An unexpected error occurred",
        },
    )
