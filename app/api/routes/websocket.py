"""
WebSocket Routes for Real-time Execution Streaming.

Provides live progress events while a saved workflow runs, and lets
other clients follow a run that is already in progress.
"""

from typing import Dict, Set
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from uuid import uuid4
import asyncio
import logging

from app.agents.invoker import AgentInvoker
from app.api.deps import get_invoker, get_session_manager
from app.api.routes.workflows import create_executor, execute_and_track
from app.config import settings
from app.engine.events import ProgressChannel
from app.engine.graph import WorkflowGraph
from app.engine.session import SessionManager
from app.storage.memory import run_storage, workflow_storage


logger = logging.getLogger(__name__)

router = APIRouter(tags=["WebSocket"])

TERMINAL_STATUSES = ("completed", "failed", "cancelled")


class ConnectionManager:
    """Tracks open WebSocket connections per execution."""

    def __init__(self):
        self.active_connections: Dict[str, Set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, execution_id: str):
        """Accept a new WebSocket connection."""
        await websocket.accept()
        self.active_connections.setdefault(execution_id, set()).add(websocket)
        logger.info(f"WebSocket connected for execution: {execution_id}")

    def disconnect(self, websocket: WebSocket, execution_id: str):
        """Remove a WebSocket connection."""
        if execution_id in self.active_connections:
            self.active_connections[execution_id].discard(websocket)
            if not self.active_connections[execution_id]:
                del self.active_connections[execution_id]
        logger.info(f"WebSocket disconnected for execution: {execution_id}")

    def __len__(self) -> int:
        return sum(len(c) for c in self.active_connections.values())


# Global connection manager
manager = ConnectionManager()


@router.websocket("/ws/run/{workflow_id}")
async def websocket_run(
    websocket: WebSocket,
    workflow_id: str,
    invoker: AgentInvoker = Depends(get_invoker),
    sessions: SessionManager = Depends(get_session_manager),
):
    """
    WebSocket endpoint for running a saved workflow.

    Message format (client -> server):
    ```json
    {"action": "start", "goal": "optional override"}
    ```

    The server answers with `{"type": "started", "executionId": ...}`
    followed by the run's progress events, the same objects the SSE
    endpoint sends. Closing the socket cancels the run.
    """
    stored = await workflow_storage.get(workflow_id)
    if not stored:
        await websocket.close(code=4004, reason=f"Workflow '{workflow_id}' not found")
        return

    execution_id = str(uuid4())
    await manager.connect(websocket, execution_id)
    task = None
    watcher = None

    try:
        data = await websocket.receive_json()

        if data.get("action") != "start":
            await websocket.send_json({
                "type": "error",
                "error": "Expected 'start' action",
            })
            return

        goal = data.get("goal") or stored.goal
        graph = WorkflowGraph.from_payload(stored.nodes, stored.edges)
        await run_storage.create(execution_id, goal, workflow_id=workflow_id)

        await websocket.send_json({
            "type": "started",
            "executionId": execution_id,
            "workflowId": workflow_id,
        })

        channel = ProgressChannel(maxsize=settings.PROGRESS_QUEUE_SIZE)
        executor = create_executor(graph, execution_id, invoker, sessions, channel=channel)
        task = asyncio.create_task(execute_and_track(executor, goal))
        task.add_done_callback(lambda _: channel.close_nowait())
        watcher = asyncio.create_task(_wait_for_disconnect(websocket))
        watcher.add_done_callback(lambda _: task.cancel())

        async for event in channel:
            await websocket.send_json(event.to_dict())

        try:
            await task
        except asyncio.CancelledError:
            logger.info(f"Client disconnected, execution {execution_id} cancelled")

    except WebSocketDisconnect:
        logger.info(f"Client disconnected from execution {execution_id}")
    except Exception as e:
        logger.exception(f"WebSocket error: {e}")
        try:
            await websocket.send_json({
                "type": "error",
                "error": str(e),
            })
        except (WebSocketDisconnect, RuntimeError):
            logger.debug("Could not report error, socket already closed")
    finally:
        if watcher is not None:
            watcher.cancel()
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                logger.info(f"Cancelled execution {execution_id}")
        manager.disconnect(websocket, execution_id)


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    """Return once the client closes the socket; other messages are ignored."""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/ws/subscribe/{execution_id}")
async def websocket_subscribe(websocket: WebSocket, execution_id: str):
    """
    Follow an existing run.

    Use this to watch a run started via POST /workflows/{id}/run.
    Finished steps are sent as they are recorded; the socket closes
    after the run ends.
    """
    stored = await run_storage.get(execution_id)
    if not stored:
        await websocket.close(code=4004, reason=f"Run '{execution_id}' not found")
        return

    await manager.connect(websocket, execution_id)

    try:
        await websocket.send_json({
            "type": "current_state",
            "executionId": execution_id,
            "status": stored.status,
            "currentNode": stored.current_node,
            "output": stored.output,
        })

        sent_steps = 0
        while True:
            stored = await run_storage.get(execution_id)
            if not stored:
                break

            for entry in stored.steps[sent_steps:]:
                await websocket.send_json({"type": "step", **entry})
            sent_steps = len(stored.steps)

            if stored.status in TERMINAL_STATUSES:
                await websocket.send_json({
                    "type": "completed",
                    "executionId": execution_id,
                    "status": stored.status,
                    "output": stored.output,
                    "error": stored.error,
                })
                break

            await asyncio.sleep(0.5)  # Poll interval

    except WebSocketDisconnect:
        logger.info(f"Subscriber disconnected from execution {execution_id}")
    finally:
        manager.disconnect(websocket, execution_id)
