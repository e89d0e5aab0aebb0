"""
Workflow API Routes.

Endpoints for saving, managing and executing workflows. Ad-hoc graphs
from the editor are streamed over Server-Sent Events; saved workflows
can be run synchronously.
"""

from typing import AsyncGenerator, List, Optional, Sequence
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from uuid import uuid4
import asyncio
import logging
import re

from app.agents.invoker import AgentInvoker
from app.agents.registry import agent_registry
from app.api.deps import get_invoker, get_session_manager
from app.api.schemas import (
    ErrorResponse,
    ExecutionStepEntry,
    RunListResponse,
    RunStateResponse,
    StoredWorkflowRunRequest,
    WorkflowCreateRequest,
    WorkflowInfoResponse,
    WorkflowListResponse,
    WorkflowRunRequest,
    WorkflowRunResponse,
    WorkflowUpdateRequest,
)
from app.config import settings
from app.engine.events import ProgressChannel, ProgressEvent
from app.engine.executor import ExecutionResult, ExecutionStep, WorkflowExecutor
from app.engine.graph import WorkflowGraph
from app.engine.session import SessionManager
from app.engine.state import ExecutionContext
from app.storage.memory import (
    StoredRun,
    StoredWorkflow,
    execution_log_storage,
    run_storage,
    workflow_storage,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workflows", tags=["Workflows"])


# ============================================================
# Helpers
# ============================================================

def _build_graph(nodes: List[dict], edges: List[dict]) -> WorkflowGraph:
    try:
        return WorkflowGraph.from_payload(nodes, edges)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=f"Invalid workflow: {e}")


def _dump(items: Sequence[BaseModel]) -> List[dict]:
    return [item.model_dump(exclude_none=True) for item in items]


def _slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "workflow"


def _workflow_info(stored: StoredWorkflow, include_diagram: bool = False) -> WorkflowInfoResponse:
    graph = WorkflowGraph.from_payload(stored.nodes, stored.edges)
    return WorkflowInfoResponse(
        workflow_id=stored.workflow_id,
        name=stored.name,
        description=stored.description,
        goal=stored.goal,
        enable_api_access=stored.enable_api_access,
        node_count=len(graph),
        nodes=stored.nodes,
        edges=stored.edges,
        created_at=stored.created_at.isoformat(),
        updated_at=stored.updated_at.isoformat(),
        warnings=graph.validate(),
        mermaid_diagram=graph.to_mermaid() if include_diagram else None,
    )


def _run_state(stored: StoredRun) -> RunStateResponse:
    return RunStateResponse(
        execution_id=stored.execution_id,
        workflow_id=stored.workflow_id,
        goal=stored.goal,
        status=stored.status,
        current_node=stored.current_node,
        output=stored.output,
        steps=[ExecutionStepEntry(**s) for s in stored.steps],
        started_at=stored.started_at.isoformat(),
        completed_at=stored.completed_at.isoformat() if stored.completed_at else None,
        error=stored.error,
    )


def create_executor(
    graph: WorkflowGraph,
    execution_id: str,
    invoker: AgentInvoker,
    sessions: SessionManager,
    channel: Optional[ProgressChannel] = None,
) -> WorkflowExecutor:
    """Build an executor wired to the global registries and run storage."""

    async def on_step(step: ExecutionStep, context: ExecutionContext):
        await run_storage.add_step(execution_id, step.to_dict())

    return WorkflowExecutor(
        graph,
        agents=agent_registry,
        invoker=invoker,
        sessions=sessions,
        telemetry=execution_log_storage,
        channel=channel,
        execution_id=execution_id,
        on_step=on_step,
        agent_timeout=settings.AGENT_TIMEOUT,
        default_delay_ms=settings.DEFAULT_DELAY_MS,
    )


async def execute_and_track(executor: WorkflowExecutor, goal: str) -> ExecutionResult:
    """Run the executor and store the outcome on its run record."""
    try:
        result = await executor.run(goal)
    except asyncio.CancelledError:
        await run_storage.finish(executor.execution_id, "cancelled", "Workflow cancelled.")
        raise
    await run_storage.finish(
        executor.execution_id,
        result.status.value,
        result.output,
        result.error,
    )
    return result


async def _stream_events(
    executor: WorkflowExecutor,
    channel: ProgressChannel,
    goal: str,
) -> AsyncGenerator[str, None]:
    """
    Drive a run in the background and relay its events as SSE frames.

    Leaving the generator early (client disconnect) cancels the run.
    """
    task = asyncio.create_task(execute_and_track(executor, goal))
    task.add_done_callback(lambda _: channel.close_nowait())

    try:
        async for event in channel:
            yield f"data: {event.to_json()}\n\n"

        await task

    except Exception as e:
        logger.exception(f"Streaming run {executor.execution_id} failed: {e}")
        yield f"data: {ProgressEvent.failure(str(e)).to_json()}\n\n"

    finally:
        if not task.done():
            logger.info(f"Client left, cancelling run {executor.execution_id}")
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass


# ============================================================
# Execution Endpoints
# ============================================================

@router.post(
    "/run-stream",
    responses={
        200: {"content": {"text/event-stream": {}}, "description": "Progress events"},
        400: {"model": ErrorResponse, "description": "Invalid workflow"},
    },
)
async def run_workflow_stream(
    request: WorkflowRunRequest,
    invoker: AgentInvoker = Depends(get_invoker),
    sessions: SessionManager = Depends(get_session_manager),
) -> StreamingResponse:
    """
    Run an ad-hoc workflow and stream its progress.

    Each event is a `data: {json}` frame of type node-executing,
    node-finished, final-response or error. The stream ends after
    final-response or error.
    """
    graph = _build_graph(_dump(request.nodes), _dump(request.edges))

    execution_id = str(uuid4())
    await run_storage.create(execution_id, request.goal)

    channel = ProgressChannel(maxsize=settings.PROGRESS_QUEUE_SIZE)
    executor = create_executor(graph, execution_id, invoker, sessions, channel=channel)

    logger.info(f"Streaming run {execution_id} ({len(graph)} nodes)")

    return StreamingResponse(
        _stream_events(executor, channel, request.goal),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
            "X-Execution-Id": execution_id,
        },
    )


@router.get(
    "/runs",
    response_model=RunListResponse,
)
async def list_runs(workflow_id: Optional[str] = None) -> RunListResponse:
    """List runs, optionally only those of one saved workflow."""
    if workflow_id:
        runs = await run_storage.list_by_workflow(workflow_id)
    else:
        runs = await run_storage.list_all()

    run_states = [_run_state(r) for r in runs]
    return RunListResponse(runs=run_states, total=len(run_states))


@router.get(
    "/runs/{execution_id}",
    response_model=RunStateResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_run(execution_id: str) -> RunStateResponse:
    """Get the current state of a run."""
    stored = await run_storage.get(execution_id)
    if not stored:
        raise HTTPException(
            status_code=404,
            detail=f"Run '{execution_id}' not found"
        )
    return _run_state(stored)


@router.post(
    "/{workflow_id}/run",
    response_model=WorkflowRunResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid workflow"},
        403: {"model": ErrorResponse, "description": "API access disabled"},
        404: {"model": ErrorResponse, "description": "Workflow not found"},
    },
)
async def run_saved_workflow(
    workflow_id: str,
    request: Optional[StoredWorkflowRunRequest] = None,
    invoker: AgentInvoker = Depends(get_invoker),
    sessions: SessionManager = Depends(get_session_manager),
) -> WorkflowRunResponse:
    """
    Run a saved workflow to completion.

    The saved goal is used unless the request overrides it. A failed
    run is still a 200 response; check `status` and `error`.
    """
    stored = await workflow_storage.get(workflow_id)
    if not stored:
        raise HTTPException(
            status_code=404,
            detail=f"Workflow '{workflow_id}' not found"
        )
    if not stored.enable_api_access:
        raise HTTPException(
            status_code=403,
            detail="API access is not enabled for this workflow"
        )

    goal = (request.goal if request else None) or stored.goal
    graph = _build_graph(stored.nodes, stored.edges)

    execution_id = str(uuid4())
    await run_storage.create(execution_id, goal, workflow_id=workflow_id)

    executor = create_executor(graph, execution_id, invoker, sessions)
    result = await execute_and_track(executor, goal)

    return WorkflowRunResponse(workflow_id=workflow_id, **result.to_dict())


# ============================================================
# Workflow CRUD Endpoints
# ============================================================

@router.get(
    "",
    response_model=WorkflowListResponse,
)
async def list_workflows() -> WorkflowListResponse:
    """List all saved workflows."""
    workflows = await workflow_storage.list_all()
    infos = [_workflow_info(w) for w in workflows]
    return WorkflowListResponse(workflows=infos, total=len(infos))


@router.post(
    "",
    response_model=WorkflowInfoResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse, "description": "Invalid workflow"}},
)
async def create_workflow(request: WorkflowCreateRequest) -> WorkflowInfoResponse:
    """
    Save a new workflow.

    The ID is derived from the name; a numeric suffix keeps it unique.
    """
    nodes, edges = _dump(request.nodes), _dump(request.edges)
    _build_graph(nodes, edges)

    base_id = _slugify(request.name)
    workflow_id = base_id
    suffix = 2
    while await workflow_storage.exists(workflow_id):
        workflow_id = f"{base_id}-{suffix}"
        suffix += 1

    stored = await workflow_storage.save(StoredWorkflow(
        workflow_id=workflow_id,
        name=request.name,
        goal=request.goal,
        description=request.description,
        enable_api_access=request.enable_api_access,
        nodes=nodes,
        edges=edges,
    ))

    logger.info(f"Created workflow: {workflow_id}")
    return _workflow_info(stored, include_diagram=True)


@router.get(
    "/{workflow_id}",
    response_model=WorkflowInfoResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_workflow(workflow_id: str) -> WorkflowInfoResponse:
    """Get a saved workflow, including a Mermaid diagram of its graph."""
    stored = await workflow_storage.get(workflow_id)
    if not stored:
        raise HTTPException(
            status_code=404,
            detail=f"Workflow '{workflow_id}' not found"
        )
    return _workflow_info(stored, include_diagram=True)


@router.put(
    "/{workflow_id}",
    response_model=WorkflowInfoResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid workflow"},
        404: {"model": ErrorResponse},
    },
)
async def update_workflow(workflow_id: str, request: WorkflowUpdateRequest) -> WorkflowInfoResponse:
    """Update a saved workflow. Fields left out of the request are kept."""
    stored = await workflow_storage.get(workflow_id)
    if not stored:
        raise HTTPException(
            status_code=404,
            detail=f"Workflow '{workflow_id}' not found"
        )

    nodes = _dump(request.nodes) if request.nodes is not None else None
    edges = _dump(request.edges) if request.edges is not None else None
    _build_graph(
        nodes if nodes is not None else stored.nodes,
        edges if edges is not None else stored.edges,
    )

    updated = await workflow_storage.update(
        workflow_id,
        name=request.name,
        description=request.description,
        goal=request.goal,
        enable_api_access=request.enable_api_access,
        nodes=nodes,
        edges=edges,
    )

    logger.info(f"Updated workflow: {workflow_id}")
    return _workflow_info(updated, include_diagram=True)


@router.delete(
    "/{workflow_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}},
)
async def delete_workflow(workflow_id: str):
    """Delete a saved workflow."""
    deleted = await workflow_storage.delete(workflow_id)
    if not deleted:
        raise HTTPException(
            status_code=404,
            detail=f"Workflow '{workflow_id}' not found"
        )

    logger.info(f"Deleted workflow: {workflow_id}")
