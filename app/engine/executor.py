"""
Async Workflow Executor.

The executor walks a workflow graph from the goal node, running one step
at a time: agent steps call the agent invoker, delay steps sleep. Each
step's output becomes the "previous step result" of the next. Progress
is published to a ProgressChannel and every agent call is recorded in
the telemetry sink.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import asyncio
import inspect
import logging
import time
import uuid

from app.engine.errors import (
    AgentInvocationError,
    WorkflowConfigurationError,
    WorkflowError,
    WorkflowExecutionError,
)
from app.engine.events import ProgressChannel, ProgressEvent
from app.engine.graph import START_NODE_ID, NodeKind, WorkflowGraph, WorkflowNode
from app.engine.session import SessionManager
from app.engine.state import AmbientContext, ExecutionContext
from app.engine.telemetry import ExecutionLogEntry, TelemetrySink


logger = logging.getLogger(__name__)


NO_OUTPUT = "No output from this step."

STEP_PROMPT = (
    "Based on the overall goal and the previous step's result, perform your task.\n"
    "\nOverall Goal: \"{goal}\"\n"
    "\nPrevious Step Result: \"{previous}\"\n"
    "\nYour Specific Task for this step: \"{task}\""
)


def build_step_prompt(goal: str, previous_output: str, task: str) -> str:
    """Assemble the prompt for an agent step."""
    return STEP_PROMPT.format(goal=goal, previous=previous_output, task=task)


class AgentResolver(Protocol):
    def resolve(self, name: str) -> Optional[Any]:
        ...


class ExecutionStatus(str, Enum):
    """Status of a workflow execution."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ExecutionStep:
    """A single step in the execution log."""
    step: int
    node_id: str
    kind: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[float] = None
    result: str = "success"
    error: Optional[str] = None
    agent_name: Optional[str] = None
    output: Optional[str] = None
    usage: Optional[Dict[str, int]] = None
    tool_calls: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "node_id": self.node_id,
            "kind": self.kind,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": self.duration_ms,
            "result": self.result,
            "error": self.error,
            "agent_name": self.agent_name,
            "output": self.output,
            "usage": self.usage,
            "tool_calls": self.tool_calls,
        }


@dataclass
class ExecutionResult:
    """Result of a workflow execution."""
    execution_id: str
    status: ExecutionStatus
    output: str
    steps: List[ExecutionStep] = field(default_factory=list)
    visited: List[str] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    total_duration_ms: Optional[float] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.COMPLETED

    def raise_for_status(self) -> "ExecutionResult":
        """Raise WorkflowExecutionError unless the run completed."""
        if not self.succeeded:
            raise WorkflowExecutionError(self)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "execution_id": self.execution_id,
            "status": self.status.value,
            "output": self.output,
            "steps": [step.to_dict() for step in self.steps],
            "visited": self.visited,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "total_duration_ms": self.total_duration_ms,
            "error": self.error,
        }


StepCallback = Callable[[ExecutionStep, ExecutionContext], Optional[Awaitable[None]]]


class WorkflowExecutor:
    """
    Async workflow executor.

    Runs a graph as a single path starting at the goal node:
    - Strictly sequential, one step at a time
    - Only the first outgoing edge of a node is followed
    - A node that was already visited ends the run (cycle guard)
    - Any configuration, invocation or session error aborts the run
    - The execution's session, if one was created, is always released

    Usage:
        executor = WorkflowExecutor(graph, agents=agent_registry, invoker=invoker)
        result = await executor.run("Plan a trip to Lisbon")
    """

    def __init__(
        self,
        graph: WorkflowGraph,
        agents: AgentResolver,
        invoker,
        sessions: Optional[SessionManager] = None,
        telemetry: Optional[TelemetrySink] = None,
        channel: Optional[ProgressChannel] = None,
        execution_id: Optional[str] = None,
        on_step: Optional[StepCallback] = None,
        agent_timeout: Optional[float] = None,
        default_delay_ms: int = 1000,
    ):
        """
        Initialize the executor.

        Args:
            graph: The workflow graph to execute
            agents: Resolves agent names to configurations
            invoker: Calls agents (see app.agents.invoker.AgentInvoker)
            sessions: Session manager for agents that need a browser
            telemetry: Sink for per-invocation log entries
            channel: Progress channel to publish events to
            execution_id: Run ID (generated if not provided)
            on_step: Optional callback after each step (sync or async)
            agent_timeout: Seconds before an agent call is abandoned
            default_delay_ms: Delay used by delay nodes without a valid value
        """
        self.graph = graph
        self.agents = agents
        self.invoker = invoker
        self.sessions = sessions
        self.telemetry = telemetry
        self.channel = channel
        self.execution_id = execution_id or str(uuid.uuid4())
        self.on_step = on_step
        self.agent_timeout = agent_timeout
        self.default_delay_ms = default_delay_ms

        # Execution state
        self._context: Optional[ExecutionContext] = None
        self._steps: List[ExecutionStep] = []
        self._step_counter = 0
        self._status = ExecutionStatus.PENDING
        self._cancelled = False

    @property
    def status(self) -> ExecutionStatus:
        return self._status

    @property
    def context(self) -> Optional[ExecutionContext]:
        return self._context

    @property
    def current_node(self) -> Optional[str]:
        return self._context.current_node if self._context else None

    def cancel(self) -> None:
        """Stop the run before its next step."""
        self._cancelled = True

    async def run(self, goal: str) -> ExecutionResult:
        """
        Execute the workflow.

        Args:
            goal: The overall objective of the run

        Returns:
            ExecutionResult; failures are reported in it, not raised
        """
        start_time = time.time()
        self._status = ExecutionStatus.RUNNING
        self._context = ExecutionContext.start(self.execution_id, goal)
        context = self._context

        logger.info(f"Workflow execution {self.execution_id} started ({len(self.graph)} nodes)")

        try:
            current_id = self.graph.first_successor(START_NODE_ID)
            logger.info(f"First node: {current_id}")

            while current_id is not None:
                if self._cancelled:
                    logger.info(f"Execution cancelled before node '{current_id}'")
                    return await self._finish_with_error(
                        "Workflow cancelled.", start_time, ExecutionStatus.CANCELLED
                    )

                if context.has_visited(current_id):
                    logger.info(f"Node '{current_id}' already visited, ending traversal")
                    break
                context.mark_visited(current_id)

                node = self.graph.node_by_id(current_id)
                if node is None:
                    raise WorkflowConfigurationError(
                        f"Node with ID '{current_id}' not found in workflow."
                    )

                await self._emit(ProgressEvent.node_executing(current_id))
                await self._execute_node(node)
                await self._emit(ProgressEvent.node_finished(current_id, context.previous_output))

                current_id = self.graph.first_successor(current_id)
                logger.debug(f"Next node: {current_id}")

            self._status = ExecutionStatus.COMPLETED
            context.finalize()
            await self._emit(ProgressEvent.final_response(context.previous_output))
            logger.info(f"Workflow execution {self.execution_id} completed")

            return ExecutionResult(
                execution_id=self.execution_id,
                status=self._status,
                output=context.previous_output,
                steps=self._steps,
                visited=[s.node_id for s in self._steps],
                started_at=context.started_at,
                completed_at=context.completed_at,
                total_duration_ms=(time.time() - start_time) * 1000,
            )

        except WorkflowError as e:
            logger.error(f"Workflow execution {self.execution_id} failed: {e}")
            return await self._finish_with_error(str(e), start_time)

        except asyncio.CancelledError:
            logger.info(f"Workflow execution {self.execution_id} was cancelled")
            self._status = ExecutionStatus.CANCELLED
            if self.channel is not None:
                self.channel.close_nowait()
            raise

        except Exception as e:
            logger.exception(f"Workflow execution {self.execution_id} crashed: {e}")
            return await self._finish_with_error(str(e), start_time)

        finally:
            if self.sessions is not None:
                await self.sessions.release(self.execution_id)

    async def _execute_node(self, node: WorkflowNode) -> ExecutionStep:
        """Execute a single node and thread its output."""
        self._step_counter += 1
        node_start_time = time.time()
        step = ExecutionStep(
            step=self._step_counter,
            node_id=node.id,
            kind=node.kind.value,
            started_at=datetime.now(),
        )

        logger.info(f"Executing node: {node.id} ({node.kind.value}, step {self._step_counter})")

        try:
            if node.kind == NodeKind.AGENT:
                output = await self._run_agent_step(node, step)
            elif node.kind == NodeKind.DELAY:
                output = await self._run_delay_step(node)
            else:
                output = self._context.previous_output

            self._context.record_output(node.id, output)
            step.output = output
            step.result = "success"

        except WorkflowError as e:
            step.result = "error"
            step.error = str(e)
            raise

        finally:
            step.completed_at = datetime.now()
            step.duration_ms = (time.time() - node_start_time) * 1000
            self._steps.append(step)
            await self._notify(step)

        return step

    async def _run_agent_step(self, node: WorkflowNode, step: ExecutionStep) -> str:
        context = self._context

        agent_name = node.agent_name
        if not agent_name:
            raise WorkflowConfigurationError(f"Agent not selected for node ID {node.id}.")

        agent = self.agents.resolve(agent_name)
        if agent is None:
            raise WorkflowConfigurationError(f"Agent definition for '{agent_name}' not found.")
        step.agent_name = agent_name

        task = node.task or agent.default_task or context.goal
        if not task:
            raise WorkflowConfigurationError(f"No task given for node ID {node.id}.")

        if self.sessions is not None and self.sessions.requires_session(agent):
            await self.sessions.ensure(self.execution_id)

        prompt = build_step_prompt(context.goal, context.previous_output, task)
        ambient = AmbientContext(
            execution_id=self.execution_id,
            sessions=self.sessions,
            agents=self.agents,
            invoker=self.invoker,
        )

        call_start = time.time()
        try:
            invocation = self.invoker.invoke(agent, prompt, ambient)
            if self.agent_timeout:
                result = await asyncio.wait_for(invocation, timeout=self.agent_timeout)
            else:
                result = await invocation
        except asyncio.TimeoutError:
            message = f"Agent call timed out after {self.agent_timeout}s"
            await self._record_failure(agent_name, call_start, message)
            raise AgentInvocationError(f"Error in agent step '{agent_name}': {message}")
        except Exception as e:
            message = str(e) or type(e).__name__
            await self._record_failure(agent_name, call_start, message)
            raise AgentInvocationError(f"Error in agent step '{agent_name}': {message}") from e

        latency_ms = (time.time() - call_start) * 1000
        usage = result.usage
        await self._record(ExecutionLogEntry(
            agent_name=agent_name,
            status="success",
            latency_ms=latency_ms,
            execution_id=self.execution_id,
            input_tokens=usage.input_tokens if usage else None,
            output_tokens=usage.output_tokens if usage else None,
            total_tokens=usage.total_tokens if usage else None,
        ))

        if usage:
            step.usage = {
                "input_tokens": usage.input_tokens,
                "output_tokens": usage.output_tokens,
                "total_tokens": usage.total_tokens,
            }
        step.tool_calls = [call.to_dict() for call in result.tool_trace or []]

        return result.text or NO_OUTPUT

    async def _run_delay_step(self, node: WorkflowNode) -> str:
        delay_ms = node.delay_ms(self.default_delay_ms)
        logger.info(f"Delaying for {delay_ms}ms")
        await asyncio.sleep(delay_ms / 1000)
        return f"Delayed for {delay_ms}ms."

    async def _record_failure(self, agent_name: str, call_start: float, message: str) -> None:
        logger.error(f"Error in agent step '{agent_name}': {message}")
        await self._record(ExecutionLogEntry(
            agent_name=agent_name,
            status="error",
            latency_ms=(time.time() - call_start) * 1000,
            execution_id=self.execution_id,
            error_details=message,
        ))

    async def _record(self, entry: ExecutionLogEntry) -> None:
        """Send an entry to the telemetry sink; failures never reach the run."""
        if self.telemetry is None:
            return
        try:
            outcome = self.telemetry.append(entry)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning(f"Telemetry append failed: {e}")

    async def _notify(self, step: ExecutionStep) -> None:
        if self.on_step is None:
            return
        try:
            outcome = self.on_step(step, self._context)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning(f"Step callback failed: {e}")

    async def _emit(self, event: ProgressEvent) -> None:
        if self.channel is not None:
            await self.channel.publish(event)

    async def _finish_with_error(
        self,
        error: str,
        start_time: float,
        status: ExecutionStatus = ExecutionStatus.FAILED,
    ) -> ExecutionResult:
        """Publish the error event and build the failed result."""
        self._status = status
        context = self._context
        context.finalize()

        if self.channel is not None and not self.channel.closed:
            await self.channel.publish(ProgressEvent.failure(error))

        output = f"Workflow failed. {error}" if status == ExecutionStatus.FAILED else error
        return ExecutionResult(
            execution_id=self.execution_id,
            status=status,
            output=output,
            steps=self._steps,
            visited=[s.node_id for s in self._steps],
            started_at=context.started_at,
            completed_at=context.completed_at,
            total_duration_ms=(time.time() - start_time) * 1000,
            error=error,
        )


async def execute_workflow(
    graph: WorkflowGraph,
    goal: str,
    agents: AgentResolver,
    invoker,
    **kwargs,
) -> ExecutionResult:
    """
    Convenience function to execute a workflow.

    Args:
        graph: The workflow graph
        goal: The overall objective
        agents: Agent resolver
        invoker: Agent invoker
        **kwargs: Passed through to WorkflowExecutor

    Returns:
        ExecutionResult
    """
    executor = WorkflowExecutor(graph, agents=agents, invoker=invoker, **kwargs)
    return await executor.run(goal)
