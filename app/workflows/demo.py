"""
Research Demo Workflow.

A sample workflow showing the engine's node kinds:
1. The Coordinator Agent researches the goal (delegating where useful)
2. A short pause
3. The summarizer condenses the research into bullet points
"""

from typing import Optional
import logging

from app.agents.registry import agent_registry
from app.engine.executor import ExecutionResult, execute_workflow
from app.engine.graph import START_NODE_ID, WorkflowGraph
from app.storage.memory import StoredWorkflow, workflow_storage


logger = logging.getLogger(__name__)


DEMO_WORKFLOW_ID = "research-demo"

DEMO_GOAL = "Write a short briefing on the history of the Lisbon tram network."


def create_demo_workflow() -> StoredWorkflow:
    """Build the research demo as it would be saved from the editor."""
    nodes = [
        {
            "id": START_NODE_ID,
            "type": "goalNode",
            "data": {"goal": DEMO_GOAL},
        },
        {
            "id": "research",
            "type": "customAgentNode",
            "data": {
                "agentName": "Coordinator Agent",
                "task": "Collect the key facts, dates and figures needed for the goal.",
            },
        },
        {
            "id": "pause",
            "type": "delayNode",
            "data": {"delayMs": 250},
        },
        {
            "id": "summarize",
            "type": "customAgentNode",
            "data": {
                "agentName": "non-api-agent",
                "task": "Summarize the previous step's result in at most five bullet points.",
            },
        },
    ]
    edges = [
        {"id": "e-goal-research", "source": START_NODE_ID, "target": "research"},
        {"id": "e-research-pause", "source": "research", "target": "pause"},
        {"id": "e-pause-summarize", "source": "pause", "target": "summarize"},
    ]

    return StoredWorkflow(
        workflow_id=DEMO_WORKFLOW_ID,
        name="Research Demo",
        goal=DEMO_GOAL,
        description="Researches a topic, pauses, then summarizes the findings.",
        enable_api_access=True,
        nodes=nodes,
        edges=edges,
    )


async def register_demo_workflow() -> StoredWorkflow:
    """
    Register the demo workflow in storage.

    This makes the workflow available immediately via the API
    without needing to create it first.
    """
    workflow = await workflow_storage.save(create_demo_workflow())
    logger.info(f"Registered demo workflow with ID: {DEMO_WORKFLOW_ID}")
    return workflow


async def run_demo(invoker, goal: Optional[str] = None) -> ExecutionResult:
    """
    Run the demo workflow outside the API.

    Usage:
        import asyncio
        from app.api.deps import get_invoker
        from app.workflows.demo import run_demo
        result = asyncio.run(run_demo(get_invoker()))
    """
    workflow = create_demo_workflow()
    graph = WorkflowGraph.from_payload(workflow.nodes, workflow.edges)
    return await execute_workflow(graph, goal or workflow.goal, agents=agent_registry, invoker=invoker)
