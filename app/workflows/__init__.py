"""
Workflows package - Sample workflows.
"""

from app.workflows.demo import (
    DEMO_WORKFLOW_ID,
    create_demo_workflow,
    register_demo_workflow,
    run_demo,
)

__all__ = [
    "DEMO_WORKFLOW_ID",
    "create_demo_workflow",
    "register_demo_workflow",
    "run_demo",
]
