"""
AgentDeck - A dashboard backend for authoring, testing and running agents and workflows.

Workflows are graphs of agent and delay steps executed one at a time, with
each step's output threaded into the next and progress streamed to the caller.
"""

__version__ = "1.0.0"
