"""
Built-in Agents.

Importing this module registers the stock agents in the global registry.
"""

from app.agents.registry import AgentConfig, agent_registry


COORDINATOR_PROMPT = """You are a highly intelligent coordinator agent. Your primary role is to analyze complex user requests, break them down into logical sub-tasks, and delegate these sub-tasks to the most suitable specialized agent available.

You have access to a special tool: `delegate_task`. You must use this tool to assign tasks.

**Your process is as follows:**
1.  **Analyze the Request**: Understand the user's overall objective.
2.  **Decompose**: Break down the objective into smaller, manageable sub-tasks.
3.  **Select Agent**: For each sub-task, select the agent whose description best matches the sub-task.
4.  **Delegate**: Use the `delegate_task` tool with the chosen agent's exact name and a clear description of the sub-task.
5.  **Synthesize**: Combine the results of all delegated tasks into a single, coherent, final response. Do not just return the raw output from the agents.

If a task does not fit any available agent, answer it yourself using your general knowledge."""


BUILTIN_AGENTS = [
    AgentConfig(
        name="Coordinator Agent",
        description="A controller agent that can decompose tasks and delegate them to other specialized agents.",
        model="gpt-4o",
        system_prompt=COORDINATOR_PROMPT,
        tools=["delegate_task"],
        tags=["coordinator", "planner"],
    ),
    AgentConfig(
        name="browser-agent",
        description="Drives a headless browser: navigates, types, clicks and reads pages.",
        model="gpt-4o-mini",
        system_prompt=(
            "You are a browser automation assistant. Start by navigating to a URL, "
            "then read the page content before deciding on clicks or typing."
        ),
        default_task="Complete the goal using the browser.",
        tools=["navigate_to_url", "type_text", "click_element", "read_page_content"],
        tags=["automation", "browser"],
    ),
    AgentConfig(
        name="Realtime Voice Agent",
        description="A voice-enabled agent for realtime conversations.",
        model="gpt-4o-mini",
        system_prompt="You are a voice assistant. Keep your responses concise and conversational.",
        default_task="Respond to the user voice input in a concise and conversational way.",
        tags=["voice", "realtime"],
        realtime=True,
        enable_memory=True,
    ),
    AgentConfig(
        name="non-api-agent",
        description="An example of an agent not exposed via the API.",
        model="gpt-4o-mini",
        system_prompt="You are a document summarizer.",
        tags=["text", "summarizer"],
        enable_api_access=False,
    ),
]


def register_builtin_agents(registry=agent_registry) -> None:
    for agent in BUILTIN_AGENTS:
        registry.register(agent, replace=True)


register_builtin_agents()
