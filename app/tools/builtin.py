"""
Built-in Tools.

Importing this module registers the stock tools in the global registry:
arithmetic, web search, delegation to another agent, and browser control
for agents that run with an execution session.
"""

from typing import List
import ast
import logging
import operator

import httpx

from app.config import settings
from app.engine.state import AmbientContext
from app.tools.registry import register_tool


logger = logging.getLogger(__name__)


# ============================================================
# Calculator
# ============================================================

_BIN_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

_UNARY_OPS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


def _evaluate(node: ast.AST) -> float:
    if isinstance(node, ast.Expression):
        return _evaluate(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _BIN_OPS:
        return _BIN_OPS[type(node.op)](_evaluate(node.left), _evaluate(node.right))
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_evaluate(node.operand))
    raise ValueError(f"Unsupported expression element: {type(node).__name__}")


def evaluate_expression(expression: str) -> float:
    """Evaluate a plain arithmetic expression without eval()."""
    tree = ast.parse(expression, mode="eval")
    return _evaluate(tree)


@register_tool(
    name="calculator",
    description="Evaluates a plain arithmetic expression such as '(2 + 3) * 4 / 5'.",
)
def calculator(context: AmbientContext, expression: str) -> str:
    try:
        result = evaluate_expression(expression)
    except (SyntaxError, ValueError, ZeroDivisionError) as e:
        return f"Could not evaluate '{expression}': {e}"
    return str(result)


# ============================================================
# Web Search
# ============================================================

@register_tool(
    name="web_search",
    description="Searches the web for current information and returns a short list of results.",
)
async def web_search(context: AmbientContext, query: str) -> str:
    if not settings.TAVILY_API_KEY:
        return "Web search is not configured (TAVILY_API_KEY is not set)."

    async with httpx.AsyncClient(timeout=15.0) as client:
        resp = await client.post(
            "https://api.tavily.com/search",
            json={
                "api_key": settings.TAVILY_API_KEY,
                "query": query,
                "max_results": 5,
                "include_answer": True,
            },
        )
        resp.raise_for_status()
        data = resp.json()

    parts: List[str] = []
    if data.get("answer"):
        parts.append(f"Summary: {data['answer']}\n")
    for r in data.get("results", []):
        parts.append(f"- {r.get('title', 'Untitled')}: {r.get('content', '')[:200]}")
        parts.append(f"  URL: {r.get('url', '')}")

    return "\n".join(parts) if parts else "No results found."


# ============================================================
# Delegation
# ============================================================

@register_tool(
    name="delegate_task",
    description="Delegates a sub-task to another agent by its exact name and returns that agent's answer.",
)
async def delegate_task(context: AmbientContext, agent_name: str, task: str) -> str:
    if context.agents is None or context.invoker is None:
        return "Delegation is not available in this context."

    agent = context.agents.resolve(agent_name)
    if agent is None:
        return f"Agent '{agent_name}' not found."

    logger.info(f"Delegating to agent '{agent_name}' (execution {context.execution_id})")
    result = await context.invoker.invoke(agent, task, context)
    return result.text or "No output from the delegated agent."


# ============================================================
# Browser
# ============================================================

PAGE_CONTENT_LIMIT = 4000


def _get_page(context: AmbientContext):
    session = context.session()
    if session is None:
        raise RuntimeError("Browser is not initialized for this workflow execution.")
    return session.page


@register_tool(
    name="navigate_to_url",
    description="Navigates to a web URL. This must be the first browser step.",
    requires_session=True,
)
async def navigate_to_url(context: AmbientContext, url: str) -> str:
    page = _get_page(context)
    await page.goto(url)
    return f"Successfully navigated to {url}."


@register_tool(
    name="type_text",
    description="Types text into an element identified by a CSS selector, e.g. 'input#departure-city'.",
    requires_session=True,
)
async def type_text(context: AmbientContext, selector: str, text: str) -> str:
    page = _get_page(context)
    await page.type(selector, text, delay=100)
    return f'Successfully typed "{text}" into element "{selector}".'


@register_tool(
    name="click_element",
    description="Clicks an element (button, link) identified by a CSS selector.",
    requires_session=True,
)
async def click_element(context: AmbientContext, selector: str) -> str:
    page = _get_page(context)
    await page.click(selector)
    return f'Successfully clicked element "{selector}".'


@register_tool(
    name="read_page_content",
    description="Reads the visible text of the current page. Use it after navigating or clicking to see the result.",
    requires_session=True,
)
async def read_page_content(context: AmbientContext) -> str:
    page = _get_page(context)
    await page.wait_for_load_state("networkidle")
    content = await page.evaluate("() => document.body.innerText")
    return content[:PAGE_CONTENT_LIMIT]
