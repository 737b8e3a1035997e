"""FastMCP server exposing context assembly as MCP tools.

Tools:
  - assemble_context(options)                       — {"messages": [...]} for one call
  - resolve_active_path(messages, nodes, choices)   — ids on the chosen storyline
  - story_stats(messages, model, nodes, ...)        — word count and token estimate

Records use the same shape as the HTTP API (snake_case or camelCase keys).
Settings and the model registry come from STORY_CONTEXT_CONFIG when set;
set_config() replaces them for tests.

Usage:
    uv run python -m backend.mcp_server
"""

from mcp.server.fastmcp import FastMCP

from story_context import branches, pipeline
from story_context.config import AppConfig, load_config
from story_context.models import ContextOptions, Message, Node


mcp = FastMCP("story-context")

_config: AppConfig | None = None


def set_config(config: AppConfig | None) -> None:
    """Replace the active config (used in tests); None reloads from disk."""
    global _config
    _config = config


def get_config() -> AppConfig:
    global _config
    if _config is None:
        _config = load_config()
    return _config


@mcp.tool()
async def assemble_context(options: dict) -> dict:
    """Assemble the context message list for a story continuation or question.

    Fails with the validation message when previous chapters lack summaries
    or an unorganized story is too long for the model.
    """
    config = get_config()
    messages = await pipeline.generate_context_messages(
        ContextOptions.model_validate(options),
        registry=config.registry(),
        settings=config.engine,
    )
    return {"messages": [m.to_wire() for m in messages]}


@mcp.tool()
def resolve_active_path(messages: list[dict], nodes: list[dict], branch_choices: dict[str, str]) -> dict:
    """Return the message and node ids on the storyline selected by branch_choices."""
    path = branches.resolve_active_path(
        [Message.model_validate(m) for m in messages],
        [Node.model_validate(n) for n in nodes],
        branch_choices,
    )
    return {
        "active_message_ids": sorted(path.active_message_ids),
        "active_node_ids": sorted(path.active_node_ids),
    }


@mcp.tool()
def story_stats(
    messages: list[dict],
    model: str | None = None,
    nodes: list[dict] | None = None,
    chapters: list[dict] | None = None,
    branch_choices: dict[str, str] | None = None,
) -> dict:
    """Word count of the story and the estimated token size of the context it would send."""
    config = get_config()
    options = ContextOptions.model_validate({
        "input_text": "",
        "messages": messages,
        "nodes": nodes or [],
        "chapters": chapters or [],
        "branch_choices": branch_choices or {},
        "model": model,
    })
    stats = pipeline.story_stats(options, registry=config.registry(), settings=config.engine)
    return stats.model_dump()


if __name__ == "__main__":
    from dotenv import load_dotenv

    load_dotenv()
    mcp.run()
