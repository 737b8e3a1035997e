"""Pydantic request/response models for API endpoints."""

from pydantic import BaseModel, Field

from story_context.models import ChatMessage, ContextOptions, ContextType, Message, Node
from story_context.tiers import ContextStats


class StatsBody(ContextOptions):
    """Assembly options to estimate; direction text is optional here."""

    input_text: str = ""
    context_size: int | None = None  # tokens; when set, also report what fits


class StatsResponse(BaseModel):
    stats: ContextStats
    messages_in_context: list[str] | None = None  # ids, when a context size is known


class ActivePathBody(BaseModel):
    messages: list[Message]
    nodes: list[Node]
    branch_choices: dict[str, str] = Field(default_factory=dict)


class ActivePathResponse(BaseModel):
    active_message_ids: list[str]
    active_node_ids: list[str]


class StoryContextQuery(BaseModel):
    input: str = ""
    model: str | None = None
    context_type: ContextType = "story"
    target: str | None = None
    force: bool = False


class ContextResponse(BaseModel):
    messages: list[ChatMessage]
