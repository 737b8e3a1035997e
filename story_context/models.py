"""Core domain models.

All traversal, selection and assembly functions operate on these types.
Pydantic is used for validation and serialisation at every data boundary.

Field names are snake_case; camelCase aliases are accepted on input so that
records exported from the story app (``nodeId``, ``includeInFull``, ...)
validate unchanged.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MessageType = Literal["chapter", "event", "branch"]
NodeType = Literal["book", "arc", "chapter", "scene"]
ContextType = Literal["story", "query", "smart-story"]
ChatRole = Literal["system", "user", "assistant"]
CacheTTL = Literal["5m", "1h"]

# includeInFull values
OMIT = 0
SUMMARY_ONLY = 1
FULL_CONTENT = 2


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BranchOption(_Record):
    """One choice offered by a branch message."""

    id: str
    label: str
    target_node_id: str
    target_message_id: str
    description: str | None = None


class Message(_Record):
    """A single narrative beat or query turn on the story timeline."""

    id: str
    order: int = 0
    role: ChatRole = "assistant"
    content: str = ""
    instruction: str | None = None  # user direction; the question on query turns
    is_query: bool = False
    sentence_summary: str | None = None
    summary: str | None = None
    paragraph_summary: str | None = None
    node_id: str | None = None
    chapter_id: str | None = None  # legacy container
    type: MessageType | None = None
    options: list[BranchOption] = Field(default_factory=list)  # branch messages only
    is_compacted: bool = False

    @property
    def is_branch(self) -> bool:
        return self.type == "branch" and bool(self.options)


class Node(_Record):
    """An element of the book → arc → chapter → scene tree."""

    id: str
    parent_id: str | None = None
    type: NodeType
    title: str = ""
    order: int = 0
    summary: str | None = None
    include_in_full: int = SUMMARY_ONLY  # 0 omit, 1 summary only, 2 full content
    goal: str | None = None
    viewpoint_character_id: str | None = None


class Chapter(_Record):
    """Legacy flat chapter record, superseded by chapter-type nodes."""

    id: str
    title: str = ""
    order: int = 0
    summary: str | None = None
    include_in_full: int = SUMMARY_ONLY


class Character(_Record):
    id: str
    name: str
    description: str = ""
    is_main_character: bool = False


class ActivePath(BaseModel):
    """Messages and nodes on the storyline implied by the current branch choices."""

    active_message_ids: set[str] = Field(default_factory=set)
    active_node_ids: set[str] = Field(default_factory=set)


class ModelCapabilities(BaseModel):
    """What the engine needs to know about a model, supplied by configuration."""

    supports_prompt_caching: bool = False
    treats_current_container_as_always_full: bool = False


class CacheControl(BaseModel):
    """Provider cache hint; immutable so one hint can mark several blocks."""

    model_config = ConfigDict(frozen=True)

    type: Literal["ephemeral"] = "ephemeral"
    ttl: CacheTTL = "1h"


class ChatMessage(BaseModel):
    """One role-tagged block of the assembled context."""

    role: ChatRole
    content: str
    cache_control: CacheControl | None = None

    def to_wire(self) -> dict:
        """Provider-facing dict; blocks without a cache hint carry no key for it."""
        return self.model_dump(exclude_none=True)


class ContextOptions(_Record):
    """Inputs of one context assembly call."""

    input_text: str
    messages: list[Message] = Field(default_factory=list)
    context_type: ContextType = "story"

    # story voice
    story_setting: str = ""
    person: str | None = None
    tense: str | None = None
    protagonist_name: str | None = None
    viewpoint_character_name: str | None = None
    paragraphs_per_turn: int | None = None

    # context data
    character_context: str | None = None
    characters: list[Character] = Field(default_factory=list)
    context_items: list[dict] = Field(default_factory=list)

    # containers
    chapters: list[Chapter] = Field(default_factory=list)
    nodes: list[Node] = Field(default_factory=list)
    target_message_id: str | None = None

    branch_choices: dict[str, str] = Field(default_factory=dict)

    model: str | None = None
    capabilities: ModelCapabilities | None = None  # overrides the registry lookup

    include_query_history: bool = False
    max_query_history: int | None = None
    force_missing_summaries: bool = False


class Story(_Record):
    """Stored story metadata: voice settings and the reader's branch choices."""

    slug: str
    title: str = ""
    setting: str = ""
    person: str | None = None
    tense: str | None = None
    protagonist_name: str | None = None
    paragraphs_per_turn: int | None = None
    branch_choices: dict[str, str] = Field(default_factory=dict)
