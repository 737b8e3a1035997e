"""Context assembly, stats, and active-path endpoints."""

from fastapi import APIRouter, Depends, HTTPException

from backend import state
from story_context.branches import resolve_active_path
from story_context.models import ContextOptions
from story_context.pipeline import (
    ContextValidationError,
    generate_context_messages,
    messages_in_context,
    story_stats,
)

from .models import (
    ActivePathBody,
    ActivePathResponse,
    ContextResponse,
    StatsBody,
    StatsResponse,
    StoryContextQuery,
)

router = APIRouter()


async def _assemble(options: ContextOptions) -> ContextResponse:
    config = state.get_settings()
    try:
        messages = await generate_context_messages(
            options, registry=config.registry(), settings=config.engine
        )
    except ContextValidationError as e:
        raise HTTPException(422, str(e))
    return ContextResponse(messages=messages)


@router.post("/context")
async def assemble_context(body: ContextOptions) -> ContextResponse:
    """Assemble the context message list for one generation call."""
    return await _assemble(body)


@router.post("/context/stats")
async def context_stats(body: StatsBody) -> StatsResponse:
    """Word count and token estimate of a story, plus the messages that fit the model."""
    config = state.get_settings()
    registry = config.registry()
    stats = story_stats(body, registry=registry, settings=config.engine)

    entry = registry.get(body.model)
    context_size = body.context_size or (entry.context_size if entry else None)
    in_context = None
    if context_size:
        in_context = sorted(
            messages_in_context(body, context_size, registry=registry, settings=config.engine)
        )
    return StatsResponse(stats=stats, messages_in_context=in_context)


@router.post("/active-path")
async def active_path(body: ActivePathBody) -> ActivePathResponse:
    """Messages and nodes on the storyline selected by the branch choices."""
    path = resolve_active_path(body.messages, body.nodes, body.branch_choices)
    return ActivePathResponse(
        active_message_ids=sorted(path.active_message_ids),
        active_node_ids=sorted(path.active_node_ids),
    )


@router.get("/stories")
async def list_stories():
    """List stored stories."""
    return [story.model_dump() for story in state.store().list_stories()]


@router.get("/stories/{slug}/context")
async def story_context(slug: str, query: StoryContextQuery = Depends()) -> ContextResponse:
    """Assemble context for a stored story."""
    try:
        options = state.store().build_options(
            slug,
            query.input,
            model=query.model,
            context_type=query.context_type,
            target_message_id=query.target,
            force_missing_summaries=query.force,
        )
    except KeyError:
        raise HTTPException(404, "Story not found")
    return await _assemble(options)
