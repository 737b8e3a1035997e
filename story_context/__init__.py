"""Context assembly and token-budget engine for branching, chaptered stories."""

from story_context.models import ChatMessage, ContextOptions  # noqa: F401
from story_context.pipeline import (  # noqa: F401
    ContextValidationError,
    MissingSummariesError,
    OversizedFlatStoryError,
    generate_context_messages,
)
