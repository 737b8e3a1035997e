"""Context assembly pipeline.

Builds the message list for one generation call:
  1. Active path   — follow the reader's branch choices through the story graph.
  2. Spine         — narrative messages on that path, in story order.
  3. Containers    — previous chapters as skip / summary / full, per include-in-full.
  4. Current tail  — the current chapter through the tiered summarizer selector.
  5. Extras        — character context, query history, the final direction block.

`smart-story` contexts first ask a scene-relevance analyzer for hand-picked
messages and fall back to the tiered path on timeout or failure.

Size estimates (`story_stats`, `messages_in_context`) measure the blocks of
steps 1–4 exactly as assembly emits them.
"""

from .assembler import generate_context_messages  # noqa: F401
from .errors import (  # noqa: F401
    ContextValidationError,
    MissingSummariesError,
    OversizedFlatStoryError,
)
from .estimate import messages_in_context, story_stats  # noqa: F401
from .smart import SceneRelevanceAnalyzer, select_smart_messages  # noqa: F401
