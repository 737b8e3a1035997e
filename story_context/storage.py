"""JSON file storage for stories.

Stories are stored as flat JSON files under a configurable base directory.
The engine only reads them; `save_story` exists to write fixtures and the
demo story.

Directory layout:

    {base}/
      stories/
        {slug}.json           ← story metadata (voice settings, branch choices)
        {slug}/
          messages.json       ← list of Message records
          nodes.json          ← book / arc / chapter / scene tree
          chapters.json       ← legacy flat chapters
          characters.json     ← list of Character records
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from story_context.models import (
    Chapter,
    Character,
    ContextOptions,
    ContextType,
    Message,
    Node,
    Story,
)

logger = logging.getLogger(__name__)


class StoryStore:
    def __init__(self, base_path: Path) -> None:
        self._base = base_path
        self._story_root = base_path / "stories"
        self._story_root.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    def _story_file(self, slug: str) -> Path:
        return self._story_root / f"{slug}.json"

    def _story_dir(self, slug: str) -> Path:
        return self._story_root / slug

    def _read_json(self, path: Path) -> Any:
        return json.loads(path.read_text())

    def _write_json(self, path: Path, data: Any) -> None:
        path.write_text(json.dumps(data, indent=2))

    def _read_list(self, slug: str, name: str, model: type[BaseModel]) -> list:
        path = self._story_dir(slug) / f"{name}.json"
        if not path.exists():
            return []
        return [model.model_validate(item) for item in self._read_json(path)]

    def _write_list(self, slug: str, name: str, items: list[BaseModel]) -> None:
        self._write_json(
            self._story_dir(slug) / f"{name}.json",
            [item.model_dump(mode="json", exclude_none=True) for item in items],
        )

    # ------------------------------------------------------------------
    # Stories
    # ------------------------------------------------------------------

    def list_stories(self) -> list[Story]:
        return [
            Story.model_validate_json(path.read_text())
            for path in sorted(self._story_root.glob("*.json"))
        ]

    def get_story(self, slug: str) -> Story | None:
        path = self._story_file(slug)
        if not path.exists():
            return None
        return Story.model_validate_json(path.read_text())

    def save_story(
        self,
        story: Story,
        messages: list[Message] | None = None,
        nodes: list[Node] | None = None,
        chapters: list[Chapter] | None = None,
        characters: list[Character] | None = None,
    ) -> None:
        """Write metadata and any provided child lists; lists left as None are untouched."""
        self._story_file(story.slug).write_text(story.model_dump_json(indent=2))
        self._story_dir(story.slug).mkdir(exist_ok=True)
        for name, items in (
            ("messages", messages),
            ("nodes", nodes),
            ("chapters", chapters),
            ("characters", characters),
        ):
            if items is not None:
                self._write_list(story.slug, name, items)
        logger.debug("saved story %s", story.slug)

    # ------------------------------------------------------------------
    # Child records
    # ------------------------------------------------------------------

    def get_messages(self, slug: str) -> list[Message]:
        return self._read_list(slug, "messages", Message)

    def get_nodes(self, slug: str) -> list[Node]:
        return self._read_list(slug, "nodes", Node)

    def get_chapters(self, slug: str) -> list[Chapter]:
        return self._read_list(slug, "chapters", Chapter)

    def get_characters(self, slug: str) -> list[Character]:
        return self._read_list(slug, "characters", Character)

    # ------------------------------------------------------------------
    # Context options
    # ------------------------------------------------------------------

    def build_options(
        self,
        slug: str,
        input_text: str,
        *,
        model: str | None = None,
        context_type: ContextType = "story",
        target_message_id: str | None = None,
        force_missing_summaries: bool = False,
    ) -> ContextOptions:
        """ContextOptions for a stored story. Raises KeyError for an unknown slug."""
        story = self.get_story(slug)
        if story is None:
            raise KeyError(slug)
        return ContextOptions(
            input_text=input_text,
            context_type=context_type,
            messages=self.get_messages(slug),
            nodes=self.get_nodes(slug),
            chapters=self.get_chapters(slug),
            characters=self.get_characters(slug),
            story_setting=story.setting,
            person=story.person,
            tense=story.tense,
            protagonist_name=story.protagonist_name,
            paragraphs_per_turn=story.paragraphs_per_turn,
            branch_choices=story.branch_choices,
            model=model,
            target_message_id=target_message_id,
            force_missing_summaries=force_missing_summaries,
        )
