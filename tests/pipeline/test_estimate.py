"""Tests for story_stats / messages_in_context — estimates measure what assembly sends."""

from story_context.activity import RecordingActivitySink
from story_context.models import BranchOption, ContextOptions, Message, ModelCapabilities, Node
from story_context.pipeline import generate_context_messages, messages_in_context, story_stats
from story_context.tiers import estimate_tokens

ALWAYS_FULL = ModelCapabilities(supports_prompt_caching=True, treats_current_container_as_always_full=True)
TIERED = ModelCapabilities()


def _beat(i: int, **kw) -> Message:
    fields = {
        "content": f"Full text of beat {i}.",
        "sentence_summary": f"S{i}.",
        "paragraph_summary": f"P{i}.",
    }
    fields.update(kw)
    return Message(id=f"m{i}", order=i, **fields)


def _options(messages: list[Message], capabilities: ModelCapabilities, **kw) -> ContextOptions:
    return ContextOptions(input_text="", messages=messages, capabilities=capabilities, **kw)


async def _assembled_narrative(options: ContextOptions) -> str:
    """Story blocks of an assembled context: everything between system and direction."""
    chat = await generate_context_messages(options, sink=RecordingActivitySink())
    return "\n\n".join(m.content for m in chat[1:-1])


# ---------------------------------------------------------------------------
# Flat stories
# ---------------------------------------------------------------------------

class TestFlatStory:
    async def test_twenty_message_story(self) -> None:
        options = _options([_beat(i) for i in range(1, 21)], TIERED)
        stats = story_stats(options)
        assert stats.word_count == 20 * 5
        assert (stats.sentence_count, stats.paragraph_count, stats.full_count) == (5, 7, 8)
        assert stats.summary_count == 0

        narrative = await _assembled_narrative(options)
        assert stats.char_count == len(narrative)
        assert stats.estimated_tokens == estimate_tokens(narrative, 4.0)

    def test_always_full_estimate_is_larger(self) -> None:
        messages = [_beat(i) for i in range(1, 21)]
        full = story_stats(_options(messages, ALWAYS_FULL))
        tiered = story_stats(_options(messages, TIERED))
        assert full.estimated_tokens > tiered.estimated_tokens
        assert full.full_count == 20

    def test_oversized_flat_story_is_still_estimated(self) -> None:
        stats = story_stats(_options([_beat(i) for i in range(1, 61)], ALWAYS_FULL))
        assert stats.full_count == 60

    def test_capabilities_from_registry(self) -> None:
        options = ContextOptions(input_text="", messages=[_beat(i) for i in range(1, 21)], model="claude-sonnet-4-5")
        assert story_stats(options).full_count == 20

    def test_everything_fits(self) -> None:
        messages = [_beat(i) for i in range(1, 6)]
        assert messages_in_context(_options(messages, TIERED), 10_000) == {m.id for m in messages}

    def test_most_recent_fit_budget(self) -> None:
        # beats 1-9 are 20 chars (5 tokens), beat 10 is 21 chars (6 tokens)
        selected = messages_in_context(_options([_beat(i) for i in range(1, 11)], ALWAYS_FULL), 12)
        assert selected == {"m9", "m10"}


# ---------------------------------------------------------------------------
# Chaptered stories
# ---------------------------------------------------------------------------

CHAPTERS = [
    Node(id="c1", type="chapter", order=0, title="One", summary="The ferry crossing."),
    Node(id="c2", type="chapter", order=1, title="Two", summary="The toll house."),
]
LONG_CHAPTER = [Message(id=f"a{i}", node_id="c1", order=i, content="x" * 400) for i in range(10)]
SHORT_CHAPTER = [
    Message(id=f"b{i}", node_id="c2", order=i, content=f"Beat {i} at the toll house.") for i in range(3)
]


class TestChapteredStory:
    async def test_summarized_chapter_counts_as_its_summary(self) -> None:
        options = _options(LONG_CHAPTER + SHORT_CHAPTER, ALWAYS_FULL, nodes=CHAPTERS)
        stats = story_stats(options)
        narrative = await _assembled_narrative(options)

        assert stats.char_count == len(narrative)
        assert stats.char_count < 400
        assert stats.summary_count == 1
        assert stats.full_count == 3
        # the word count still covers the whole storyline
        assert stats.word_count == 10 + 3 * 6

    async def test_full_content_chapter(self) -> None:
        nodes = [CHAPTERS[0].model_copy(update={"include_in_full": 2}), CHAPTERS[1]]
        options = _options(LONG_CHAPTER[:2] + SHORT_CHAPTER, TIERED, nodes=nodes)
        stats = story_stats(options)

        assert stats.char_count == len(await _assembled_narrative(options))
        assert stats.full_count == 5
        assert stats.summary_count == 0
        assert messages_in_context(options, 10_000) == {"a0", "a1", "b0", "b1", "b2"}

    async def test_omitted_chapter(self) -> None:
        nodes = [CHAPTERS[0].model_copy(update={"include_in_full": 0}), CHAPTERS[1]]
        options = _options(LONG_CHAPTER + SHORT_CHAPTER, TIERED, nodes=nodes)
        stats = story_stats(options)
        assert stats.char_count == len(await _assembled_narrative(options))
        assert stats.full_count == 3
        assert stats.summary_count == 0

    async def test_distance_counted_within_the_current_chapter(self) -> None:
        beats = [_beat(i, node_id="c2") for i in range(1, 10)]
        options = _options(LONG_CHAPTER + beats, TIERED, nodes=CHAPTERS)
        stats = story_stats(options)
        # 9 beats in the current chapter: beat 1 is 8 from the end, so paragraph; the rest full
        assert (stats.sentence_count, stats.paragraph_count, stats.full_count) == (0, 1, 8)
        assert stats.char_count == len(await _assembled_narrative(options))

    async def test_missing_summary_estimates_forced_context(self) -> None:
        nodes = [CHAPTERS[0].model_copy(update={"summary": None}), CHAPTERS[1]]
        options = _options(LONG_CHAPTER + SHORT_CHAPTER, TIERED, nodes=nodes)
        stats = story_stats(options)
        forced = options.model_copy(update={"force_missing_summaries": True})
        assert stats.char_count == len(await _assembled_narrative(forced))
        assert stats.summary_count == 0

    def test_summaries_use_budget_but_name_no_message(self) -> None:
        options = _options(LONG_CHAPTER + SHORT_CHAPTER, ALWAYS_FULL, nodes=CHAPTERS)
        assert messages_in_context(options, 10_000) == {"b0", "b1", "b2"}
        # the three beats cost 7 tokens each; the summary block does not fit after them
        assert messages_in_context(options, 22) == {"b0", "b1", "b2"}
        assert messages_in_context(options, 14) == {"b1", "b2"}


# ---------------------------------------------------------------------------
# Branching stories
# ---------------------------------------------------------------------------

class TestBranchingStory:
    NODES = [
        Node(id="start", type="chapter", order=0, title="Start", summary="Mira reaches the fork."),
        Node(id="river", type="chapter", order=1, title="River", summary="She follows the river."),
        Node(id="road", type="chapter", order=2, title="Road"),
    ]
    MESSAGES = [
        Message(id="s1", node_id="start", order=0, content="The fork in the road."),
        Message(
            id="fork", node_id="start", order=1, type="branch", content="Which way?",
            options=[
                BranchOption(id="road", label="Road", target_node_id="road", target_message_id="r1"),
                BranchOption(id="river", label="River", target_node_id="river", target_message_id="v1"),
            ],
        ),
        Message(id="v1", node_id="river", order=0, content="Water over stones, endlessly."),
        Message(id="r1", node_id="road", order=0, content="Dust on her boots."),
    ]

    async def test_only_the_active_path_is_counted(self) -> None:
        options = _options(self.MESSAGES, TIERED, nodes=self.NODES, branch_choices={"fork": "road"})
        stats = story_stats(options)
        narrative = await _assembled_narrative(options)

        assert stats.char_count == len(narrative)
        assert "river" not in narrative.lower()
        assert stats.word_count == len("The fork in the road. Which way? Dust on her boots.".split())
        assert messages_in_context(options, 10_000) == {"r1"}
