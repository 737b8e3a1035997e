"""Tests for story_context.tiers — fidelity selection and token math."""

import pytest

from story_context.config import EngineSettings
from story_context.models import Message, ModelCapabilities
from story_context.tiers import (
    Fidelity,
    choose_fidelity,
    estimate_tokens,
    narrative_messages,
    render_spine,
    select_fidelity,
)

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


def _story(n: int) -> list[Message]:
    return [_beat(i) for i in range(1, n + 1)]


# ---------------------------------------------------------------------------
# choose_fidelity
# ---------------------------------------------------------------------------

class TestChooseFidelity:
    @pytest.mark.parametrize("turns_from_end, expected", [
        (0, Fidelity.FULL),
        (7, Fidelity.FULL),
        (8, Fidelity.PARAGRAPH),
        (14, Fidelity.PARAGRAPH),
        (15, Fidelity.SENTENCE),
    ])
    def test_thresholds(self, turns_from_end: int, expected: Fidelity) -> None:
        assert choose_fidelity(_beat(1), turns_from_end, False, True) is expected

    def test_sentence_falls_back_to_summary(self) -> None:
        msg = _beat(1, sentence_summary=None, summary="Legacy summary.")
        assert select_fidelity(msg, 20, False, True) == "Legacy summary."

    def test_missing_sentence_falls_through_to_paragraph(self) -> None:
        msg = _beat(1, sentence_summary=None)
        assert choose_fidelity(msg, 20, False, True) is Fidelity.PARAGRAPH
        assert select_fidelity(msg, 20, False, True) == "P1."

    def test_missing_paragraph_falls_through_to_full(self) -> None:
        msg = _beat(1, paragraph_summary=None)
        assert select_fidelity(msg, 10, False, True) == "Full text of beat 1."

    def test_compacted_always_full(self) -> None:
        assert choose_fidelity(_beat(1, is_compacted=True), 30, False, True) is Fidelity.FULL

    def test_always_full_current_container(self) -> None:
        assert choose_fidelity(_beat(1), 30, True, True) is Fidelity.FULL

    def test_always_full_only_applies_to_current_container(self) -> None:
        assert choose_fidelity(_beat(1), 30, True, False) is Fidelity.SENTENCE

    def test_thresholds_from_settings(self) -> None:
        settings = EngineSettings(full_tail_turns=1, paragraph_tail_turns=2)
        assert choose_fidelity(_beat(1), 2, False, True, settings) is Fidelity.PARAGRAPH
        assert choose_fidelity(_beat(1), 3, False, True, settings) is Fidelity.SENTENCE


# ---------------------------------------------------------------------------
# render_spine
# ---------------------------------------------------------------------------

class TestRenderSpine:
    def test_twenty_message_story_tiered(self) -> None:
        rendered = render_spine(_story(20), TIERED)
        texts = [text for _, _, text in rendered]
        assert texts[0] == "S1."
        assert texts[9] == "P10."
        assert texts[17] == "Full text of beat 18."

    def test_twenty_message_story_always_full(self) -> None:
        rendered = render_spine(_story(20), ALWAYS_FULL)
        assert all(fidelity is Fidelity.FULL for _, fidelity, _ in rendered)

    def test_boundaries(self) -> None:
        fidelities = [f for _, f, _ in render_spine(_story(20), TIERED)]
        # position 5 is 15 from the end, position 6 is 14
        assert fidelities[4] is Fidelity.SENTENCE
        assert fidelities[5] is Fidelity.PARAGRAPH
        # position 12 is 8 from the end, position 13 is 7
        assert fidelities[11] is Fidelity.PARAGRAPH
        assert fidelities[12] is Fidelity.FULL

    def test_fidelity_never_decreases_toward_the_end(self) -> None:
        fidelities = [f for _, f, _ in render_spine(_story(40), TIERED)]
        assert fidelities == sorted(fidelities)

    def test_short_story_all_full(self) -> None:
        assert all(f is Fidelity.FULL for _, f, _ in render_spine(_story(8), TIERED))


# ---------------------------------------------------------------------------
# Narrative filter and token math
# ---------------------------------------------------------------------------

class TestHelpers:
    def test_narrative_filter(self) -> None:
        messages = [
            Message(id="a", content="kept"),
            Message(id="q", content="answer", is_query=True),
            Message(id="u", content="direction", role="user"),
            Message(id="c", content="Chapter 1", type="chapter"),
        ]
        assert [m.id for m in narrative_messages(messages)] == ["a"]

    def test_estimate_tokens_rounds_up(self) -> None:
        assert estimate_tokens("abcde", 4.0) == 2
        assert estimate_tokens("", 4.0) == 0
