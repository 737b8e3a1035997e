"""Tests for story_context.models."""

from story_context.models import (
    BranchOption,
    CacheControl,
    ChatMessage,
    ContextOptions,
    Message,
    Node,
    Story,
)


# ---------------------------------------------------------------------------
# Message
# ---------------------------------------------------------------------------

class TestMessage:
    def test_defaults(self) -> None:
        msg = Message(id="m1")
        assert msg.role == "assistant"
        assert msg.content == ""
        assert msg.is_query is False
        assert msg.options == []
        assert msg.is_compacted is False

    def test_camel_case_input_accepted(self) -> None:
        msg = Message.model_validate({
            "id": "m1",
            "nodeId": "n1",
            "isQuery": True,
            "sentenceSummary": "One line.",
            "paragraphSummary": "A paragraph.",
            "isCompacted": True,
        })
        assert msg.node_id == "n1"
        assert msg.is_query is True
        assert msg.sentence_summary == "One line."
        assert msg.paragraph_summary == "A paragraph."
        assert msg.is_compacted is True

    def test_snake_case_input_accepted(self) -> None:
        msg = Message.model_validate({"id": "m1", "node_id": "n1"})
        assert msg.node_id == "n1"

    def test_is_branch_requires_options(self) -> None:
        assert Message(id="b1", type="branch").is_branch is False
        option = BranchOption(id="a", label="A", target_node_id="n2", target_message_id="m2")
        assert Message(id="b1", type="branch", options=[option]).is_branch is True

    def test_options_without_branch_type_not_a_branch(self) -> None:
        option = BranchOption(id="a", label="A", target_node_id="n2", target_message_id="m2")
        assert Message(id="m1", options=[option]).is_branch is False


# ---------------------------------------------------------------------------
# Node
# ---------------------------------------------------------------------------

class TestNode:
    def test_include_in_full_defaults_to_summary_only(self) -> None:
        assert Node(id="c1", type="chapter").include_in_full == 1

    def test_camel_case_fields(self) -> None:
        node = Node.model_validate({
            "id": "c1", "type": "chapter", "parentId": "b", "includeInFull": 2,
            "viewpointCharacterId": "mira",
        })
        assert node.parent_id == "b"
        assert node.include_in_full == 2
        assert node.viewpoint_character_id == "mira"


# ---------------------------------------------------------------------------
# ChatMessage
# ---------------------------------------------------------------------------

class TestChatMessage:
    def test_wire_omits_missing_cache_control(self) -> None:
        wire = ChatMessage(role="user", content="hi").to_wire()
        assert wire == {"role": "user", "content": "hi"}

    def test_wire_includes_cache_control(self) -> None:
        wire = ChatMessage(role="assistant", content="x", cache_control=CacheControl()).to_wire()
        assert wire["cache_control"] == {"type": "ephemeral", "ttl": "1h"}

    def test_equal_blocks_compare_equal(self) -> None:
        assert ChatMessage(role="user", content="a") == ChatMessage(role="user", content="a")


# ---------------------------------------------------------------------------
# ContextOptions / Story
# ---------------------------------------------------------------------------

class TestContextOptions:
    def test_defaults(self) -> None:
        options = ContextOptions(input_text="Go on.")
        assert options.context_type == "story"
        assert options.messages == []
        assert options.branch_choices == {}
        assert options.capabilities is None
        assert options.max_query_history is None
        assert options.force_missing_summaries is False

    def test_camel_case_payload(self) -> None:
        options = ContextOptions.model_validate({
            "inputText": "Go on.",
            "contextType": "query",
            "branchChoices": {"b1": "a"},
            "forceMissingSummaries": True,
            "targetMessageId": "m3",
        })
        assert options.input_text == "Go on."
        assert options.context_type == "query"
        assert options.branch_choices == {"b1": "a"}
        assert options.force_missing_summaries is True
        assert options.target_message_id == "m3"


class TestStory:
    def test_round_trips_through_json(self) -> None:
        story = Story(slug="s", title="S", branch_choices={"b1": "a"}, paragraphs_per_turn=2)
        assert Story.model_validate_json(story.model_dump_json()) == story
