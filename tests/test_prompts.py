"""Tests for story_context.prompts — Handlebars block rendering."""

import pytest

from story_context.prompts import (
    QUERY_SYSTEM_PROMPT,
    PromptError,
    chapter_full_header,
    chapter_summary_block,
    character_context_block,
    direction_block,
    question_block,
    render_prompt,
    story_system_prompt,
)


# ---------------------------------------------------------------------------
# render_prompt
# ---------------------------------------------------------------------------

def test_render_simple():
    assert render_prompt("Hello {{name}}", {"name": "Mira"}) == "Hello Mira"


def test_render_is_cached():
    assert render_prompt("{{a}}", {"a": "1"}) == "1"
    assert render_prompt("{{a}}", {"a": "2"}) == "2"


def test_broken_template_raises_prompt_error():
    with pytest.raises(PromptError):
        render_prompt("{{#if open}}never closed", {})


# ---------------------------------------------------------------------------
# System prompt
# ---------------------------------------------------------------------------

def test_system_prompt_genre_person_tense():
    prompt = story_system_prompt("scifi", person="first", tense="present")
    assert "This is a science fiction story." in prompt
    assert "Write in first person present tense." in prompt


def test_system_prompt_defaults_to_third_past():
    prompt = story_system_prompt()
    assert "Write in third person past tense." in prompt
    assert "This is a" not in prompt


def test_system_prompt_unknown_setting_omits_genre():
    assert "This is a" not in story_system_prompt("steampunk")


def test_system_prompt_first_person_viewpoint():
    prompt = story_system_prompt(person="first", viewpoint_name="Mira")
    assert "first person past tense from the perspective of Mira." in prompt


def test_system_prompt_third_person_viewpoint_unescaped():
    prompt = story_system_prompt(viewpoint_name="O'Brien")
    assert "following O'Brien's viewpoint." in prompt


def test_system_prompt_new_vs_continue():
    assert "Create a story based on the user's direction." in story_system_prompt(is_new_story=True)
    assert "Continue the story based on the user's direction" in story_system_prompt(is_new_story=False)


def test_system_prompt_chapter_goal():
    prompt = story_system_prompt(chapter_goal="Mira learns who closed the road.")
    assert "\n\nCHAPTER GOAL: Mira learns who closed the road.\n" in prompt
    assert "CHAPTER GOAL" not in story_system_prompt()


def test_query_prompt_is_fixed():
    assert "answering questions about a story" in QUERY_SYSTEM_PROMPT


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------

def test_chapter_blocks():
    assert chapter_summary_block("The Ferry", "Mira crosses.") == "[Chapter: The Ferry]\nMira crosses."
    assert chapter_full_header("The Ferry") == "[Chapter: The Ferry - Full Content]"


def test_character_context_and_question():
    assert character_context_block("Mira & Oskar") == "Active story context:\nMira & Oskar"
    assert question_block("Who is \"Oskar\"?") == "Question: Who is \"Oskar\"?"


def test_direction_block_continue_with_paragraphs():
    block = direction_block("Mira opens the door", is_new_story=False, paragraphs_per_turn=2)
    assert block == (
        "The following is an instruction describing what to write next. "
        "It is NOT part of the story - write the content it describes:\n\n"
        "\"Mira opens the door\"\n\n"
        "IMPORTANT: Write approximately 2 paragraphs in your response.\n\n"
        "Continue the story directly below (no labels or formatting):"
    )


def test_direction_block_single_paragraph():
    block = direction_block("x", is_new_story=False, paragraphs_per_turn=1)
    assert "approximately 1 paragraph in your response." in block


def test_direction_block_new_story_without_guidance():
    block = direction_block("A storm", is_new_story=True)
    assert "IMPORTANT" not in block
    assert block.endswith("\"A storm\"\n\nBegin the story directly below (no labels or formatting):")
