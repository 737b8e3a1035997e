"""Handlebars prompt rendering for the context blocks the engine emits.

Every fixed piece of text that ends up in an assembled context (system
prompts, chapter headers, the final direction block) is a Handlebars
template rendered here. User-supplied values are inserted with triple-stash
so quotes and apostrophes reach the model unescaped.
"""

from collections.abc import Callable
from typing import Any

import pybars


_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


STORY_SETTINGS: dict[str, str] = {
    "fantasy": "Fantasy",
    "scifi": "Science Fiction",
    "mystery": "Mystery",
    "romance": "Romance",
    "thriller": "Thriller",
    "horror": "Horror",
    "historical": "Historical",
    "contemporary": "Contemporary",
    "comedy": "Comedy",
    "drama": "Drama",
    "other": "Other",
}

QUERY_SYSTEM_PROMPT = (
    "You are a helpful assistant answering questions about a story in progress. "
    "Provide clear, concise answers about the story, its characters, plot, or any "
    "other aspect the user is asking about. Do not continue the story itself."
)

STORY_SYSTEM_TEMPLATE = (
    "You are a creative story writer helping to create an engaging narrative. "
    "{{#if genre}}This is a {{{genre}}} story. Write in the appropriate tone, style, "
    "and atmosphere for this genre. {{/if}}"
    "Write in {{person}} {{tense}}"
    "{{#if viewpoint}}{{#if first_person}} from the perspective of {{{viewpoint}}}"
    "{{else}} following {{{viewpoint}}}'s viewpoint{{/if}}{{/if}}. "
    "{{#if new_story}}Create a story based on the user's direction. "
    "{{else}}Continue the story based on the user's direction, maintaining consistency "
    "with previous events and character development. {{/if}}"
    "{{#if goal}}\n\nCHAPTER GOAL: {{{goal}}}\n"
    "Keep this goal in mind as you continue the story, but don't feel obligated to fully "
    "accomplish it in a single turn. Progress naturally toward this goal through character "
    "actions and developments. {{/if}}"
    "Write in a natural, flowing style that draws the reader in. Focus on \"show, don't tell\" "
    "and include vivid descriptions, dialogue, and character thoughts where appropriate.\n"
    "\n"
    "IMPORTANT:\n"
    "- Write ONLY a single story continuation turn\n"
    "- Write ONLY what the user's direction specifically asks for - do not add extra scenes, "
    "events, or content beyond what was requested\n"
    "- Use natural paragraph breaks to structure your writing\n"
    "- Do not include chapter headers, separators, or section labels\n"
    "- Do not add author notes or commentary\n"
    "- If you need to reason about the story, use <think>your reasoning here</think> tags\n"
    "\n"
    "PACING AND TONE GUIDELINES:\n"
    "- Not every turn needs to end with a cliffhanger or dramatic revelation\n"
    "- Never close a turn with a stock reflective line such as \"nothing would ever be the same\"\n"
    "- Allow for natural story rhythms with quieter moments, conversations, and character development\n"
    "- Focus on authentic character actions and dialogue rather than overly dramatic internal monologues"
)

CHAPTER_SUMMARY_TEMPLATE = "[Chapter: {{{title}}}]\n{{{summary}}}"
CHAPTER_FULL_HEADER_TEMPLATE = "[Chapter: {{{title}}} - Full Content]"
CHARACTER_CONTEXT_TEMPLATE = "Active story context:\n{{{context}}}"
QUESTION_TEMPLATE = "Question: {{{question}}}"

DIRECTION_TEMPLATE = (
    "The following is an instruction describing what to write next. "
    "It is NOT part of the story - write the content it describes:\n\n"
    "\"{{{instruction}}}\""
    "{{#if paragraphs}}\n\nIMPORTANT: Write approximately {{paragraphs}} "
    "paragraph{{#if plural}}s{{/if}} in your response.{{/if}}"
    "\n\n{{verb}} the story directly below (no labels or formatting):"
)


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


def story_system_prompt(
    story_setting: str = "",
    person: str | None = None,
    tense: str | None = None,
    viewpoint_name: str | None = None,
    is_new_story: bool = False,
    chapter_goal: str | None = None,
) -> str:
    """Voice and style prompt for story continuation."""
    label = STORY_SETTINGS.get(story_setting or "")
    return render_prompt(STORY_SYSTEM_TEMPLATE, {
        "genre": label.lower() if label else "",
        "person": "first person" if person == "first" else "third person",
        "first_person": person == "first",
        "tense": "present tense" if tense == "present" else "past tense",
        "viewpoint": viewpoint_name or "",
        "new_story": is_new_story,
        "goal": chapter_goal or "",
    })


def chapter_summary_block(title: str, summary: str) -> str:
    return render_prompt(CHAPTER_SUMMARY_TEMPLATE, {"title": title, "summary": summary})


def chapter_full_header(title: str) -> str:
    return render_prompt(CHAPTER_FULL_HEADER_TEMPLATE, {"title": title})


def character_context_block(context: str) -> str:
    return render_prompt(CHARACTER_CONTEXT_TEMPLATE, {"context": context})


def question_block(question: str) -> str:
    return render_prompt(QUESTION_TEMPLATE, {"question": question})


def direction_block(instruction: str, is_new_story: bool, paragraphs_per_turn: int | None = None) -> str:
    """Final user block framing the author's input as an instruction, not story text."""
    paragraphs = paragraphs_per_turn if paragraphs_per_turn and paragraphs_per_turn > 0 else 0
    return render_prompt(DIRECTION_TEMPLATE, {
        "instruction": instruction,
        "paragraphs": str(paragraphs) if paragraphs else "",
        "plural": paragraphs != 1,
        "verb": "Begin" if is_new_story else "Continue",
    })
