"""Errors raised when a story cannot be sent to the model as-is.

Both are recoverable by the caller: add the summaries or organize the story,
or retry with `force_missing_summaries`.
"""


class ContextValidationError(ValueError):
    """The story is not in a state that can be sent to the model as-is."""


class MissingSummariesError(ContextValidationError):
    def __init__(self, titles: list[str]) -> None:
        self.titles = titles
        super().__init__(
            "Cannot generate story continuation. The following previous chapters "
            f"need summaries first: {', '.join(titles)}"
        )


class OversizedFlatStoryError(ContextValidationError):
    def __init__(self, message_count: int, limit: int, model: str | None) -> None:
        self.message_count = message_count
        self.limit = limit
        self.model = model
        super().__init__(
            f"Story has {message_count} messages without chapter organization. "
            "Please organize into chapters with summaries before continuing. "
            f"Model {model or 'unknown'} sends the whole uncontained story in full "
            f"and is limited to {limit} messages."
        )
