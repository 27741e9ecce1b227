"""Prompt Builder - Construct the one-shot commit subject prompt."""

from llcommit import COMMIT_SUBJECT_CHARS
from llcommit.prompts.formats import get_prompt_format

INSTRUCTION = (
    "Given the following code diff, generate a concise subject for commit message "
    f"(under {COMMIT_SUBJECT_CHARS} characters) that summarizes the change clearly and effectively:\n"
)

SYSTEM_PROMPT = (
    "You write git commit subjects. Reply with the subject line only: "
    "imperative mood, no quotes, no preamble, no trailing period."
)


class PromptBuilder:
    """Builds the prompt sent with every completion request."""

    def build(self, diff: str, model_type: str | None = None) -> str:
        """Wrap the instruction and diff as a user turn of the model's format.

        With no model type the text is returned unwrapped, for chat APIs
        that take plain messages.
        """
        content = INSTRUCTION + diff
        if model_type is None:
            return content
        return get_prompt_format(model_type).user_content(content)
