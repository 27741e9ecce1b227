"""Prompt Formats and Builder"""

from llcommit.prompts.builder import PromptBuilder, INSTRUCTION, SYSTEM_PROMPT
from llcommit.prompts.formats import (
    PromptFormat,
    TextMessage,
    PROMPT_FORMATS,
    MODEL_TO_PROMPT_FORMAT,
    get_prompt_format,
    resolve_model_type,
)

__all__ = [
    "PromptBuilder",
    "INSTRUCTION",
    "SYSTEM_PROMPT",
    "PromptFormat",
    "TextMessage",
    "PROMPT_FORMATS",
    "MODEL_TO_PROMPT_FORMAT",
    "get_prompt_format",
    "resolve_model_type",
]
