"""Prompt formats for instruction-tuned models served by llama.cpp.

Each format describes how a model expects a conversation to be laid out:
the overall template, how each message is rendered, the speaker names and
the text wrapped around user and assistant messages. Templates use
``{{placeholder}}`` markers.
"""

import json
import re
from dataclasses import dataclass, fields
from importlib import resources

_PLACEHOLDER = re.compile(r'{{(\w+)}}')


def render(template: str, values: dict[str, str]) -> str:
    """Substitute ``{{name}}`` markers; unknown markers are an error."""
    def _replace(match: re.Match) -> str:
        name = match.group(1)
        if name not in values:
            raise ValueError(f"unknown placeholder '{{{{{name}}}}}' in template")
        return values[name]

    return _PLACEHOLDER.sub(_replace, template)


@dataclass(frozen=True)
class TextMessage:
    """One rendered message in a conversation."""
    name: str  # user or assistant name from the format
    message: str


@dataclass(frozen=True)
class PromptFormat:
    template: str
    history_template: str
    char: str
    char_msg_prefix: str
    char_msg_suffix: str
    user: str
    user_msg_prefix: str
    user_msg_suffix: str
    stops: str

    def user_content(self, content: str) -> str:
        return self.user_msg_prefix + content + self.user_msg_suffix

    def char_content(self, content: str) -> str:
        return self.char_msg_prefix + content + self.char_msg_suffix

    def user_message(self, content: str) -> TextMessage:
        return TextMessage(name=self.user, message=self.user_content(content))

    def char_message(self, content: str) -> TextMessage:
        return TextMessage(name=self.char, message=self.char_content(content))

    def history(self, messages: list[TextMessage]) -> str:
        return "".join(
            render(self.history_template, {"name": m.name, "message": m.message})
            for m in messages
        )

    def prompt(self, system: str, *messages: TextMessage) -> str:
        """Full prompt: system text, the rendered history and the assistant cue."""
        return render(self.template, {
            "prompt": system,
            "char": self.char,
            "user": self.user,
            "history": self.history(list(messages)),
        })


def _load_formats() -> dict[str, PromptFormat]:
    raw = resources.files("llcommit.prompts").joinpath("prompt_formats.json").read_text(encoding="utf-8")
    data = json.loads(raw)
    if not data:
        raise RuntimeError("prompt_formats.json can't be empty")

    names = {f.name for f in fields(PromptFormat)}
    return {key: PromptFormat(**{k: v for k, v in value.items() if k in names}) for key, value in data.items()}


PROMPT_FORMATS: dict[str, PromptFormat] = _load_formats()


def get_prompt_format(model_type: str) -> PromptFormat:
    try:
        return PROMPT_FORMATS[model_type]
    except KeyError:
        raise KeyError(f"model of type '{model_type}' not found") from None


# Known models and the prompt format they were trained with
MODEL_TO_PROMPT_FORMAT = {
    "Alpaca": "alpaca",
    "ChatML": "chatml",
    "Command R/+": "commandr",
    "Llama 2": "llama2",
    "Llama 3": "llama3",
    "Mistral": "mistral",
    "Phi-3": "phi3",
    "OpenChat/Starling": "openchat",
    "Vicuna": "vicuna",
    "Airoboros L2": "vicuna",
    "BakLLaVA-1": "vicuna",
    "Code Cherry Pop": "alpaca",
    "Deepseek Coder": "deepseekCoder",
    "Dolphin Mistral": "chatml",
    "evolvedSeeker 1.3B": "chatml",
    "Goliath 120B": "vicuna",
    "Jordan": "vicuna",
    "LLaVA": "vicuna",
    "Leo Hessianai": "chatml",
    "Leo Mistral": "vicuna",
    "Marx": "vicuna",
    "Med42": "med42",
    "MetaMath": "alpaca",
    "Mistral Instruct": "llama2",
    "Mistral 7B OpenOrca": "chatml",
    "MythoMax": "alpaca",
    "Neural Chat": "neuralchat",
    "Nous Capybara": "vicuna",
    "Nous Hermes": "nousHermes",
    "OpenChat Math": "openchatMath",
    "OpenHermes 2.5-Mistral": "chatml",
    "Orca Mini v3": "alpaca",
    "Orion": "orion",
    "Samantha": "vicuna",
    "Samantha Mistral": "chatml",
    "SauerkrautLM": "sauerkraut",
    "Scarlett": "vicuna",
    "Starling Coding": "starlingCode",
    "Sydney": "alpaca",
    "Synthia": "vicuna",
    "Tess": "vicuna",
    "Yi-6/9/34B-Chat": "yi34b",
    "Zephyr": "zephyr",
}


def resolve_model_type(name: str) -> str:
    """Accept a format name or a known model name, e.g. 'Nous Hermes'."""
    if name in PROMPT_FORMATS:
        return name
    by_model = {k.lower(): v for k, v in MODEL_TO_PROMPT_FORMAT.items()}
    by_format = {k.lower(): k for k in PROMPT_FORMATS}
    key = name.strip().lower()
    if key in by_format:
        return by_format[key]
    if key in by_model:
        return by_model[key]
    raise KeyError(f"model of type '{name}' not found")
