"""
Narrow boundary around the language-model completion service.

Every call site sends a system prompt plus a user prompt and expects a JSON
object back. Anything that goes wrong on the way (transport error, empty
content, malformed JSON, schema mismatch) surfaces as ``CompletionError`` so
callers can apply their documented fallback.
"""

from __future__ import annotations

import json
import re
from typing import Any, Optional, TypeVar

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, ValidationError

from negotiation_eval.config.settings import EvalSettings, get_settings


T = TypeVar("T", bound=BaseModel)

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class CompletionError(Exception):
    """The completion service failed or returned something unusable."""
    pass


def get_chat_model(
    model: str,
    temperature: float,
    settings: Optional[EvalSettings] = None,
) -> Any:
    """
    Create a chat model that answers with a JSON object.

    Args:
        model: OpenAI model name
        temperature: Sampling temperature
        settings: Optional settings override (defaults to cached settings)

    Returns:
        A runnable with ``invoke(messages)``

    Raises:
        CompletionError: When the client cannot be built (e.g. missing credentials)
    """
    settings = settings or get_settings()

    api_key = settings.openai_api_key
    if api_key:
        api_key = api_key.get_secret_value()

    try:
        chat = ChatOpenAI(
            model=model,
            temperature=temperature,
            api_key=api_key,
            timeout=settings.request_timeout,
        )
    except Exception as e:
        raise CompletionError(f"Could not create chat model {model}: {e}") from e
    return chat.bind(response_format={"type": "json_object"})


class LazyChatModel:
    """
    Chat model built on first use.

    Construction failures surface from ``invoke`` as ``CompletionError``, the
    same as request failures, so callers fall back the same way.
    """

    def __init__(self, model: str, temperature: float) -> None:
        self.model = model
        self.temperature = temperature
        self._chat: Optional[Any] = None

    def invoke(self, messages: list[Any]) -> Any:
        if self._chat is None:
            self._chat = get_chat_model(self.model, self.temperature)
        return self._chat.invoke(messages)


def _clean(text: str) -> str:
    t = (text or "").strip()
    # Strip common markdown fences if the model adds them
    match = _FENCE_RE.match(t)
    if match:
        t = match.group(1)
    return t.strip()


def invoke_json(llm: Any, system_prompt: str, user_prompt: str) -> dict[str, Any]:
    """
    Send one completion request and parse the JSON object it returns.

    Raises:
        CompletionError: On any transport or parse failure
    """
    try:
        response = llm.invoke([
            SystemMessage(content=system_prompt),
            HumanMessage(content=user_prompt),
        ])
    except CompletionError:
        raise
    except Exception as e:
        raise CompletionError(f"Completion request failed: {e}") from e

    content = _clean(getattr(response, "content", "") or "")
    if not content:
        raise CompletionError("Completion returned no content")

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise CompletionError(f"Completion returned invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise CompletionError(f"Expected a JSON object, got {type(data).__name__}")

    return data


def invoke_structured(llm: Any, system_prompt: str, user_prompt: str, schema: type[T]) -> T:
    """
    Like ``invoke_json`` but validates the payload against a pydantic schema.

    Raises:
        CompletionError: On any transport, parse or validation failure
    """
    data = invoke_json(llm, system_prompt, user_prompt)
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        raise CompletionError(f"Completion did not match {schema.__name__}: {e}") from e
