import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import openai

from ..utils.config import ConfigManager

logger = logging.getLogger(__name__)


@dataclass
class CompletionReply:
    """Text content and token usage of one chat completion"""

    content: Optional[str]
    prompt_tokens: int = 0
    completion_tokens: int = 0
    model: str = ""

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


def validate_api_key(api_key: Optional[str]) -> str:
    """Return the key, or raise ValueError when it is missing or malformed"""
    if not api_key:
        raise ValueError("OpenAI API key not configured. Set OPENAI_API_KEY or save it in AI settings.")
    if not api_key.startswith("sk-"):
        raise ValueError("Invalid OpenAI API key format (expected a key starting with 'sk-')")
    return api_key


class OpenAIChatClient:
    """Thin wrapper over the OpenAI SDK returning plain completion replies"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        config_manager: Optional[ConfigManager] = None,
        client: Optional[Any] = None,
    ):
        self.config = config_manager or ConfigManager()

        if client is not None:
            self.client = client
        else:
            api_key = validate_api_key(api_key or self.config.get_api_key("openai"))
            self.client = openai.OpenAI(
                api_key=api_key,
                timeout=self.config.get("extraction.request_timeout_seconds", 120),
                max_retries=0,
            )

    def complete(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        max_tokens: int,
        temperature: float = 0.2,
        json_mode: bool = True,
    ) -> CompletionReply:
        """
        Run one chat completion

        Args:
            messages: Role-tagged messages, user content may include image parts
            model: Model id
            max_tokens: Maximum output tokens
            temperature: Sampling temperature
            json_mode: Ask for a JSON object reply

        Returns:
            CompletionReply with the first choice's content and token usage
        """
        kwargs: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        logger.info(f"Calling OpenAI {model} (max_tokens={max_tokens})")
        response = self.client.chat.completions.create(**kwargs)

        content = response.choices[0].message.content if response.choices else None
        usage = response.usage
        return CompletionReply(
            content=content,
            prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
            model=getattr(response, "model", model) or model,
        )

    def test_api_key(self) -> bool:
        """Check that the key can list models"""
        try:
            self.client.models.list()
            return True
        except openai.OpenAIError as e:
            logger.warning(f"OpenAI API key check failed: {e}")
            return False
