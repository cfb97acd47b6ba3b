"""
Completion Client
=================
Thin wrapper over the OpenAI Chat Completions API for categorizing
questions by Bloom level.

Model: gpt-4o  (override with BLOOMBUDDY_MODEL env var)
"""

from __future__ import annotations

import json
import logging
import os
from typing import Optional

from openai import APIError, APIStatusError, OpenAI

from .models import PageImage
from .taxonomy import LEVEL_DESCRIPTIONS, LEVELS

logger = logging.getLogger(__name__)

DEFAULT_MODEL = os.getenv("BLOOMBUDDY_MODEL", "gpt-4o")


class CompletionError(RuntimeError):
    """Raised when the completion service call fails or returns bad JSON."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def build_system_prompt(source: str = "document") -> str:
    """System prompt shared by the text and vision calls."""
    level_lines = "\n".join(
        f"{level.label}: {LEVEL_DESCRIPTIONS[level]}" for level in LEVELS
    )
    return (
        "You are an expert in Bloom's Taxonomy, which categorizes educational "
        "goals and objectives into six levels: Remember, Understand, Apply, "
        "Analyze, Evaluate, and Create. Your task is to analyze a "
        f"{source} and extract all questions, then categorize each according "
        "to the appropriate Bloom's level.\n\n"
        f"{level_lines}\n\n"
        f"Please extract all questions from the {source} and categorize them. "
        "Format your response as a JSON object with Bloom's levels as keys "
        "and arrays of questions as values. Each question may be a string or "
        'an object {"text": ..., "confidence": 0-1}.'
    )


VISION_INSTRUCTION = (
    "Please identify and categorize all questions in this document according "
    "to Bloom's Taxonomy levels."
)


class CompletionClient:
    """
    Sends document content to the chat-completion endpoint and returns the
    decoded JSON reply. The reply shape is not trusted here; see
    ``normalizer.normalize_response``.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.2,
        max_tokens: int = 4000,
        timeout: float = 120.0,
        client: Optional[OpenAI] = None,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client or OpenAI(api_key=api_key, timeout=timeout)

    def analyze_image(self, page_image: PageImage):
        """Categorize the questions visible on one rendered page."""
        messages = [
            {"role": "system", "content": build_system_prompt("document image")},
            {
                "role": "user",
                "content": [
                    {
                        "type": "image_url",
                        "image_url": {"url": page_image.data_url},
                    },
                    {"type": "text", "text": VISION_INSTRUCTION},
                ],
            },
        ]
        return self._complete(messages, label=f"page {page_image.page_number}")

    def analyze_text(self, content: str, label: str = "text"):
        """Categorize the questions found in plain text."""
        messages = [
            {"role": "system", "content": build_system_prompt("document")},
            {"role": "user", "content": content},
        ]
        return self._complete(messages, label=label)

    def _complete(self, messages: list[dict], label: str):
        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                response_format={"type": "json_object"},
            )
        except APIStatusError as e:
            raise CompletionError(
                f"API error: {e.status_code}", status_code=e.status_code
            ) from e
        except APIError as e:
            raise CompletionError(f"API request failed: {e}") from e

        if not response.choices:
            raise CompletionError(f"Empty completion for {label}")

        content = response.choices[0].message.content or ""
        logger.debug(f"Completion for {label}: {len(content)} chars")

        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise CompletionError(
                f"Completion for {label} is not valid JSON: {e}"
            ) from e
