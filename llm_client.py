"""
LLM client for report and chat generation (OpenAI API).

The dashboard only needs TextCompletionService.complete(prompt, system_instruction);
anything with that method can stand in for the API (tests use a fake).
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from config import BASE_DIR, DEFAULT_MODEL, load_env_from_project
from metrics import SalesMetrics
from prompts import REPORT_SYSTEM_PROMPT, build_report_prompt

logger = logging.getLogger(__name__)


class CompletionError(Exception):
    pass


class TextCompletionService(Protocol):
    def complete(self, prompt: str, system_instruction: str) -> str: ...


def get_api_key(project_dir: str | Path = BASE_DIR) -> str | None:
    load_env_from_project(project_dir)
    key = os.getenv("OPENAI_API_KEY")
    if key and key.strip() and not key.startswith("sk-your"):
        return key.strip()
    return None


@dataclass
class LLMUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    request_count: int = 0


_usage = LLMUsage()


def get_usage() -> LLMUsage:
    return _usage


class OpenAICompletionService:
    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        temperature: float = 0.3,
        max_tokens: int = 1200,
    ):
        self.api_key = api_key or get_api_key()
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    def complete(self, prompt: str, system_instruction: str) -> str:
        if not self.api_key:
            raise CompletionError("OPENAI_API_KEY not found. Add it to .env (see .env.example).")

        try:
            from openai import OpenAI

            client = OpenAI(api_key=self.api_key)
            response = client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_instruction},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except ImportError as e:
            raise CompletionError("OpenAI package not installed. Run: pip install openai") from e
        except Exception as e:
            logger.error("OpenAI request failed: %s", e)
            raise CompletionError(f"API error: {e}") from e

        choice = response.choices[0] if response.choices else None
        if not choice or not choice.message:
            raise CompletionError("Empty response from API")

        if response.usage:
            _usage.prompt_tokens += response.usage.prompt_tokens or 0
            _usage.completion_tokens += response.usage.completion_tokens or 0
            _usage.total_tokens += response.usage.total_tokens or 0
        _usage.request_count += 1

        return (choice.message.content or "").strip()


def strip_code_fences(text: str) -> str:
    """Models sometimes wrap HTML in ```html fences."""
    text = text.strip()
    if text.startswith("```html"):
        text = text[len("```html"):]
    elif text.startswith("```"):
        text = text[3:]
    if text.endswith("```"):
        text = text[:-3]
    return text.strip()


def generate_text(
    system_prompt: str,
    user_prompt: str,
    service: TextCompletionService,
) -> tuple[str | None, str | None]:
    """(text, None) on success, (None, error message) otherwise."""
    try:
        text = service.complete(user_prompt, system_prompt)
    except CompletionError as e:
        return None, str(e)
    if not text:
        return None, "Empty response from API"
    return strip_code_fences(text), None


def generate_ai_report(metrics: SalesMetrics, service: TextCompletionService) -> tuple[str | None, str | None]:
    if not metrics.total_units and not metrics.timeline:
        return None, "No sales data loaded."
    return generate_text(REPORT_SYSTEM_PROMPT, build_report_prompt(metrics), service)
