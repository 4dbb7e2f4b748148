"""
Cached OpenAI-compatible client factory and model selection for the sage relay.
"""
from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv
from openai import OpenAI

load_dotenv(dotenv_path=Path(__file__).resolve().parent / ".env")

AI_API_KEY = os.getenv("AI_API_KEY")
AI_BASE_URL = os.getenv("AI_BASE_URL")
AI_MODEL_NAME = os.getenv("AI_MODEL_NAME")
AI_REASONER_MODEL_NAME = os.getenv("AI_REASONER_MODEL_NAME")

DEFAULT_CHAT_MODEL = "deepseek-chat"
DEFAULT_REASONER_MODEL = "deepseek-reasoner"
DEFAULT_DIVINE_MODEL = "gpt-4o"


class LLMNotConfiguredError(RuntimeError):
    pass


@lru_cache(maxsize=8)
def _cached_client(api_key: str, base_url: Optional[str]) -> OpenAI:
    return OpenAI(api_key=api_key, base_url=base_url)


def get_llm_client(api_key: Optional[str] = None, base_url: Optional[str] = None) -> OpenAI:
    """Return a cached OpenAI client; falls back to AI_API_KEY / AI_BASE_URL."""
    api_key = api_key or AI_API_KEY
    if not api_key or api_key == "replace_me":
        raise LLMNotConfiguredError("AI_API_KEY 未设置")
    return _cached_client(api_key, base_url or AI_BASE_URL)


def chat_model(use_reasoning: bool = False) -> Tuple[str, float]:
    """(model, temperature) for the sage chat."""
    if use_reasoning:
        return AI_REASONER_MODEL_NAME or DEFAULT_REASONER_MODEL, 1.0
    return AI_MODEL_NAME or DEFAULT_CHAT_MODEL, 0.8


def divine_model() -> Tuple[str, float]:
    return AI_MODEL_NAME or DEFAULT_DIVINE_MODEL, 0.8
