"""
LLM completion using Google Generative AI (Gemini).
The API key and model name come from Settings; nothing is read from the
environment here.
"""
import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-1.5-flash"


class LLMError(Exception):
    """Raised when the Gemini endpoint cannot produce a completion."""


def _sync_generate(prompt: str, api_key: Optional[str], model: str = DEFAULT_MODEL) -> str:
    """Synchronous completion using Google Generative AI."""
    import google.generativeai as genai
    if not api_key:
        raise LLMError("GEMINI_API_KEY is not configured")
    genai.configure(api_key=api_key)
    model_name = model if model and "gemini" in model else DEFAULT_MODEL
    gemini = genai.GenerativeModel(model_name)
    try:
        response = gemini.generate_content(prompt)
    except Exception as e:
        raise LLMError(str(e)) from e
    try:
        return (response.text or "").strip()
    except ValueError:
        # Blocked or empty candidates have no text part
        return ""


async def generate(prompt: str, api_key: Optional[str], model: str = DEFAULT_MODEL) -> str:
    """Async completion. Runs sync SDK in thread pool."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(
        None,
        lambda: _sync_generate(prompt, api_key, model),
    )
