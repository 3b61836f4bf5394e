"""LLM Configuration for the Sentient Guide.

This module handles Gemini model initialization with appropriate safety settings.
"""
import logging
from typing import Any, List, Optional
import google.generativeai as genai
from config.settings import (
    GOOGLE_API_KEY,
    GEMINI_MODEL_NAME,
    MODEL_TEMPERATURE,
    MODEL_MAX_OUTPUT_TOKENS,
)

logger = logging.getLogger(__name__)

# Self-harm content must reach the crisis layer, so it is not blocked outright
SAFETY_SETTINGS = [
    {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
    {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
    {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
    {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_ONLY_HIGH"},
]


def get_gemini_model(
    model_name: str = GEMINI_MODEL_NAME,
    system_instruction: Optional[str] = None,
    tools: Optional[List[Any]] = None,
):
    """
    Configures and returns a Gemini model instance.

    Args:
        model_name: Gemini model to use (default: GEMINI_MODEL_NAME)
        system_instruction: System prompt bound to the model for this call
        tools: Function declarations the model may call

    Returns:
        GenerativeModel instance or None if API key is missing.
    """
    if not GOOGLE_API_KEY:
        logger.warning("GOOGLE_API_KEY not set. Conversation core will use fallback mode.")
        return None

    genai.configure(api_key=GOOGLE_API_KEY)

    model = genai.GenerativeModel(
        model_name=model_name,
        safety_settings=SAFETY_SETTINGS,
        generation_config={
            "temperature": MODEL_TEMPERATURE,
            "max_output_tokens": MODEL_MAX_OUTPUT_TOKENS,
        },
        system_instruction=system_instruction,
        tools=tools,
    )
    return model
