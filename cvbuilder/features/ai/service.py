"""AI CV optimization service.

Sends CV text to Groq chat completions and returns the rewritten text.
Without GROQ_API_KEY the feature is unavailable (503) and the request fails
before any quota is consumed.
"""

from typing import Optional

import groq

from cvbuilder.core.config import settings
from cvbuilder.core.errors import ServiceUnavailableError, ValidationError
from cvbuilder.core.logging import get_logger
from cvbuilder.features.ai.prompts import BASE_PROMPT, section_instruction

logger = get_logger("AIService")

MAX_INPUT_CHARS = 8000


def optimize_cv_text(text: str, section: Optional[str] = None, job_description: Optional[str] = None) -> str:
    """
    Rewrite one CV section.

    Raises:
        ValidationError: empty or oversized input
        ServiceUnavailableError: no API key configured or provider failure
    """
    cleaned = (text or "").strip()
    if not cleaned:
        raise ValidationError("Text to optimize is required")
    if len(cleaned) > MAX_INPUT_CHARS:
        raise ValidationError(f"Text to optimize must be at most {MAX_INPUT_CHARS} characters")

    if not settings.GROQ_API_KEY:
        raise ServiceUnavailableError("AI optimization is not configured")

    user_prompt = f"{section_instruction(section or 'default')}\n\nText:\n{cleaned}"
    if job_description:
        user_prompt += f"\n\nTarget job description:\n{job_description.strip()}"

    client = groq.Groq(api_key=settings.GROQ_API_KEY)
    try:
        completion = client.chat.completions.create(
            messages=[
                {"role": "system", "content": BASE_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            model=settings.GROQ_MODEL,
            temperature=0.4,
            max_tokens=1024,
        )
    except Exception as e:
        logger.error(f"Groq completion failed: {e}", exc_info=True, extra={"meta": {"section": section}})
        raise ServiceUnavailableError("AI provider request failed")

    optimized = (completion.choices[0].message.content or "").strip()
    logger.info(
        "CV text optimized",
        extra={"meta": {"section": section, "input_chars": len(cleaned), "output_chars": len(optimized)}},
    )
    return optimized
