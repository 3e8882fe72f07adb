"""Prompt templates for AI CV optimization.

Sections are optimized independently; every prompt asks for plain text so the
response can be stored back into the CV content as-is.
"""

BASE_PROMPT = (
    "You are an expert CV writer and recruiter. Rewrite the text you are "
    "given so it is concise, achievement-focused and easy to scan. Use "
    "strong action verbs and quantify results where the original supports "
    "it. Never invent employers, dates, titles or numbers. Return plain "
    "text only, without commentary."
)

SECTION_PROMPTS = {
    "default": "Improve clarity and impact while keeping the original meaning.",
    "summary": "Write a three to four sentence professional summary.",
    "experience": "Rewrite as bullet points, one achievement per line, each starting with '- '.",
    "skills": "Return a comma-separated list of skills, most relevant first.",
    "cover_letter": "Keep a professional, warm tone and a clear closing call to action.",
}


def section_instruction(section: str) -> str:
    return SECTION_PROMPTS.get((section or "").lower(), SECTION_PROMPTS["default"])
