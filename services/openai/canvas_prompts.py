"""Prompt builders for canvas OCR, help detection and overlay generation."""

from typing import Optional

OCR_PROMPT = (
    "Extract all handwritten and typed text from this image. Return only the extracted text, "
    "preserving the structure and layout as much as possible. If there are mathematical equations, "
    "preserve them in a readable format."
)

_BASE_ANALYSIS = (
    "Analyze the user's writing in the image carefully. Look for incomplete work or any indication "
    "that the user is working through something challenging and might benefit from some form of assistance."
)

_CORE_RULES = (
    "\n\n**CRITICAL:**\n"
    "- DO NOT remove, modify, move, transform, or touch ANY of the image's existing content\n"
    "- ONLY add new content to the image\n"
    "- Try your best to match the user's handwriting style"
)

_NO_HELP = (
    "\n\nIf the user does NOT seem to need help:\n"
    "- Simply respond concisely with text explaining why help isn't needed. Do not generate an image.\n\n"
    "Be thoughtful about when to offer help - look for clear signs of incomplete problems or questions."
)

_MODE_INSTRUCTIONS = {
    "feedback": (
        "- Provide the least intrusive assistance - think of adding visual annotations\n"
        "- Add visual feedback elements: highlighting, underlining, arrows, circles, light margin notes, etc.\n"
        "- Try to use colors that stand out but complement the work\n"
        "- Write in a natural style that matches the user's handwriting"
    ),
    "suggest": (
        "- Provide a HELPFUL HINT or guide them to the next step - don't solve the entire problem\n"
        "- Add suggestions for what to try next, guiding questions, etc.\n"
        "- Point out which direction to go without giving the full answer"
    ),
    "answer": (
        "- Provide COMPLETE, DETAILED assistance - fully solve the problem or answer the question\n"
        "- Try to make it comprehensive and educational"
    ),
}
_DEFAULT_INSTRUCTION = "- Provide a helpful hint or guide them to the next step"

_HELP_QUESTION = (
    "does this user appear to need help with a problem? Look for incomplete work, questions, stuck points, "
    "math problems, coding problems, or any indication that they're working through something challenging "
    "and might benefit from a solution or hint.\n\n"
    "Respond with a JSON object containing:\n"
    '- "needsHelp": true or false\n'
    '- "confidence": a number between 0 and 1 indicating your confidence\n'
    '- "reason": a brief explanation of your decision\n\n'
    'Example: {"needsHelp": true, "confidence": 0.85, "reason": "User has written an incomplete math problem with no solution"}'
)

WORKSPACE_SYSTEM_PROMPT = (
    "You are analyzing a student whiteboard canvas. Describe what the user is working on, "
    "how far along they are, any apparent mistakes or gaps, and where they might need help. "
    "Be concrete and concise. You are only returning analysis for a voice assistant; "
    "do not invent actions or drawings."
)

VOICE_DRAW_SUFFIX = "Modify the image to include the solution in handwriting."
VOICE_DRAW_DEFAULT = "Modify the image to include the solution in handwriting with clear steps."


def build_mode_prompt(mode: Optional[str]) -> str:
    """Return the generation prompt for an assistance mode (None for the generic hint)."""
    instruction = _MODE_INSTRUCTIONS.get(mode or "", _DEFAULT_INSTRUCTION)
    return f"{_BASE_ANALYSIS}\n\nIf the user needs help:\n{instruction}{_CORE_RULES}{_NO_HELP}"


def build_generation_prompt(mode: Optional[str], ocr_text: Optional[str] = None, prompt: Optional[str] = None) -> str:
    """Caller prompt wins; otherwise the mode prompt, with extracted text appended when known."""
    text = prompt.strip() if prompt and prompt.strip() else build_mode_prompt(mode)
    if ocr_text and ocr_text.strip():
        text += f"\n\nText extracted from the canvas:\n{ocr_text.strip()}"
    return text


def build_help_prompt(text: Optional[str]) -> str:
    """Return the help-check prompt, grounded in OCR text when present."""
    if text:
        return (
            f"Here is the extracted text from the user's canvas:\n\n{text}\n\n"
            f"Based on this text and/or the image, {_HELP_QUESTION}"
        )
    return f"Based on the image, {_HELP_QUESTION}"


def build_workspace_prompt(focus: Optional[str]) -> str:
    if focus and focus.strip():
        return f"Here is a snapshot of the user canvas. Focus on: {focus.strip()}"
    return "Here is a snapshot of the user canvas. Describe what they are working on and how you could help."


def build_voice_draw_prompt(prompt: Optional[str]) -> str:
    """Prompt for a voice-requested drawing."""
    if prompt and prompt.strip():
        return f"{prompt.strip().rstrip('.')}. {VOICE_DRAW_SUFFIX}"
    return VOICE_DRAW_DEFAULT
