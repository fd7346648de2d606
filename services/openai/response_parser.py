"""Helpers to pull images, text and JSON decisions out of chat completion messages.

Image generation backends disagree on where the generated image lives, so
`extract_image_url` tries an ordered list of strategies and stops at the
first hit:

1. ``message.images[0]`` with ``image_url.url`` or ``url``
2. a content array part of type ``image_url`` or ``output_image``
3. a base64 image data URL inside string content
4. an http(s) URL ending in an image extension inside string content
"""

import json
import re
from typing import Any, Callable, Dict, List, Optional

_DATA_URL_RE = re.compile(r"data:image/[a-zA-Z+]+;base64,[^\s\")'}]+")
_HTTP_IMAGE_RE = re.compile(r"https?://[^\s\")'}]+?\.(?:png|jpg|jpeg|gif|webp)", re.IGNORECASE)


def _from_images_field(message: Dict[str, Any]) -> Optional[str]:
    images = message.get("images")
    if not isinstance(images, list) or not images:
        return None
    first = images[0] or {}
    if not isinstance(first, dict):
        return None
    nested = first.get("image_url")
    if isinstance(nested, dict) and nested.get("url"):
        return nested["url"]
    return first.get("url") or None


def _from_content_parts(message: Dict[str, Any]) -> Optional[str]:
    content = message.get("content")
    if not isinstance(content, list):
        return None
    for part in content:
        if not isinstance(part, dict):
            continue
        nested = part.get("image_url") if isinstance(part.get("image_url"), dict) else {}
        if part.get("type") == "image_url" and nested.get("url"):
            return nested["url"]
        if part.get("type") == "output_image" and (part.get("url") or nested.get("url")):
            return part.get("url") or nested.get("url")
    return None


def _from_data_url_text(message: Dict[str, Any]) -> Optional[str]:
    content = message.get("content")
    if not isinstance(content, str):
        return None
    match = _DATA_URL_RE.search(content)
    return match.group(0) if match else None


def _from_http_url_text(message: Dict[str, Any]) -> Optional[str]:
    content = message.get("content")
    if not isinstance(content, str):
        return None
    match = _HTTP_IMAGE_RE.search(content)
    return match.group(0) if match else None


IMAGE_URL_STRATEGIES: List[Callable[[Dict[str, Any]], Optional[str]]] = [
    _from_images_field,
    _from_content_parts,
    _from_data_url_text,
    _from_http_url_text,
]


def extract_image_url(message: Dict[str, Any]) -> Optional[str]:
    """Return the first image URL any strategy finds, else None."""
    for strategy in IMAGE_URL_STRATEGIES:
        url = strategy(message)
        if url:
            return url
    return None


def extract_text(message: Dict[str, Any]) -> str:
    """Join the textual content of a message."""
    content = message.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = [
            part.get("text", "")
            for part in content
            if isinstance(part, dict) and part.get("type") in ("text", "output_text")
        ]
        return "\n".join(p for p in parts if p)
    return message.get("text") or ""


def parse_help_decision(raw: Optional[str]) -> Dict[str, Any]:
    """Parse the help classifier's JSON object.

    Raises:
        ValueError: If `raw` is not a JSON object.
    """
    try:
        decision = json.loads(raw or "{}")
    except json.JSONDecodeError as exc:
        raise ValueError("Help classifier returned malformed JSON.") from exc
    if not isinstance(decision, dict):
        raise ValueError("Help classifier returned a non-object payload.")
    try:
        confidence = float(decision.get("confidence") or 0)
    except (TypeError, ValueError):
        confidence = 0.0
    return {
        "needs_help": bool(decision.get("needsHelp", False)),
        "confidence": confidence,
        "reason": str(decision.get("reason") or ""),
    }
