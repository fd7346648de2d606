"""Utilities for serializing OpenAI-compatible chat completion responses."""

from typing import Any, Dict, Optional


def serialize_response(response: Any) -> Any:
    """Convert a response object into a serializable structure."""
    if isinstance(response, dict):
        return response
    if hasattr(response, "model_dump"):
        return response.model_dump()
    if hasattr(response, "to_dict"):
        return response.to_dict()
    return str(response)


def first_message(response: Any) -> Dict[str, Any]:
    """Return the first choice's message as a dict, or an empty dict."""
    payload = serialize_response(response)
    if not isinstance(payload, dict):
        return {}
    choices = payload.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return {}
    return choices[0].get("message") or {}


def extract_usage(response: Any) -> Dict[str, Optional[int]]:
    """Return token usage if present."""
    payload = serialize_response(response)
    usage = payload.get("usage") if isinstance(payload, dict) else None
    usage = usage or {}
    return {
        "input_tokens": usage.get("prompt_tokens"),
        "output_tokens": usage.get("completion_tokens"),
        "total_tokens": usage.get("total_tokens"),
    }
