"""Assistance mode lookup table consumed at materialization time."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, Optional

from models.canvas_models import AssistanceMode


@dataclass(frozen=True)
class ModeProfile:
    mode: Optional[AssistanceMode]
    opacity: float
    reviewable: bool
    working_message: str
    done_message: str


MODE_PROFILES: Dict[Optional[AssistanceMode], ModeProfile] = {
    AssistanceMode.FEEDBACK: ModeProfile(
        mode=AssistanceMode.FEEDBACK,
        opacity=1.0,
        reviewable=False,
        working_message="Adding feedback...",
        done_message="Feedback added",
    ),
    AssistanceMode.SUGGEST: ModeProfile(
        mode=AssistanceMode.SUGGEST,
        opacity=0.3,
        reviewable=True,
        working_message="Generating suggestion...",
        done_message="Suggestion added",
    ),
    AssistanceMode.ANSWER: ModeProfile(
        mode=AssistanceMode.ANSWER,
        opacity=0.3,
        reviewable=True,
        working_message="Solving problem...",
        done_message="Solution added",
    ),
    None: ModeProfile(
        mode=None,
        opacity=0.3,
        reviewable=True,
        working_message="Generating solution...",
        done_message="Solution added",
    ),
}


def profile_for(mode: Optional[AssistanceMode], pending_opacity: Optional[float] = None) -> ModeProfile:
    """Look up `mode`; reviewable modes take `pending_opacity` when given."""
    profile = MODE_PROFILES[mode]
    if pending_opacity is not None and profile.reviewable:
        return replace(profile, opacity=pending_opacity)
    return profile
