from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

DEFAULT_BOARD_TITLE = "Untitled Whiteboard"


@dataclass
class BoardRecord:
    """In-memory representation of a row in the BOARD table.

    Attributes:
        id: Primary key (uuid4 string).
        title: Display title shown on the dashboard.
        data: Serialized canvas snapshot (JSON text), None for a new board.
        preview: Optional low resolution PNG bytes of the board contents.
        created_at: Unix timestamp (seconds) when the row was inserted.
        updated_at: Unix timestamp (seconds) of the last write.
    """

    id: str
    title: str = DEFAULT_BOARD_TITLE
    data: Optional[str] = None
    preview: Optional[bytes] = None
    created_at: Optional[int] = None
    updated_at: Optional[int] = None

    def to_summary(self) -> Dict[str, Any]:
        """Dashboard listing entry, without the snapshot body."""
        return {
            "id": self.id,
            "title": self.title,
            "has_preview": self.preview is not None,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
