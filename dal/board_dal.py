"""Async Data Access Layer for the BOARD table.

Provides BoardDAL with the dashboard operations (create, list/search,
rename, delete) plus the snapshot writes used by autosave.
"""

from __future__ import annotations

import time
from typing import List, Optional, Sequence
from uuid import uuid4

from models.board_record import DEFAULT_BOARD_TITLE, BoardRecord
from utils.database_init import AsyncDatabaseInitializer


class BoardDAL:
    """Data access layer for BOARD records.

    The constructor accepts an `AsyncDatabaseInitializer` (or any object
    exposing an async `connection()` context manager that yields an
    `aiosqlite.Connection`).
    """

    _COLUMNS = ("id", "title", "data", "preview", "created_at", "updated_at")
    _COLUMN_LIST = ", ".join(_COLUMNS)

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def create_board(self, title: Optional[str] = None, data: Optional[str] = None) -> BoardRecord:
        """Insert a new board and return it.

        Args:
            title: Display title; blank titles fall back to "Untitled Whiteboard".
            data: Optional initial snapshot JSON.
        """
        now = int(time.time())
        record = BoardRecord(
            id=str(uuid4()),
            title=(title or "").strip() or DEFAULT_BOARD_TITLE,
            data=data,
            created_at=now,
            updated_at=now,
        )

        async with self._db.connection() as conn:
            await conn.execute(
                f"INSERT INTO BOARD ({self._COLUMN_LIST}) VALUES (?, ?, ?, ?, ?, ?)",
                (record.id, record.title, record.data, record.preview, record.created_at, record.updated_at),
            )
            await conn.commit()
        return record

    async def get_board(self, board_id: str) -> Optional[BoardRecord]:
        """Return the BoardRecord for `board_id`, or None if not found."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM BOARD WHERE id = ?",
                (board_id,),
            )
            row = await cur.fetchone()
            return self._row_to_record(row) if row else None

    async def list_boards(self, search: Optional[str] = None, limit: int = 100, offset: int = 0) -> List[BoardRecord]:
        """List boards, most recently updated first.

        Args:
            search: Optional case-insensitive substring matched against titles.
            limit: Maximum number of rows to return.
            offset: Rows to skip.
        """
        sql = f"SELECT {self._COLUMN_LIST} FROM BOARD"
        params: list = []
        term = (search or "").strip()
        if term:
            escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            sql += " WHERE title LIKE ? ESCAPE '\\'"
            params.append(f"%{escaped}%")
        sql += " ORDER BY updated_at DESC, created_at DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        async with self._db.connection() as conn:
            cur = await conn.execute(sql, tuple(params))
            rows = await cur.fetchall()
            return [self._row_to_record(r) for r in rows]

    async def update_board(
        self,
        board_id: str,
        *,
        title: Optional[str] = None,
        data: Optional[str] = None,
        preview: Optional[bytes] = None,
    ) -> bool:
        """Update fields of a board and bump `updated_at`. Returns True if a row was changed."""
        updates = {"title": title, "data": data, "preview": preview}
        fields = [f"{col} = ?" for col, val in updates.items() if val is not None]

        if not fields:
            return False

        params: list = [val for val in updates.values() if val is not None]
        fields.append("updated_at = ?")
        params.append(int(time.time()))
        params.append(board_id)
        sql = f"UPDATE BOARD SET {', '.join(fields)} WHERE id = ?"

        async with self._db.connection() as conn:
            await conn.execute(sql, tuple(params))
            await conn.commit()
            cur = await conn.execute("SELECT changes()")
            changed = await cur.fetchone()
            return bool(changed and changed[0] > 0)

    async def rename_board(self, board_id: str, title: str) -> bool:
        """Rename a board. Blank titles are rejected."""
        cleaned = (title or "").strip()
        if not cleaned:
            raise ValueError("Board title must not be empty.")
        return await self.update_board(board_id, title=cleaned)

    async def delete_board(self, board_id: str) -> bool:
        """Delete a board by id. Returns True if a row was deleted."""
        async with self._db.connection() as conn:
            await conn.execute("DELETE FROM BOARD WHERE id = ?", (board_id,))
            await conn.commit()
            cur = await conn.execute("SELECT changes()")
            changed = await cur.fetchone()
            return bool(changed and changed[0] > 0)

    @staticmethod
    def _row_to_record(row: Sequence[object]) -> BoardRecord:
        """Convert a DB row tuple into a BoardRecord."""
        return BoardRecord(
            id=row[0],
            title=row[1],
            data=row[2],
            preview=row[3],
            created_at=row[4],
            updated_at=row[5],
        )
