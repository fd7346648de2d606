import asyncio
import itertools
from types import SimpleNamespace

import pytest

from dal.board_dal import BoardDAL
from models.board_record import DEFAULT_BOARD_TITLE
from utils.database_init import AsyncDatabaseInitializer


def test_create_get_and_default_title(db_dir):
    async def scenario():
        dal = BoardDAL(AsyncDatabaseInitializer(db_dir))
        untitled = await dal.create_board()
        named = await dal.create_board("  Algebra homework ")
        return untitled, named, await dal.get_board(named.id), await dal.get_board("missing")

    untitled, named, fetched, missing = asyncio.run(scenario())

    assert untitled.title == DEFAULT_BOARD_TITLE
    assert named.title == "Algebra homework"
    assert fetched.title == "Algebra homework"
    assert fetched.data is None and fetched.preview is None
    assert missing is None


def test_list_orders_by_last_update_and_filters_by_title(db_dir, monkeypatch):
    clock = itertools.count(1000)
    monkeypatch.setattr("dal.board_dal.time", SimpleNamespace(time=lambda: next(clock)))

    async def scenario():
        dal = BoardDAL(AsyncDatabaseInitializer(db_dir))
        first = await dal.create_board("Calculus 100%")
        second = await dal.create_board("Geometry")
        await dal.update_board(first.id, data='{"version":1}')
        everything = await dal.list_boards()
        searched = await dal.list_boards(search="calc")
        literal = await dal.list_boards(search="100%")
        wildcard = await dal.list_boards(search="%")
        return first, second, everything, searched, literal, wildcard

    first, second, everything, searched, literal, wildcard = asyncio.run(scenario())

    assert [b.id for b in everything] == [first.id, second.id]
    assert [b.id for b in searched] == [first.id]
    assert [b.id for b in literal] == [first.id]
    assert [b.id for b in wildcard] == [first.id]


def test_update_rename_and_delete(db_dir):
    async def scenario():
        dal = BoardDAL(AsyncDatabaseInitializer(db_dir))
        board = await dal.create_board("Draft")
        saved = await dal.update_board(board.id, data="{}", preview=b"\x89PNG")
        nothing = await dal.update_board(board.id)
        renamed = await dal.rename_board(board.id, "Final")
        with pytest.raises(ValueError):
            await dal.rename_board(board.id, "   ")
        stored = await dal.get_board(board.id)
        deleted = await dal.delete_board(board.id)
        again = await dal.delete_board(board.id)
        unknown = await dal.update_board("missing", data="{}")
        return saved, nothing, renamed, stored, deleted, again, unknown

    saved, nothing, renamed, stored, deleted, again, unknown = asyncio.run(scenario())

    assert saved and renamed and deleted
    assert not nothing and not again and not unknown
    assert stored.title == "Final"
    assert stored.data == "{}"
    assert stored.preview == b"\x89PNG"


def test_existing_database_survives_restart_unless_reset(db_dir):
    async def scenario():
        board = await BoardDAL(AsyncDatabaseInitializer(db_dir)).create_board("Keep me")
        kept = await BoardDAL(AsyncDatabaseInitializer(db_dir)).get_board(board.id)
        wiped = await BoardDAL(AsyncDatabaseInitializer(db_dir, reset=True)).get_board(board.id)
        return kept, wiped

    kept, wiped = asyncio.run(scenario())

    assert kept is not None
    assert wiped is None
