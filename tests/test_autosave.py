import asyncio
import io
import json

from PIL import Image

from conftest import drawn_document, stroke
from services.canvas.autosave import BoardAutosaver
from services.canvas.document import CanvasDocument
from services.canvas.snapshotter import CanvasSnapshotter


class Recorder:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls = []

    async def __call__(self, data, preview):
        self.calls.append((data, preview))
        if self.fail:
            raise RuntimeError("disk full")
        return True


def test_flush_saves_snapshot_json_and_png_preview():
    async def scenario():
        document = drawn_document()
        save = Recorder()
        saver = BoardAutosaver(document, CanvasSnapshotter(document), save)
        return await saver.flush(), save, saver.saves

    ok, save, saves = asyncio.run(scenario())

    assert ok and saves == 1
    data, preview = save.calls[0]
    assert json.loads(data)["shapes"][0]["id"] == "shape:stroke"
    with Image.open(io.BytesIO(preview)) as image:
        assert image.format == "PNG"


def test_empty_board_saves_without_preview():
    async def scenario():
        document = CanvasDocument()
        save = Recorder()
        await BoardAutosaver(document, CanvasSnapshotter(document), save).flush()
        return save

    save = asyncio.run(scenario())

    assert save.calls[0][1] is None


def test_save_failure_is_logged_not_raised(caplog):
    async def scenario():
        document = drawn_document()
        return await BoardAutosaver(document, CanvasSnapshotter(document), Recorder(fail=True)).flush()

    assert asyncio.run(scenario()) is False
    assert "Autosave failed" in caplog.text


def test_edits_are_saved_once_after_delay():
    async def scenario():
        document = CanvasDocument()
        save = Recorder()
        saver = BoardAutosaver(document, CanvasSnapshotter(document), save, delay=0.03)
        saver.start()
        document.create_shape(stroke("shape:a"))
        document.create_shape(stroke("shape:b", x=200))
        await asyncio.sleep(0.15)
        saver.stop()
        return save

    save = asyncio.run(scenario())

    assert len(save.calls) == 1
    assert len(json.loads(save.calls[0][0])["shapes"]) == 2


def test_close_writes_unsaved_edits_only():
    async def scenario():
        document = CanvasDocument()
        save = Recorder()
        idle = BoardAutosaver(document, CanvasSnapshotter(document), save, delay=60)
        idle.start()
        untouched = await idle.close()

        edited = BoardAutosaver(document, CanvasSnapshotter(document), save, delay=60)
        edited.start()
        document.create_shape(stroke())
        flushed = await edited.close()
        return untouched, flushed, save

    untouched, flushed, save = asyncio.run(scenario())

    assert untouched is False
    assert flushed is True
    assert len(save.calls) == 1
