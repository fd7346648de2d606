import asyncio

from conftest import stroke
from models.canvas_models import Bounds, MutationEvent
from services.canvas.debouncer import ActivityDebouncer
from services.canvas.document import CanvasDocument


def test_burst_of_edits_fires_once_after_quiet_period():
    async def scenario():
        fired = []
        document = CanvasDocument()
        debouncer = ActivityDebouncer(lambda: fired.append(True), quiet_period=0.05)
        debouncer.arm(document, start_timer=False)
        for i in range(5):
            document.create_shape(stroke(f"shape:{i}", x=i * 10))
            await asyncio.sleep(0.01)
        before = len(fired)
        await asyncio.sleep(0.1)
        debouncer.disarm()
        return before, fired, debouncer.session.quiet_count

    before, fired, quiet_count = asyncio.run(scenario())

    assert before == 0
    assert fired == [True]
    assert quiet_count == 1


def test_watch_keeps_running_after_firing():
    async def scenario():
        fired = []
        document = CanvasDocument()
        debouncer = ActivityDebouncer(lambda: fired.append(True), quiet_period=0.02)
        debouncer.arm(document, start_timer=False)
        document.create_shape(stroke("shape:a"))
        await asyncio.sleep(0.06)
        document.create_shape(stroke("shape:b"))
        await asyncio.sleep(0.06)
        debouncer.disarm()
        return fired

    assert len(asyncio.run(scenario())) == 2


def test_arm_starts_an_initial_countdown():
    async def scenario():
        fired = []
        debouncer = ActivityDebouncer(lambda: fired.append(True), quiet_period=0.02)
        debouncer.arm(CanvasDocument())
        await asyncio.sleep(0.06)
        debouncer.disarm()
        return fired

    assert asyncio.run(scenario()) == [True]


def test_non_qualifying_and_suppressed_events_are_ignored():
    async def scenario():
        suppressed = {"on": False}
        fired = []
        document = CanvasDocument()
        debouncer = ActivityDebouncer(
            lambda: fired.append(True), quiet_period=0.02, is_suppressed=lambda: suppressed["on"]
        )
        debouncer.arm(document, start_timer=False)

        results = [
            debouncer.notify(MutationEvent("update", "shape:x", source="remote")),
            debouncer.notify(MutationEvent("viewport", None, scope="session")),
        ]
        document.set_viewport(Bounds(10, 10, 640, 480))
        suppressed["on"] = True
        results.append(debouncer.notify(MutationEvent("create", "shape:y")))
        await asyncio.sleep(0.06)
        debouncer.disarm()
        return results, fired

    results, fired = asyncio.run(scenario())

    assert results == [False, False, False]
    assert fired == []


def test_disarm_cancels_pending_timer():
    async def scenario():
        fired = []
        document = CanvasDocument()
        debouncer = ActivityDebouncer(lambda: fired.append(True), quiet_period=0.02)
        debouncer.arm(document, start_timer=False)
        document.create_shape(stroke())
        debouncer.disarm()
        debouncer.disarm()
        document.create_shape(stroke("shape:after"))
        await asyncio.sleep(0.06)
        return fired, debouncer.armed

    fired, armed = asyncio.run(scenario())

    assert fired == []
    assert armed is False
