import asyncio

import pytest

from models.canvas_models import CanvasShape, PendingArtifact
from services.canvas.document import CanvasDocument
from services.canvas.mutation_guard import SelfMutationGuard
from services.canvas.pending import PendingArtifactManager


def overlay(document, shape_id):
    document.create_shape(
        CanvasShape(id=shape_id, type="image", props={"assetId": "asset:1", "w": 10, "h": 10}, opacity=0.3, is_locked=True)
    )
    return PendingArtifact(shape_id=shape_id, asset_id="asset:1", opacity=0.3)


def test_accept_commits_overlay_under_guard():
    async def scenario():
        document = CanvasDocument()
        guard = SelfMutationGuard(0.05)
        changes = []
        pending = PendingArtifactManager(document, guard, on_change=changes.append)
        pending.register(overlay(document, "shape:a"))

        artifact = pending.accept("shape:a")
        guarded = guard.active
        await asyncio.sleep(0.1)
        return document, pending, artifact, guarded, guard.active, changes

    document, pending, artifact, guarded, still_guarded, changes = asyncio.run(scenario())

    shape = document.get_shape("shape:a")
    assert shape.opacity == 1.0
    assert shape.is_locked
    assert artifact.opacity == 1.0
    assert len(pending) == 0
    assert guarded and not still_guarded
    assert changes == [["shape:a"], []]


def test_reject_deletes_overlay():
    async def scenario():
        document = CanvasDocument()
        pending = PendingArtifactManager(document, SelfMutationGuard(0.01))
        pending.register(overlay(document, "shape:a"))
        pending.reject("shape:a")
        return document, pending

    document, pending = asyncio.run(scenario())

    assert document.get_shape("shape:a") is None
    assert pending.ids() == []


def test_current_is_most_recent_and_accept_all_clears_queue():
    async def scenario():
        document = CanvasDocument()
        pending = PendingArtifactManager(document, SelfMutationGuard(0.01))
        pending.register(overlay(document, "shape:a"))
        pending.register(overlay(document, "shape:b"))
        current = pending.current()
        accepted = pending.accept_all()
        return current, accepted, pending

    current, accepted, pending = asyncio.run(scenario())

    assert current == "shape:b"
    assert [a.shape_id for a in accepted] == ["shape:a", "shape:b"]
    assert pending.current() is None


def test_unknown_or_vanished_overlay_raises_key_error():
    async def scenario():
        document = CanvasDocument()
        pending = PendingArtifactManager(document, SelfMutationGuard(0.01))
        pending.register(overlay(document, "shape:a"))
        document.delete_shape("shape:a")
        with pytest.raises(KeyError):
            pending.accept("shape:a")
        with pytest.raises(KeyError):
            pending.reject("shape:missing")
        return pending

    assert len(asyncio.run(scenario())) == 0
