import pytest

from conftest import stroke
from services.canvas.document import CanvasDocument


def recording_document(*shapes):
    document = CanvasDocument()
    for shape in shapes:
        document.create_shape(shape)
    events = []
    document.listen(events.append)
    return document, events


def test_bad_op_leaves_the_batch_unapplied():
    document, events = recording_document(stroke("shape:a"))

    with pytest.raises(ValueError):
        document.apply_ops(
            [
                {"op": "create", "shape": stroke("shape:b").to_dict()},
                {"op": "delete", "id": "shape:a"},
                {"op": "explode"},
            ]
        )

    assert document.shape_ids() == ["shape:a"]
    assert events == []


def test_malformed_record_leaves_the_batch_unapplied():
    document, events = recording_document()

    with pytest.raises(ValueError):
        document.apply_ops(
            [
                {"op": "create", "shape": stroke("shape:b").to_dict()},
                {"op": "create", "shape": {"id": "shape:c", "type": "draw", "x": "left"}},
            ]
        )

    assert document.shape_ids() == []
    assert events == []


def test_create_of_existing_id_replaces_the_shape():
    document, events = recording_document(stroke("shape:a"))

    applied = document.apply_ops(
        [
            {"op": "create", "shape": stroke("shape:b").to_dict()},
            {"op": "create", "shape": stroke("shape:a", x=300).to_dict()},
        ]
    )

    assert applied == 2
    assert document.shape_ids() == ["shape:a", "shape:b"]
    assert document.get_shape("shape:a").x == 300
    assert [(e.kind, e.record_id) for e in events] == [("create", "shape:b"), ("update", "shape:a")]


def test_ops_in_one_batch_see_earlier_ops():
    document, events = recording_document()

    document.apply_ops(
        [
            {"op": "create", "shape": stroke("shape:a").to_dict()},
            {"op": "update", "shape": {"id": "shape:a", "x": 42}},
            {"op": "delete", "id": "shape:a"},
            {"op": "delete", "id": "shape:missing"},
        ]
    )

    assert document.shape_ids() == []
    assert [e.kind for e in events] == ["create", "update", "delete"]
    assert all(e.origin == "client" for e in events)
