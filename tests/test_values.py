import json
import math

import pytest

from aquascope.values import (
    ABBREV_MAX,
    Abbreviated,
    HeapAllocKind,
    HeapSegment,
    MAdt,
    MArray,
    MBool,
    MChar,
    MFloat,
    MHeapAllocKind,
    MInt,
    MPath,
    MPathSegment,
    MPointer,
    MTuple,
    MUint,
    MUnallocated,
    PathSegmentKind,
    StackSegment,
    to_json,
)


def test_build_short_keeps_everything():
    abbrev = Abbreviated.build(5, lambda i: i * 10)
    assert abbrev.items == [0, 10, 20, 30, 40]
    assert abbrev.abbreviated is False
    assert abbrev.tail is None


def test_build_at_limit_is_complete():
    abbrev = Abbreviated.build(ABBREV_MAX, lambda i: i)
    assert abbrev.items == list(range(ABBREV_MAX))
    assert not abbrev.abbreviated


def test_build_long_keeps_prefix_and_last():
    calls = []

    def mk(i):
        calls.append(i)
        return i

    abbrev = Abbreviated.build(100, mk)
    assert abbrev.abbreviated
    assert abbrev.items == list(range(ABBREV_MAX - 1))
    assert abbrev.tail == 99
    assert calls == list(range(ABBREV_MAX - 1)) + [99]


def test_build_propagates_errors():
    def mk(i):
        if i == 3:
            raise KeyError("boom")
        return i

    with pytest.raises(KeyError):
        Abbreviated.build(10, mk)


def test_build_rejects_negative_length():
    with pytest.raises(ValueError):
        Abbreviated.build(-1, lambda i: i)


def test_map_preserves_shape():
    long = Abbreviated.build(30, lambda i: i)
    mapped = long.map(str)
    assert mapped.items == [str(i) for i in long.items]
    assert mapped.tail == "29"
    assert mapped.abbreviated

    short = Abbreviated.build(3, lambda i: i).map(lambda x: x + 1)
    assert short == Abbreviated([1, 2, 3])


def test_complete_sequence_cannot_have_tail():
    with pytest.raises(ValueError):
        Abbreviated([1], tail=2)


def test_primitive_json_shapes():
    assert to_json(MBool(True)) == {"type": "Bool", "value": True}
    assert to_json(MUint(7)) == {"type": "Uint", "value": 7}
    assert to_json(MInt(-7)) == {"type": "Int", "value": -7}
    assert to_json(MChar(ord("a"))) == {"type": "Char", "value": ord("a")}
    assert to_json(MFloat(1.5)) == {"type": "Float", "value": 1.5}


def test_non_finite_float_becomes_null():
    assert to_json(MFloat(math.nan)) == {"type": "Float", "value": None}
    assert to_json(MFloat(math.inf))["value"] is None


def test_integer_range_checks():
    with pytest.raises(ValueError):
        MUint(-1)
    with pytest.raises(ValueError):
        MInt(2**63)
    with pytest.raises(TypeError):
        MBool(1)
    with pytest.raises(TypeError):
        MUint(True)


def test_array_json_all_and_only():
    short = MArray(Abbreviated.build(2, MUint))
    assert to_json(short) == {
        "type": "Array",
        "value": {"type": "All", "value": [to_json(MUint(0)), to_json(MUint(1))]},
    }
    long = MArray(Abbreviated.build(20, MUint))
    body = to_json(long)["value"]
    assert body["type"] == "Only"
    prefix, last = body["value"]
    assert len(prefix) == ABBREV_MAX - 1
    assert last == to_json(MUint(19))


def test_adt_json_with_box_alloc_kind():
    value = MAdt(
        name="Box",
        fields=[("0", MUint(5))],
        alloc_kind=MHeapAllocKind("Box"),
    )
    assert to_json(value) == {
        "type": "Adt",
        "value": {
            "name": "Box",
            "variant": None,
            "fields": [["0", {"type": "Uint", "value": 5}]],
            "alloc_kind": {"type": "Box"},
        },
    }


def test_adt_json_with_vec_alloc_kind_and_variant():
    value = MAdt(
        name="Option",
        variant="Some",
        fields=[("0", MTuple([MBool(False)]))],
        alloc_kind=MHeapAllocKind("Vec", 3),
    )
    data = to_json(value)["value"]
    assert data["variant"] == "Some"
    assert data["alloc_kind"] == {"type": "Vec", "value": {"len": 3}}
    assert data["fields"][0][1] == {"type": "Tuple", "value": [to_json(MBool(False))]}


def test_pointer_json():
    path = MPath(
        StackSegment(frame=0, local="x"),
        [
            MPathSegment(PathSegmentKind.FIELD, 1),
            MPathSegment(PathSegmentKind.INDEX, 2),
            MPathSegment(PathSegmentKind.SUBSLICE, 0, 4),
        ],
    )
    assert to_json(MPointer(path, range=4)) == {
        "type": "Pointer",
        "value": {
            "path": {
                "segment": {"type": "Stack", "value": {"frame": 0, "local": "x"}},
                "parts": [
                    {"type": "Field", "value": 1},
                    {"type": "Index", "value": 2},
                    {"type": "Subslice", "value": [0, 4]},
                ],
            },
            "range": 4,
        },
    }


def test_heap_segment_and_unallocated_json():
    assert to_json(HeapSegment(3)) == {"type": "Heap", "value": {"index": 3}}
    assert to_json(MUnallocated()) == {"type": "Unallocated", "value": {"alloc_id": None}}
    assert to_json(MUnallocated(2))["value"]["alloc_id"] == 2


def test_path_segment_validation():
    with pytest.raises(ValueError):
        MPathSegment(PathSegmentKind.SUBSLICE, 0)
    with pytest.raises(ValueError):
        MPathSegment(PathSegmentKind.FIELD, 0, 1)


def test_heap_alloc_kind_export_drops_element_type():
    internal = HeapAllocKind("Vec", 4, el_ty=object())
    assert internal.exported == MHeapAllocKind("Vec", 4)
    assert to_json(internal) == to_json(MHeapAllocKind("Vec", 4))
    assert HeapAllocKind("String", 2).exported == MHeapAllocKind("String", 2)


def test_alloc_kind_validation():
    with pytest.raises(ValueError):
        MHeapAllocKind("Box", 1)
    with pytest.raises(ValueError):
        MHeapAllocKind("String")
    with pytest.raises(ValueError):
        MHeapAllocKind("Map", 1)
    with pytest.raises(ValueError):
        HeapAllocKind("Box", el_ty=object())


def test_json_output_is_serialisable():
    value = MTuple([MArray(Abbreviated.build(15, MInt)), MFloat(math.nan)])
    text = json.dumps(to_json(value), allow_nan=False)
    assert json.loads(text) == to_json(value)


def test_unknown_type_rejected():
    with pytest.raises(TypeError):
        to_json(object())
    with pytest.raises(TypeError):
        to_json({"a": 1})