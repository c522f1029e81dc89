"""Values read out of interpreter memory, with their JSON wire format.

Every tagged type serialises as ``{"type": <variant>, "value": <content>}``.
Variants without content carry only the ``"type"`` key.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar, Union

ABBREV_MAX = 12

_U64_MAX = 2**64 - 1
_I64_MIN = -(2**63)
_I64_MAX = 2**63 - 1

T = TypeVar("T")
U = TypeVar("U")


def _check_unsigned(name: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer, got {value!r}")
    if not 0 <= value <= _U64_MAX:
        raise ValueError(f"{name} out of unsigned range: {value}")


@dataclass(frozen=True)
class StackSegment:
    """A memory segment rooted in a local variable of a stack frame."""

    frame: int
    local: str

    def __post_init__(self) -> None:
        _check_unsigned("frame", self.frame)


@dataclass(frozen=True)
class HeapSegment:
    """A memory segment rooted in a heap allocation."""

    index: int

    def __post_init__(self) -> None:
        _check_unsigned("index", self.index)


MMemorySegment = Union[StackSegment, HeapSegment]


class PathSegmentKind(Enum):
    FIELD = "Field"
    INDEX = "Index"
    SUBSLICE = "Subslice"


@dataclass(frozen=True)
class MPathSegment:
    """One projection step of a path; ``end`` is used only by subslices."""

    kind: PathSegmentKind
    index: int
    end: int | None = None

    def __post_init__(self) -> None:
        _check_unsigned("index", self.index)
        if self.kind is PathSegmentKind.SUBSLICE:
            if self.end is None:
                raise ValueError("a subslice segment needs an end")
            _check_unsigned("end", self.end)
        elif self.end is not None:
            raise ValueError(f"a {self.kind.value} segment takes no end")


@dataclass(frozen=True)
class MPath:
    """A location inside memory: a root segment followed by projections."""

    segment: MMemorySegment
    parts: list[MPathSegment] = field(default_factory=list)


@dataclass(frozen=True)
class Abbreviated(Generic[T]):
    """A sequence that keeps only its first elements and its last one when long."""

    items: list[T]
    tail: T | None = None
    abbreviated: bool = False

    def __post_init__(self) -> None:
        if not self.abbreviated and self.tail is not None:
            raise ValueError("a complete sequence has no separate tail")

    @classmethod
    def build(cls, n: int, mk: Callable[[int], T]) -> Abbreviated[T]:
        """Create elements by index, eliding the middle past ABBREV_MAX."""
        if n < 0:
            raise ValueError(f"length must not be negative: {n}")
        if n <= ABBREV_MAX:
            return cls([mk(i) for i in range(n)])
        initial = [mk(i) for i in range(ABBREV_MAX - 1)]
        return cls(initial, mk(n - 1), abbreviated=True)

    def map(self, f: Callable[[T], U]) -> Abbreviated[U]:
        items = [f(item) for item in self.items]
        if self.abbreviated:
            return Abbreviated(items, f(self.tail), abbreviated=True)  # type: ignore[arg-type]
        return Abbreviated(items)


_ALLOC_KINDS = ("String", "Vec", "Box")


def _check_alloc(kind: str, length: int | None) -> None:
    if kind not in _ALLOC_KINDS:
        raise ValueError(f"Unknown heap allocation kind: {kind}")
    if kind == "Box":
        if length is not None:
            raise ValueError("a Box allocation has no length")
    else:
        if length is None:
            raise ValueError(f"a {kind} allocation needs a length")
        _check_unsigned("len", length)


@dataclass(frozen=True)
class MHeapAllocKind:
    """What kind of owner a heap allocation belongs to."""

    kind: str
    len: int | None = None

    def __post_init__(self) -> None:
        _check_alloc(self.kind, self.len)


@dataclass(frozen=True)
class HeapAllocKind:
    """Like MHeapAllocKind, but a Vec also remembers its element layout."""

    kind: str
    len: int | None = None
    el_ty: Any = None

    def __post_init__(self) -> None:
        _check_alloc(self.kind, self.len)
        if self.el_ty is not None and self.kind != "Vec":
            raise ValueError("only a Vec allocation has an element type")

    @property
    def exported(self) -> MHeapAllocKind:
        return MHeapAllocKind(self.kind, self.len)


@dataclass(frozen=True)
class MBool:
    value: bool

    def __post_init__(self) -> None:
        if not isinstance(self.value, bool):
            raise TypeError(f"expected a bool, got {self.value!r}")


@dataclass(frozen=True)
class MChar:
    value: int

    def __post_init__(self) -> None:
        _check_unsigned("char", self.value)


@dataclass(frozen=True)
class MUint:
    value: int

    def __post_init__(self) -> None:
        _check_unsigned("uint", self.value)


@dataclass(frozen=True)
class MInt:
    value: int

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise TypeError(f"int must be an integer, got {self.value!r}")
        if not _I64_MIN <= self.value <= _I64_MAX:
            raise ValueError(f"int out of signed range: {self.value}")


@dataclass(frozen=True)
class MFloat:
    value: float


@dataclass(frozen=True)
class MTuple:
    values: list[MValue] = field(default_factory=list)


@dataclass(frozen=True)
class MArray:
    values: Abbreviated[MValue]


@dataclass(frozen=True)
class MAdt:
    name: str
    variant: str | None = None
    fields: list[tuple[str, MValue]] = field(default_factory=list)
    alloc_kind: MHeapAllocKind | None = None


@dataclass(frozen=True)
class MPointer:
    path: MPath
    range: int | None = None


@dataclass(frozen=True)
class MUnallocated:
    alloc_id: int | None = None


MValue = Union[
    MBool, MChar, MUint, MInt, MFloat, MTuple, MArray, MAdt, MPointer, MUnallocated
]


def _tagged(tag: str, content: Any) -> dict[str, Any]:
    return {"type": tag, "value": content}


def _float(value: float) -> float | None:
    # Non-finite floats have no JSON form and are written as null.
    return value if math.isfinite(value) else None


def to_json(value: Any) -> Any:
    """Convert a value, path, segment or allocation kind to JSON-compatible data."""
    match value:
        case MBool(v):
            return _tagged("Bool", v)
        case MChar(v):
            return _tagged("Char", v)
        case MUint(v):
            return _tagged("Uint", v)
        case MInt(v):
            return _tagged("Int", v)
        case MFloat(v):
            return _tagged("Float", _float(float(v)))
        case MTuple(values):
            return _tagged("Tuple", [to_json(v) for v in values])
        case MArray(values):
            return _tagged("Array", to_json(values))
        case MAdt(name, variant, fields, alloc_kind):
            return _tagged(
                "Adt",
                {
                    "name": name,
                    "variant": variant,
                    "fields": [[fname, to_json(fval)] for fname, fval in fields],
                    "alloc_kind": None if alloc_kind is None else to_json(alloc_kind),
                },
            )
        case MPointer(path, rng):
            return _tagged("Pointer", {"path": to_json(path), "range": rng})
        case MUnallocated(alloc_id):
            return _tagged("Unallocated", {"alloc_id": alloc_id})
        case StackSegment(frame, local):
            return _tagged("Stack", {"frame": frame, "local": local})
        case HeapSegment(index):
            return _tagged("Heap", {"index": index})
        case MPathSegment(kind=PathSegmentKind.SUBSLICE, index=start, end=end):
            return _tagged("Subslice", [start, end])
        case MPathSegment(kind=kind, index=index):
            return _tagged(kind.value, index)
        case MPath(segment, parts):
            return {"segment": to_json(segment), "parts": [to_json(p) for p in parts]}
        case Abbreviated(items=items, tail=tail, abbreviated=True):
            return _tagged("Only", [[to_json(i) for i in items], to_json(tail)])
        case Abbreviated(items=items):
            return _tagged("All", [to_json(i) for i in items])
        case MHeapAllocKind(kind="Box"):
            return {"type": "Box"}
        case MHeapAllocKind(kind=kind, len=length):
            return _tagged(kind, {"len": length})
        case HeapAllocKind():
            return to_json(value.exported)
        case bool() | int() | str() | None:
            return value
        case float():
            return _float(value)
        case Sequence():
            return [to_json(v) for v in value]
    raise TypeError(f"Cannot convert {type(value).__name__} to JSON")