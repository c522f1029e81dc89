"""Execution traces of an interpreted program: stacks, heaps and results."""

from __future__ import annotations

from collections.abc import Callable, Hashable, Iterator
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar, Union

from .values import MPathSegment, MValue, to_json

L = TypeVar("L")


@dataclass
class MLocal:
    """A source-level variable of a frame, with the paths moved out of it."""

    name: str
    value: MValue
    moved_paths: list[list[MPathSegment]] = field(default_factory=list)


@dataclass
class MFrame(Generic[L]):
    """One stack frame: its function, span, current location and locals."""

    name: str
    body_span: Any
    location: L
    locals: list[MLocal] = field(default_factory=list)


@dataclass
class MStack(Generic[L]):
    frames: list[MFrame[L]] = field(default_factory=list)


@dataclass
class MHeap:
    locations: list[MValue] = field(default_factory=list)


@dataclass
class MStep(Generic[L]):
    """A snapshot of memory at one point of execution."""

    stack: MStack[L]
    heap: MHeap = field(default_factory=MHeap)


@dataclass(frozen=True)
class PointerUseAfterFree:
    """A pointer into an allocation that was already freed was used."""

    alloc_id: int


@dataclass(frozen=True)
class OtherUndefinedBehavior:
    """Any other undefined behaviour, described by the interpreter's message."""

    message: str


MUndefinedBehavior = Union[PointerUseAfterFree, OtherUndefinedBehavior]


@dataclass(frozen=True)
class MResult:
    """How execution ended: successfully, or with undefined behaviour."""

    error: MUndefinedBehavior | None = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class MTrace(Generic[L]):
    """Every recorded step of an execution, and how it ended."""

    steps: list[MStep[L]] = field(default_factory=list)
    result: MResult = field(default_factory=MResult)


class MovedPlaces:
    """The places moved out of, tracked per stack frame."""

    def __init__(self) -> None:
        self._frames: list[set[Hashable]] = [set()]

    def __len__(self) -> int:
        return len(self._frames)

    def _frame(self, index: int) -> set[Hashable]:
        if not 0 <= index < len(self._frames):
            raise IndexError(f"Tried to insert place at missing frame: {index}")
        return self._frames[index]

    def places_at(self, index: int) -> Iterator[Hashable]:
        if not 0 <= index < len(self._frames):
            raise IndexError(f"No frame at index {index}")
        return iter(set(self._frames[index]))

    def add_place(self, frame: int, place: Hashable) -> None:
        self._frame(frame).add(place)

    def push_frame(self) -> None:
        self._frames.append(set())

    def pop_frame(self) -> None:
        if self._frames:
            self._frames.pop()


def _tagged(tag: str, content: Any) -> dict[str, Any]:
    return {"type": tag, "value": content}


def _undefined_behavior_json(error: MUndefinedBehavior) -> dict[str, Any]:
    match error:
        case PointerUseAfterFree(alloc_id):
            return _tagged("PointerUseAfterFree", {"alloc_id": alloc_id})
        case OtherUndefinedBehavior(message):
            return _tagged("Other", message)
    raise TypeError(f"Unknown undefined behaviour: {error!r}")


def _result_json(result: MResult) -> dict[str, Any]:
    if result.error is None:
        return {"type": "Success"}
    return _tagged("Error", _undefined_behavior_json(result.error))


def _local_json(local: MLocal) -> dict[str, Any]:
    return {
        "name": local.name,
        "value": to_json(local.value),
        "moved_paths": [[to_json(seg) for seg in path] for path in local.moved_paths],
    }


def _body_span_json(span: Any) -> Any:
    converter = getattr(span, "to_json", None)
    return converter() if callable(converter) else span


def trace_to_json(
    trace: MTrace[L], location_to_json: Callable[[L], Any] | None = None
) -> dict[str, Any]:
    """Convert a trace to JSON-compatible data, converting locations with the given function."""
    convert = location_to_json if location_to_json is not None else to_json

    def frame_json(frame: MFrame[L]) -> dict[str, Any]:
        return {
            "name": frame.name,
            "body_span": _body_span_json(frame.body_span),
            "location": convert(frame.location),
            "locals": [_local_json(local) for local in frame.locals],
        }

    def step_json(step: MStep[L]) -> dict[str, Any]:
        return {
            "stack": {"frames": [frame_json(f) for f in step.stack.frames]},
            "heap": {"locations": [to_json(v) for v in step.heap.locations]},
        }

    return {
        "steps": [step_json(step) for step in trace.steps],
        "result": _result_json(trace.result),
    }