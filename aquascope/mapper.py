"""Grouping interpreter steps by an abstracted program location."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from itertools import groupby
from typing import TypeVar

from .trace import MFrame, MStack, MStep, MTrace

Loc1 = TypeVar("Loc1")
Loc2 = TypeVar("Loc2")


def _abstract_step(
    step: MStep[Loc1], abstract_loc: Callable[[Loc1], Loc2 | None]
) -> MStep[Loc2] | None:
    frames: list[MFrame[Loc2]] = []
    for frame in step.stack.frames:
        location = abstract_loc(frame.location)
        if location is None:
            return None
        frames.append(
            MFrame(
                name=frame.name,
                body_span=frame.body_span,
                location=location,
                locals=frame.locals,
            )
        )
    return MStep(stack=MStack(frames=frames), heap=step.heap)


def _current_location(step: MStep[Loc2]) -> Loc2:
    if not step.stack.frames:
        raise ValueError("Cannot group a step that has no stack frames")
    return step.stack.frames[-1].location


def group_steps(
    trace: MTrace[Loc1], abstract_loc: Callable[[Loc1], Loc2 | None]
) -> MTrace[Loc2]:
    """Map every frame location through ``abstract_loc`` and merge runs of steps.

    A step is dropped if any of its frames has no abstract location. Consecutive
    steps whose innermost frame maps to the same location are collapsed into the
    last step of the run.
    """
    abstracted: Iterator[MStep[Loc2]] = (
        mapped
        for step in trace.steps
        if (mapped := _abstract_step(step, abstract_loc)) is not None
    )

    steps: list[MStep[Loc2]] = []
    for _, group in groupby(abstracted, key=_current_location):
        *_, last = group
        steps.append(last)

    return MTrace(steps=steps, result=trace.result)