"""Parser for annotations within an Aquascope code block body."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

_MARKERS = (
    ("`[", "]`", "interp"),
    ("`(", ")`", "stepper"),
    ("`{", "}`", "boundaries"),
)

_PATTERN = re.compile(
    "|".join(
        f"{re.escape(open_)}(?P<{name}>[^{re.escape(close[0])}]*){re.escape(close)}"
        for open_, close, name in _MARKERS
    )
)

_MATCHER_KINDS = ("Literal", "Regex")


@dataclass(frozen=True)
class PathMatcher:
    """Selects paths to focus on, either literally or by regular expression."""

    kind: str
    value: str

    def __post_init__(self) -> None:
        if self.kind not in _MATCHER_KINDS:
            raise ValueError(f"Unknown path matcher kind: {self.kind}")

    def to_json(self) -> dict[str, str]:
        return {"type": self.kind, "value": self.value}


@dataclass
class StepperAnnotations:
    focused_lines: list[int] = field(default_factory=list)
    focused_paths: dict[int, list[PathMatcher]] = field(default_factory=dict)


@dataclass
class BoundariesAnnotations:
    focused_lines: list[int] = field(default_factory=list)


@dataclass
class InterpAnnotations:
    state_locations: list[int] = field(default_factory=list)


@dataclass
class AquascopeAnnotations:
    """All annotations extracted from a block; lines are 1-based."""

    hidden_lines: list[int] = field(default_factory=list)
    interp: InterpAnnotations = field(default_factory=InterpAnnotations)
    stepper: StepperAnnotations = field(default_factory=StepperAnnotations)
    boundaries: BoundariesAnnotations = field(default_factory=BoundariesAnnotations)

    def to_json(self) -> dict[str, Any]:
        return {
            "hidden_lines": list(self.hidden_lines),
            "interp": {"state_locations": list(self.interp.state_locations)},
            "stepper": {
                "focused_lines": list(self.stepper.focused_lines),
                "focused_paths": {
                    str(line): [matcher.to_json() for matcher in matchers]
                    for line, matchers in self.stepper.focused_paths.items()
                },
            },
            "boundaries": {"focused_lines": list(self.boundaries.focused_lines)},
        }


def _lines(code: str) -> list[str]:
    lines = code.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def _byte_len(text: str) -> int:
    return len(text.encode("utf-8"))


def _parse_config(interior: str) -> dict[str, str]:
    config: dict[str, str] = {}
    for entry in filter(None, interior.split(",")):
        key, _, value = entry.partition(":")
        config[key] = value
    return config


def parse_annotations(code: str) -> tuple[str, AquascopeAnnotations]:
    """Strip annotation markers from code, returning the cleaned code and annotations.

    Interpreter state locations are byte offsets into the cleaned code.
    """
    annots = AquascopeAnnotations()
    idx = 0
    output_lines: list[str] = []

    for line_pos, line in enumerate(_lines(code), start=1):
        fragments: list[str] = []

        if line.startswith("#"):
            annots.hidden_lines.append(line_pos)
            fragments.append(line[1:])
            idx += _byte_len(line[1:])
        elif line.startswith("\\#"):
            fragments.append("#" + line[2:])
            idx += _byte_len(fragments[-1])
        else:
            while (match := _PATTERN.search(line)) is not None:
                prefix = line[: match.start()]
                fragments.append(prefix)
                idx += _byte_len(prefix)

                kind = next(
                    name for open_, _, name in _MARKERS if match.group(0).startswith(open_)
                )
                config = _parse_config(match.group(kind))

                if kind == "interp":
                    annots.interp.state_locations.append(idx)
                elif kind == "stepper":
                    if "focus" in config:
                        annots.stepper.focused_lines.append(line_pos)
                    if "paths" in config:
                        annots.stepper.focused_paths.setdefault(line_pos, []).append(
                            PathMatcher("Literal", config["paths"])
                        )
                    if "rxpaths" in config:
                        annots.stepper.focused_paths.setdefault(line_pos, []).append(
                            PathMatcher("Regex", config["rxpaths"])
                        )
                else:
                    annots.boundaries.focused_lines.append(line_pos)

                line = line[match.end() :]
            fragments.append(line)
            idx += _byte_len(line)

        idx += 1  # newline
        output_lines.append("".join(fragments))

    return "\n".join(output_lines), annots