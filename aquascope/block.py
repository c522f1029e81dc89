"""Parser for Aquascope code blocks within Markdown."""

from __future__ import annotations

import hashlib
import json
import re
from dataclasses import dataclass, field

from .annotations import AquascopeAnnotations, parse_annotations

_TAG = "```aquascope"
_FENCE = "```"
_SYMBOL = re.compile(r"[^,=\n+]*")


def _symbol(text: str, pos: int) -> tuple[str, int]:
    match = _SYMBOL.match(text, pos)
    assert match is not None
    return match.group(0), match.end()


@dataclass
class AquascopeBlock:
    operations: list[str]
    config: list[tuple[str, str]]
    code: str
    annotations: AquascopeAnnotations = field(default_factory=AquascopeAnnotations)

    @classmethod
    def _parse(cls, content: str, pos: int) -> tuple[int, AquascopeBlock] | None:
        if not content.startswith(_TAG, pos):
            return None
        pos += len(_TAG)
        if not content.startswith(",", pos):
            return None

        operation, pos = _symbol(content, pos + 1)
        operations = [operation]
        while content.startswith("+", pos):
            operation, pos = _symbol(content, pos + 1)
            operations.append(operation)

        config: list[tuple[str, str]] = []
        while content.startswith(",", pos):
            key, pos = _symbol(content, pos + 1)
            if content.startswith("=", pos):
                value, pos = _symbol(content, pos + 1)
            else:
                value = "true"
            config.append((key, value))

        fence = content.find(_FENCE, pos)
        if fence < 0:
            return None
        code, annotations = parse_annotations(content[pos:fence].strip())
        return fence + len(_FENCE), cls(operations, config, code, annotations)

    @staticmethod
    def parse_all(content: str) -> list[tuple[range, AquascopeBlock]]:
        """Find every Aquascope block, paired with the range of text it spans."""
        blocks: list[tuple[range, AquascopeBlock]] = []
        pos = 0
        while (start := content.find(_TAG, pos)) >= 0:
            parsed = AquascopeBlock._parse(content, start)
            if parsed is None:
                pos = start + 1
                continue
            end, block = parsed
            blocks.append((range(start, end), block))
            pos = end
        return blocks

    def fingerprint(self) -> str:
        """A stable digest of the block's inputs; annotations are ignored."""
        payload = json.dumps(
            [self.operations, [list(pair) for pair in self.config], self.code],
            ensure_ascii=False,
            separators=(",", ":"),
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()