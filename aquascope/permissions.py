"""Parses inline permission markers outside of an Aquascope block."""

from __future__ import annotations

import re
from collections.abc import Iterator

VALID_PERMISSIONS = ("read", "write", "own", "flow")

_PERM = re.compile(r"@Perm(\[[^\]]*\])?\{([^}]*)\}")


class InvalidPermissionError(ValueError):
    """An inline permission marker names an unknown permission or option."""


def parse_perms(content: str) -> Iterator[tuple[range, str]]:
    """Yield (range, html) replacements for each @Perm marker in content."""
    for match in _PERM.finditer(content):
        perm = match.group(2)
        if perm not in VALID_PERMISSIONS:
            raise InvalidPermissionError(f"Invalid permission: {perm}")

        letter = perm[0].upper()
        perm_html = f'<span class="perm {perm}">{letter}</span>'
        match match.group(1):
            case None:
                html = perm_html
            case "[gained]":
                html = f'<span><span class="perm-diff-add">+</span>{perm_html}</span>'
            case "[lost]":
                html = (
                    '<span class="perm-diff-sub-container">'
                    f'<div class="perm-diff-sub"></div>{perm_html}</span>'
                )
            case "[missing]":
                html = f'<span class="perm missing {perm}">{letter}</span>'
            case options:
                raise InvalidPermissionError(f"Unsupported permission option: {options}")

        yield range(match.start(), match.end()), html