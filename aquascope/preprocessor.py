"""Book preprocessor that renders Aquascope blocks and inline permissions."""

from __future__ import annotations

import argparse
import html
import json
import os
import subprocess
import sys
import tempfile
import threading
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any

from .block import AquascopeBlock
from .cache import CACHE_PATH, Cache
from .permissions import parse_perms
from .workspace import miri_sysroot, run_and_get_output, rustc

AQUASCOPE_TIMEOUT = 10.0

Replacement = tuple[range, str]


class AquascopeError(RuntimeError):
    """Running Aquascope on a block failed."""


def _attribute(value: Any) -> str:
    return html.escape(json.dumps(value, ensure_ascii=False), quote=True)


def embed_html(block: AquascopeBlock, response: Any) -> str:
    """Build the embed element carrying a block's code, annotations and responses."""
    data = {
        "code": block.code,
        "annotations": block.annotations.to_json(),
        "operations": list(block.operations),
        "responses": response,
        "config": dict(block.config),
        "no-interact": True,
    }
    attrs = ['class="aquascope-embed"']
    attrs.extend(f'data-{name}="{_attribute(value)}"' for name, value in data.items())
    return f"<div {' '.join(attrs)}></div>"


def _response_is_error(response: Any) -> bool:
    if isinstance(response, dict):
        return "Err" in response
    if isinstance(response, list):
        return any(isinstance(item, dict) and "Err" in item for item in response)
    return False


class AquascopePreprocessor:
    """Runs Aquascope on the blocks of a chapter, caching the results."""

    def __init__(self, miri_sysroot: Path, target_libdir: Path, cache: Cache):
        self.miri_sysroot = Path(miri_sysroot)
        self.target_libdir = Path(target_libdir)
        self.cache = cache
        self._lock = threading.Lock()

    @classmethod
    def create(cls, cache_path: str | os.PathLike[str] = CACHE_PATH) -> AquascopePreprocessor:
        """Locate the toolchain and load the cache."""
        sysroot = miri_sysroot()
        compiler = rustc()
        target_libdir = Path(run_and_get_output([str(compiler), "--print", "target-libdir"]))
        return cls(sysroot, target_libdir, Cache.load(cache_path))

    def _environment(self) -> dict[str, str]:
        env = dict(os.environ)
        env.update(
            {
                "SYSROOT": str(self.miri_sysroot),
                "MIRI_SYSROOT": str(self.miri_sysroot),
                "DYLD_LIBRARY_PATH": str(self.target_libdir),
                "LD_LIBRARY_PATH": str(self.target_libdir),
                "RUST_BACKTRACE": "1",
            }
        )
        return env

    def run_aquascope(self, block: AquascopeBlock) -> str:
        """Run cargo-aquascope on a block's code; return the responses as JSON text."""
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            created = subprocess.run(
                ["cargo", "new", "--bin", "example"],
                cwd=root,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False,
            )
            if created.returncode != 0:
                raise AquascopeError("Cargo failed")

            project = root / "example"
            (project / "src" / "main.rs").write_text(block.code, encoding="utf-8")

            config_keys = {key for key, _ in block.config}
            env = self._environment()
            responses: dict[str, Any] = {}
            for operation in block.operations:
                cmd = ["cargo", "aquascope"]
                if "shouldFail" in config_keys:
                    cmd.append("--should-fail")
                cmd.append(operation)
                if "showFlows" in config_keys:
                    cmd.append("--show-flows")

                try:
                    output = subprocess.run(
                        cmd,
                        cwd=project,
                        env=env,
                        capture_output=True,
                        timeout=AQUASCOPE_TIMEOUT,
                        check=False,
                    )
                except subprocess.TimeoutExpired as error:
                    raise AquascopeError(
                        f"Aquascope timed out on program:\n{block.code}"
                    ) from error

                stderr = output.stderr.decode("utf-8")
                if output.returncode != 0:
                    raise AquascopeError(
                        f"Aquascope failed for program:\n{block.code}\nwith error:\n{stderr}"
                    )

                response = json.loads(output.stdout.decode("utf-8"))
                if _response_is_error(response):
                    raise AquascopeError(
                        f"Aquascope failed for program:\n{block.code}\nwith error:\n{stderr}"
                    )
                if isinstance(response, dict) and response.get("type") == "BuildError":
                    raise AquascopeError(f"Aquascope failed for program:\n{block.code}")

                responses[operation] = response

        return json.dumps(responses)

    def process_code(self, block: AquascopeBlock) -> str:
        """Return the HTML for a block, running Aquascope only on a cache miss."""
        with self._lock:
            cached = self.cache.get(block)
        if cached is None:
            cached = self.run_aquascope(block)
            with self._lock:
                self.cache.set(block, cached)
        response = json.loads(cached.rstrip())
        return embed_html(block, response)

    def replacements(self, content: str) -> list[Replacement]:
        """Compute the HTML replacements for blocks and permission markers."""
        blocks = AquascopeBlock.parse_all(content)
        results: list[Replacement] = []
        if blocks:
            with ThreadPoolExecutor() as pool:
                rendered = list(pool.map(lambda item: self.process_code(item[1]), blocks))
            results.extend((span, markup) for (span, _), markup in zip(blocks, rendered))
        results.extend(parse_perms(content))
        return results

    def save_cache(self) -> None:
        with self._lock:
            self.cache.save()


def apply_replacements(content: str, replacements: Iterable[Replacement]) -> str:
    """Substitute each range of content by its replacement text."""
    pieces: list[str] = []
    cursor = 0
    for span, text in sorted(replacements, key=lambda item: (item[0].start, item[0].stop)):
        if span.start < cursor:
            raise ValueError(f"Overlapping replacement at {span.start}")
        pieces.append(content[cursor : span.start])
        pieces.append(text)
        cursor = span.stop
    pieces.append(content[cursor:])
    return "".join(pieces)


def _process_item(preprocessor: AquascopePreprocessor, item: Any) -> None:
    if not isinstance(item, dict) or "Chapter" not in item:
        return
    chapter = item["Chapter"]
    content = chapter.get("content", "")
    chapter["content"] = apply_replacements(content, preprocessor.replacements(content))
    for child in chapter.get("sub_items", []):
        _process_item(preprocessor, child)


def preprocess_book(preprocessor: AquascopePreprocessor, book: dict[str, Any]) -> dict[str, Any]:
    """Rewrite every chapter of a book in place and return it."""
    items = book.get("sections", book.get("items", []))
    for item in items:
        _process_item(preprocessor, item)
    return book


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="mdbook-aquascope", description="Interactive Aquascope editor for your book"
    )
    commands = parser.add_subparsers(dest="command")
    supports = commands.add_parser("supports", help="Check whether a renderer is supported")
    supports.add_argument("renderer")
    args = parser.parse_args(argv)

    if args.command == "supports":
        return 0 if args.renderer == "html" else 1

    try:
        context, book = json.load(sys.stdin)
        root = Path(context.get("root", "."))
        preprocessor = AquascopePreprocessor.create(root / CACHE_PATH)
        preprocess_book(preprocessor, book)
        preprocessor.save_cache()
    except (AquascopeError, RuntimeError, OSError, ValueError) as error:
        print(f"Error: {error}", file=sys.stderr)
        return 1

    json.dump(book, sys.stdout)
    return 0