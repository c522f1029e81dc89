# aquascope

Tools for turning annotated Rust code blocks in Markdown into interactive
visualizations of ownership permissions and program execution.

The package has three parts:

- an **mdBook preprocessor** (`mdbook-aquascope`). It finds `aquascope`
  code blocks in your chapters, runs the analysis for each one and swaps
  the block for an HTML embed.
- a small **local HTTP server** (`aquascope-serve`). It runs the same
  analysis on single files and is meant for debugging an editor front end.
- a **Python API** for parsing blocks, annotations and inline permission
  markers, and for modelling interpreter traces.

## What this package does not do

The analyses themselves are not part of this package. The permission
analysis and the interpreter that records execution steps both run as an
external `cargo aquascope` command. This package only starts that command
and passes its JSON output on. `cargo aquascope` must be installed and on
your `PATH`, along with a nightly toolchain that has Miri set up.

`aquascope.values`, `aquascope.trace` and `aquascope.mapper` describe
traces, convert them to JSON and group their steps. They do not produce
traces.

## Toolchain lookup (`aquascope.workspace`)

- `miri_sysroot()` uses `MIRI_SYSROOT` if it is set. Otherwise it runs
  `cargo [+<channel>] miri setup --print-sysroot`.
- `rustc()` uses `RUSTC_PATH` if it is set. Otherwise it runs
  `rustup which --toolchain <channel> rustc`, or `which rustc` when no
  channel is known.
- `toolchain()` reads `[toolchain] channel` from a `rust-toolchain.toml`
  file. By default that is the one in the current directory.

## Installation

```
pip install aquascope
```

## Writing blocks

A block starts with `` ```aquascope ``. After that come one or more
operations joined by `+`, and then optional `key=value` or bare `key`
flags. A bare key means `true`.

````markdown
```aquascope,interpreter+permissions,shouldFail,showFlows
#fn main() {
let x = 1;`(focus,paths:x)`
`[]`let y = 2;`{}`
#}
```
````

Markers in the code body:

- A line that starts with `#` is hidden. Write `\#` to keep a literal `#`
  at the start of a line.
- `` `[]` `` marks a point where interpreter state is shown. It is
  recorded as a byte offset into the cleaned code.
- `` `(...)` `` adds stepper annotations:
  - `focus` focuses the line.
  - `paths:<p>` adds a literal path matcher.
  - `rxpaths:<re>` adds a regex path matcher.
- `` `{}` `` focuses permission boundaries on the line.

Each operation is run as `cargo aquascope [--should-fail] <operation>
[--show-flows]`. The `shouldFail` flag adds `--should-fail` and
`showFlows` adds `--show-flows`.

Inline permission badges can appear anywhere in the prose:

```markdown
The variable gains @Perm[gained]{write} and loses @Perm[lost]{own}.
It is missing @Perm[missing]{read}; plain: @Perm{flow}.
```

The valid permissions are `read`, `write`, `own` and `flow`. Any other
name, or any other option in brackets, raises `InvalidPermissionError`.

## The mdBook preprocessor

Register the preprocessor in `book.toml`:

```toml
[preprocessor.aquascope]
command = "mdbook-aquascope"
```

`mdbook-aquascope supports <renderer>` exits with 0 only for `html`.
Without a subcommand, it reads mdBook's `[context, book]` JSON from
standard input and prints the rewritten book. Each block becomes a
`<div class="aquascope-embed" data-...>` element that carries:

- the code
- the annotations
- the operations
- the responses
- the config
- `no-interact`

Results are cached in a gzip-compressed `.aquascope-cache` file in the
book's root directory. A block is analysed again only if its operations,
config or code change. Each operation has a 10 second limit. If an
analysis fails, the error is printed and the command exits with status 1.

## The local server

```
aquascope-serve
```

By default it listens on `127.0.0.1:8008`. You can change this with
`AQUASCOPE_SERVER_ADDRESS` and `AQUASCOPE_SERVER_PORT`. The routes are:

- `GET /hi` answers `HELLO!`.
- `POST /permissions` with `{"code": "..."}` runs the permissions
  analysis.
- `POST /interpreter` with `{"code": "...", "config": {"shouldFail": true}}`
  runs the interpreter.

A successful run returns `{"success": ..., "stdout": ..., "stderr": ...}`.
`success` is true when the command printed anything to stdout.

Errors are reported as follows:

- A malformed request body returns `{"error": "Unable to deserialize request: ..."}`.
- A failing analysis returns status 500 with a text message.
- An unknown route returns 404.

Each request runs in a fresh temporary Cargo project on your own machine,
with a 20 second limit per command.

## Python API

```python
from aquascope.annotations import parse_annotations
from aquascope.block import AquascopeBlock
from aquascope.permissions import parse_perms

code, annotations = parse_annotations("#fn main() {\nlet x = 1;`[]`\n#}")
print(code)
print(annotations.to_json())

markdown_text = "```aquascope,interpreter,foo=bar\nfn main() {}\n```"
for span, block in AquascopeBlock.parse_all(markdown_text):
    print(span, block.operations, block.config)

for span, html in parse_perms("Hello @Perm{read} world"):
    print(span, html)
```

Other modules:

- `aquascope.preprocessor.apply_replacements` applies `(range, text)`
  replacements to a string.
- `aquascope.cache.Cache` is the gzip JSON cache on its own.
- `aquascope.container.Container` manages the scratch Cargo project.
- `aquascope.values.to_json` and `aquascope.trace.trace_to_json` give the
  tagged `{"type": ..., "value": ...}` JSON form of memory values and
  traces.
- `aquascope.mapper.group_steps` maps frame locations through a function
  and drops steps that have no mapped location. It then collapses
  consecutive steps at the same innermost location and keeps the last
  step of each run.