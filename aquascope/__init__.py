"""Render annotated Rust code blocks and permission markers in Markdown as Aquascope embeds."""

__version__ = "0.3.8"