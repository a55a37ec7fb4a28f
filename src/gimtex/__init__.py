"""gimtex: turn a local repository into a bounded, sanitized LLM context payload."""

__version__ = "0.1.0"
