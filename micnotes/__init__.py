"""Top-level package for micnotes."""

from . import config, costs, pipeline, profiles, prompts, storage, summarizer, transcriber

__all__ = ["config", "costs", "pipeline", "profiles", "prompts", "storage", "summarizer", "transcriber"]
