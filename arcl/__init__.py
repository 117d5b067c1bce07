"""arcl: transactional unified-diff application for an LLM coding assistant."""

__version__ = "0.3.0"
