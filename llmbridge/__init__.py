"""Provider-abstraction layer for LLM HTTP backends."""

__version__ = "0.1.0"
