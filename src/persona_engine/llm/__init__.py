"""Language-model backend adapters."""

from .openai_backend import OpenAIChatBackend

__all__ = ["OpenAIChatBackend"]
