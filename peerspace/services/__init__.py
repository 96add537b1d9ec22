"""External collaborator adapters for the Peerspace server."""

from .url_generation import (
    DisabledUrlAdapter,
    GeminiUrlAdapter,
    KeywordSearchUrlAdapter,
    PromptToUrlAdapter,
    build_url_adapter,
)

__all__ = [
    "DisabledUrlAdapter",
    "GeminiUrlAdapter",
    "KeywordSearchUrlAdapter",
    "PromptToUrlAdapter",
    "build_url_adapter",
]
