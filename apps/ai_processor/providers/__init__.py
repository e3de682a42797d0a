"""Classification providers."""

from apps.ai_processor.providers.base import BaseAIProvider, parse_json_response

__all__ = ["BaseAIProvider", "parse_json_response"]
