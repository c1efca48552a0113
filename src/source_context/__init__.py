"""Source context detection package."""

from .config import DetectionConfig, LLMProviderConfig

__all__ = ["DetectionConfig", "LLMProviderConfig"]
