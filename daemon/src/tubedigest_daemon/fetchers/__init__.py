"""YouTube discovery and caption extraction."""

from .youtube import YouTubeSource
from .captions import CaptionExtractor

__all__ = ["YouTubeSource", "CaptionExtractor"]
