"""Presentation stage: allow-list sanitization and reader typography."""

from .normalizer import ArticleNormalizer, normalize, sanitize_fragment

__all__ = ["ArticleNormalizer", "normalize", "sanitize_fragment"]
