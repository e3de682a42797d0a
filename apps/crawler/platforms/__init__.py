"""Bundled platform adapters.

Importing this package registers every adapter with ``PlatformRegistry``.
"""

from apps.crawler.platforms import civitai, kaggle, modelscope, openart

__all__ = ["civitai", "kaggle", "modelscope", "openart"]
