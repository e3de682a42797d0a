"""Contest crawler: source registry, rule-driven extraction and crawl coordination."""

from apps.crawler.coordinator import CrawlCoordinator, CrawlResult, CrawlSummary
from apps.crawler.extractor import ExtractionRules, FieldStrategy, extract
from apps.crawler.models import RawRecord
from apps.crawler.registry import CrawlJob, SourceConfig, SourceRegistry, register_platform

__all__ = [
    "CrawlCoordinator",
    "CrawlJob",
    "CrawlResult",
    "CrawlSummary",
    "ExtractionRules",
    "FieldStrategy",
    "RawRecord",
    "SourceConfig",
    "SourceRegistry",
    "extract",
    "register_platform",
]
