# 内容抓取模块
from typing import Dict, Optional

from .base import BaseScraper
from .twitter import TwitterScraper, parse_tweet_url, canonical_tweet_url
from .generic import GenericScraper
from .social import InstagramScraper, LinkedInScraper, PinterestScraper
from .link_scraper import LinkScraper
from .thread_fetcher import ThreadFetcher
from .link_extractor import extract_links_from_text, dedupe_links


class ScraperRegistry:
    """按来源类型选择爬虫，未知类型使用通用爬虫"""

    def __init__(self, scrapers: Optional[Dict[str, BaseScraper]] = None):
        self.scrapers = scrapers if scrapers is not None else {
            'twitter': TwitterScraper(),
            'instagram': InstagramScraper(),
            'linkedin': LinkedInScraper(),
            'pinterest': PinterestScraper(),
            'web': GenericScraper(),
        }
        self.fallback = self.scrapers.get('web') or GenericScraper()

    def get(self, source_type: str) -> BaseScraper:
        return self.scrapers.get(source_type, self.fallback)


__all__ = [
    'BaseScraper',
    'TwitterScraper',
    'GenericScraper',
    'InstagramScraper',
    'LinkedInScraper',
    'PinterestScraper',
    'LinkScraper',
    'ThreadFetcher',
    'ScraperRegistry',
    'parse_tweet_url',
    'canonical_tweet_url',
    'extract_links_from_text',
    'dedupe_links',
]
