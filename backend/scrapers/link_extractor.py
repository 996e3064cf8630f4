# 正文外链提取
import re
from typing import Iterable, List
from urllib.parse import urlparse

# 匹配 http(s) URL，遇到常见文本边界停止
URL_REGEX = re.compile(r'https?://[^\s<>"{}|\\^`\[\]]+', re.IGNORECASE)

# 尾部标点
TRAILING_PUNCTUATION = re.compile(r'[.,;:!?)\]}>\'"]+$')

# 跳过的域名（社交平台、短链、CDN）
SKIP_DOMAINS = (
    'twitter.com',
    'x.com',
    't.co',
    'twimg.com',
    'instagram.com',
    'facebook.com',
    'fb.com',
    'linkedin.com',
    'lnkd.in',
    'pinterest.com',
    'pin.it',
    'tiktok.com',
    'youtube.com',
    'youtu.be',
    'vimeo.com',
)

# 跳过的媒体文件扩展名（媒体单独处理）
SKIP_EXTENSIONS = (
    '.jpg', '.jpeg', '.png', '.gif', '.webp', '.svg',
    '.mp4', '.webm', '.mov', '.avi', '.mp3', '.wav',
)

_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0B\x0C\x0E-\x1F\x7F\uFFFD\uFFFE\uFFFF\uE000-\uF8FF]')


def clean_url(url: str) -> str:
    """去除URL尾部误匹配的标点"""
    return TRAILING_PUNCTUATION.sub('', url)


def _host_matches(host: str, domain: str) -> bool:
    return host == domain or host.endswith('.' + domain)


def is_skipped(url: str) -> bool:
    parsed = urlparse(url)
    host = (parsed.hostname or '').lower()
    if not host:
        return True
    if any(_host_matches(host, domain) for domain in SKIP_DOMAINS):
        return True
    return parsed.path.lower().endswith(SKIP_EXTENSIONS)


def extract_links_from_text(text: str) -> List[str]:
    """
    从文本中提取外链

    过滤社交平台与媒体文件，保持首次出现顺序去重
    """
    if not text:
        return []
    seen = set()
    links = []
    for match in URL_REGEX.findall(text):
        url = clean_url(match)
        if url in seen or is_skipped(url):
            continue
        seen.add(url)
        links.append(url)
    return links


def dedupe_links(*groups: Iterable[str]) -> List[str]:
    """合并多组链接并去重（保持顺序，忽略尾部斜杠差异）"""
    seen = set()
    result = []
    for group in groups:
        for url in group:
            key = url.rstrip('/')
            if key in seen:
                continue
            seen.add(key)
            result.append(url)
    return result


def is_pdf_url(url: str) -> bool:
    lower = url.lower()
    return (
        lower.split('?')[0].endswith('.pdf')
        or '/pdf/' in lower
        or 'type=pdf' in lower
        or 'format=pdf' in lower
    )


def is_arxiv_url(url: str) -> bool:
    return 'arxiv.org/abs/' in url or 'arxiv.org/pdf/' in url


def sanitize_text(text: str) -> str:
    """去除控制字符与私有区字符并压缩空白（PostgreSQL 不接受 NUL）"""
    if not text:
        return ''
    text = _CONTROL_CHARS.sub('', text)
    return re.sub(r'\s+', ' ', text).strip()
