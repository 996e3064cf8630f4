"""
URL 校验、归一化与来源识别

归一化结果是去重键：同一内容的不同写法（twitter.com / x.com、追踪参数、
www 前缀、结尾斜杠）必须得到同一个字符串
"""
import ipaddress
import re
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from app.exceptions import InvalidCaptureError
from app.utils.text_normalize import content_hash

MAX_URL_LENGTH = 2048

ALLOWED_SCHEMES = ("http", "https")

BLOCKED_HOSTS = ("localhost", "localhost.localdomain", "0.0.0.0")
BLOCKED_SUFFIXES = (".local", ".internal", ".localhost")

# 域名别名（归一化为同一个域名）
HOST_ALIASES = {
    "twitter.com": "x.com",
    "mobile.twitter.com": "x.com",
    "fxtwitter.com": "x.com",
    "vxtwitter.com": "x.com",
}

HOST_PREFIXES = ("www.", "m.", "mobile.")

# 所有站点都去掉的追踪参数
TRACKING_PARAMS = {"fbclid", "gclid", "igshid", "igsh", "ref_src", "ref_url", "mc_cid", "mc_eid"}
TRACKING_PREFIXES = ("utm_",)

# 仅在特定站点去掉的参数
SITE_TRACKING_PARAMS = {
    "x.com": {"s", "t"},
    "linkedin.com": {"trk", "trackingid", "lipi"},
    "instagram.com": {"img_index"},
}

# 推文路径：用户名大小写不敏感
TWEET_PATH_RE = re.compile(r"^/(?P<handle>\w+)/status(?:es)?/(?P<id>\d+)", re.IGNORECASE)


def _strip_host(host: str) -> str:
    host = host.lower().rstrip(".")
    for prefix in HOST_PREFIXES:
        if host.startswith(prefix):
            host = host[len(prefix):]
            break
    return HOST_ALIASES.get(host, host)


def _is_private_address(host: str) -> bool:
    try:
        address = ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        return False
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_reserved
        or address.is_unspecified
        or address.is_multicast
    )


def validate_url(url: str) -> str:
    """
    校验URL是否可以采集

    Args:
        url: 用户提交的URL

    Returns:
        去除首尾空白后的URL

    Raises:
        InvalidCaptureError: 协议不支持、指向内网或超长
    """
    if not url or not url.strip():
        raise InvalidCaptureError("URL 不能为空")
    url = url.strip()
    if len(url) > MAX_URL_LENGTH:
        raise InvalidCaptureError(f"URL 超过最大长度 {MAX_URL_LENGTH}")

    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        raise InvalidCaptureError(f"不支持的URL协议: {scheme or '(空)'}")

    host = (parts.hostname or "").lower()
    if not host:
        raise InvalidCaptureError("URL 缺少主机名")
    if host in BLOCKED_HOSTS or host.endswith(BLOCKED_SUFFIXES):
        raise InvalidCaptureError(f"不允许采集内部地址: {host}")
    if _is_private_address(host):
        raise InvalidCaptureError(f"不允许采集内网IP: {host}")
    if "." not in host and ":" not in host:
        raise InvalidCaptureError(f"无效的主机名: {host}")
    return url


def normalize_url(url: str) -> str:
    """
    归一化URL（去重键）

    - 强制 https，主机名小写，去掉 www./m./mobile. 前缀
    - twitter.com 等别名映射为 x.com
    - 推文路径的用户名转小写（x.com/Alice/status/1 与 x.com/alice/status/1 相同）
    - 去掉片段与追踪参数，其余参数排序
    - 去掉路径结尾斜杠（根路径除外）
    """
    parts = urlsplit(url.strip())
    host = _strip_host(parts.hostname or "")
    if ":" in host:
        host_part = f"[{host}]"
    else:
        host_part = host
    if parts.port and parts.port not in (80, 443):
        netloc = f"{host_part}:{parts.port}"
    else:
        netloc = host_part

    site_params = SITE_TRACKING_PARAMS.get(host, set())
    query = sorted(
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key.lower() not in TRACKING_PARAMS
        and not key.lower().startswith(TRACKING_PREFIXES)
        and key.lower() not in site_params
    )

    path = parts.path or "/"
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    if host == "x.com":
        tweet = TWEET_PATH_RE.match(path)
        if tweet:
            path = f"/{tweet.group('handle').lower()}/status/{tweet.group('id')}{path[tweet.end():]}"

    return urlunsplit(("https", netloc, path, urlencode(query), ""))


def detect_source_type(url: str) -> str:
    """根据（归一化后的）URL识别来源类型"""
    host = _strip_host(urlsplit(url).hostname or "")
    if host == "x.com":
        return "twitter"
    if host == "instagram.com":
        return "instagram"
    if host == "linkedin.com":
        return "linkedin"
    if host == "pin.it" or host.startswith("pinterest.") or ".pinterest." in host:
        return "pinterest"
    return "web"


def note_content_hash(text: str) -> str:
    """笔记去重键：归一化文本的 SHA-256"""
    return content_hash(text)
