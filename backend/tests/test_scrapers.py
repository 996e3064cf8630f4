"""
爬虫测试（httpx.MockTransport 模拟外部服务）
"""
import io

import httpx
import pytest
from pypdf import PdfWriter

from app.exceptions import ScrapeError
from scrapers import ScraperRegistry, canonical_tweet_url, parse_tweet_url
from scrapers.generic import GenericScraper
from scrapers.link_scraper import LinkScraper, normalize_arxiv_url
from scrapers.pdf import extract_pdf
from scrapers.social import InstagramScraper, LinkedInScraper, PinterestScraper
from scrapers.thread_fetcher import ThreadFetcher
from scrapers.twitter import TwitterScraper

TWEETS = {
    "1": {
        "id": "1",
        "text": "Thread start https://blog.example.com/intro",
        "author": {"screen_name": "alice", "name": "Alice"},
        "created_at": "Wed Oct 10 20:19:24 +0000 2018",
    },
    "2": {
        "id": "2",
        "text": "Part two, see https://docs.example.com/guide.",
        "author": {"screen_name": "alice", "name": "Alice", "avatar_url": "https://pbs.example.com/a.jpg"},
        "replying_to": "alice",
        "replying_to_status": "1",
        "conversation_id": "1",
        "likes": 7,
        "media": {
            "photos": [{"url": "https://pbs.example.com/p.jpg"}],
            "videos": [{"url": "https://video.example.com/v.mp4", "thumbnail_url": "https://pbs.example.com/t.jpg"}],
        },
    },
    "3": {
        "id": "3",
        "text": "Replying to someone else",
        "author": {"screen_name": "alice"},
        "replying_to": "bob",
        "replying_to_status": "99",
    },
}


def fxtwitter_handler(request: httpx.Request) -> httpx.Response:
    tweet_id = request.url.path.rsplit("/", 1)[-1]
    tweet = TWEETS.get(tweet_id)
    if tweet is None:
        return httpx.Response(404, json={"code": 404, "message": "NOT_FOUND"})
    return httpx.Response(200, json={"code": 200, "tweet": tweet})


def make_pdf(title="Attention Is All You Need") -> bytes:
    writer = PdfWriter()
    writer.add_blank_page(width=200, height=200)
    writer.add_metadata({"/Title": title, "/Author": "Vaswani"})
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


# ========== Twitter ==========

def test_tweet_url_parsing():
    assert parse_tweet_url("https://twitter.com/Alice/status/123?s=20") == ("Alice", "123")
    assert parse_tweet_url("https://mobile.x.com/bob/statuses/9") == ("bob", "9")
    assert parse_tweet_url("https://x.com/alice") is None
    assert canonical_tweet_url("@alice", "5") == "https://x.com/alice/status/5"


async def test_twitter_scrape_continuation_reply():
    scraper = TwitterScraper(transport=httpx.MockTransport(fxtwitter_handler))

    content = await scraper.scrape("https://x.com/alice/status/2")

    assert content.body_text == "Part two, see https://docs.example.com/guide."
    assert content.author_handle == "@alice"
    assert content.images == ["https://pbs.example.com/p.jpg"]
    assert content.videos[0].url == "https://video.example.com/v.mp4"
    assert content.videos[0].thumbnail == "https://pbs.example.com/t.jpg"
    assert content.platform_data["tweetId"] == "2"
    assert content.platform_data["parentTweetId"] == "1"
    assert content.platform_data["likeCount"] == 7
    assert content.thread_context.is_thread_continuation is True
    assert content.thread_context.parent_tweet_id == "1"


def test_reply_to_other_author_is_not_continuation():
    content = TwitterScraper().parse_tweet(TWEETS["3"])

    assert content.thread_context.is_thread_continuation is False
    assert content.thread_context.parent_author_handle == "bob"


def test_article_and_quote_are_folded_into_body():
    tweet = {
        "id": "10",
        "text": "short",
        "author": {"screen_name": "carol"},
        "article": {
            "title": "Long form",
            "content": {"blocks": [{"text": "First paragraph."}, {"text": "Second paragraph."}]},
            "cover_media": {"media_info": {"original_img_url": "https://pbs.example.com/cover.jpg"}},
        },
        "quote": {"id": "11", "text": "quoted words", "author": {"screen_name": "dave"}},
    }

    content = TwitterScraper().parse_tweet(tweet)

    assert content.title == "Long form"
    assert content.body_text == "First paragraph.\n\nSecond paragraph.\n\nQuoting @dave: quoted words"
    assert content.images[0] == "https://pbs.example.com/cover.jpg"
    assert content.platform_data["isArticle"] is True
    assert content.platform_data["quotedTweetId"] == "11"


async def test_missing_tweet_raises_scrape_error():
    scraper = TwitterScraper(transport=httpx.MockTransport(fxtwitter_handler))

    with pytest.raises(ScrapeError):
        await scraper.scrape("https://x.com/alice/status/404")


async def test_unrecognized_tweet_url_raises_scrape_error():
    with pytest.raises(ScrapeError):
        await TwitterScraper().scrape("https://x.com/alice")


# ========== 通用网页 ==========

ARTICLE_HTML = """
<html>
<head>
  <title>Fallback title</title>
  <meta property="og:title" content="OG Title">
  <meta property="og:description" content="OG description">
  <meta property="og:image" content="/images/cover.png">
  <meta property="og:type" content="article">
  <meta property="og:site_name" content="Example Blog">
  <meta name="author" content="Erin">
  <meta property="article:published_time" content="2024-03-01T10:00:00Z">
  <link rel="canonical" href="https://blog.example.com/post">
</head>
<body>
  <nav>Home | About</nav>
  <article><p>Hello   world.</p><p>Second line.</p><img src="/images/inline.jpg"><img src="/pixel.gif"></article>
  <footer>Copyright</footer>
</body>
</html>
"""


def test_generic_html_parsing():
    content = GenericScraper().parse_html("https://blog.example.com/post", ARTICLE_HTML)

    assert content.title == "OG Title"
    assert content.description == "OG description"
    assert content.author_name == "Erin"
    assert content.body_text == "Hello world. Second line."
    assert content.images == [
        "https://blog.example.com/images/cover.png",
        "https://blog.example.com/images/inline.jpg",
    ]
    assert content.published_at.year == 2024
    assert content.platform_data["isArticle"] is True
    assert content.platform_data["canonicalUrl"] == "https://blog.example.com/post"
    assert content.platform_data["siteName"] == "Example Blog"


async def test_generic_scrape_of_pdf_response():
    def handler(request):
        return httpx.Response(200, content=make_pdf(), headers={"content-type": "application/pdf"})

    scraper = GenericScraper(transport=httpx.MockTransport(handler))
    content = await scraper.scrape("https://papers.example.com/paper.pdf")

    assert content.title == "Attention Is All You Need"
    assert content.author_name == "Vaswani"
    assert content.platform_data["contentFormat"] == "pdf"
    assert content.platform_data["pageCount"] == 1


async def test_generic_client_error_raises_scrape_error():
    scraper = GenericScraper(transport=httpx.MockTransport(lambda request: httpx.Response(403)))

    with pytest.raises(ScrapeError):
        await scraper.scrape("https://blog.example.com/private")


def test_registry_falls_back_to_web():
    web = GenericScraper()
    registry = ScraperRegistry(scrapers={"web": web})

    assert registry.get("instagram") is web


# ========== 外链 ==========

async def test_link_scraper_records_http_error():
    scraper = LinkScraper(transport=httpx.MockTransport(lambda request: httpx.Response(404)))

    result = await scraper.scrape("https://blog.example.com/gone")

    assert result.error == "HTTP 404"
    assert result.body_text is None


async def test_link_scraper_reads_article():
    def handler(request):
        return httpx.Response(200, text=ARTICLE_HTML, headers={"content-type": "text/html"})

    scraper = LinkScraper(transport=httpx.MockTransport(handler))
    result = await scraper.scrape("https://blog.example.com/post")

    assert result.error is None
    assert result.content_type == "article"
    assert result.title == "OG Title"
    assert result.body_text == "Hello world. Second line."


async def test_link_scraper_arxiv_combines_abstract_and_pdf():
    abstract_page = """
    <html><head>
      <meta name="citation_title" content="A Paper">
      <meta name="citation_abstract" content="We study things.">
    </head><body></body></html>
    """

    def handler(request):
        if request.url.path.startswith("/pdf/"):
            return httpx.Response(200, content=make_pdf("A Paper"), headers={"content-type": "application/pdf"})
        return httpx.Response(200, text=abstract_page, headers={"content-type": "text/html"})

    scraper = LinkScraper(transport=httpx.MockTransport(handler))
    result = await scraper.scrape("https://arxiv.org/pdf/1706.03762.pdf")

    assert result.url == "https://arxiv.org/abs/1706.03762"
    assert result.content_type == "arxiv"
    assert result.title == "A Paper"
    assert result.body_text == "Abstract: We study things."


def test_normalize_arxiv_url():
    assert normalize_arxiv_url("https://arxiv.org/pdf/1706.03762.pdf") == "https://arxiv.org/abs/1706.03762"
    assert normalize_arxiv_url("https://arxiv.org/abs/1706.03762") == "https://arxiv.org/abs/1706.03762"


# ========== PDF ==========

def test_extract_pdf_metadata():
    pdf = extract_pdf(make_pdf())

    assert pdf["title"] == "Attention Is All You Need"
    assert pdf["author"] == "Vaswani"
    assert pdf["page_count"] == 1


def test_extract_pdf_rejects_garbage():
    with pytest.raises(ScrapeError):
        extract_pdf(b"this is not a pdf")


# ========== 线程 ==========

THREADREADER_HTML = """
<html><body>
  <div class="content-tweet">First tweet of the thread https://blog.example.com/a</div>
  <div class="content-tweet">Second tweet <a href="https://docs.example.com/b">link</a></div>
  <div class="content-tweet">ok</div>
</body></html>
"""


async def test_thread_from_threadreader():
    def handler(request):
        if request.url.host == "threadreaderapp.com":
            return httpx.Response(200, text=THREADREADER_HTML)
        return fxtwitter_handler(request)

    fetcher = ThreadFetcher(transport=httpx.MockTransport(handler), walk_delay=0)
    thread = await fetcher.fetch("2", "alice")

    assert thread.source == "threadreaderapp"
    assert thread.tweet_count == 2
    assert thread.full_text.startswith("First tweet of the thread")
    assert "\n\n---\n\n" in thread.full_text
    assert thread.links == ["https://blog.example.com/a", "https://docs.example.com/b"]


async def test_thread_falls_back_to_fxtwitter_walk():
    def handler(request):
        if request.url.host == "threadreaderapp.com":
            return httpx.Response(404)
        return fxtwitter_handler(request)

    fetcher = ThreadFetcher(transport=httpx.MockTransport(handler), walk_delay=0)
    thread = await fetcher.fetch("2", "@alice")

    assert thread.source == "fxtwitter"
    assert thread.texts == [TWEETS["1"]["text"], TWEETS["2"]["text"]]
    assert thread.links == ["https://blog.example.com/intro", "https://docs.example.com/guide"]


async def test_single_tweet_is_not_a_thread():
    def handler(request):
        if request.url.host == "threadreaderapp.com":
            return httpx.Response(404)
        return fxtwitter_handler(request)

    fetcher = ThreadFetcher(transport=httpx.MockTransport(handler), walk_delay=0)

    assert await fetcher.fetch("1", "alice") is None


# ========== 社交平台 ==========

def og_page(description, title="Post"):
    return (
        f'<html><head><meta property="og:title" content="{title}">'
        f'<meta property="og:description" content="{description}"></head>'
        '<body><div>Log in to see more</div></body></html>'
    )


def test_instagram_caption_and_handle_from_description():
    html = og_page("1,234 likes, 56 comments - alice.w on June 1, 2024: &quot;Sunset over the bay&quot;")

    content = InstagramScraper().parse_html("https://www.instagram.com/p/Cx12_ab/", html)

    assert content.author_handle == "@alice.w"
    assert content.body_text == "Sunset over the bay"
    assert content.platform_data["shortcode"] == "Cx12_ab"


def test_linkedin_handle_from_post_path():
    content = LinkedInScraper().parse_html(
        "https://www.linkedin.com/posts/jane-doe_ai-activity-1234", og_page("A post")
    )

    assert content.author_handle == "jane-doe"


def test_pinterest_body_is_description():
    content = PinterestScraper().parse_html("https://www.pinterest.com/pin/998877/", og_page("Cozy reading nook"))

    assert content.body_text == "Cozy reading nook"
    assert content.platform_data["pinId"] == "998877"
    assert PinterestScraper().can_handle("https://pin.it/abc")
    assert not PinterestScraper().can_handle("https://example.com/pin/1")
