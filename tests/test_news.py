import time
from datetime import datetime, timezone

import pytest
import requests
import responses

from aurtool import news, text

LAST_NEWS = """
<rss xmlns:atom="http://www.w3.org/2005/Atom" version="2.0">
   <channel>
      <title>Arch Linux: Recent news updates</title>
      <link>https://www.archlinux.org/news/</link>
      <language>en-us</language>
      <item>
         <title>zn_poly 0.9.2-2 update requires manual intervention</title>
         <link>https://www.archlinux.org/news/zn_poly-092-2-update-requires-manual-intervention/</link>
         <description>&lt;p&gt;The zn_poly package prior to version 0.9.2-2 was missing a soname link.</description>
         <dc:creator xmlns:dc="http://purl.org/dc/elements/1.1/">Antonio Rojas</dc:creator>
         <pubDate>Tue, 14 Apr 2020 16:30:30 +0000</pubDate>
      </item>
   </channel>
</rss>
"""

SAMPLE_NEWS = """<?xml version="1.0" encoding="utf-8"?>
<rss version="2.0" xmlns:atom="http://www.w3.org/2005/Atom"><channel><title>Arch Linux: Recent news updates</title><item><title>zn_poly 0.9.2-2 update requires manual intervention</title><description>&lt;p&gt;The zn_poly package prior to version 0.9.2-2 was missing a soname link.&lt;/p&gt;</description><pubDate>Tue, 14 Apr 2020 16:30:30 +0000</pubDate></item><item><title>nss&gt;=3.51.1-1 and lib32-nss&gt;=3.51.1-1 updates require manual intervention</title><description>&lt;pre&gt;&lt;code&gt;pacman -Syu&lt;/code&gt;&lt;/pre&gt;</description><pubDate>Mon, 13 Apr 2020 00:35:58 +0000</pubDate></item><item><title>hplip 3.20.3-2 update requires manual intervention</title><description>&lt;p&gt;use &amp;amp;&amp;amp; here&lt;/p&gt;</description><pubDate>Thu, 19 Mar 2020 06:53:30 +0000</pubDate></item></channel></rss>
"""

ZN = "zn_poly 0.9.2-2 update requires manual intervention"
NSS = "nss>=3.51.1-1 and lib32-nss>=3.51.1-1 updates require manual intervention"
HPLIP = "hplip 3.20.3-2 update requires manual intervention"

LAST_NEWS_TIME = datetime(2020, 4, 13, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def plain_utc(monkeypatch):
    monkeypatch.setattr(text, "use_color", False)
    monkeypatch.setenv("TZ", "UTC")
    time.tzset()
    yield
    monkeypatch.undo()
    time.tzset()


@pytest.fixture
def feed():
    with responses.RequestsMock() as mock:
        yield mock


def serve(mock, body):
    mock.add(responses.GET, news.NEWS_URL, body=body, status=200)


def test_all_verbose(feed, capsys):
    serve(feed, SAMPLE_NEWS)
    news.print_news_feed(requests.Session(), datetime.now(timezone.utc), True, True, False)
    assert capsys.readouterr().out == (
        f"2020-03-19 {HPLIP}\nuse && here\n\x1b[0m\n"
        f"2020-04-13 {NSS}\n\x1b[36mpacman -Syu\x1b[0m\x1b[0m\n"
        f"2020-04-14 {ZN}\n"
        "The zn_poly package prior to version 0.9.2-2 was missing a soname link.\n\x1b[0m\n"
    )


def test_all_quiet(feed, capsys):
    serve(feed, SAMPLE_NEWS)
    news.print_news_feed(requests.Session(), LAST_NEWS_TIME, True, True, True)
    assert capsys.readouterr().out == (
        f"2020-03-19 {HPLIP}\n2020-04-13 {NSS}\n2020-04-14 {ZN}\n"
    )


def test_latest_quiet(feed, capsys):
    serve(feed, SAMPLE_NEWS)
    news.print_news_feed(requests.Session(), LAST_NEWS_TIME, True, False, True)
    assert capsys.readouterr().out == f"2020-04-13 {NSS}\n2020-04-14 {ZN}\n"


def test_latest_quiet_topdown(feed, capsys):
    serve(feed, SAMPLE_NEWS)
    news.print_news_feed(requests.Session(), LAST_NEWS_TIME, False, False, True)
    assert capsys.readouterr().out == f"2020-04-14 {ZN}\n2020-04-13 {NSS}\n"


def test_same_day_news_is_printed(feed, capsys):
    serve(feed, LAST_NEWS)
    cut_off = datetime(2020, 4, 14, 13, 4, 5, tzinfo=timezone.utc)
    news.print_news_feed(requests.Session(), cut_off, True, False, False)
    assert capsys.readouterr().out == (
        f"2020-04-14 {ZN}\n"
        "The zn_poly package prior to version 0.9.2-2 was missing a soname link.\x1b[0m\n"
    )


def test_without_session(feed, capsys):
    serve(feed, LAST_NEWS)
    news.print_news_feed(None, None, True, False, True)
    assert capsys.readouterr().out == f"2020-04-14 {ZN}\n"


def test_parse_feed_fields():
    items = news.parse_feed(LAST_NEWS)
    assert len(items) == 1
    assert items[0].title == ZN
    assert items[0].pub_date == "Tue, 14 Apr 2020 16:30:30 +0000"
    assert items[0].creator == "Antonio Rojas"
    assert items[0].link.endswith("manual-intervention/")


def test_parse_feed_without_channel():
    assert news.parse_feed("<rss></rss>") == []


def test_parse_feed_rejects_malformed():
    with pytest.raises(SyntaxError):
        news.parse_feed("<rss><channel>")


def test_parse_news():
    assert news.parse_news("<p>a</p><code>x</code> &amp; y") == (
        "a\n\x1b[36mx\x1b[0m & y\x1b[0m"
    )


def test_parse_news_drops_unknown_tags():
    assert news.parse_news('<a href="z">link</a>') == "link\x1b[0m"


def test_item_with_bad_date(capsys):
    item = news.NewsItem(title=" Title ", pub_date="not a date")
    item.print(LAST_NEWS_TIME, False, True)
    captured = capsys.readouterr()
    assert captured.out == " Title\n"
    assert captured.err != ""
    assert "not a date" in captured.err


def test_item_older_than_cut_off_is_skipped(capsys):
    item = news.NewsItem(title="old", pub_date="Thu, 19 Mar 2020 06:53:30 +0000")
    item.print(LAST_NEWS_TIME, False, True)
    assert capsys.readouterr().out == ""