# tests/test_bazos.py
import asyncio

import httpx
from bs4 import BeautifulSoup

from partsradar.config import PartType
from partsradar.scrapers.base import FetchClient, FetchPolicy
from partsradar.scrapers.bazos import BazosScraper, CategoryCrawlResult, StopReason, should_stop_early
from partsradar.services.ingest import InsertCounts

DETAIL = """
<html><body>
<h1>GeForce RTX 3060 {id}</h1>
<table><tr><td>Lokalita:</td><td>Brno 602 00</td></tr>
<tr><td>Cena:</td><td>5 000 Kč</td></tr></table>
</body></html>
"""


def category_page(ids, next_offset=None):
    links = "".join(f'<a href="/inzerat/{i}/rtx-3060.php">RTX 3060</a>' for i in ids)
    nav = f'<a href="/graficka/{next_offset}/">Další</a>' if next_offset else ""
    return f"<html><body>{links}{nav}</body></html>"


class FakeGateway:
    def __init__(self, script=()):
        self.script = list(script)
        self.batches = []

    async def insert_batch(self, candidates):
        self.batches.append(candidates)
        if self.script:
            return self.script.pop(0)
        return InsertCounts(inserted=len(candidates), batch_size=len(candidates))


def make_scraper(handler, gateway, **kwargs):
    async def no_sleep(seconds):
        pass

    client = FetchClient(
        FetchPolicy(base_delay_ms=10, max_delay_ms=20, max_retries=1),
        transport=httpx.MockTransport(handler),
        sleep=no_sleep,
    )
    kwargs.setdefault("listing_delay_ms", 0)
    kwargs.setdefault("page_delay_ms", 0)
    return BazosScraper(client, gateway=gateway, **kwargs)


def always_next(request):
    path = request.url.path
    if "/inzerat/" in path:
        listing_id = path.split("/")[2]
        return httpx.Response(200, text=DETAIL.format(id=listing_id))
    offset = int(path.strip("/").split("/")[-1]) if path.strip("/") != "graficka" else 0
    ids = range(offset + 1, offset + 11)
    return httpx.Response(200, text=category_page(ids, next_offset=offset + 20))


def test_page_urls_use_item_offsets():
    scraper = make_scraper(always_next, FakeGateway())
    assert scraper.page_url("graficka", 1) == "https://pc.bazos.cz/graficka/"
    assert scraper.page_url("graficka", 2) == "https://pc.bazos.cz/graficka/20/"
    assert scraper.page_url("graficka", 3) == "https://pc.bazos.cz/graficka/40/"


def test_listing_links_are_deduplicated():
    scraper = make_scraper(always_next, FakeGateway())
    soup = BeautifulSoup(
        '<a href="/inzerat/1/a.php">a</a><a href="/inzerat/1/a.php">img</a>'
        '<a href="/inzerat/2/b.php">b</a><a href="/inzerat/3/">no php</a>',
        "html.parser",
    )
    assert scraper.extract_listing_urls(soup) == [
        "https://pc.bazos.cz/inzerat/1/a.php",
        "https://pc.bazos.cz/inzerat/2/b.php",
    ]


def test_stops_on_duplicate_ratio_despite_next_link():
    gateway = FakeGateway([
        InsertCounts(inserted=10, batch_size=10),
        InsertCounts(inserted=0, database_duplicates=8, intra_batch_duplicates=2, batch_size=10),
    ])
    scraper = make_scraper(always_next, gateway)

    result = asyncio.run(scraper.crawl_category(PartType.GPU, "graficka"))

    assert result.stop_reason == StopReason.DUPLICATE_RATIO
    assert result.pages == 2
    assert result.inserted == 10
    assert result.database_duplicates == 8
    assert len(gateway.batches) == 2
    assert all(c.part_type == "GPU" for c in gateway.batches[0])


def test_threshold_is_inclusive():
    counts = InsertCounts(database_duplicates=4, batch_size=5)
    assert should_stop_early(counts, 0.8)
    assert not should_stop_early(InsertCounts(database_duplicates=3, batch_size=5), 0.8)
    assert not should_stop_early(InsertCounts(), 0.0)


def test_stops_when_no_next_page():
    def handler(request):
        if "/inzerat/" in request.url.path:
            return httpx.Response(200, text=DETAIL.format(id=1))
        return httpx.Response(200, text=category_page([1, 2, 3]))

    gateway = FakeGateway()
    result = asyncio.run(make_scraper(handler, gateway).crawl_category(PartType.GPU, "graficka"))

    assert result.stop_reason == StopReason.NO_NEXT_PAGE
    assert result.pages == 1
    assert result.candidates == 3


def test_stops_on_empty_page():
    gateway = FakeGateway()
    scraper = make_scraper(lambda request: httpx.Response(200, text="<html><body></body></html>"), gateway)

    result = asyncio.run(scraper.crawl_category(PartType.GPU, "graficka"))

    assert result.stop_reason == StopReason.NO_LISTINGS
    assert gateway.batches == []


def test_hard_page_cap():
    scraper = make_scraper(always_next, FakeGateway(), page_hard_cap=3)
    result = asyncio.run(scraper.crawl_category(PartType.GPU, "graficka"))
    assert result.stop_reason == StopReason.PAGE_CAP
    assert result.pages == 3


def test_page_fetch_failure_aborts_category():
    scraper = make_scraper(lambda request: httpx.Response(503), FakeGateway())

    result = asyncio.run(scraper.crawl_category(PartType.GPU, "graficka"))

    assert result.stop_reason == StopReason.FETCH_FAILED
    assert result.pages == 0
    assert len(result.failures) == 1
    assert result.failures[0].unit == "https://pc.bazos.cz/graficka/"


def test_bad_listing_is_skipped():
    def handler(request):
        path = request.url.path
        if path == "/inzerat/2/rtx-3060.php":
            return httpx.Response(404)
        if path == "/inzerat/3/rtx-3060.php":
            return httpx.Response(200, text="<html><body>nothing here</body></html>")
        if "/inzerat/" in path:
            return httpx.Response(200, text=DETAIL.format(id=1))
        return httpx.Response(200, text=category_page([1, 2, 3]))

    gateway = FakeGateway()
    result = asyncio.run(make_scraper(handler, gateway).crawl_category(PartType.GPU, "graficka"))

    assert [c.external_id for c in gateway.batches[0]] == ["1"]
    assert len(result.failures) == 2
    assert result.stop_reason == StopReason.NO_NEXT_PAGE


def test_redirect_loop_skips_only_that_listing():
    def handler(request):
        path = request.url.path
        if path == "/inzerat/2/rtx-3060.php":
            return httpx.Response(302, headers={"Location": str(request.url)})
        if "/inzerat/" in path:
            return httpx.Response(200, text=DETAIL.format(id=path.split("/")[2]))
        return httpx.Response(200, text=category_page([1, 2, 3]))

    gateway = FakeGateway()
    result = asyncio.run(make_scraper(handler, gateway).crawl_category(PartType.GPU, "graficka"))

    assert [c.external_id for c in gateway.batches[0]] == ["1", "3"]
    assert len(result.failures) == 1
    assert "TooManyRedirects" in result.failures[0].error
    assert result.stop_reason == StopReason.NO_NEXT_PAGE


def test_disabled_scraper_does_nothing():
    gateway = FakeGateway()
    scraper = make_scraper(always_next, gateway, enabled=False)
    result = asyncio.run(scraper.crawl_category(PartType.GPU, "graficka"))
    assert result.stop_reason == StopReason.DISABLED
    assert gateway.batches == []


def test_crawl_all_isolates_failing_category():
    class Scraper(BazosScraper):
        async def crawl_category(self, part_type, path=None):
            if part_type == PartType.CPU:
                raise RuntimeError("parser blew up")
            return CategoryCrawlResult(part_type=part_type, path=path, pages=1, stop_reason=StopReason.NO_NEXT_PAGE)

    async def no_sleep(seconds):
        pass

    events = []

    async def on_start(part_type):
        events.append(("start", part_type))

    async def on_finish(part_type, result):
        events.append(("finish", part_type, result.stop_reason))

    scraper = Scraper(FetchClient(FetchPolicy(), sleep=no_sleep), gateway=FakeGateway())
    categories = {PartType.GPU: "graficka", PartType.CPU: "procesor", PartType.RAM: "pamet"}
    results = asyncio.run(scraper.crawl_all(categories, max_concurrent=2, stagger_seconds=5,
                                            on_start=on_start, on_finish=on_finish))

    assert [r.part_type for r in results] == [PartType.GPU, PartType.CPU, PartType.RAM]
    assert results[1].stop_reason == StopReason.FETCH_FAILED
    assert "parser blew up" in results[1].failures[0].error
    assert ("finish", PartType.CPU, StopReason.FETCH_FAILED) in events
    assert sum(1 for e in events if e[0] == "start") == 3


def test_crawl_all_survives_failing_state_hooks():
    class Scraper(BazosScraper):
        async def crawl_category(self, part_type, path=None):
            return CategoryCrawlResult(part_type=part_type, path=path, pages=1, stop_reason=StopReason.NO_NEXT_PAGE)

    async def no_sleep(seconds):
        pass

    finished = []

    async def on_start(part_type):
        if part_type == PartType.CPU:
            raise RuntimeError("database is locked")

    async def on_finish(part_type, result):
        if part_type == PartType.RAM:
            raise RuntimeError("database is locked")
        finished.append((part_type, result.stop_reason))

    scraper = Scraper(FetchClient(FetchPolicy(), sleep=no_sleep), gateway=FakeGateway())
    categories = {PartType.GPU: "graficka", PartType.CPU: "procesor", PartType.RAM: "pamet"}
    results = asyncio.run(scraper.crawl_all(categories, on_start=on_start, on_finish=on_finish))

    assert [r.stop_reason for r in results] == [
        StopReason.NO_NEXT_PAGE, StopReason.FETCH_FAILED, StopReason.NO_NEXT_PAGE,
    ]
    assert "database is locked" in results[1].failures[0].error
    assert set(finished) == {(PartType.GPU, StopReason.NO_NEXT_PAGE), (PartType.CPU, StopReason.FETCH_FAILED)}
