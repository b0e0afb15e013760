# tests/test_server.py
from types import SimpleNamespace

from fastapi.testclient import TestClient

from partsradar.config import CATEGORY_PATHS, PartType
from partsradar.web.server import create_app
from partsradar.workers import WorkflowState


class FakeJobs:
    async def get(self, name):
        if name != "crawl:GPU":
            return None
        return SimpleNamespace(
            job_name=name, completed=True, successful=True, in_progress=False, attempt_count=4,
            last_attempt_at=None, last_run_at=None, completed_at=None, last_error=None,
            meta={"pages": 3},
        )


class FakeOrchestrator:
    def __init__(self):
        self.state = WorkflowState.IDLE
        self.categories = CATEGORY_PATHS
        self.jobs = FakeJobs()
        self.crawled = []
        self.refreshed = []
        self.crawled_all = 0
        self.bootstraps = 0

    async def crawl_category(self, part_type):
        self.crawled.append(part_type)

    async def refresh_catalog(self, year=None):
        self.refreshed.append(year)

    async def crawl_all(self):
        self.crawled_all += 1

    async def run_bootstrap(self):
        self.bootstraps += 1


def make_client():
    orch = FakeOrchestrator()
    return TestClient(create_app(orch)), orch


def test_healthz():
    client, _ = make_client()
    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.json() == {"ok": True, "state": "idle"}


def test_scrape_known_category():
    client, orch = make_client()
    r = client.post("/scrape/gpu")
    assert r.status_code == 202
    assert r.json() == {"queued": "GPU", "path": "graficka"}
    assert orch.crawled == [PartType.GPU]


def test_scrape_rejects_unmapped_types():
    client, orch = make_client()
    assert client.post("/scrape/SOUNDBAR").status_code == 404
    # valid part type without a marketplace category
    assert client.post("/scrape/PSU").status_code == 404
    assert orch.crawled == []


def test_catalog_refresh_is_queued():
    client, orch = make_client()
    r = client.post("/catalog/2021")
    assert r.status_code == 202
    assert orch.refreshed == [2021]


def test_scrape_all_categories_is_queued():
    client, orch = make_client()
    r = client.post("/scrape")
    assert r.status_code == 202
    assert r.json()["queued"] == "all"
    assert "GPU" in r.json()["categories"]
    assert orch.crawled_all == 1
    assert orch.crawled == []


def test_bootstrap_is_queued():
    client, orch = make_client()
    r = client.post("/bootstrap")
    assert r.status_code == 202
    assert orch.bootstraps == 1


def test_current_year_catalog_refresh():
    client, orch = make_client()
    assert client.post("/catalog").status_code == 202
    assert orch.refreshed == [None]


def test_job_state_lookup():
    client, _ = make_client()
    r = client.get("/jobs/crawl:GPU")
    assert r.status_code == 200
    assert r.json()["attempt_count"] == 4
    assert r.json()["metadata"] == {"pages": 3}
    assert client.get("/jobs/nope").status_code == 404
