# partsradar/web/server.py
from fastapi import BackgroundTasks, FastAPI, HTTPException

from partsradar.config import PartType
from partsradar.workers import Orchestrator


def create_app(orchestrator: Orchestrator) -> FastAPI:
    app = FastAPI(title="PC Parts Radar")

    @app.get("/healthz")
    async def healthz():
        return {"ok": True, "state": orchestrator.state.value}

    @app.post("/scrape", status_code=202)
    async def scrape_all(background: BackgroundTasks):
        background.add_task(orchestrator.crawl_all)
        return {"queued": "all", "categories": [pt.value for pt in orchestrator.categories]}

    @app.post("/scrape/{part_type}", status_code=202)
    async def scrape_category(part_type: str, background: BackgroundTasks):
        try:
            pt = PartType(part_type.upper())
        except ValueError:
            raise HTTPException(status_code=404, detail=f"Unknown part type {part_type}")
        if pt not in orchestrator.categories:
            raise HTTPException(status_code=404, detail=f"No marketplace category for {pt.value}")
        background.add_task(orchestrator.crawl_category, pt)
        return {"queued": pt.value, "path": orchestrator.categories[pt]}

    @app.post("/bootstrap", status_code=202)
    async def bootstrap(background: BackgroundTasks):
        background.add_task(orchestrator.run_bootstrap)
        return {"queued": "bootstrap"}

    @app.post("/catalog", status_code=202)
    async def refresh_current_catalog(background: BackgroundTasks):
        background.add_task(orchestrator.refresh_catalog)
        return {"queued": "current"}

    @app.post("/catalog/{year}", status_code=202)
    async def refresh_catalog(year: int, background: BackgroundTasks):
        background.add_task(orchestrator.refresh_catalog, year)
        return {"queued": year}

    @app.get("/jobs/{name}")
    async def job_state(name: str):
        state = await orchestrator.jobs.get(name)
        if state is None:
            raise HTTPException(status_code=404, detail="Job not found")
        return {
            "job_name": state.job_name,
            "completed": state.completed,
            "successful": state.successful,
            "in_progress": state.in_progress,
            "attempt_count": state.attempt_count,
            "last_attempt_at": state.last_attempt_at,
            "last_run_at": state.last_run_at,
            "completed_at": state.completed_at,
            "last_error": state.last_error,
            "metadata": state.meta,
        }

    return app
