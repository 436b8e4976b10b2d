"""HAProxy backend sync daemon with a small control-plane API.

Run with ``uvicorn main:app``. The SQS consumer runs on a background thread;
the API reports on it and can force a reconciliation pass.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool

from lbsync import db
from lbsync.api_models import PassResultOut, StatusOut
from lbsync.logs import setup_logging
from lbsync.pipeline import Pipeline, build_pipeline
from lbsync.runtime import PassResult
from lbsync.settings import Settings


def _out(result: PassResult) -> PassResultOut:
    return PassResultOut(
        trigger_id=result.trigger_id,
        outcome=result.outcome,
        backends=result.backends,
        detail=result.detail,
        started_at=result.started_at,
        duration_ms=result.duration_ms,
    )


def create_app(pipeline_factory: Callable[[], Pipeline] | None = None) -> FastAPI:
    factory = pipeline_factory or (lambda: build_pipeline(Settings.from_env()))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()
        db.init_db()
        # Startup errors (config, credentials, template, queue) propagate and stop the server.
        pipeline = factory()
        app.state.pipeline = pipeline
        if pipeline.consumer is not None:
            pipeline.consumer.start()
        try:
            yield
        finally:
            if pipeline.consumer is not None:
                pipeline.consumer.stop()
                # Let an in-flight pass finish: one long poll plus one reload.
                cfg = pipeline.settings
                if not pipeline.consumer.join(cfg.wait_time_s + max(cfg.reload_timeout_s, 0) + 5):
                    db.log_event("WARN", "Consumer still busy at shutdown")

    app = FastAPI(title="lbsync", version="0.1.0", lifespan=lifespan)

    def _pipeline(request: Request) -> Pipeline:
        pipeline = getattr(request.app.state, "pipeline", None)
        if pipeline is None:
            raise HTTPException(status_code=503, detail="Pipeline not initialised.")
        return pipeline

    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "healthy"}

    @app.get("/status", response_model=StatusOut)
    def status(request: Request) -> StatusOut:
        p = _pipeline(request)
        last, outcomes, running = p.runtime.snapshot()
        return StatusOut(
            consumer_running=running,
            group=p.reconciler.spec.group_tag,
            destination=p.reconciler.dest,
            passes_total=sum(outcomes.values()),
            outcomes=outcomes,
            last_pass=_out(last) if last else None,
        )

    @app.get("/events")
    def events(limit: int = Query(50, ge=1, le=1000)) -> list[dict]:
        return db.latest_events(limit)

    @app.get("/passes", response_model=list[PassResultOut])
    def passes(limit: int = Query(20, ge=1, le=1000)) -> list[PassResultOut]:
        return [
            PassResultOut(
                trigger_id=r.trigger_id,
                outcome=r.outcome,
                backends=r.backends,
                detail=r.detail,
                started_at=r.started_at,
                duration_ms=r.duration_ms,
            )
            for r in db.latest_passes(limit)
        ]

    @app.post("/reconcile", response_model=PassResultOut)
    async def reconcile(request: Request) -> PassResultOut:
        p = _pipeline(request)
        db.log_event("INFO", "Manual reconciliation requested", group=p.reconciler.spec.group_tag)
        result = await run_in_threadpool(p.reconciler.reconcile, None)
        return _out(result)

    return app


app = create_app()
