"""FastAPI application exposing the signal engine to the dashboard."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Optional

import structlog
from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from signal_desk.bootstrap import Components, build_components
from signal_desk.config.loader import load_config
from signal_desk.config.schema import AppConfig
from signal_desk.errors import NotFoundError
from signal_desk.jobs.runner import JobRunner
from signal_desk.models.base import CamelModel
from signal_desk.service import OperationResult, SignalService

logger = structlog.get_logger("api")


class GenerateSignalRequest(CamelModel):
    coin: str
    capital: Optional[float] = None


class AutoGenerateRequest(CamelModel):
    coins: Optional[list[str]] = None
    capital_per_signal: Optional[float] = None


class CloseSignalRequest(CamelModel):
    signal_id: int
    reason: Optional[str] = None


class UpdatePricesRequest(CamelModel):
    signal_id: Optional[int] = None


class GradePredictionRequest(CamelModel):
    prediction_id: int
    timeframe: str = "24h"
    actual_price: Optional[float] = None


def _respond(result: OperationResult) -> JSONResponse:
    status = 200 if result.success else result.status_code
    return JSONResponse(status_code=status, content=result.to_api())


def get_components(request: Request) -> Components:
    components = request.app.state.components
    if components is None:
        raise HTTPException(status_code=503, detail="Service not initialised")
    return components


def get_service(components: Components = Depends(get_components)) -> SignalService:
    return components.service


def get_runner(components: Components = Depends(get_components)) -> JobRunner:
    return components.runner


def create_app(
    components: Components | None = None,
    config: AppConfig | None = None,
) -> FastAPI:
    """Build the app.  Without *components*, they are wired from config on startup."""
    app = FastAPI(
        title="Signal Desk API",
        description="Trading-signal lifecycle and prediction outcome tracking",
        version="0.1.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.components = components

    @app.on_event("startup")
    async def startup_event():
        if app.state.components is None:
            app.state.components = build_components(config or load_config())
            logger.info("components_initialised")
        app.state.dispatcher_task = asyncio.create_task(
            app.state.components.dispatcher.run(), name="dispatcher",
        )

    @app.on_event("shutdown")
    async def shutdown_event():
        task = getattr(app.state, "dispatcher_task", None)
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        if app.state.components is not None:
            await app.state.components.dispatcher.drain()
            await app.state.components.aclose()

    # ═══════════════════════════════════════════════════════════════
    # Health
    # ═══════════════════════════════════════════════════════════════

    @app.get("/api/health")
    async def health_check():
        return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}

    # ═══════════════════════════════════════════════════════════════
    # Trading signals
    # ═══════════════════════════════════════════════════════════════

    @app.post("/api/signals/generate")
    async def generate_signal(req: GenerateSignalRequest, service: SignalService = Depends(get_service)):
        return _respond(await service.generate_signal(req.coin, req.capital))

    @app.post("/api/signals/auto-generate")
    async def auto_generate(
        req: Optional[AutoGenerateRequest] = None,
        service: SignalService = Depends(get_service),
    ):
        req = req or AutoGenerateRequest()
        return _respond(await service.auto_generate(req.coins, req.capital_per_signal))

    @app.get("/api/signals/active")
    async def active_signals(coin: Optional[str] = None, service: SignalService = Depends(get_service)):
        return _respond(await service.get_active(coin))

    @app.get("/api/signals/completed")
    async def completed_signals(limit: int = 50, service: SignalService = Depends(get_service)):
        return _respond(await service.get_completed(limit))

    @app.post("/api/signals/close")
    async def close_signal(req: CloseSignalRequest, service: SignalService = Depends(get_service)):
        return _respond(await service.close(req.signal_id, req.reason))

    @app.post("/api/signals/update-prices")
    async def update_prices(
        req: Optional[UpdatePricesRequest] = None,
        service: SignalService = Depends(get_service),
    ):
        return _respond(await service.update_prices(req.signal_id if req else None))

    @app.get("/api/signals/update-prices")
    async def update_all_prices(service: SignalService = Depends(get_service)):
        return _respond(await service.update_prices())

    @app.get("/api/signals/portfolio")
    async def portfolio(service: SignalService = Depends(get_service)):
        return _respond(await service.get_portfolio())

    # ═══════════════════════════════════════════════════════════════
    # Predictions and performance
    # ═══════════════════════════════════════════════════════════════

    @app.post("/api/generate-signal")
    async def generate_prediction(req: GenerateSignalRequest, service: SignalService = Depends(get_service)):
        return _respond(await service.predict(req.coin, req.capital))

    @app.get("/api/performance")
    async def performance(
        coin: str,
        days: int = 30,
        timeframe: str = "24h",
        service: SignalService = Depends(get_service),
    ):
        return _respond(await service.get_performance(coin, days, timeframe))

    @app.get("/api/predictions")
    async def recent_predictions(
        coin: Optional[str] = None,
        limit: int = 20,
        service: SignalService = Depends(get_service),
    ):
        return _respond(await service.recent_predictions(coin, limit))

    @app.get("/api/predictions/latest")
    async def latest_prediction(coin: str, service: SignalService = Depends(get_service)):
        return _respond(await service.latest_prediction(coin))

    @app.post("/api/predictions/grade")
    async def grade_prediction(req: GradePredictionRequest, service: SignalService = Depends(get_service)):
        return _respond(
            await service.grade_prediction(req.prediction_id, req.timeframe, req.actual_price)
        )

    # ═══════════════════════════════════════════════════════════════
    # Scheduler
    # ═══════════════════════════════════════════════════════════════

    @app.get("/api/scheduler/status")
    async def scheduler_status(runner: JobRunner = Depends(get_runner)):
        return {"success": True, "data": runner.status()}

    @app.post("/api/scheduler/run/{job}")
    async def run_job(job: str, runner: JobRunner = Depends(get_runner)):
        if runner.is_running(job):
            return JSONResponse(
                status_code=409,
                content={"success": False, "error": f"Job {job} is already running", "retryable": True},
            )
        try:
            result = await runner.trigger(job)
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from None
        status = runner.status()[job]
        return {
            "success": status["lastError"] is None,
            "data": {"job": job, "result": result, "status": status},
        }

    return app


# For `uvicorn signal_desk.api.app:app`; components are wired on startup.
app = create_app()
