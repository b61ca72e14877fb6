# api.py
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import APIRouter, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from riskradar.core.analyze import ScamDetectionEngine, build_engine, failed_verdict
from riskradar.core.models import TokenRecord
from riskradar.core.wallet import scan_wallet
from riskradar.settings import Settings, configure_logging
from riskradar.utils.resilience import ResilienceCoordinator, get_coordinator

_loaded = load_dotenv()
logger = logging.getLogger("riskradar.api")


class TokenIn(BaseModel):
    address: str
    symbol: str
    name: str = ""
    decimals: int = 18
    verified: bool = False
    valueUSD: float = 0.0
    balance: str = "0"

    def to_record(self) -> TokenRecord:
        return TokenRecord(
            address=self.address,
            symbol=self.symbol,
            name=self.name,
            decimals=self.decimals,
            verified=self.verified,
            value_usd=self.valueUSD,
            balance=self.balance,
        )


class RiskRequest(BaseModel):
    token: TokenIn
    walletAddress: Optional[str] = None


class ScanRequest(BaseModel):
    walletAddress: str
    tokens: List[TokenIn] = Field(default_factory=list)
    forceRefresh: bool = False


def create_app(
    settings: Optional[Settings] = None,
    coordinator: Optional[ResilienceCoordinator] = None,
    engine: Optional[ScamDetectionEngine] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    coordinator = coordinator or get_coordinator(settings)
    engine = engine or build_engine(settings, coordinator)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        coordinator.cache.start_sweeper()
        try:
            yield
        finally:
            await coordinator.cache.stop_sweeper()

    app = FastAPI(title="Wallet Risk Radar API", version="0.4.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    api = APIRouter(prefix="/api")

    @api.get("/health")
    def health():
        summary = coordinator.get_service_health_summary()
        return {"ok": True, "services": {"healthy": summary["healthy"], "unhealthy": summary["unhealthy"]}}

    @api.get("/stats")
    def stats():
        return coordinator.get_stats()

    @api.post("/risk")
    async def risk(req: RiskRequest):
        token = req.token.to_record()
        logger.info("[API] POST /api/risk symbol=%s addr=%s", token.symbol, token.address)
        try:
            verdict = await engine.analyze_token(token, req.walletAddress)
        except Exception as e:
            # same placeholder the wallet scan uses for a failed token
            logger.error("[API] /risk failed for %s -> %s", token.address, e)
            verdict = failed_verdict(token, e)
        return verdict.to_dict()

    @api.post("/scan")
    async def scan(req: ScanRequest):
        logger.info("[API] POST /api/scan wallet=%s tokens=%d", req.walletAddress, len(req.tokens))
        try:
            report = await scan_wallet(
                req.walletAddress,
                [t.to_record() for t in req.tokens],
                engine,
                coordinator,
                settings=settings,
                force_refresh=req.forceRefresh,
            )
        except ValueError as ve:
            raise HTTPException(status_code=400, detail=str(ve))
        return report.to_dict()

    app.include_router(api)
    return app


_settings = Settings.from_env()
configure_logging(_settings.log_level)
logger.info("[API] .env loaded: %s", _loaded)
app = create_app(_settings)
