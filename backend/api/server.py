"""
Saleor Order Hash App - API Server
==================================
FastAPI server exposing:
- ORDER_CREATED webhook (hash issuance, always acknowledged once valid)
- Lookup by order hash (+ live Saleor status / metadata)
- Admin diagnostics (listing, duplicate report/cleanup, schema, connectivity)
- Health check

pip install fastapi uvicorn pydantic structlog asyncpg httpx
"""

import logging
import os
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import ValidationError
import uvicorn
import structlog

from database import Database, DatabaseConfig
from errors import OrderHashAppError
from pipeline.order_created import IssuanceConfig, OrderCreatedHandler
from schemas.order_hash import OrderCreatedPayload, OrderHashRecord
from services.diagnostics_service import DiagnosticsService
from services.lookup_service import LookupService
from services.saleor_client import SaleorClient, SaleorClientConfig
from storage.apl import AplConfig, IAuthDataStore, build_apl
from storage.record_store import IRecordStore, MAX_LIST_LIMIT, PostgresRecordStore


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class ServerConfig:
    """Server configuration from environment"""

    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> "ServerConfig":
        return cls(
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3000")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_format=os.getenv("LOG_FORMAT", "json").lower(),
        )


config = ServerConfig.from_env()


def configure_logging(server_config: ServerConfig) -> None:
    renderer = (
        structlog.dev.ConsoleRenderer(colors=True)
        if server_config.log_format == "console"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, server_config.log_level, logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging(config)
logger = structlog.get_logger().bind(component="server")


# =============================================================================
# SERVICE WIRING
# =============================================================================

@dataclass
class AppServices:
    store: IRecordStore
    apl: IAuthDataStore
    saleor: SaleorClient
    order_created: OrderCreatedHandler
    lookup: LookupService
    diagnostics: DiagnosticsService
    database: Optional[Database] = None

    @classmethod
    def build(
        cls,
        store: IRecordStore,
        apl: IAuthDataStore,
        saleor: SaleorClient,
        issuance_config: Optional[IssuanceConfig] = None,
        database: Optional[Database] = None,
    ) -> "AppServices":
        return cls(
            store=store,
            apl=apl,
            saleor=saleor,
            order_created=OrderCreatedHandler(store, saleor, apl, config=issuance_config),
            lookup=LookupService(store, saleor, apl),
            diagnostics=DiagnosticsService(store),
            database=database,
        )

    @classmethod
    def from_env(cls) -> "AppServices":
        database = Database(DatabaseConfig.from_env())
        return cls.build(
            store=PostgresRecordStore(database),
            apl=build_apl(AplConfig.from_env()),
            saleor=SaleorClient(SaleorClientConfig.from_env()),
            issuance_config=IssuanceConfig.from_env(),
            database=database,
        )

    async def close(self):
        await self.saleor.close()
        await self.apl.close()
        if self.database:
            await self.database.close()


def get_services(request: Request) -> AppServices:
    return request.app.state.services


# =============================================================================
# LIFESPAN MANAGEMENT
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown logic."""
    logger.info("server_starting", host=config.host, port=config.port)

    services = AppServices.from_env()
    app.state.services = services

    # A missing or unreachable database must not stop the webhook from acking
    try:
        await services.diagnostics.init_schema()
    except OrderHashAppError as e:
        logger.warning("schema_init_failed", error=str(e), error_kind=e.kind)

    yield

    logger.info("server_shutting_down")
    await services.close()


# =============================================================================
# FASTAPI APP
# =============================================================================

app = FastAPI(
    title="Saleor Order Hash App",
    description="Issues a unique hash per Saleor order and reconciles it into order metadata",
    version="1.0.0",
    lifespan=lifespan,
)


@app.middleware("http")
async def add_timing_header(request: Request, call_next):
    """Add response timing header"""
    start = time.perf_counter()
    response = await call_next(request)
    response.headers["X-Response-Time-Ms"] = f"{(time.perf_counter() - start) * 1000:.2f}"
    return response


@app.exception_handler(OrderHashAppError)
async def order_hash_error_handler(request: Request, exc: OrderHashAppError):
    logger.info("request_failed", path=request.url.path, error_kind=exc.kind, status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def _record_response(record: OrderHashRecord) -> Dict[str, Any]:
    return {
        "order_id": record.order_id,
        "saleor_api_url": record.saleor_api_url,
        "created_at": record.created_at.isoformat(),
    }


# =============================================================================
# HEALTH
# =============================================================================

@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": app.version}


# =============================================================================
# WEBHOOKS
# =============================================================================

@app.post("/api/webhooks/order-created")
async def order_created_webhook(request: Request, services: AppServices = Depends(get_services)):
    """
    ORDER_CREATED webhook.

    Responds 400 only when the payload names no order; every other outcome,
    including store or Saleor failures, is acknowledged with 200.
    """
    saleor_api_url = request.headers.get("saleor-api-url", "")

    try:
        payload = OrderCreatedPayload.model_validate(await request.json())
    except (ValueError, ValidationError) as e:
        logger.warning("webhook_payload_unparseable", error=str(e))
        payload = OrderCreatedPayload()

    ack = await services.order_created.handle_webhook(payload, saleor_api_url)
    return PlainTextResponse(
        ack.message,
        status_code=ack.status_code,
        headers={"X-Correlation-ID": ack.outcome.correlation_id},
    )


# =============================================================================
# LOOKUPS
# =============================================================================

@app.get("/api/orders/by-hash/{order_hash}")
async def lookup_by_hash(
    order_hash: str,
    include_status: bool = False,
    services: AppServices = Depends(get_services),
):
    if not include_status:
        record = await services.lookup.resolve(order_hash)
        return _record_response(record)

    record, status = await services.lookup.resolve_with_status(order_hash)
    return {**_record_response(record), "status": status.status, "number": status.number}


@app.get("/api/orders/by-hash/{order_hash}/metadata")
async def lookup_metadata_by_hash(order_hash: str, services: AppServices = Depends(get_services)):
    record, snapshot = await services.lookup.resolve_with_metadata(order_hash)
    return {**_record_response(record), "order": snapshot.model_dump(mode="json")}


# =============================================================================
# ADMIN
# =============================================================================

@app.get("/api/admin/records")
async def list_records(
    limit: int = Query(default=20, ge=1, le=MAX_LIST_LIMIT),
    services: AppServices = Depends(get_services),
):
    records = await services.diagnostics.list_recent(limit)
    return {
        "count": len(records),
        "records": [r.model_dump(mode="json") for r in records],
    }


@app.get("/api/admin/duplicates")
async def duplicate_report(services: AppServices = Depends(get_services)):
    report = await services.diagnostics.duplicate_report()
    return report.model_dump(mode="json")


@app.post("/api/admin/duplicates/cleanup")
async def cleanup_duplicates(services: AppServices = Depends(get_services)):
    removed = await services.diagnostics.cleanup_duplicates()
    return {"rows_removed": removed}


@app.post("/api/admin/init-schema")
async def init_schema(services: AppServices = Depends(get_services)):
    await services.diagnostics.init_schema()
    return {"status": "ok"}


@app.get("/api/admin/test-connection")
async def test_connection(services: AppServices = Depends(get_services)):
    report = await services.diagnostics.test_store_connectivity()
    return report.to_response()


# =============================================================================
# MAIN
# =============================================================================

def main():
    uvicorn.run(
        "api.server:app",
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
