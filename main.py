"""
FastAPI backend for the real-estate CRM dashboards
Serves company reports and seller analytics computed from Firestore
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from time import time
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from pydantic import ValidationError

from config import settings
from services.dashboard_service import DashboardService, revenue_chart, status_chart
from services.firestore_service import FirestoreService
from services.mocks import MockFirestoreService
from services.models import DateRange
from services.record_utils import to_datetime
from services.seller_analytics_service import SellerAnalyticsService, month_range

# Load environment variables
load_dotenv()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Initialize data store
if settings.USE_MOCK_SERVICES:
    firestore_service = MockFirestoreService()
    logger.info("Using in-memory mock store")
else:
    try:
        firestore_service = FirestoreService()
        logger.info("Firestore service initialized")
    except Exception as e:
        logger.warning(f"Failed to initialize Firestore service: {e}")
        firestore_service = None

dashboard_service = DashboardService(firestore_service) if firestore_service else None
seller_analytics_service = SellerAnalyticsService(firestore_service) if firestore_service else None

# Analytics cache (key -> (response, timestamp))
_analytics_cache: Dict[str, tuple] = {}


def _cleanup_cache(cache: Dict[str, tuple], ttl: int, max_entries: int = 100) -> None:
    """Remove expired and excess cache entries to prevent memory issues"""
    now = time()
    expired_keys = [k for k, (_, ts) in cache.items() if now - ts > ttl]
    for k in expired_keys:
        del cache[k]
    if len(cache) > max_entries:
        sorted_keys = sorted(cache.keys(), key=lambda k: cache[k][1])
        for k in sorted_keys[:len(cache) - max_entries]:
            del cache[k]


def _get_cached(cache_key: str) -> Optional[Dict[str, Any]]:
    if cache_key in _analytics_cache:
        cached_data, cached_time = _analytics_cache[cache_key]
        age = time() - cached_time
        if age < settings.ANALYTICS_CACHE_TTL:
            logger.info(f"📊 Returning cached {cache_key} (age: {age:.1f}s)")
            return cached_data
    return None


def _store_cached(cache_key: str, response_data: Dict[str, Any]) -> None:
    _analytics_cache[cache_key] = (response_data, time())
    _cleanup_cache(_analytics_cache, settings.ANALYTICS_CACHE_TTL)


def parse_date_range(start: Optional[str], end: Optional[str]) -> Optional[DateRange]:
    """Build a DateRange from query parameters; None when both are omitted"""
    if not start and not end:
        return None
    if not start or not end:
        raise HTTPException(status_code=400, detail="Both start and end are required for a custom range")
    start_dt, end_dt = to_datetime(start), to_datetime(end)
    if start_dt is None or end_dt is None:
        raise HTTPException(status_code=400, detail="start and end must be ISO-8601 dates")
    try:
        return DateRange(start=start_dt, end=end_dt)
    except ValidationError:
        raise HTTPException(status_code=400, detail="start must not be after end")


def _range_key(date_range: Optional[DateRange]) -> str:
    if date_range is None:
        return "default"
    return f"{date_range.start.isoformat()}_{date_range.end.isoformat()}"


def _require(service, name: str):
    if not service:
        raise HTTPException(status_code=503, detail=f"{name} not available")
    return service


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("🚀 Starting CRM reporting backend...")
    if firestore_service:
        logger.info(f"✅ Data store ready ({type(firestore_service).__name__})")
    else:
        logger.warning("⚠️  Firestore service not initialized")
    yield
    logger.info("🛑 Shutting down CRM reporting backend...")
    _analytics_cache.clear()


app = FastAPI(
    title="CRM Reporting API",
    description="Company dashboards and seller analytics for the real-estate CRM",
    version="1.0.0",
    lifespan=lifespan
)

allowed_origins = list(dict.fromkeys(settings.CORS_ORIGINS))

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Log unexpected errors and return a JSON body"""
    logger.error(f"Unhandled exception: {type(exc).__name__}: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


@app.get("/api/dashboard/{company_id}/report")
async def get_company_report(
    company_id: str,
    start: Optional[str] = Query(None, description="Range start (ISO-8601)"),
    end: Optional[str] = Query(None, description="Range end (ISO-8601)"),
):
    """Company dashboard report. Cached for ANALYTICS_CACHE_TTL seconds."""
    service = _require(dashboard_service, "Dashboard service")
    date_range = parse_date_range(start, end)
    cache_key = f"report_{company_id}_{_range_key(date_range)}"
    cached = _get_cached(cache_key)
    if cached is not None:
        return JSONResponse(content=cached)

    try:
        report = await service.compute_company_report(company_id, date_range)
    except Exception as e:
        logger.error(f"Error computing report for company {company_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    response_data = {"success": True, "report": report.to_response()}
    _store_cached(cache_key, response_data)
    return JSONResponse(content=response_data)


@app.get("/api/dashboard/{company_id}/comparison")
async def get_company_comparison(
    company_id: str,
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
):
    """Current range against the previous period of the same length"""
    service = _require(dashboard_service, "Dashboard service")
    date_range = parse_date_range(start, end)
    cache_key = f"comparison_{company_id}_{_range_key(date_range)}"
    cached = _get_cached(cache_key)
    if cached is not None:
        return JSONResponse(content=cached)

    try:
        comparison = await service.compute_comparison(company_id, date_range)
    except Exception as e:
        logger.error(f"Error computing comparison for company {company_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    response_data = {"success": True, "comparison": comparison.to_response()}
    _store_cached(cache_key, response_data)
    return JSONResponse(content=response_data)


@app.get("/api/dashboard/{company_id}/roles")
async def get_role_distribution(company_id: str):
    """Employee headcount per role"""
    service = _require(dashboard_service, "Dashboard service")
    distribution = await service.compute_role_distribution(company_id)
    return JSONResponse(content={"success": True, "roles": distribution.to_response()})


@app.get("/api/dashboard/{company_id}/charts")
async def get_dashboard_charts(
    company_id: str,
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
):
    """Chart payloads derived from the company report"""
    service = _require(dashboard_service, "Dashboard service")
    date_range = parse_date_range(start, end)
    report = await service.compute_company_report(company_id, date_range)
    return JSONResponse(content={
        "success": True,
        "charts": {
            "revenue": revenue_chart(report),
            "leadsStatus": status_chart(report.leads_status_distribution),
            "dealsStatus": status_chart(report.deals_status_distribution),
            "propertiesStatus": status_chart(report.properties_status_distribution),
        }
    })


@app.get("/api/sellers/{company_id}/progress")
async def get_team_progress(
    company_id: str,
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
):
    """Contact progress for every seller, current month by default"""
    service = _require(seller_analytics_service, "Seller analytics service")
    date_range = parse_date_range(start, end) or month_range()
    progress = await service.compute_team_progress(company_id, date_range)
    return JSONResponse(content={
        "success": True,
        "dateRange": date_range.to_response(),
        "sellers": [item.to_response() for item in progress],
    })


@app.get("/api/sellers/{company_id}/{seller_id}/analytics")
async def get_seller_analytics(
    company_id: str,
    seller_id: str,
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
):
    """Analytics for one seller. Cached for ANALYTICS_CACHE_TTL seconds."""
    service = _require(seller_analytics_service, "Seller analytics service")
    date_range = parse_date_range(start, end)
    cache_key = f"seller_{company_id}_{seller_id}_{_range_key(date_range)}"
    cached = _get_cached(cache_key)
    if cached is not None:
        return JSONResponse(content=cached)

    analytics = await service.compute_seller_analytics(company_id, seller_id, date_range)
    response_data = {"success": True, "analytics": analytics.to_response()}
    _store_cached(cache_key, response_data)
    return JSONResponse(content=response_data)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "firestore_service": "ready" if firestore_service else "not initialized",
        "dashboard_service": "ready" if dashboard_service else "not initialized",
        "cached_entries": len(_analytics_cache),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
