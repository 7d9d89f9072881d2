"""Main Entry Point"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional
from fastapi import APIRouter, FastAPI, Depends, HTTPException, Request, status, Query
from fastapi import Path as PathParam
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from db import Database, get_database
from country_exchange import config
from country_exchange.enums import SortMode
from country_exchange.errors import ExternalSourceFailure, NotFoundFailure
from country_exchange.estimator import RandomSource
from country_exchange.fetch import CountriesSource, ExchangeRateSource
from country_exchange.refresh import RefreshService
from country_exchange.repository import CountryRepository
from country_exchange.schema import (
    CountryFilters,
    CountryResponse,
    RefreshOut,
    SummaryOut,
)
from country_exchange.status import StatusTracker
from country_exchange.util import get_summary_image_path, write_summary_image
import logging
import sys


logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
    force=True,
)
logger = logging.getLogger(__name__)

ALLOWED_FILTERS = ("region", "currency", "sort")

router = APIRouter()


def get_repository(database: Database = Depends(get_database)) -> CountryRepository:
    return CountryRepository(database)


def get_tracker(database: Database = Depends(get_database)) -> StatusTracker:
    return StatusTracker(database)


def get_refresh_service(
    request: Request,
    repository: CountryRepository = Depends(get_repository),
    tracker: StatusTracker = Depends(get_tracker),
) -> RefreshService:
    state = request.app.state
    return RefreshService(
        state.countries_source, state.rates_source, repository, tracker, state.rng
    )


def validation_failed(details: dict) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Validation failed", "details": details},
    )


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ExternalSourceFailure)
    async def external_source_failure(request: Request, exc: ExternalSourceFailure):
        logger.error(f"External source failure: {exc}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "error": "External data source unavailable",
                "details": f"Could not fetch data from {exc.source_name}",
            },
        )

    @app.exception_handler(NotFoundFailure)
    async def not_found(request: Request, exc: NotFoundFailure):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"error": "Country not found"},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation(request: Request, exc: RequestValidationError):
        details = {}
        for error in exc.errors():
            field = str(error["loc"][-1]) if error["loc"] else "request"
            details[field] = error["msg"]
        return validation_failed(details)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        content = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(Exception)
    async def internal_error(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.url.path}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error"},
        )


@router.get("/")
def entry_point():
    return {"message": "Welcome to Country Currency API!"}


@router.get("/health")
def health_check():
    return {"health": "All good, 100%"}


@router.post(
    "/countries/refresh", status_code=status.HTTP_200_OK, response_model=RefreshOut
)
async def refresh_countries(
    request: Request, service: RefreshService = Depends(get_refresh_service)
):
    """Pull both upstreams and upsert every country.

    503 when the country source is unreachable; otherwise 200 with the
    per-record outcome, including when no record could be stored.
    """
    result = await service.refresh()

    if result.processed > 0:
        try:
            await write_summary_image(
                service.repository, service.tracker, request.app.state.cache_dir
            )
        except Exception as exc:
            logger.warning(f"Failed to generate summary image: {exc}")

    message = (
        "Countries data refreshed successfully"
        if result.success
        else "No country data could be stored"
    )
    return RefreshOut(message=message, **result.model_dump())


@router.get(
    "/countries",
    status_code=status.HTTP_200_OK,
    response_model=List[CountryResponse],
)
async def get_countries(
    request: Request,
    region: Optional[str] = Query(None, min_length=1, description="Filter by region"),
    currency: Optional[str] = Query(
        None, min_length=1, description="Filter by currency code"
    ),
    sort: Optional[SortMode] = Query(None, description="gdp_desc or name_asc"),
    repository: CountryRepository = Depends(get_repository),
):
    """
    Examples:
      /countries?region=Africa
      /countries?currency=NGN
      /countries?sort=gdp_desc
    """
    unknown = [key for key in request.query_params if key not in ALLOWED_FILTERS]
    if unknown:
        return validation_failed({key: "is not a valid filter" for key in unknown})

    filters = CountryFilters(region=region, currency=currency, sort=sort)
    return await repository.find_many(filters)


@router.get("/countries/image", status_code=status.HTTP_200_OK)
def get_image_summary(request: Request):
    file_path = get_summary_image_path(request.app.state.cache_dir)
    if not file_path.exists():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Summary image not found"
        )
    return FileResponse(str(file_path), media_type="image/png")


@router.get(
    "/countries/{name}",
    status_code=status.HTTP_200_OK,
    response_model=CountryResponse,
)
async def get_country_by_name(
    name: str = PathParam(..., min_length=1, max_length=100),
    repository: CountryRepository = Depends(get_repository),
):
    """Get country by name (case-insensitive)"""
    country = await repository.find_by_name(name)
    if country is None:
        raise NotFoundFailure(name)
    return country


@router.delete("/countries/{name}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_country_by_name(
    name: str = PathParam(..., min_length=1, max_length=100),
    repository: CountryRepository = Depends(get_repository),
    tracker: StatusTracker = Depends(get_tracker),
):
    if not await repository.delete_by_name(name):
        raise NotFoundFailure(name)
    await tracker.decrement_on_delete()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/status", status_code=status.HTTP_200_OK, response_model=SummaryOut)
async def get_status(tracker: StatusTracker = Depends(get_tracker)):
    """Get db status"""
    return await tracker.get_status()


def create_app(
    database_url: Optional[str] = None,
    countries_source: Optional[CountriesSource] = None,
    rates_source: Optional[ExchangeRateSource] = None,
    rng: Optional[RandomSource] = None,
    cache_dir: Optional[Path] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting up: creating database tables...")
        database = Database(database_url or config.DATABASE_URL, echo=config.DATABASE_ECHO)
        await database.init()
        app.state.database = database

        yield
        logger.info("Shutting down...")
        await database.dispose()

    app = FastAPI(
        title="Country Currency API",
        description="Country data enriched with exchange rates and an estimated GDP.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.countries_source = countries_source or CountriesSource()
    app.state.rates_source = rates_source or ExchangeRateSource()
    app.state.rng = rng
    app.state.cache_dir = cache_dir or config.CACHE_DIR

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)
    app.include_router(router)
    return app


app = create_app()
