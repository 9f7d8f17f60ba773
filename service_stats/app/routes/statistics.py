"""
Department, country and ranking read endpoints.

Every per-entity endpoint is wrapped in the read-through cache using the same
key template the preloader writes, so a warm cache and a backfilled one hold
identical entries.
"""

import re
from typing import Callable

from fastapi import APIRouter, Query, Request

from shared.errors import NotFoundError, ValidationError
from ..caching.cache_store import CacheStore
from ..caching.keys import (
    COUNTRY_KEYS,
    DEPARTMENT_KEYS,
    DEPARTMENT_RANKINGS,
    POLITIQUE_RANKINGS,
    country_key,
    department_key,
)
from ..caching.preloader import CachePreloader
from ..caching.rankings import WEIGHTED_METRICS, sort_rankings
from ..caching.read_through import ReadThroughCache


DEPARTMENT_PATTERN = re.compile(r"^(0[1-9]|[1-8][0-9]|9[0-5]|2[AB]|97[1-6])$")
COUNTRY_PATTERN = re.compile(r"^[A-Za-zÀ-ÿ' -]{2,50}$")

DEFAULT_RANKINGS_LIMIT = 101
MAX_RANKINGS_LIMIT = 2000

SORTABLE_FIELDS = frozenset(WEIGHTED_METRICS) | {
    "population",
    "number_of_mosques",
    "total_qpv",
    "total_places_migrants",
    "musulman_pct",
    "homicides_total_p100k",
    "extra_europeen_pct",
    "prenom_francais_pct",
}

NOT_FOUND_MESSAGES = {
    "details": "Département non trouvé",
    "crime": "Données criminelles non trouvées pour la dernière année",
    "names": "Données de prénoms non trouvées pour la dernière année",
    "prefet": "Préfet non trouvé",
    "ministre": "Ministre non trouvé",
}


def validate_department(dept: str) -> str:
    if not DEPARTMENT_PATTERN.match(dept):
        raise ValidationError("Code département invalide", details={"dept": dept})
    return dept


def validate_country(country: str) -> str:
    if not COUNTRY_PATTERN.match(country):
        raise ValidationError("Pays invalide", details={"country": country})
    return country


def create_statistics_router(
    store: CacheStore,
    preloader: CachePreloader,
    read_through: ReadThroughCache,
) -> APIRouter:
    """Build the department, country and rankings routers."""
    router = APIRouter(prefix="/api", tags=["statistics"])

    def department_endpoint(view: str) -> Callable:
        @read_through(lambda request: department_key(view, request.query_params.get("dept", "")))
        async def endpoint(request: Request, dept: str = Query(...)):
            data = await preloader.department_view(view, validate_department(dept))
            if data is None:
                raise NotFoundError(NOT_FOUND_MESSAGES.get(view, "Données non trouvées"))
            return data

        return endpoint

    def country_endpoint(view: str) -> Callable:
        @read_through(
            lambda request: country_key(view, request.query_params.get("country", preloader.country))
        )
        async def endpoint(request: Request, country: str = Query(preloader.country)):
            data = await preloader.country_view(view, validate_country(country))
            if data is None:
                raise NotFoundError(NOT_FOUND_MESSAGES.get(view, "Données non trouvées"))
            return data

        return endpoint

    for view in DEPARTMENT_KEYS:
        router.add_api_route(
            f"/departements/{view}",
            department_endpoint(view),
            methods=["GET"],
            name=f"department_{view}",
        )

    for view in COUNTRY_KEYS:
        router.add_api_route(
            f"/country/{view}",
            country_endpoint(view),
            methods=["GET"],
            name=f"country_{view}",
        )

    @router.get("/departements")
    async def list_departments():
        """All department codes, numerically padded order (01, 2A, 971...)."""
        codes = await preloader.list_departments()
        return [
            {"departement": code}
            for code in sorted(codes, key=lambda code: code.rjust(3, "0"))
        ]

    @router.get("/rankings/departements")
    async def department_rankings(
        sort: str = Query("insecurite_score"),
        direction: str = Query("DESC"),
        limit: int = Query(DEFAULT_RANKINGS_LIMIT, ge=1, le=MAX_RANKINGS_LIMIT),
        offset: int = Query(0, ge=0),
    ):
        """Department rankings sorted and paginated from the cached table."""
        if sort not in SORTABLE_FIELDS:
            raise ValidationError("Champ de tri invalide", details={"sort": sort})
        if direction not in ("ASC", "DESC"):
            raise ValidationError("Direction doit être ASC ou DESC", details={"direction": direction})

        rankings = store.get(DEPARTMENT_RANKINGS)
        if rankings is None:
            rankings = await preloader.department_rankings()
            store.set(DEPARTMENT_RANKINGS, rankings)

        ordered = sort_rankings(rankings["data"], sort, direction)
        return {
            "data": ordered[offset:offset + limit],
            "total_count": rankings["total_count"],
        }

    @router.get("/rankings/politique")
    @read_through(lambda request: POLITIQUE_RANKINGS)
    async def politique_rankings(request: Request):
        """Population-weighted metrics per mayor political family."""
        cached = store.get(POLITIQUE_RANKINGS)
        if cached:
            return cached
        return await preloader.politique_rankings()

    return router
