"""Vehicle inventory lookups."""

from __future__ import annotations

import logging
from typing import Any, Iterable

import httpx

from dealerbot.core.errors import UpstreamError
from dealerbot.tools.base import Car, CarRepository, SearchFilters


class HttpCarRepository(CarRepository):
    """JSON inventory endpoint queried with the canonical filters as parameters."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._transport = transport
        self._logger = logging.getLogger("dealerbot.inventory")

    async def search(self, filters: SearchFilters) -> list[Car]:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.get(self._url, params=filters.to_params())
        if response.is_error:
            raise UpstreamError(f"inventory returned {response.status_code}", status_code=response.status_code)
        try:
            payload: Any = response.json()
        except ValueError as exc:
            raise UpstreamError("inventory returned a non-JSON body") from exc

        items = payload.get("cars", []) if isinstance(payload, dict) else payload
        cars = [Car.from_dict(item) for item in items if isinstance(item, dict)]
        self._logger.info("Inventory returned %s car(s) for %s", len(cars), filters.to_params())
        return cars[: filters.limit]


class StaticCarRepository(CarRepository):
    """In-process inventory for local runs and tests. Exact-field filtering only."""

    def __init__(self, cars: Iterable[Car] = ()) -> None:
        self.cars = list(cars)
        self.queries: list[SearchFilters] = []

    async def search(self, filters: SearchFilters) -> list[Car]:
        self.queries.append(filters)
        models = set(filters.model.split("|")) if filters.model else None
        matches = [
            car
            for car in self.cars
            if (models is None or car.model.lower() in models)
            and (filters.brand is None or car.brand.lower() == filters.brand.lower())
            and (filters.year_min is None or (car.year or 0) >= filters.year_min)
            and (filters.year_max is None or (car.year or 0) <= filters.year_max)
            and (filters.price_min is None or (car.price or 0) >= filters.price_min)
            and (filters.price_max is None or (car.price or 0) <= filters.price_max)
        ]
        return matches[: filters.limit]
