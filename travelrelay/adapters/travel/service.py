"""Travel API Service - flights, airports and hotels behind the resilient call layer."""
import logging
from typing import Any, Dict, Optional

import httpx

from travelrelay.config.schema import TravelRelayConfig
from travelrelay.core.cache import CacheStore, make_cache_key
from travelrelay.core.errors import UpstreamError, failure_message
from travelrelay.core.http_client import UpstreamHTTPClient
from travelrelay.core.retry import ResilientExecutor, RetryPolicy

logger = logging.getLogger(__name__)


# operation -> (path, subject and action used in user-facing errors, cache class)
# Cache class: "reference" = near-static data, "default" = general TTL, None = live prices, never cached.
OPERATIONS: Dict[str, tuple] = {
    "search_flights": ("/v2/shopping/flight-offers", "Flight search", "searching flights", None),
    "search_airports": ("/v1/reference-data/locations", "Airport search", "searching airports", "reference"),
    "flight_price_analysis": ("/v1/analytics/itinerary-price-metrics", "Flight price analysis", "getting price analysis", "default"),
    "flight_inspiration": ("/v1/shopping/flight-destinations", "Flight inspiration", "searching flight inspiration", "default"),
    "airport_routes": ("/v1/airport/direct-destinations", "Airport routes", "searching airport routes", "default"),
    "nearest_airports": ("/v1/reference-data/locations/airports", "Nearest airports", "finding nearest airports", "default"),
    "search_hotel_offers": ("/v3/shopping/hotel-offers", "Hotel offers search", "searching hotel offers", None),
}


class TravelAPIService:
    """Exposes upstream travel operations through ResilientExecutor.

    Request validation and response formatting belong to the caller; this
    service maps a request description (operation name + flat parameters) to
    one upstream GET and returns the decoded ``data`` payload.
    """

    def __init__(
        self,
        executor: ResilientExecutor,
        client: UpstreamHTTPClient,
        config: Optional[TravelRelayConfig] = None,
    ):
        """
        Args:
            executor: Resilient executor (owns the cache store)
            client: Upstream HTTP client
            config: Validated configuration (defaults if omitted)
        """
        self.executor = executor
        self.client = client
        self.config = config or TravelRelayConfig()

    @classmethod
    def from_config(
        cls,
        config: TravelRelayConfig,
        access_token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "TravelAPIService":
        """Build cache store, executor and HTTP client from configuration."""
        cache = CacheStore(
            check_period_s=config.cache.check_period_s,
            max_entries=config.cache.max_entries,
        )
        executor = ResilientExecutor(
            cache=cache,
            default_policy=config.retry.to_policy(),
            default_ttl_s=config.cache.default_ttl_s,
        )
        client = UpstreamHTTPClient(
            base_url=config.upstream.base_url,
            access_token=access_token,
            timeout_s=config.upstream.timeout_ms / 1000.0,
            transport=transport,
        )
        return cls(executor, client, config)

    def policy_for(self, operation: str) -> RetryPolicy:
        return self.config.policy_for(operation)

    def _ttl_for(self, cache_class: Optional[str]) -> Optional[int]:
        if cache_class is None or not self.config.cache.enabled or self.executor.cache is None:
            return None
        if cache_class == "reference":
            return self.config.cache.reference_ttl_s
        return self.config.cache.default_ttl_s

    async def call(self, operation: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Run one upstream operation.

        Args:
            operation: Key of OPERATIONS
            params: Upstream query parameters (None values are dropped)

        Returns:
            The ``data`` member of the upstream JSON body

        Raises:
            KeyError: Unknown operation
            UpstreamError: Final failure from the executor
        """
        if operation not in OPERATIONS:
            raise KeyError(f"Unknown operation: {operation}")
        path, _, _, cache_class = OPERATIONS[operation]
        query = {k: v for k, v in (params or {}).items() if v is not None}

        ttl_s = self._ttl_for(cache_class)
        cache_key = make_cache_key(operation, query) if ttl_s is not None else None

        body = await self.executor.execute(
            operation,
            lambda: self.client.get_json(path, query),
            policy=self.policy_for(operation),
            cache_key=cache_key,
            ttl_s=ttl_s,
        )
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    async def handle(self, operation: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Run an operation and fold the outcome into a result dict.

        Hyphenated names ("search-flights") are accepted as well.

        Returns:
            ``{"data": ...}`` on success, or
            ``{"is_error": True, "error": <message>, "error_class": ...}``
        """
        operation = operation.replace("-", "_")
        try:
            data = await self.call(operation, params)
        except KeyError as e:
            return {"is_error": True, "error": str(e.args[0]), "error_class": None}
        except UpstreamError as e:
            _, subject, action, _ = OPERATIONS[operation]
            logger.error(f"Error in {operation}: {e}")
            return {
                "is_error": True,
                "error": failure_message(e, action, subject=subject),
                "error_class": e.error_class.value,
            }
        return {"data": data}

    async def search_flights(
        self,
        origin: str,
        destination: str,
        departure_date: str,
        return_date: Optional[str] = None,
        adults: int = 1,
        children: Optional[int] = None,
        infants: Optional[int] = None,
        travel_class: Optional[str] = None,
        non_stop: bool = False,
        currency_code: str = "USD",
        max_results: int = 10,
    ) -> Any:
        return await self.call("search_flights", {
            "originLocationCode": origin,
            "destinationLocationCode": destination,
            "departureDate": departure_date,
            "returnDate": return_date,
            "adults": adults,
            "children": children,
            "infants": infants,
            "travelClass": travel_class,
            "nonStop": non_stop,
            "currencyCode": currency_code,
            "max": max_results,
        })

    async def search_airports(
        self,
        keyword: str,
        sub_type: Optional[str] = None,
        country_code: Optional[str] = None,
        max_results: int = 10,
    ) -> Any:
        """Airport/city lookup; cached for a day since the data rarely changes."""
        return await self.call("search_airports", {
            "keyword": keyword,
            "subType": sub_type or "AIRPORT,CITY",
            "countryCode": country_code,
            "page[limit]": max_results,
        })

    async def flight_price_analysis(
        self,
        origin: str,
        destination: str,
        departure_date: str,
        currency_code: str = "USD",
        one_way: bool = False,
    ) -> Any:
        return await self.call("flight_price_analysis", {
            "originIataCode": origin,
            "destinationIataCode": destination,
            "departureDate": departure_date,
            "currencyCode": currency_code,
            "oneWay": one_way,
        })

    async def flight_inspiration(
        self,
        origin: str,
        departure_date: Optional[str] = None,
        one_way: bool = False,
        duration: Optional[str] = None,
        non_stop: bool = False,
        max_price: Optional[int] = None,
        view_by: Optional[str] = None,
    ) -> Any:
        return await self.call("flight_inspiration", {
            "origin": origin,
            "departureDate": departure_date,
            "oneWay": one_way,
            "duration": duration,
            "nonStop": non_stop,
            "maxPrice": max_price,
            "viewBy": view_by,
        })

    async def airport_routes(self, departure_airport: str, max_results: int = 10) -> Any:
        return await self.call("airport_routes", {
            "departureAirportCode": departure_airport,
            "max": max_results,
        })

    async def nearest_airports(
        self,
        latitude: float,
        longitude: float,
        radius_km: int = 500,
        max_results: int = 10,
    ) -> Any:
        return await self.call("nearest_airports", {
            "latitude": latitude,
            "longitude": longitude,
            "radius": radius_km,
            "page[limit]": max_results,
        })

    async def search_hotel_offers(
        self,
        hotel_ids: str,
        check_in_date: str,
        check_out_date: str,
        adults: int = 1,
        children: Optional[int] = None,
        currency_code: str = "USD",
        room_quantity: int = 1,
        price_range: Optional[str] = None,
        payment_policy: Optional[str] = None,
    ) -> Any:
        """Live hotel prices; never cached."""
        return await self.call("search_hotel_offers", {
            "hotelIds": hotel_ids,
            "adults": adults,
            "children": children,
            "checkInDate": check_in_date,
            "checkOutDate": check_out_date,
            "currency": currency_code,
            "roomQuantity": room_quantity,
            "priceRange": price_range,
            "paymentPolicy": payment_policy,
        })

    async def start(self) -> None:
        """Start background maintenance (cache sweep)."""
        if self.executor.cache is not None:
            await self.executor.cache.start()

    async def close(self) -> None:
        """Close service and cleanup."""
        await self.client.close()
        if self.executor.cache is not None:
            await self.executor.cache.close()
