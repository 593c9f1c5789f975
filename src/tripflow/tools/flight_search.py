"""
Flight search tool.

Offers come from a :class:`FlightProvider` (the Amadeus Self-Service API by default), are filtered
by price and ranked so that offers with free checked baggage come first, then by a weighted score
of price, duration, stops and baggage.
"""

import logging
import re
import time
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Protocol,
)

import httpx
from pydantic import (
    BaseModel,
    ValidationError,
)

from tripflow.config import settings
from tripflow.core.arguments import Arguments
from tripflow.core.errors import ToolArgumentError
from tripflow.core.schema import ToolResult
from tripflow.tools import (
    BaseTool,
    register_tool,
)

logger = logging.getLogger(__name__)

TRAVEL_CLASSES = ("ECONOMY", "PREMIUM_ECONOMY", "BUSINESS", "FIRST")
MAX_RESULTS = 10


class FlightOffer(BaseModel):
    """Normalised flight offer."""

    id: str
    airline: str
    flight_number: str
    origin: str
    destination: str
    departure_time: str
    arrival_time: str
    price: float
    currency: str = "CNY"
    duration_minutes: int = 0
    stops: int = 0
    checked_bags: int = 0

    @property
    def has_free_baggage(self) -> bool:
        return self.checked_bags > 0


class FlightProvider(Protocol):
    """Source of raw flight offers."""

    def search(
        self,
        origin: str,
        destination: str,
        departure_date: str,
        return_date: Optional[str] = None,
        adults: int = 1,
        travel_class: str = "ECONOMY",
    ) -> List[FlightOffer]: ...


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------
def flight_score(offer: FlightOffer) -> float:
    """Weighted score in [0, 1]: price 0.4, duration 0.2, stops 0.2, baggage 0.2."""
    price_score = max(0.0, 1000.0 - offer.price) / 1000.0
    duration_score = max(0.0, 24.0 - offer.duration_minutes / 60.0) / 24.0
    stop_score = 1.0 if offer.stops == 0 else 1.0 / (offer.stops + 1)
    baggage_score = 1.0 if offer.has_free_baggage else 0.5
    return price_score * 0.4 + duration_score * 0.2 + stop_score * 0.2 + baggage_score * 0.2


def rank_flights(
    offers: List[FlightOffer],
    max_price: Optional[float] = None,
    prefer_free_baggage: bool = True,
    limit: int = MAX_RESULTS,
) -> List[FlightOffer]:
    """Filter by *max_price* and return the best *limit* offers."""
    candidates = [o for o in offers if max_price is None or o.price <= max_price]

    def sort_key(offer: FlightOffer) -> tuple:
        baggage_first = 0 if (prefer_free_baggage and offer.has_free_baggage) else 1
        return (baggage_first, -flight_score(offer))

    return sorted(candidates, key=sort_key)[:limit]


def _format_duration(minutes: int) -> str:
    return f"{minutes // 60}h {minutes % 60:02d}m"


def format_flights(offers: List[FlightOffer]) -> str:
    if not offers:
        return "No flights matched the search criteria."
    lines = [f"Found {len(offers)} recommended flights:", ""]
    for index, offer in enumerate(offers, start=1):
        stops = "direct" if offer.stops == 0 else f"{offer.stops} stop(s)"
        bags = f"{offer.checked_bags} free bag(s)" if offer.has_free_baggage else "no free bags"
        duration = _format_duration(offer.duration_minutes)
        score = flight_score(offer) * 100
        lines.append(f"[{index}] {offer.airline} {offer.flight_number} (score {score:.1f})")
        lines.append(f"    {offer.origin} {offer.departure_time} -> {offer.destination}")
        lines.append(f"    arrives {offer.arrival_time}")
        lines.append(f"    {offer.currency} {offer.price:.0f} | {duration} | {stops} | {bags}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Amadeus provider
# ---------------------------------------------------------------------------
_ISO_DURATION = re.compile(r"P(?:(?P<days>\d+)D)?T?(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?")


def parse_iso_duration(value: str) -> int:
    """Minutes in an ISO-8601 duration such as ``PT2H30M``."""
    match = _ISO_DURATION.fullmatch(value or "")
    if not match:
        return 0
    days, hours, minutes = (int(match.group(g) or 0) for g in ("days", "hours", "minutes"))
    return days * 1440 + hours * 60 + minutes


class AmadeusFlightProvider:
    """Flight offers from the Amadeus Self-Service ``/v2/shopping/flight-offers`` endpoint."""

    def __init__(
        self,
        api_key: str | None = None,
        api_secret: str | None = None,
        environment: str | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.api_key = api_key or settings.AMADEUS_API_KEY
        self.api_secret = api_secret or settings.AMADEUS_API_SECRET
        env = environment or settings.AMADEUS_ENV
        self.base_url = (
            "https://test.api.amadeus.com" if env == "test" else "https://api.amadeus.com"
        )
        self.timeout = timeout
        self._token: str | None = None
        self._token_expiry = 0.0

    def _access_token(self, client: httpx.Client) -> str:
        if self._token and time.monotonic() < self._token_expiry:
            return self._token
        if not self.api_key or not self.api_secret:
            raise RuntimeError("Amadeus credentials are not configured")
        resp = client.post(
            f"{self.base_url}/v1/security/oauth2/token",
            data={
                "grant_type": "client_credentials",
                "client_id": self.api_key,
                "client_secret": self.api_secret,
            },
        )
        resp.raise_for_status()
        body = resp.json()
        self._token = body["access_token"]
        # Refresh a minute early.
        self._token_expiry = time.monotonic() + max(0, int(body.get("expires_in", 0)) - 60)
        return self._token

    def search(
        self,
        origin: str,
        destination: str,
        departure_date: str,
        return_date: Optional[str] = None,
        adults: int = 1,
        travel_class: str = "ECONOMY",
    ) -> List[FlightOffer]:
        params: Dict[str, Any] = {
            "originLocationCode": origin,
            "destinationLocationCode": destination,
            "departureDate": departure_date,
            "adults": adults,
            "travelClass": travel_class,
            "max": 50,
        }
        if return_date:
            params["returnDate"] = return_date

        with httpx.Client(timeout=self.timeout) as client:
            token = self._access_token(client)
            resp = client.get(
                f"{self.base_url}/v2/shopping/flight-offers",
                params=params,
                headers={"Authorization": f"Bearer {token}", "Accept": "application/json"},
            )
            resp.raise_for_status()
            data = resp.json().get("data", [])

        offers = []
        for item in data:
            try:
                offers.append(self._convert(item))
            except (KeyError, IndexError, ValueError, ValidationError) as exc:
                logger.warning("Skipping malformed Amadeus offer %s: %s", item.get("id"), exc)
        return offers

    @staticmethod
    def _convert(item: Dict[str, Any]) -> FlightOffer:
        itineraries = item["itineraries"]
        segments = [seg for itinerary in itineraries for seg in itinerary["segments"]]
        first, last = segments[0], segments[-1]
        bags = 0
        pricings = item.get("travelerPricings") or []
        if pricings and pricings[0].get("fareDetailsBySegment"):
            included = pricings[0]["fareDetailsBySegment"][0].get("includedCheckedBags") or {}
            bags = int(included.get("quantity", 0))
        return FlightOffer(
            id=str(item["id"]),
            airline=first["carrierCode"],
            flight_number=f"{first['carrierCode']}{first['number']}",
            origin=first["departure"]["iataCode"],
            destination=last["arrival"]["iataCode"],
            departure_time=first["departure"]["at"],
            arrival_time=last["arrival"]["at"],
            price=float(item["price"]["total"]),
            currency=item["price"].get("currency", "CNY"),
            duration_minutes=parse_iso_duration(itineraries[0].get("duration", "")),
            stops=max(0, len(itineraries[0]["segments"]) - 1),
            checked_bags=bags,
        )


# ---------------------------------------------------------------------------
# Tool
# ---------------------------------------------------------------------------
@register_tool("flight_search")
class FlightSearchTool(BaseTool):
    """Search flights and rank them for price, comfort and free baggage."""

    name = "flight_search"
    description = (
        "Search flights between two airports and return the best options, preferring low prices "
        "and free checked baggage."
    )
    parameters = {
        "origin": {"type": "string", "description": "Origin IATA airport or city code"},
        "destination": {"type": "string", "description": "Destination IATA airport or city code"},
        "departure_date": {"type": "string", "description": "Departure date (YYYY-MM-DD)"},
        "return_date": {"type": "string", "description": "Return date (YYYY-MM-DD), optional"},
        "adults": {"type": "integer", "description": "Number of adult travellers (default 1)"},
        "travel_class": {
            "type": "string",
            "enum": list(TRAVEL_CLASSES),
            "description": "Cabin class (default ECONOMY)",
        },
        "max_price": {"type": "number", "description": "Maximum total price"},
        "prefer_free_baggage": {
            "type": "boolean",
            "description": "Rank offers with free checked baggage first (default true)",
        },
    }
    required = ("origin", "destination", "departure_date")

    def __init__(self, provider: FlightProvider | None = None) -> None:
        self.provider = provider or AmadeusFlightProvider()

    def execute(self, args: Arguments) -> ToolResult:
        origin = args.require_str("origin").upper()
        destination = args.require_str("destination").upper()
        departure_date = args.require_str("departure_date")
        return_date = args.get_str("return_date")
        adults = args.get_int("adults", 1) or 1
        travel_class = (args.get_str("travel_class") or "ECONOMY").upper()
        if travel_class not in TRAVEL_CLASSES:
            raise ToolArgumentError("travel_class", f"must be one of {', '.join(TRAVEL_CLASSES)}")
        max_price = args.get_number("max_price")
        prefer_free_baggage = args.get_bool("prefer_free_baggage", True)

        try:
            offers = self.provider.search(
                origin=origin,
                destination=destination,
                departure_date=departure_date,
                return_date=return_date,
                adults=adults,
                travel_class=travel_class,
            )
        except (httpx.HTTPError, RuntimeError) as exc:
            logger.error("Flight search failed: %s", exc)
            return ToolResult.fail(f"Flight search failed: {exc}", search_params=args.to_dict())

        ranked = rank_flights(
            offers, max_price=max_price, prefer_free_baggage=bool(prefer_free_baggage)
        )
        return ToolResult.ok(
            format_flights(ranked),
            search_params=args.to_dict(),
            results_count=len(ranked),
        )
