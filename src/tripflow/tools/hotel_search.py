"""Hotel search tool: provider lookup, then filtering and sorting on price, stars and amenities."""

import logging
import math
import re
from datetime import date
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Protocol,
    Tuple,
)

import httpx
from pydantic import (
    BaseModel,
    Field,
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

SORT_KEYS = ("price", "rating", "distance", "popularity")
HOTEL_TYPES = ("hotel", "resort", "apartment", "hostel", "guesthouse")
AMAP_BASE_URL = "https://restapi.amap.com/v3"
METERS_PER_WALK_MINUTE = 100

# Requested amenity -> spellings that count as a match in provider data.
AMENITY_ALIASES: Dict[str, Tuple[str, ...]] = {
    "wifi": ("wifi", "wi-fi", "无线", "网络"),
    "pool": ("pool", "泳池", "游泳"),
    "gym": ("gym", "fitness", "健身"),
    "breakfast": ("breakfast", "早餐"),
    "parking": ("parking", "停车"),
}


class HotelInfo(BaseModel):
    """Normalised hotel listing.  Unknown numeric fields stay ``None``."""

    name: str
    address: str = ""
    location: Optional[str] = Field(None, description='"lng,lat" coordinates')
    hotel_type: str = "hotel"
    price: Optional[float] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    star_rating: Optional[int] = None
    distance_m: Optional[int] = None
    amenities: List[str] = Field(default_factory=list)
    nearest_metro: Optional[str] = None


class HotelProvider(Protocol):
    """Source of hotel listings."""

    def search(self, city: str, location: Optional[str] = None) -> List[HotelInfo]: ...

    def nearest_metro(self, hotel: HotelInfo, max_walk_minutes: int) -> Optional[Tuple[str, int]]:
        """``(station, walking minutes)`` of a station reachable on foot in time, else ``None``."""


def parse_date(name: str, value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ToolArgumentError(name, f"must be a YYYY-MM-DD date, got {value!r}") from exc


def has_amenity(hotel: HotelInfo, amenity: str) -> bool:
    """Case-insensitive substring match of *amenity* (or a known alias) in the hotel's list."""
    wanted = amenity.strip().lower()
    spellings = AMENITY_ALIASES.get(wanted, ()) + (wanted,)
    listed = [a.lower() for a in hotel.amenities]
    return any(spelling in item for spelling in spellings for item in listed)


def filter_hotels(
    hotels: List[HotelInfo],
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    star_rating: Optional[int] = None,
    amenities: Optional[List[str]] = None,
    hotel_type: Optional[str] = None,
) -> List[HotelInfo]:
    """
    Drop hotels that violate a given constraint.

    An unknown price or star rating fails any constraint on it, and *star_rating* is a minimum.
    Hotels whose provider reports no amenities at all are kept when amenities are requested.
    """
    wanted = [a.strip() for a in amenities or [] if a.strip()]
    kept = []
    for hotel in hotels:
        if min_price is not None and (hotel.price is None or hotel.price < min_price):
            continue
        if max_price is not None and (hotel.price is None or hotel.price > max_price):
            continue
        if star_rating is not None and (hotel.star_rating or 0) < star_rating:
            continue
        if hotel_type and hotel.hotel_type.lower() != hotel_type.lower():
            continue
        if wanted and hotel.amenities and not all(has_amenity(hotel, a) for a in wanted):
            continue
        kept.append(hotel)
    return kept


def sort_hotels(hotels: List[HotelInfo], sort_by: str = "rating") -> List[HotelInfo]:
    """Sort with missing values last: cheapest, nearest, most reviewed or best rated first."""
    if sort_by == "price":
        return sorted(hotels, key=lambda h: (h.price is None, h.price or 0.0))
    if sort_by == "distance":
        return sorted(hotels, key=lambda h: (h.distance_m is None, h.distance_m or 0))
    if sort_by == "popularity":
        return sorted(
            hotels,
            key=lambda h: (h.review_count is None, -(h.review_count or 0), -(h.rating or 0.0)),
        )
    return sorted(hotels, key=lambda h: (h.rating is None, -(h.rating or 0.0)))


def format_hotels(
    hotels: List[HotelInfo], city: str, nights: int, guests: int = 2, rooms: int = 1
) -> str:
    if not hotels:
        return f"No hotels in {city} matched the search criteria."
    lines = [
        f"Found {len(hotels)} hotels in {city} for {nights} night(s), "
        f"{guests} guest(s) in {rooms} room(s):",
        "",
    ]
    for index, hotel in enumerate(hotels, start=1):
        details = []
        if hotel.star_rating:
            details.append(f"{hotel.star_rating}-star")
        if hotel.rating is not None:
            details.append(f"rating {hotel.rating:.1f}")
        if hotel.price is not None:
            total = hotel.price * nights * rooms
            details.append(f"~{hotel.price:.0f}/night, ~{total:.0f} total")
        if hotel.distance_m is not None:
            details.append(f"{hotel.distance_m} m away")
        lines.append(f"[{index}] {hotel.name}")
        if hotel.address:
            lines.append(f"    {hotel.address}")
        if details:
            lines.append(f"    {' | '.join(details)}")
        if hotel.nearest_metro:
            lines.append(f"    Metro: {hotel.nearest_metro}")
        if hotel.amenities:
            lines.append(f"    Amenities: {', '.join(hotel.amenities[:5])}")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# AMap provider
# ---------------------------------------------------------------------------
_STAR_PATTERNS = (
    (re.compile(r"五星|5星|five[- ]star", re.I), 5),
    (re.compile(r"四星|4星|four[- ]star", re.I), 4),
    (re.compile(r"三星|3星|three[- ]star", re.I), 3),
    (re.compile(r"二星|2星|经济|快捷|budget", re.I), 2),
)

_TYPE_PATTERNS = (
    (re.compile(r"度假|resort", re.I), "resort"),
    (re.compile(r"公寓|apartment", re.I), "apartment"),
    (re.compile(r"青旅|青年旅舍|hostel", re.I), "hostel"),
    (re.compile(r"民宿|客栈|guest", re.I), "guesthouse"),
)


def _star_from_text(text: str) -> Optional[int]:
    for pattern, stars in _STAR_PATTERNS:
        if pattern.search(text):
            return stars
    return None


def _type_from_text(text: str) -> str:
    for pattern, hotel_type in _TYPE_PATTERNS:
        if pattern.search(text):
            return hotel_type
    return "hotel"


def _to_float(value: Any) -> Optional[float]:
    # AMap returns [] or "" for missing values
    try:
        return float(value) if value not in (None, "", []) else None
    except (TypeError, ValueError):
        return None


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _amenities_from_tag(tag: str) -> List[str]:
    return [part.strip() for part in re.split(r"[;,，、]", tag) if part.strip()]


class AMapHotelProvider:
    """Hotel POIs from the AMap (Gaode) place-search REST API."""

    def __init__(self, api_key: str | None = None, timeout: float = 30.0) -> None:
        self.api_key = api_key or settings.AMAP_API_KEY
        self.timeout = timeout

    def _get(self, client: httpx.Client, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        resp = client.get(f"{AMAP_BASE_URL}{path}", params={**params, "key": self.api_key})
        resp.raise_for_status()
        body = resp.json()
        if body.get("status") != "1":
            raise RuntimeError(f"AMap error: {body.get('info', 'unknown error')}")
        return body

    def _require_key(self) -> None:
        if not self.api_key:
            raise RuntimeError("AMap is not configured (AMAP_API_KEY missing)")

    @staticmethod
    def convert(poi: Dict[str, Any]) -> HotelInfo:
        """Normalise one AMap POI; stars and type come from the name and POI category."""
        name = _text(poi.get("name"))
        category = _text(poi.get("type"))
        biz = poi.get("biz_ext") or {}
        distance = _to_float(poi.get("distance"))
        return HotelInfo(
            name=name,
            address=_text(poi.get("address")),
            location=_text(poi.get("location")) or None,
            hotel_type=_type_from_text(f"{name} {category}"),
            price=_to_float(biz.get("cost")),
            rating=_to_float(biz.get("rating")),
            star_rating=_star_from_text(f"{name} {category}"),
            distance_m=int(distance) if distance is not None else None,
            amenities=_amenities_from_tag(_text(poi.get("tag"))),
        )

    def search(self, city: str, location: Optional[str] = None) -> List[HotelInfo]:
        self._require_key()
        with httpx.Client(timeout=self.timeout) as client:
            if location:
                geo = self._get(client, "/geocode/geo", {"address": location, "city": city})
                geocodes = geo.get("geocodes") or []
                if not geocodes:
                    raise RuntimeError(f"Could not locate '{location}' in {city}")
                body = self._get(
                    client,
                    "/place/around",
                    {
                        "location": geocodes[0]["location"],
                        "types": "100000",
                        "radius": 3000,
                        "extensions": "all",
                    },
                )
            else:
                body = self._get(
                    client,
                    "/place/text",
                    {"city": city, "types": "100000", "offset": 25, "extensions": "all"},
                )
        return [self.convert(poi) for poi in body.get("pois", [])]

    def nearest_metro(self, hotel: HotelInfo, max_walk_minutes: int) -> Optional[Tuple[str, int]]:
        if not hotel.location:
            return None
        self._require_key()
        with httpx.Client(timeout=self.timeout) as client:
            body = self._get(
                client,
                "/place/around",
                {
                    "location": hotel.location,
                    "keywords": "地铁站",
                    "types": "150500",
                    "radius": max_walk_minutes * METERS_PER_WALK_MINUTE,
                    "offset": 20,
                },
            )
            for station in body.get("pois", []):
                destination = _text(station.get("location"))
                if not destination:
                    continue
                try:
                    route = self._get(
                        client,
                        "/direction/walking",
                        {"origin": hotel.location, "destination": destination},
                    )
                    seconds = float(route["route"]["paths"][0]["duration"])
                except (httpx.HTTPError, RuntimeError, KeyError, IndexError, ValueError) as exc:
                    logger.debug("Walking route to %s failed: %s", station.get("name"), exc)
                    continue
                minutes = math.ceil(seconds / 60)
                if minutes <= max_walk_minutes:
                    return _text(station.get("name")), minutes
        return None


# ---------------------------------------------------------------------------
# Tool
# ---------------------------------------------------------------------------
@register_tool("hotel_search")
class HotelSearchTool(BaseTool):
    """Search hotels in a city, optionally near a landmark, and filter the results."""

    name = "hotel_search"
    description = (
        "Search hotels in a city (optionally near an address or landmark) and filter them by "
        "price, star rating, hotel type, amenities and walking distance to the metro."
    )
    parameters = {
        "city": {"type": "string", "description": "Destination city"},
        "checkin_date": {"type": "string", "description": "Check-in date (YYYY-MM-DD)"},
        "checkout_date": {"type": "string", "description": "Check-out date (YYYY-MM-DD)"},
        "location": {"type": "string", "description": "Address, landmark or metro station"},
        "min_price": {"type": "number", "description": "Minimum price per night"},
        "max_price": {"type": "number", "description": "Maximum price per night"},
        "star_rating": {
            "type": "string",
            "enum": ["1", "2", "3", "4", "5", "any"],
            "description": "Minimum star rating",
        },
        "amenities": {
            "type": "string",
            "description": "Comma separated required amenities (wifi,pool,gym,breakfast,parking)",
        },
        "hotel_type": {
            "type": "string",
            "enum": [*HOTEL_TYPES, "any"],
            "description": "Kind of accommodation",
        },
        "near_metro": {"type": "boolean", "description": "Only hotels within walking distance"},
        "max_walk_minutes": {
            "type": "integer",
            "description": "Maximum walk to a metro station in minutes (default 10)",
        },
        "guests": {"type": "integer", "description": "Number of guests (default 2)"},
        "rooms": {"type": "integer", "description": "Number of rooms (default 1)"},
        "sort_by": {"type": "string", "enum": list(SORT_KEYS), "description": "Sort order"},
        "max_results": {"type": "integer", "description": "Maximum results (default 10)"},
    }
    required = ("city", "checkin_date", "checkout_date")

    def __init__(self, provider: HotelProvider | None = None) -> None:
        self.provider = provider or AMapHotelProvider()

    @staticmethod
    def _star_rating(args: Arguments) -> Optional[int]:
        if str(args.get("star_rating", "any")).strip().lower() == "any":
            return None
        stars = args.get_int("star_rating")
        if stars is not None and not 1 <= stars <= 5:
            raise ToolArgumentError("star_rating", "must be between 1 and 5 or 'any'")
        return stars

    @staticmethod
    def _hotel_type(args: Arguments) -> Optional[str]:
        hotel_type = (args.get_str("hotel_type") or "any").lower()
        if hotel_type == "any":
            return None
        if hotel_type not in HOTEL_TYPES:
            raise ToolArgumentError("hotel_type", f"must be one of {', '.join(HOTEL_TYPES)}, any")
        return hotel_type

    @staticmethod
    def _positive(args: Arguments, name: str, default: int) -> int:
        value = args.get_int(name, default)
        if value is None or value < 1:
            raise ToolArgumentError(name, "must be at least 1")
        return value

    def _near_metro(self, hotels: List[HotelInfo], max_walk_minutes: int) -> List[HotelInfo]:
        """Keep hotels with a reachable station; a failed lookup keeps the hotel."""
        kept = []
        for hotel in hotels:
            try:
                station = self.provider.nearest_metro(hotel, max_walk_minutes)
            except (httpx.HTTPError, RuntimeError) as exc:
                logger.warning("Metro lookup for '%s' failed: %s", hotel.name, exc)
                kept.append(hotel)
                continue
            if station is not None:
                name, minutes = station
                metro = f"{name}, {minutes} min walk"
                kept.append(hotel.model_copy(update={"nearest_metro": metro}))
        return kept

    def execute(self, args: Arguments) -> ToolResult:
        city = args.require_str("city")
        checkin = parse_date("checkin_date", args.require_str("checkin_date"))
        checkout = parse_date("checkout_date", args.require_str("checkout_date"))
        if checkout <= checkin:
            raise ToolArgumentError("checkout_date", "must be after checkin_date")
        sort_by = args.get_str("sort_by", "rating") or "rating"
        if sort_by not in SORT_KEYS:
            raise ToolArgumentError("sort_by", f"must be one of {', '.join(SORT_KEYS)}")
        star_rating = self._star_rating(args)
        hotel_type = self._hotel_type(args)
        guests = self._positive(args, "guests", 2)
        rooms = self._positive(args, "rooms", 1)
        max_walk_minutes = self._positive(args, "max_walk_minutes", 10)
        max_results = self._positive(args, "max_results", 10)
        amenities = (args.get_str("amenities") or "").split(",")

        try:
            hotels = self.provider.search(city, args.get_str("location"))
        except (httpx.HTTPError, RuntimeError) as exc:
            logger.error("Hotel search failed: %s", exc)
            return ToolResult.fail(f"Hotel search failed: {exc}", search_params=args.to_dict())

        selected = filter_hotels(
            hotels,
            min_price=args.get_number("min_price"),
            max_price=args.get_number("max_price"),
            star_rating=star_rating,
            amenities=amenities,
            hotel_type=hotel_type,
        )
        if args.get_bool("near_metro", False):
            selected = self._near_metro(selected, max_walk_minutes)
        returned = sort_hotels(selected, sort_by)[:max_results]
        nights = (checkout - checkin).days
        return ToolResult.ok(
            format_hotels(returned, city, nights, guests, rooms),
            search_params=args.to_dict(),
            total_found=len(hotels),
            after_filtering=len(selected),
            results_count=len(returned),
        )
