"""Tests for hotel filtering, sorting and the hotel search tool (no network)."""

from typing import (
    Dict,
    List,
    Optional,
    Tuple,
)

import httpx

from tripflow.tools.hotel_search import (
    AMapHotelProvider,
    HotelInfo,
    HotelSearchTool,
    filter_hotels,
    has_amenity,
    sort_hotels,
)

HOTELS = [
    HotelInfo(
        name="Lakeside Inn",
        price=450,
        rating=4.6,
        review_count=820,
        star_rating=4,
        distance_m=300,
        amenities=["wifi", "breakfast"],
    ),
    HotelInfo(
        name="Budget Stay",
        price=180,
        rating=3.9,
        review_count=2300,
        star_rating=3,
        distance_m=1200,
        amenities=["wifi"],
    ),
    HotelInfo(
        name="Grand Palace",
        hotel_type="resort",
        price=1200,
        rating=4.8,
        review_count=560,
        star_rating=5,
        distance_m=2500,
        amenities=["wifi", "pool", "gym"],
    ),
    HotelInfo(name="Mystery Hostel", hotel_type="hostel"),
]

SEARCH = {"city": "Hangzhou", "checkin_date": "2025-10-01", "checkout_date": "2025-10-03"}


class FakeHotelProvider:
    def __init__(
        self,
        hotels: List[HotelInfo],
        error: Optional[Exception] = None,
        metro: Optional[Dict[str, object]] = None,
    ) -> None:
        self.hotels = hotels
        self.error = error
        self.metro = metro or {}
        self.queries: list = []
        self.walk_limits: list = []

    def search(self, city: str, location: Optional[str] = None) -> List[HotelInfo]:
        self.queries.append((city, location))
        if self.error is not None:
            raise self.error
        return list(self.hotels)

    def nearest_metro(self, hotel: HotelInfo, max_walk_minutes: int) -> Optional[Tuple[str, int]]:
        self.walk_limits.append(max_walk_minutes)
        answer = self.metro.get(hotel.name)
        if isinstance(answer, Exception):
            raise answer
        return answer


def names(hotels: List[HotelInfo]) -> List[str]:
    return [h.name for h in hotels]


def test_price_filter_drops_unknown_prices() -> None:
    """A hotel without a price never satisfies a price constraint."""

    kept = filter_hotels(HOTELS, max_price=500)
    assert names(kept) == ["Lakeside Inn", "Budget Stay"]

    assert len(filter_hotels(HOTELS)) == 4


def test_star_rating_is_a_minimum() -> None:
    """Four stars keeps four and five star hotels; unknown stars never qualify."""

    assert names(filter_hotels(HOTELS, star_rating=4)) == ["Lakeside Inn", "Grand Palace"]
    assert names(filter_hotels(HOTELS, star_rating=5)) == ["Grand Palace"]


def test_hotel_type_filter() -> None:
    """Hotel type matches case-insensitively."""

    assert names(filter_hotels(HOTELS, hotel_type="Resort")) == ["Grand Palace"]
    assert names(filter_hotels(HOTELS, hotel_type="hotel")) == ["Lakeside Inn", "Budget Stay"]


def test_amenity_filter() -> None:
    """Every requested amenity must match; hotels without amenity data are kept."""

    assert names(filter_hotels(HOTELS, amenities=["WiFi", " breakfast "])) == [
        "Lakeside Inn",
        "Mystery Hostel",
    ]
    assert names(filter_hotels(HOTELS, amenities=["Pool", ""])) == [
        "Grand Palace",
        "Mystery Hostel",
    ]


def test_amenity_matching_is_substring_and_alias_aware() -> None:
    """Provider tags such as 免费WiFi or 室内游泳池 satisfy wifi and pool."""

    hotel = HotelInfo(name="West Lake Hotel", amenities=["免费WiFi", "室内游泳池", "停车场"])

    assert has_amenity(hotel, "wifi")
    assert has_amenity(hotel, "POOL")
    assert has_amenity(hotel, "parking")
    assert not has_amenity(hotel, "gym")


def test_sort_orders_put_missing_values_last() -> None:
    """Sorting is cheapest, best rated, nearest or most reviewed first; unknowns go last."""

    assert names(sort_hotels(HOTELS, "price")) == [
        "Budget Stay",
        "Lakeside Inn",
        "Grand Palace",
        "Mystery Hostel",
    ]
    assert sort_hotels(HOTELS, "rating")[0].name == "Grand Palace"
    assert sort_hotels(HOTELS, "distance")[0].name == "Lakeside Inn"
    assert sort_hotels(HOTELS, "rating")[-1].name == "Mystery Hostel"
    assert names(sort_hotels(HOTELS, "popularity")) == [
        "Budget Stay",
        "Lakeside Inn",
        "Grand Palace",
        "Mystery Hostel",
    ]


def test_tool_output() -> None:
    """The tool filters, sorts and reports per-night and total prices."""

    provider = FakeHotelProvider(HOTELS)
    result = HotelSearchTool(provider=provider).run(
        {**SEARCH, "location": "West Lake", "max_price": 500, "sort_by": "price"}
    )

    assert result.error is None
    lines = result.output.splitlines()
    assert lines[0] == "Found 2 hotels in Hangzhou for 2 night(s), 2 guest(s) in 1 room(s):"
    assert lines[2] == "[1] Budget Stay"
    assert "~180/night, ~360 total" in result.output
    assert provider.queries == [("Hangzhou", "West Lake")]
    assert result.metadata["total_found"] == 4
    assert result.metadata["results_count"] == 2


def test_tool_prices_every_room() -> None:
    """The total covers every night of every room."""

    result = HotelSearchTool(provider=FakeHotelProvider(HOTELS)).run(
        {**SEARCH, "max_price": 200, "guests": 4, "rooms": 2}
    )

    assert result.output.splitlines()[0].endswith("4 guest(s) in 2 room(s):")
    assert "~180/night, ~720 total" in result.output


def test_tool_rejects_bad_guest_and_room_counts() -> None:
    """Guests and rooms must be positive."""

    tool = HotelSearchTool(provider=FakeHotelProvider(HOTELS))

    assert "guests" in tool.run({**SEARCH, "guests": 0}).error
    assert "rooms" in tool.run({**SEARCH, "rooms": -1}).error


def test_tool_star_rating_choices() -> None:
    """Star rating accepts 1-5 as a minimum or 'any'."""

    tool = HotelSearchTool(provider=FakeHotelProvider(HOTELS))

    assert tool.run({**SEARCH, "star_rating": "any"}).metadata["results_count"] == 4
    assert tool.run({**SEARCH, "star_rating": "4"}).metadata["results_count"] == 2
    assert tool.run({**SEARCH, "star_rating": 3}).metadata["results_count"] == 3
    assert "star_rating" in tool.run({**SEARCH, "star_rating": "6"}).error


def test_tool_hotel_type_choices() -> None:
    """Unknown hotel types are rejected."""

    tool = HotelSearchTool(provider=FakeHotelProvider(HOTELS))

    assert tool.run({**SEARCH, "hotel_type": "hostel"}).metadata["results_count"] == 1
    assert "hotel_type" in tool.run({**SEARCH, "hotel_type": "castle"}).error


def test_tool_amenities_without_provider_data() -> None:
    """A provider that reports no amenities still yields hotels for an amenity query."""

    bare = [
        HotelInfo(name="Four Seasons", price=1800, star_rating=5),
        HotelInfo(name="Riverside", price=600, star_rating=4),
    ]
    result = HotelSearchTool(provider=FakeHotelProvider(bare)).run(
        {**SEARCH, "amenities": "wifi", "star_rating": "4"}
    )

    assert result.error is None
    assert result.metadata["results_count"] == 2
    assert "[1] Four Seasons" in result.output


def test_tool_near_metro() -> None:
    """Hotels without a reachable station are dropped; failed lookups keep the hotel."""

    provider = FakeHotelProvider(
        HOTELS,
        metro={
            "Lakeside Inn": ("Longxiangqiao", 5),
            "Grand Palace": RuntimeError("AMap error: busy"),
        },
    )
    result = HotelSearchTool(provider=provider).run(
        {**SEARCH, "near_metro": True, "max_walk_minutes": 8}
    )

    assert result.error is None
    assert result.metadata["after_filtering"] == 2
    assert "[1] Grand Palace" in result.output
    assert "Metro: Longxiangqiao, 5 min walk" in result.output
    assert provider.walk_limits == [8, 8, 8, 8]


def test_tool_skips_metro_lookup_by_default() -> None:
    """No metro lookups happen unless asked for."""

    provider = FakeHotelProvider(HOTELS)
    HotelSearchTool(provider=provider).run(SEARCH)

    assert provider.walk_limits == []


def test_tool_validates_dates() -> None:
    """Checkout must be a valid date after checkin."""

    tool = HotelSearchTool(provider=FakeHotelProvider(HOTELS))
    base = {"city": "Hangzhou", "checkin_date": "2025-10-03"}

    same_day = tool.run({**base, "checkout_date": "2025-10-03"})
    bad_format = tool.run({**base, "checkout_date": "03/10/2025"})

    assert "checkout_date" in same_day.error
    assert "YYYY-MM-DD" in bad_format.error


def test_tool_validates_sort_key() -> None:
    """Only price, rating, distance and popularity are valid sort keys."""

    result = HotelSearchTool(provider=FakeHotelProvider(HOTELS)).run(
        {**SEARCH, "sort_by": "vibes"}
    )
    assert "sort_by" in result.error


def test_tool_reports_provider_failure() -> None:
    """Provider errors become error results."""

    result = HotelSearchTool(provider=FakeHotelProvider([], RuntimeError("AMap error: key"))).run(
        SEARCH
    )
    assert result.error == "Hotel search failed: AMap error: key"


def test_amap_requires_key() -> None:
    """Searching without an AMap key fails before any request is made."""

    provider = AMapHotelProvider(api_key="")
    provider.api_key = None
    try:
        provider.search("Hangzhou")
    except RuntimeError as exc:
        assert "AMAP_API_KEY" in str(exc)
    else:  # pragma: no cover
        raise AssertionError("RuntimeError was not raised")


def mock_amap(monkeypatch, handler) -> None:
    real_client = httpx.Client
    monkeypatch.setattr(
        httpx,
        "Client",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )


def test_amap_search_reads_tags_and_category(monkeypatch) -> None:
    """Amenities come from the POI tag; stars and type from the name and category."""

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v3/place/text"
        assert request.url.params["extensions"] == "all"
        return httpx.Response(
            200,
            json={
                "status": "1",
                "pois": [
                    {
                        "name": "西湖国宾馆",
                        "type": "住宿服务;宾馆酒店;五星级宾馆",
                        "tag": "免费WiFi;室外游泳池,停车场",
                        "address": "杨公堤18号",
                        "location": "120.14,30.24",
                        "distance": [],
                        "biz_ext": {"cost": "1500.00", "rating": "4.8"},
                    },
                    {
                        "name": "西湖青年旅舍",
                        "type": "住宿服务;旅馆招待所",
                        "tag": [],
                        "location": "120.16,30.25",
                        "biz_ext": {"cost": [], "rating": []},
                    },
                ],
            },
        )

    mock_amap(monkeypatch, handler)
    palace, hostel = AMapHotelProvider(api_key="key").search("杭州")

    assert palace.star_rating == 5
    assert palace.hotel_type == "hotel"
    assert palace.amenities == ["免费WiFi", "室外游泳池", "停车场"]
    assert palace.location == "120.14,30.24"
    assert palace.price == 1500.0
    assert hostel.hotel_type == "hostel"
    assert hostel.amenities == []
    assert hostel.price is None
    assert names(filter_hotels([palace, hostel], amenities=["wifi", "pool"])) == [
        "西湖国宾馆",
        "西湖青年旅舍",
    ]


def test_amap_nearest_metro_checks_walking_time(monkeypatch) -> None:
    """Stations are searched within walking radius and the first one reachable in time wins."""

    walks = {"120.10,30.20": "420", "120.11,30.21": "230"}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v3/place/around":
            assert request.url.params["types"] == "150500"
            assert request.url.params["radius"] == "500"
            return httpx.Response(
                200,
                json={
                    "status": "1",
                    "pois": [
                        {"name": "Far Station", "location": "120.10,30.20"},
                        {"name": "Fengqi Road", "location": "120.11,30.21"},
                    ],
                },
            )
        duration = walks[request.url.params["destination"]]
        return httpx.Response(
            200, json={"status": "1", "route": {"paths": [{"duration": duration}]}}
        )

    mock_amap(monkeypatch, handler)
    provider = AMapHotelProvider(api_key="key")

    hotel = HotelInfo(name="Lakeside Inn", location="120.12,30.22")
    assert provider.nearest_metro(hotel, 5) == ("Fengqi Road", 4)
    assert provider.nearest_metro(HotelInfo(name="Nowhere"), 5) is None
