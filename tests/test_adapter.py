import pytest

from meetpoint.adapter import build_tags, place_to_venue
from meetpoint.models import Coordinates, VenueFilters, Weather, parse_raw_place

USER = Coordinates(23.3441, 85.3096)


def _raw(**overrides):
    record = {
        "placeId": "ChIJ-blue",
        "name": "Blue Tokai",
        "geometry": {"location": {"lat": USER.latitude, "lng": USER.longitude}},
        "types": ["cafe", "food"],
        "rating": 4.5,
        "userRatingsTotal": 250,
        "formattedAddress": "Lalpur, Ranchi",
        "openingHours": {"openNow": True},
    }
    record.update(overrides)
    return parse_raw_place(record, category="cafe")


def test_place_to_venue_scores_and_tags():
    venue = place_to_venue(_raw(), USER, VenueFilters())

    assert venue.id == "google-ChIJ-blue"
    assert venue.name == "Blue Tokai"
    assert venue.ai_recommended is False
    assert venue.tags["amenity"] == "cafe"
    assert venue.tags["addr:full"] == "Lalpur, Ranchi"
    assert venue.tags["distance"] == "0 m"
    assert venue.tags["rating"] == "4.5"
    assert venue.tags["user_ratings_total"] == "250"
    assert venue.tags["open_now"] == "yes"
    assert venue.tags["place_types"] == "cafe;food"
    # 15 distance + 3 unknown hours + 1 address + 10 neutral vibe, then 7.5 + 2.5 boosts
    assert venue.score == pytest.approx(39.0)


def test_missing_geometry_is_flagged_not_dropped():
    raw = parse_raw_place({"placeId": "nogeo", "name": "Mystery Bar", "types": ["bar"]}, category="bar")
    venue = place_to_venue(raw, USER)

    assert (venue.latitude, venue.longitude) == (0.0, 0.0)
    assert venue.tags["geometry_missing"] == "yes"
    assert "distance" not in venue.tags
    # (0, 0) is thousands of km away: no distance points; "bar" has no purpose keywords
    assert venue.score == pytest.approx(3 + 10)


def test_missing_geometry_ranks_below_located_venue():
    nearby = place_to_venue(
        parse_raw_place(
            {
                "placeId": "near",
                "name": "Cafe Nearby",
                "geometry": {"location": {"lat": USER.latitude + 0.02, "lng": USER.longitude}},
                "types": ["cafe"],
            },
            category="cafe",
        ),
        USER,
    )
    nogeo = place_to_venue(
        parse_raw_place({"placeId": "nogeo", "name": "Cafe Nowhere", "types": ["cafe"]}, category="cafe"),
        USER,
    )
    assert nogeo.score < nearby.score


def test_amenity_falls_back_to_category_then_venue():
    assert build_tags(_raw(types=[]), None)["amenity"] == "cafe"
    no_category = parse_raw_place({"placeId": "z", "name": "Z"})
    assert build_tags(no_category, None)["amenity"] == "venue"


def test_vibe_and_weather_forwarded_to_scoring():
    raw = _raw(name="Skyline Rooftop")
    neutral = place_to_venue(raw, USER)
    rooftop = place_to_venue(raw, USER, VenueFilters.build(vibe=["rooftop"]))
    assert rooftop.score == pytest.approx(neutral.score + 5)

    dry = place_to_venue(raw, USER, weather=Weather(temperature=40, is_raining=False))
    assert dry.score == pytest.approx(neutral.score)


def test_low_rating_gets_no_negative_boost():
    venue = place_to_venue(_raw(rating=2.1, userRatingsTotal=None), USER)
    assert venue.score == pytest.approx(29.0)
    assert "user_ratings_total" not in venue.tags
