from dataclasses import replace
from datetime import date

from travel_allowance.base_country import leg_stay_hours, resolve_base_country
from travel_allowance.models import Leg, TripType
from travel_allowance.settings import DEFAULT_RULES

DAY = date(2026, 5, 12)
NEXT_DAY = date(2026, 5, 13)


def international(departure, arrival, **kwargs):
    return Leg(
        date=DAY,
        trip_type=TripType.INTERNATIONAL,
        departure_country_code=departure,
        arrival_country_code=arrival,
        **kwargs,
    )


def domestic(departure_city="Berlin", arrival_city="München", **kwargs):
    return Leg(
        date=DAY,
        trip_type=TripType.DOMESTIC,
        departure_city=departure_city,
        arrival_city=arrival_city,
        **kwargs,
    )


def test_no_legs_is_unresolved():
    assert resolve_base_country([]) is None


def test_legs_without_trip_type_are_unresolved():
    legs = [Leg(date=DAY, arrival_country_code="FR"), Leg(date=DAY, arrival_country_code="AT")]
    assert resolve_base_country(legs) is None


def test_single_domestic_leg_resolves_to_germany():
    assert resolve_base_country([domestic()]) == "DE"


def test_single_international_leg_uses_arrival_country():
    assert resolve_base_country([international("DE", "fr")], day_stay_hours=16) == "FR"


def test_short_international_day_uses_departure_country():
    assert resolve_base_country([international("AT", "FR")], day_stay_hours=6) == "AT"


def test_second_leg_with_eight_hours_wins():
    legs = [
        international("DE", "AT", start_date=DAY, start_time="06:00", end_date=DAY, end_time="09:00"),
        international("AT", "CH", start_date=DAY, start_time="12:00", end_date=NEXT_DAY, end_time="10:00"),
    ]
    assert leg_stay_hours(legs[1]) == 12.0
    assert resolve_base_country(legs, day_stay_hours=24) == "CH"


def test_short_second_leg_leaves_first_leg_in_charge():
    legs = [
        international("DE", "AT", start_date=DAY, start_time="06:00", end_date=DAY, end_time="09:00"),
        international("AT", "CH", start_date=DAY, start_time="20:00", end_date=NEXT_DAY, end_time="10:00"),
    ]
    assert resolve_base_country(legs, day_stay_hours=24) == "AT"


def test_threshold_follows_the_configured_rules():
    legs = [
        international("DE", "AT", start_date=DAY, start_time="06:00", end_date=DAY, end_time="09:00"),
        international("AT", "CH", start_date=DAY, start_time="20:00", end_date=NEXT_DAY, end_time="10:00"),
    ]
    lenient = replace(DEFAULT_RULES, partial_day_min_hours=4.0)
    assert DEFAULT_RULES.partial_day_min_hours == 8.0
    assert resolve_base_country(legs, day_stay_hours=24, min_hours=lenient.partial_day_min_hours) == "CH"


def test_rest_hours_are_summed_across_legs():
    legs = [
        international("DE", "AT", start_date=DAY, start_time="06:00", end_date=DAY, end_time="08:00"),
        international("AT", "CH", start_date=DAY, start_time="09:00", end_date=DAY, end_time="13:00"),
        international("CH", "IT", start_date=DAY, start_time="14:00", end_date=DAY, end_time="18:00"),
    ]
    assert resolve_base_country(legs) == "IT"


def test_legs_without_span_claim_the_whole_day():
    legs = [international("DE", "FR"), domestic()]
    assert resolve_base_country(legs) == "DE"


def test_international_leg_without_code_is_unresolved():
    assert resolve_base_country([international("DE", None)]) is None
