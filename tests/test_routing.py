"""
Unit tests for retail_pulse/routing.py
"""
import pytest

from retail_pulse.routing import (
    calculate_route_carbon,
    efficiency_comparison,
    efficiency_rating,
    generate_route_options,
    haversine_km,
    parse_coordinates,
    transport_modes,
)


class TestHaversine:

    def test_one_degree_of_longitude_at_equator(self):
        assert haversine_km(0, 0, 0, 1) == pytest.approx(111.19, rel=1e-3)

    def test_same_point(self):
        assert haversine_km(51.5, -0.1, 51.5, -0.1) == 0


class TestParseCoordinates:

    def test_valid(self):
        assert parse_coordinates("40.7, -74.0") == (40.7, -74.0)

    @pytest.mark.parametrize("raw", ["", "abc", "1,2,3", "a,b", "nan,1"])
    def test_invalid(self, raw):
        with pytest.raises(ValueError, match="lat,lng"):
            parse_coordinates(raw)


class TestGenerateRouteOptions:

    def test_long_diesel_trip_offers_three_routes_lowest_carbon_first(self):
        routes = generate_route_options((0, 0), (0, 1), 1000, "diesel", "truck")
        assert [r["id"] for r in routes] == [3, 2, 1]
        carbons = [r["carbon_footprint"] for r in routes]
        assert carbons == sorted(carbons)
        direct = routes[-1]
        assert direct["carbon_footprint"] == pytest.approx(16.68, abs=0.01)
        assert direct["savings"] == 0

    def test_green_alternative_savings(self):
        routes = {r["id"]: r for r in generate_route_options((0, 0), (0, 1), 1000, "diesel", "truck")}
        green = routes[2]
        assert green["transport_mode"] == "electric"
        assert green["savings"] == pytest.approx(routes[1]["carbon_footprint"] - green["carbon_footprint"], abs=0.01)

    def test_multimodal_has_rail_transfer_waypoint(self):
        routes = {r["id"]: r for r in generate_route_options((0, 0), (0, 2))}
        assert [w["name"] for w in routes[3]["waypoints"]] == ["Origin (Road)", "Rail Transfer", "Destination (Road)"]
        assert routes[3]["waypoints"][1] == {"lat": 0, "lng": 1, "name": "Rail Transfer"}

    def test_short_trip_has_no_multimodal(self):
        routes = generate_route_options((0, 0), (0, 0.5))
        assert sorted(r["id"] for r in routes) == [1, 2]

    @pytest.mark.parametrize("mode", ["electric", "rail"])
    def test_no_green_alternative_for_green_modes(self, mode):
        routes = generate_route_options((0, 0), (0, 0.5), transport_mode=mode)
        assert [r["id"] for r in routes] == [1]


class TestCalculateRouteCarbon:

    def test_diesel_truck(self):
        result = calculate_route_carbon(100, "diesel", "truck", 1000)
        assert result["carbon_footprint"] == {"total_kg": 15.0, "per_km": 0.15, "per_ton_km": 0.15}
        assert result["efficiency"]["rating"] == "fair"
        assert result["efficiency"]["comparison"] == "100% of typical diesel emissions"

    def test_air_is_poor(self):
        result = calculate_route_carbon(100, "air", None, 2000)
        assert result["carbon_footprint"]["total_kg"] == 100.0
        assert result["efficiency"]["rating"] == "poor"

    def test_zero_distance_yields_zeros(self):
        result = calculate_route_carbon(0, "diesel")
        assert result["carbon_footprint"] == {"total_kg": 0, "per_km": 0, "per_ton_km": 0}
        assert result["efficiency"]["rating"] == "excellent"

    def test_above_average_comparison(self):
        assert efficiency_comparison("diesel", 0.3) == "200% of typical diesel emissions (above average)"

    @pytest.mark.parametrize("value,expected", [(0.049, "excellent"), (0.05, "good"), (0.1, "fair"), (0.2, "poor")])
    def test_rating_bands(self, value, expected):
        assert efficiency_rating(value) == expected


class TestTransportModes:

    def test_catalogue_is_copied(self):
        modes = transport_modes()
        assert [m["mode"] for m in modes] == ["electric", "hybrid", "rail", "ship", "diesel", "air"]
        modes[0]["avg_efficiency"] = 99
        assert transport_modes()[0]["avg_efficiency"] == 0.04
