import unittest

from geo_models import Coordinates, VenueType
from overpass_parser import (
    build_address,
    parse_buildings,
    parse_elements,
    parse_height,
    parse_levels,
    parse_venues,
)


def _node(node_id, lat=40.4168, lon=-3.7038, **tags):
    return {"type": "node", "id": node_id, "lat": lat, "lon": lon, "tags": tags}


def _way(way_id, lat=40.4169, lon=-3.7039, **tags):
    return {"type": "way", "id": way_id, "center": {"lat": lat, "lon": lon}, "tags": tags}


class TagHelperTests(unittest.TestCase):
    def test_parse_height(self):
        self.assertEqual(parse_height({"height": "12"}), 12.0)
        self.assertEqual(parse_height({"height": "12.5 m"}), 12.5)
        self.assertEqual(parse_height({"height": "7,5"}), 7.5)
        self.assertEqual(parse_height({"building:height": 18}), 18.0)
        self.assertIsNone(parse_height({"height": "tall"}))
        self.assertIsNone(parse_height({"height": "0"}))
        self.assertIsNone(parse_height({}))

    def test_parse_levels(self):
        self.assertEqual(parse_levels({"building:levels": "5"}), 5)
        self.assertEqual(parse_levels({"levels": "3"}), 3)
        self.assertIsNone(parse_levels({"building:levels": "-1"}))
        self.assertIsNone(parse_levels({}))

    def test_build_address(self):
        self.assertEqual(
            build_address({"addr:street": "Calle Mayor", "addr:housenumber": "4"}),
            "Calle Mayor 4",
        )
        self.assertEqual(build_address({"addr:street": "Calle Mayor"}), "Calle Mayor")
        self.assertIsNone(build_address({"addr:housenumber": "4"}))


class ParseVenuesTests(unittest.TestCase):
    def test_full_venue(self):
        venues = parse_venues([
            _node(
                101,
                name="Bar El Sol",
                amenity="bar",
                outdoor_seating="yes",
                opening_hours="Mo-Su 12:00-02:00",
                **{
                    "addr:street": "Calle de la Montera",
                    "addr:housenumber": "12",
                    "contact:website": "https://elsol.example",
                    "phone": "+34 600 000 000",
                },
            )
        ])

        self.assertEqual(len(venues), 1)
        venue = venues[0]
        self.assertEqual(venue.id, "node/101")
        self.assertEqual(venue.type, VenueType.BAR)
        self.assertEqual(venue.coordinates, Coordinates(40.4168, -3.7038))
        self.assertEqual(venue.address, "Calle de la Montera 12")
        self.assertTrue(venue.outdoor_seating)
        self.assertEqual(venue.website, "https://elsol.example")
        self.assertEqual(venue.phone, "+34 600 000 000")
        self.assertIsNone(venue.sunlight_status)

    def test_outdoor_seating_tristate(self):
        venues = parse_venues([
            _node(1, name="A", amenity="cafe", outdoor_seating="yes"),
            _node(2, name="B", amenity="cafe", outdoor_seating="no"),
            _node(3, name="C", amenity="cafe"),
        ])
        self.assertEqual([v.outdoor_seating for v in venues], [True, False, None])

    def test_drops_unusable_elements(self):
        venues = parse_venues([
            _node(1, amenity="bar"),  # no name
            _node(2, name="Mercadona", amenity="supermarket"),
            _node(3, lat=None, lon=None, name="Ghost", amenity="pub"),
            _node(4, lat=95.0, name="Off the map", amenity="pub"),
            {"type": "node", "lat": 40.0, "lon": -3.0, "tags": {"name": "No id", "amenity": "bar"}},
            _node(5, name="Keeper", amenity="biergarten"),
        ])
        self.assertEqual([v.id for v in venues], ["node/5"])

    def test_venue_from_way_center(self):
        venues = parse_venues([_way(9, name="Terraza", amenity="restaurant")])
        self.assertEqual(venues[0].id, "way/9")
        self.assertEqual(venues[0].coordinates, Coordinates(40.4169, -3.7039))


class ParseBuildingsTests(unittest.TestCase):
    def test_non_dict_elements_are_skipped(self):
        self.assertEqual(parse_buildings([None, "way", 3, _way(1, building="yes")])[0].id, "way/1")
        self.assertEqual(parse_venues([["node"], _node(2, name="Bar", amenity="bar")])[0].id, "node/2")

    def test_height_resolution(self):
        buildings = parse_buildings([
            _way(1, building="yes", height="21 m"),
            _way(2, building="yes", **{"building:levels": "4"}),
            _way(3, building="yes"),
            {"type": "way", "id": 4, "tags": {"building": "yes", "height": "30"}},
        ])
        self.assertEqual([b.id for b in buildings], ["way/1", "way/2", "way/3"])
        self.assertEqual([b.height for b in buildings], [21.0, 12.0, 10.0])


class ParseElementsTests(unittest.TestCase):
    def test_splits_and_counts_dropped(self):
        report = parse_elements([
            _node(1, name="Bar Uno", amenity="bar"),
            _node(2, amenity="cafe"),  # no name
            _node(3, highway="bus_stop"),
            _way(10, building="apartments", height="15"),
            _way(11, building="yes", lat=None, lon=None),
            _way(12, highway="residential"),
            {"type": "relation", "id": 5, "tags": {"building": "yes"}},
            "garbage",
        ])

        self.assertEqual([v.id for v in report.venues], ["node/1"])
        self.assertEqual([b.id for b in report.buildings], ["way/10"])
        self.assertEqual(report.buildings[0].height, 15.0)
        self.assertEqual(report.dropped, 6)

    def test_round_trip_through_dict(self):
        report = parse_elements([_node(7, name="Café Comercial", amenity="cafe")])
        payload = report.venues[0].to_dict()
        self.assertEqual(payload["id"], "node/7")
        self.assertEqual(payload["name"], "Café Comercial")
        self.assertEqual(payload["type"], "cafe")
        self.assertEqual(payload["coordinates"], {"lat": 40.4168, "lng": -3.7038})
        self.assertIsNone(payload["sunlightStatus"])

    def test_empty(self):
        report = parse_elements([])
        self.assertEqual((report.venues, report.buildings, report.dropped), ([], [], 0))


if __name__ == "__main__":
    unittest.main()
