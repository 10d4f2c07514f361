"""Tests for ZIP fan-out: area text matching, lookups and H3 proximity."""

import pytest

from instarelief.services.zip_lookup import (
    county_for_zip,
    get_zip,
    is_valid_zip,
    load_zip_table,
    map_area_to_zips,
    zips_near,
)


class TestZipTable:
    def test_table_loads(self):
        table = load_zip_table()
        assert "70401" in table
        assert table["70401"].city == "Hammond"

    def test_every_entry_is_a_valid_zip(self):
        assert all(is_valid_zip(z) for z in load_zip_table())

    def test_county_for_zip(self):
        assert county_for_zip("70401") == "Tangipahoa, LA"

    def test_county_for_unknown_zip(self):
        assert county_for_zip("99999") is None
        assert get_zip("99999") is None


class TestIsValidZip:
    @pytest.mark.parametrize("value", ["70401", "00000", "99999"])
    def test_valid(self, value):
        assert is_valid_zip(value)

    @pytest.mark.parametrize("value", ["7040", "704011", "7040a", "", None, " 70401"])
    def test_invalid(self, value):
        assert not is_valid_zip(value)


class TestMapAreaToZips:
    def test_nws_multi_county_area(self):
        zips = map_area_to_zips("Tangipahoa, LA; St. Tammany, LA")
        assert "70401" in zips
        assert "70458" in zips
        assert "70112" not in zips

    def test_result_is_sorted_and_unique(self):
        zips = map_area_to_zips("Tangipahoa, LA; Tangipahoa, LA")
        assert zips == sorted(set(zips))

    def test_case_insensitive(self):
        assert map_area_to_zips("TANGIPAHOA") == map_area_to_zips("tangipahoa")

    def test_whole_word_match_only(self):
        """'Harris' must not match 'Harrison' and vice versa."""
        assert map_area_to_zips("Harris, TX") == ["77002"]
        assert map_area_to_zips("Harrison, MS") == ["39501", "39530"]

    def test_state_must_match(self):
        assert map_area_to_zips("Jefferson, TX") == []
        assert map_area_to_zips("Jefferson, LA") == ["70001", "70072"]

    @pytest.mark.parametrize("area", ["Orleans, VT; Essex, VT", "Lafayette, MS"])
    def test_same_county_name_in_another_state(self, area):
        assert map_area_to_zips(area) == []

    def test_state_is_case_insensitive(self):
        assert map_area_to_zips("Jefferson, la") == ["70001", "70072"]

    def test_segment_without_state_matches_any_state(self):
        assert map_area_to_zips("Jefferson") == ["70001", "70072"]

    def test_no_match(self):
        assert map_area_to_zips("Maricopa, AZ") == []

    @pytest.mark.parametrize("area", ["", None])
    def test_empty_area(self, area):
        assert map_area_to_zips(area) == []


class TestZipsNear:
    def test_point_in_hammond(self):
        zips = zips_near(30.5044, -90.4612)
        assert "70401" in zips
        assert "33101" not in zips

    def test_zero_rings_is_subset_of_default(self):
        assert set(zips_near(30.5044, -90.4612, rings=0)) <= set(zips_near(30.5044, -90.4612))

    def test_open_ocean_has_no_zips(self):
        assert zips_near(25.0, -60.0) == []
