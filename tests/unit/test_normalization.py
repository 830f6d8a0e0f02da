"""
Unit tests for identifier normalization and the geography registry.
"""

import threading

import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from flow_asymmetry.data.geography import GeographyRegistry
from flow_asymmetry.data.models import AnchorRole, EntityKind
from flow_asymmetry.data.normalization import (
    IdentifierNormalizer,
    QueryContext,
    clean_display_name,
)


class TestClassification:
    """Identifiers are classified by shape alone."""

    def setup_method(self):
        self.normalizer = IdentifierNormalizer()

    def test_county(self):
        entity = self.normalizer.normalize("48453", name="Travis County, Texas")
        assert entity.kind is EntityKind.COUNTY
        assert entity.entity_id == "48453"
        assert entity.name == "Travis"
        assert entity.parent_region == "48"
        assert entity.is_primary

    def test_two_digit_state(self):
        entity = self.normalizer.normalize("06")
        assert entity.kind is EntityKind.STATE
        assert entity.entity_id == "06"
        assert entity.name == "California"
        assert entity.parent_region == "West"

    def test_three_digit_state_from_state_query(self):
        """State counterparts come back zero-padded to three digits."""
        context = QueryContext("48", AnchorRole.DESTINATION)
        entity = self.normalizer.normalize("006", context)
        assert entity.kind is EntityKind.STATE
        assert entity.entity_id == "06"

    def test_padded_and_unpadded_state_are_the_same_entity(self):
        assert self.normalizer.normalize("006") is self.normalizer.normalize("06")

    def test_integer_county_keeps_leading_zero(self):
        entity = self.normalizer.normalize(6037)
        assert entity.kind is EntityKind.COUNTY
        assert entity.entity_id == "06037"
        assert entity is self.normalizer.normalize("06037")

    def test_integer_state_keeps_leading_zero(self):
        entity = self.normalizer.normalize(6)
        assert entity.kind is EntityKind.STATE
        assert entity.entity_id == "06"

    def test_integer_without_leading_zero(self):
        assert self.normalizer.normalize(48453).entity_id == "48453"
        assert self.normalizer.normalize(48).kind is EntityKind.STATE

    def test_international_region(self):
        entity = self.normalizer.normalize("ASI")
        assert entity.kind is EntityKind.COUNTRY
        assert entity.name == "Asia"
        assert not entity.is_primary

    def test_lowercase_international_region(self):
        assert self.normalizer.normalize("eur").entity_id == "EUR"

    @pytest.mark.parametrize("raw", ["999", "4845", "123456", "XYZ", "", None, "00"])
    def test_unrecognized_shapes_never_raise(self, raw):
        entity = self.normalizer.normalize(raw)
        assert entity.kind is EntityKind.UNCLASSIFIED
        assert not entity.is_primary

    def test_blank_identifier_name(self):
        assert self.normalizer.normalize("  ").name == "<blank>"


class TestIdempotence:
    """Normalizing a canonical id returns an equivalent entity."""

    def setup_method(self):
        self.normalizer = IdentifierNormalizer()

    @pytest.mark.parametrize("raw", ["48453", "006", "ASI", "mystery"])
    def test_renormalize_canonical_id(self, raw):
        first = self.normalizer.normalize(raw)
        second = self.normalizer.normalize(first.entity_id)
        assert second == first

    def test_entities_are_cached(self):
        first = self.normalizer.normalize("48453", name="Travis County, Texas")
        second = self.normalizer.normalize("48453", name="Something Else")
        assert second is first
        assert self.normalizer.get("48453") is first
        assert "48453" in self.normalizer.entities

    def test_concurrent_first_encounter(self):
        """Threads racing on the same id all receive one entity."""
        seen = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            seen.append(self.normalizer.normalize("48029"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len({id(e) for e in seen}) == 1


class TestCleanDisplayName:
    """Tests for county display name cleanup."""

    @pytest.mark.parametrize("raw,expected", [
        ("Travis County, Texas", "Travis"),
        ("Orleans Parish, Louisiana", "Orleans"),
        ("Anchorage Municipality, Alaska", "Anchorage"),
        ("Asia", "Asia"),
        (None, None),
    ])
    def test_cleanup(self, raw, expected):
        assert clean_display_name(raw) == expected


class TestGeographyRegistry:
    """Tests for the shared classification service."""

    def test_census_region_for_county(self):
        registry = GeographyRegistry()
        assert registry.region_for("48453") == "South"
        assert registry.region_for("06037") == "West"

    def test_override_wins(self):
        registry = GeographyRegistry(region_mapping={"48453": "Austin Metro"})
        assert registry.region_for("48453") == "Austin Metro"
        assert registry.region_for("48201") == "South"

    def test_unknown_region(self):
        registry = GeographyRegistry()
        assert registry.region_for("72") is None
        assert registry.region_for("ASI") is None

    def test_from_csv(self, tmp_path):
        path = tmp_path / "regions.csv"
        path.write_text("entity_id,region\n48453,Austin\n48491,Austin\n48201,Houston\n")
        registry = GeographyRegistry.from_csv(path)
        assert registry.region_for("48491") == "Austin"
        assert registry.region_for("48201") == "Houston"

    def test_from_csv_missing_columns(self, tmp_path):
        path = tmp_path / "regions.csv"
        path.write_text("fips,metro\n48453,Austin\n")
        with pytest.raises(ValueError):
            GeographyRegistry.from_csv(path)

    def test_normalizer_uses_registry_names(self):
        registry = GeographyRegistry(county_names={"48453": "Travis"})
        entity = IdentifierNormalizer(registry).normalize("48453")
        assert entity.name == "Travis"
