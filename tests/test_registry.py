"""Unit tests for the rink registry."""
import json

import pytest

from processor.registry import RinkEntry, RinkRegistry, default_registry, load_registry


class TestDefaultRegistry:
    """Test cases for the built-in Denver-area registry."""

    def setup_method(self):
        self.registry = default_registry()

    def test_contains_all_rinks(self):
        """Test that every known rink is registered once."""
        assert len(self.registry) == 9
        assert 'fsc-avalanche' in self.registry
        assert 'sssc-rink3' in self.registry

    def test_facility_resolves_to_member_rinks(self):
        """Test that a facility tab is the union of its rinks."""
        assert self.registry.resolve('ssprd-family-sports') == {'fsc-avalanche', 'fsc-fixit'}
        assert self.registry.resolve('ssprd-sports-complex') == {'sssc-rink1', 'sssc-rink2', 'sssc-rink3'}

    def test_rink_resolves_to_itself(self):
        """Test that a rink id resolves to a singleton set."""
        assert self.registry.resolve('fsc-fixit') == {'fsc-fixit'}
        assert self.registry.resolve('ice-ranch') == {'ice-ranch'}

    def test_unknown_scope_resolves_to_nothing(self):
        """Test that unknown ids never match by prefix."""
        assert self.registry.resolve('ssprd') == frozenset()

    def test_resolve_many(self):
        """Test resolving a mix of rink and facility ids."""
        resolved = self.registry.resolve_many(['ice-ranch', 'ssprd-family-sports'])
        assert resolved == {'ice-ranch', 'fsc-avalanche', 'fsc-fixit'}

    def test_labels_for_multi_rink_facility(self):
        """Test labels for a rink inside a larger facility."""
        display, facility, rink_name, url = self.registry.labels('fsc-avalanche')
        assert display == 'FSC Avalanche Rink'
        assert facility == 'Family Sports Center (Centennial)'
        assert rink_name == 'Avalanche Rink'
        assert url == 'https://ssprd.finnlyconnect.com/schedule/249'

    def test_labels_for_single_rink_facility(self):
        """Test that a facility's only main rink has no separate rink name."""
        display, facility, rink_name, _ = self.registry.labels('ice-ranch')
        assert display == 'The Ice Ranch (Littleton)'
        assert facility == 'The Ice Ranch (Littleton)'
        assert rink_name is None

    def test_labels_for_unknown_rink(self):
        """Test that unknown rinks are labelled by id."""
        assert self.registry.labels('mystery') == ('mystery', None, None, None)

    def test_get_rink_unknown_raises(self):
        """Test that get_rink fails loudly on unknown ids."""
        with pytest.raises(KeyError):
            self.registry.get_rink('mystery')


class TestRegistryConstruction:
    """Test cases for building registries."""

    def test_duplicate_rink_rejected(self):
        """Test that rink ids must be unique."""
        rink = RinkEntry('a', 'fac', 'A', 'https://example.com')
        with pytest.raises(ValueError):
            RinkRegistry([rink, rink])

    def test_load_registry_from_file(self, tmp_path):
        """Test loading a registry override from JSON."""
        path = tmp_path / 'registry.json'
        path.write_text(json.dumps({
            'facilities': {'arena': 'Test Arena'},
            'rinks': [
                {'rinkId': 'arena-east', 'facilityId': 'arena', 'displayName': 'East',
                 'sourceUrl': 'https://example.com/east', 'rinkName': 'East Rink'},
                {'rinkId': 'arena-west', 'facilityId': 'arena', 'displayName': 'West',
                 'sourceUrl': 'https://example.com/west'},
            ]
        }))
        registry = load_registry(str(path))
        assert registry.resolve('arena') == {'arena-east', 'arena-west'}
        assert registry.get_facility('arena').display_name == 'Test Arena'
        assert registry.labels('arena-west')[2] is None

    def test_load_registry_default(self):
        """Test that no path gives the built-in registry."""
        assert len(load_registry()) == len(default_registry())
