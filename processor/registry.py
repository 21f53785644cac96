"""Immutable registry of rinks and the facilities that group them."""
import json
import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

MAIN_RINK = 'Main Rink'


@dataclass(frozen=True)
class RinkEntry:
    """One sheet of ice."""
    rink_id: str
    facility_id: str
    display_name: str
    source_url: str
    rink_name: str = MAIN_RINK


@dataclass(frozen=True)
class Facility:
    """A venue owning one or more rinks; also a scope tab."""
    facility_id: str
    display_name: str
    source_url: str
    member_rink_ids: Tuple[str, ...]


class RinkRegistry:
    """
    Lookup of rinks and facilities, built once and passed to components.

    Every rink belongs to exactly one facility. Single-rink facilities may
    share the rink's id.
    """

    def __init__(self, rinks: Iterable[RinkEntry], facility_names: Optional[Dict[str, str]] = None):
        self._rinks: Dict[str, RinkEntry] = {}
        members: Dict[str, List[str]] = {}

        for rink in rinks:
            if rink.rink_id in self._rinks:
                raise ValueError(f"Duplicate rink ID: {rink.rink_id}")
            self._rinks[rink.rink_id] = rink
            members.setdefault(rink.facility_id, []).append(rink.rink_id)

        facility_names = facility_names or {}
        self._facilities: Dict[str, Facility] = {}
        for facility_id, rink_ids in members.items():
            first = self._rinks[rink_ids[0]]
            self._facilities[facility_id] = Facility(
                facility_id=facility_id,
                display_name=facility_names.get(facility_id, first.display_name),
                source_url=first.source_url,
                member_rink_ids=tuple(rink_ids),
            )

    def __contains__(self, rink_id: str) -> bool:
        return rink_id in self._rinks

    def __len__(self) -> int:
        return len(self._rinks)

    @property
    def rinks(self) -> List[RinkEntry]:
        return list(self._rinks.values())

    @property
    def facilities(self) -> List[Facility]:
        return list(self._facilities.values())

    def get_rink(self, rink_id: str) -> RinkEntry:
        """
        Get the registry entry for a rink.

        Raises:
            KeyError: If the rink is unknown
        """
        try:
            return self._rinks[rink_id]
        except KeyError:
            raise KeyError(f"Unknown rink ID: {rink_id}") from None

    def get_facility(self, facility_id: str) -> Optional[Facility]:
        return self._facilities.get(facility_id)

    def resolve(self, scope_id: str) -> FrozenSet[str]:
        """
        Resolve a rink or facility id to the set of rink ids it covers.

        Facility ids take precedence; an unknown id resolves to the empty set.
        """
        facility = self._facilities.get(scope_id)
        if facility is not None:
            return frozenset(facility.member_rink_ids)
        if scope_id in self._rinks:
            return frozenset([scope_id])
        return frozenset()

    def resolve_many(self, ids: Iterable[str]) -> FrozenSet[str]:
        resolved: FrozenSet[str] = frozenset()
        for scope_id in ids:
            resolved |= self.resolve(scope_id)
        return resolved

    def labels(self, rink_id: str) -> Tuple[str, Optional[str], Optional[str], Optional[str]]:
        """
        Display labels for a rink.

        Returns:
            Tuple of (display name, facility name, rink name, source URL);
            the rink name is None for a facility's only "Main Rink"
        """
        rink = self._rinks.get(rink_id)
        if rink is None:
            return rink_id, None, None, None
        facility = self._facilities[rink.facility_id]
        rink_name = None if rink.rink_name == MAIN_RINK else rink.rink_name
        return rink.display_name, facility.display_name, rink_name, rink.source_url

    @classmethod
    def from_dict(cls, data: Dict) -> 'RinkRegistry':
        """
        Build a registry from {"facilities": {...}, "rinks": [...]} data.

        Raises:
            KeyError: If a rink entry lacks a required field
        """
        rinks = [
            RinkEntry(
                rink_id=item['rinkId'],
                facility_id=item['facilityId'],
                display_name=item['displayName'],
                source_url=item['sourceUrl'],
                rink_name=item.get('rinkName', MAIN_RINK),
            )
            for item in data.get('rinks', [])
        ]
        return cls(rinks, facility_names=data.get('facilities', {}))


def _denver_rinks() -> List[RinkEntry]:
    fsc_url = 'https://ssprd.finnlyconnect.com/schedule/249'
    sssc_url = 'https://ssprd.finnlyconnect.com/schedule/250'
    return [
        RinkEntry('ice-ranch', 'ice-ranch', 'The Ice Ranch (Littleton)',
                  'https://www.theiceranch.com/page/show/1652320-calendar'),
        RinkEntry('big-bear', 'big-bear', 'Big Bear Ice Arena (Denver)',
                  'https://bigbearicearena.ezfacility.com/Sessions'),
        RinkEntry('du-ritchie', 'du-ritchie', 'DU Ritchie Center (Denver)',
                  'https://ritchiecenter.du.edu/sports/ice-programs'),
        RinkEntry('foothills-edge', 'foothills-edge', 'Foothills Edge Ice Arena (Littleton)',
                  'https://www.ifoothills.org/cal-edge/'),
        RinkEntry('fsc-avalanche', 'ssprd-family-sports', 'FSC Avalanche Rink', fsc_url,
                  'Avalanche Rink'),
        RinkEntry('fsc-fixit', 'ssprd-family-sports', 'FSC Fix-it 24/7 Rink', fsc_url,
                  'Fix-it 24/7 Rink'),
        RinkEntry('sssc-rink1', 'ssprd-sports-complex', 'SSSC Rink 1', sssc_url, 'Rink 1'),
        RinkEntry('sssc-rink2', 'ssprd-sports-complex', 'SSSC Rink 2', sssc_url, 'Rink 2'),
        RinkEntry('sssc-rink3', 'ssprd-sports-complex', 'SSSC Rink 3', sssc_url, 'Rink 3'),
    ]


DENVER_FACILITY_NAMES = {
    'ssprd-family-sports': 'Family Sports Center (Centennial)',
    'ssprd-sports-complex': 'South Suburban Sports Complex (Littleton)',
}


def default_registry() -> RinkRegistry:
    """Built-in Denver-area registry."""
    return RinkRegistry(_denver_rinks(), facility_names=DENVER_FACILITY_NAMES)


def load_registry(path: Optional[str] = None) -> RinkRegistry:
    """
    Load the registry from a JSON file, or the built-in one when no path is given.

    Args:
        path: Optional path to a registry JSON file

    Returns:
        RinkRegistry instance
    """
    if not path:
        return default_registry()

    logger.info(f"Loading rink registry from {path}")
    with open(path, encoding='utf-8') as handle:
        registry = RinkRegistry.from_dict(json.load(handle))
    logger.info(f"Loaded {len(registry)} rinks in {len(registry.facilities)} facilities")
    return registry
