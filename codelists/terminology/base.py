"""
Collaborator interfaces.

The core only ever queries a terminology graph and a drug product service
through the methods below. Implementations must be read-only and safe to
call from many threads at once.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

IS_A = 116680003
ICD10_MAP_REFSET = 447562003
TRADE_FAMILY_REFSET = 999000631000001100
MAP_TARGET = "mapTarget"


@dataclass(frozen=True)
class RefsetItem:
    """A reference set member with its map payload, if any"""
    refset_id: int
    referenced_component_id: int
    map_target: Optional[str] = None
    active: bool = True


@dataclass
class DrugProducts:
    """dm+d products for an ATC pattern, by granularity (packs are never included)"""
    vtm: Set[int] = field(default_factory=set)
    vmp: Set[int] = field(default_factory=set)
    amp: Set[int] = field(default_factory=set)

    def is_empty(self) -> bool:
        return not (self.vtm or self.vmp or self.amp)


class TerminologyGraph:
    """Read-only SNOMED CT service"""

    def expand_ecl(self, ecl: str, include_historic: bool = True) -> Set[int]:
        raise NotImplementedError

    def reverse_map_wildcard(self, refset_id: int, field_name: str, pattern: str) -> Set[int]:
        """Concepts whose refset items in refset_id have field_name matching a wildcard pattern"""
        raise NotImplementedError

    def with_historical(self, concept_ids: Iterable[int]) -> Set[int]:
        raise NotImplementedError

    def component_refset_items(self, concept_id: int, refset_id: int) -> List[RefsetItem]:
        raise NotImplementedError

    def all_parents(self, concept_id: int) -> Set[int]:
        """The concept and all of its ancestors"""
        raise NotImplementedError

    def child_relationships_of_type(self, concept_id: int, type_id: int) -> Set[int]:
        raise NotImplementedError

    def intersect_ecl(self, concept_ids: Iterable[int], ecl: str, include_historic: bool = True) -> Set[int]:
        """Those of concept_ids that are in the expansion of ecl"""
        concept_ids = set(concept_ids)
        if not concept_ids:
            return set()
        return concept_ids & self.expand_ecl(ecl, include_historic)

    def preferred_terms(self, concept_ids: Iterable[int]) -> Dict[int, str]:
        return {}

    def release_metadata(self) -> Any:
        return None

    def close(self) -> None:
        pass


class DrugProductService:
    """Read-only dm+d service"""

    def products_for_pattern(self, pattern: str) -> DrugProducts:
        raise NotImplementedError

    def product_to_atc(self, concept_id: int) -> Optional[str]:
        raise NotImplementedError

    def release_metadata(self) -> Any:
        return None

    def close(self) -> None:
        pass
