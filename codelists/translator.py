"""
ATC to ECL translation.

Maps an ATC pattern onto a SNOMED CT expression covering the UK product
identifiers for it: virtual therapeutic moieties (VTM), virtual medicinal
products (VMP) and the trade families (TF) of the actual medicinal products
(AMP). Product packs (VMPP / AMPP) are dispensing units rather than drugs and
are never included.
"""

import logging
from typing import Set

from .terminology.base import TRADE_FAMILY_REFSET, DrugProductService, TerminologyGraph

logger = logging.getLogger(__name__)


def trade_families_for_product(terminology: TerminologyGraph, concept_id: int) -> Set[int]:
    """Ancestors (or self) of a product that are trade family concepts."""
    return {
        parent for parent in terminology.all_parents(concept_id)
        if terminology.component_refset_items(parent, TRADE_FAMILY_REFSET)
    }


class AtcTranslator:

    def __init__(self, terminology: TerminologyGraph, drugs: DrugProductService):
        self.terminology = terminology
        self.drugs = drugs

    def translate(self, pattern: str) -> str:
        """
        Build an ECL disjunction of ``<<id`` clauses for an ATC pattern.

        Returns an empty string when no product matches; callers treat that
        as an empty concept set rather than an error.
        """
        products = self.drugs.products_for_pattern(pattern)
        trade_families: Set[int] = set()
        for amp in products.amp:
            trade_families |= trade_families_for_product(self.terminology, amp)

        concept_ids = sorted(trade_families | products.vtm | products.vmp)
        logger.debug(f"ATC '{pattern}': {len(products.vtm)} VTM, {len(products.vmp)} VMP, "
                     f"{len(products.amp)} AMP, {len(trade_families)} TF")
        return " OR ".join(f"<<{concept_id}" for concept_id in concept_ids)


def atc_to_ecl(terminology: TerminologyGraph, drugs: DrugProductService, pattern: str) -> str:
    return AtcTranslator(terminology, drugs).translate(pattern)
