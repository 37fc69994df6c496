"""
Reverse classification: testing concept identifiers against a specification.

Rather than expanding a specification into what may be millions of concepts,
the identifiers under test are mapped into ICD-10 and ATC code space and
matched directly against the leaf patterns. For any snapshot and
specification::

    any_member(spec, ids) == bool(evaluate(spec) & set(ids))
"""

import logging
from typing import Any, Dict, Iterable, Optional, Set

from . import patterns
from .config import EvaluationConfig
from .errors import CodelistError, CollaboratorError, EvaluationCancelled, ValidationError
from .evaluator import Evaluator
from .model import And, CodeSystem, Difference, Expression, Leaf, Or
from .parser import parse
from .terminology.base import (
    ICD10_MAP_REFSET, IS_A, TRADE_FAMILY_REFSET, DrugProductService, TerminologyGraph,
)

logger = logging.getLogger(__name__)


class ReverseClassifier:

    def __init__(self,
                 terminology: TerminologyGraph,
                 drugs: DrugProductService,
                 config: Optional[EvaluationConfig] = None,
                 evaluator: Optional[Evaluator] = None):
        self.terminology = terminology
        self.drugs = drugs
        self.config = config or EvaluationConfig()
        self.evaluator = evaluator or Evaluator(terminology, drugs, self.config)

    def to_icd10(self, concept_ids: Iterable[int]) -> Set[str]:
        """ICD-10 codes mapped from the concepts and their historical equivalents."""
        return self._icd10_codes(self.terminology.with_historical(set(concept_ids)))

    def to_atc(self, concept_ids: Iterable[int]) -> Set[str]:
        """ATC codes for the products among the concepts and their historical equivalents."""
        return self._atc_codes(self.terminology.with_historical(set(concept_ids)))

    def is_trade_family(self, concept_id: int) -> bool:
        return bool(self.terminology.component_refset_items(concept_id, TRADE_FAMILY_REFSET))

    def _icd10_codes(self, concept_ids: Iterable[int]) -> Set[str]:
        return {
            item.map_target
            for concept_id in concept_ids
            for item in self.terminology.component_refset_items(concept_id, ICD10_MAP_REFSET)
            if item.map_target
        }

    def _atc_codes(self, concept_ids: Iterable[int]) -> Set[str]:
        codes = set()
        for concept_id in concept_ids:
            # dm+d cannot map trade families, so use the branded products beneath them
            if self.is_trade_family(concept_id):
                products = self.terminology.child_relationships_of_type(concept_id, IS_A)
            else:
                products = [concept_id]
            for product in products:
                atc = self.drugs.product_to_atc(product)
                if atc:
                    codes.add(atc)
        return codes

    def any_member(self, spec: Any, concept_ids: Iterable[int]) -> bool:
        """Does any of the concepts satisfy the specification?"""
        return bool(self.matching_members(spec, concept_ids))

    def matching_members(self, spec: Any, concept_ids: Iterable[int]) -> Set[int]:
        """Those of the concepts that satisfy the specification."""
        expression = parse(spec)
        concept_ids = set(concept_ids)
        members = self._members(expression, concept_ids)
        logger.debug(f"{len(members)} of {len(concept_ids)} concepts match")
        return members

    def _members(self, expression: Expression, concept_ids: Set[int]) -> Set[int]:
        if not concept_ids:
            return set()
        if isinstance(expression, Leaf):
            return self._leaf_members(expression, concept_ids)
        if isinstance(expression, And):
            remaining = concept_ids
            for child in expression.children:
                remaining = self._members(child, remaining)
            return remaining
        if isinstance(expression, Or):
            matched: Set[int] = set()
            for child in expression.children:
                matched |= self._members(child, concept_ids - matched)
            return matched
        if isinstance(expression, Difference):
            excluded = self.evaluator.evaluate(expression.negative)
            return self._members(expression.positive, concept_ids - excluded)
        raise CodelistError(f"Not a codelist expression: {expression!r}")

    def _leaf_members(self, leaf: Leaf, concept_ids: Set[int]) -> Set[int]:
        if not leaf.patterns:
            return set()
        try:
            if leaf.system == CodeSystem.ECL:
                return self._ecl_members(leaf, concept_ids)
            if leaf.system == CodeSystem.ICD10:
                # diagnosis leaves always include historical equivalents
                return {
                    concept_id for concept_id in concept_ids
                    if patterns.match_any(leaf.patterns, self.to_icd10([concept_id]))
                }
            if leaf.system == CodeSystem.ATC:
                return {
                    concept_id for concept_id in concept_ids
                    if patterns.match_any(leaf.patterns, self._atc_codes(self._historical({concept_id})))
                }
        except (ValidationError, EvaluationCancelled, CollaboratorError):
            raise
        except Exception as e:
            raise CollaboratorError(f"Classification for {leaf.describe()} failed: {e}",
                                    leaf=leaf.describe(), original_exception=e) from e
        raise CodelistError(f"Unsupported code system: {leaf.system}")

    def _ecl_members(self, leaf: Leaf, concept_ids: Set[int]) -> Set[int]:
        equivalents: Dict[int, Set[int]] = {
            concept_id: self._historical({concept_id}) for concept_id in concept_ids
        }
        candidates = set().union(*equivalents.values())
        subsumed: Set[int] = set()
        for ecl in leaf.patterns:
            subsumed |= self.terminology.intersect_ecl(candidates, ecl, self.config.include_historic)
        return {concept_id for concept_id, related in equivalents.items() if related & subsumed}

    def _historical(self, concept_ids: Set[int]) -> Set[int]:
        """Historical closure, when the system is configured to include it for ECL and ATC leaves."""
        if self.config.include_historic:
            return self.terminology.with_historical(concept_ids)
        return set(concept_ids)


def any_member(terminology: TerminologyGraph,
               drugs: DrugProductService,
               spec: Any,
               concept_ids: Iterable[int],
               config: Optional[EvaluationConfig] = None) -> bool:
    return ReverseClassifier(terminology, drugs, config).any_member(spec, concept_ids)
