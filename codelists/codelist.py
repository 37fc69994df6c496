"""
Codelists: concrete concept sets and lazy specifications behind one interface.

A codelist can be tested for membership and expanded. For an explicit set of
concepts both are direct set operations. For a specification, membership uses
the reverse classifier, which is quick for a handful of identifiers, while
expansion realizes the whole concept set. Both kinds give the same answers.
"""

from typing import TYPE_CHECKING, Any, Iterable, Optional

from .model import ConceptSet, Expression
from .parser import parse

if TYPE_CHECKING:
    from .environment import Environment


class Codelist:

    def expand(self) -> ConceptSet:
        raise NotImplementedError

    def any_member(self, concept_ids: Iterable[int]) -> bool:
        raise NotImplementedError

    def member(self, concept_id: int) -> bool:
        return self.any_member([concept_id])

    def __contains__(self, concept_id: int) -> bool:
        return self.member(concept_id)


class ConceptSetCodelist(Codelist):
    """A manually listed or previously realized set of concepts"""

    def __init__(self, concept_ids: Iterable[int]):
        self.concept_ids: ConceptSet = frozenset(int(c) for c in concept_ids)

    def expand(self) -> ConceptSet:
        return self.concept_ids

    def any_member(self, concept_ids: Iterable[int]) -> bool:
        return any(concept_id in self.concept_ids for concept_id in concept_ids)

    def __repr__(self) -> str:
        return f"ConceptSetCodelist({len(self.concept_ids)} concepts)"


class SpecificationCodelist(Codelist):
    """A specification evaluated on demand against an environment"""

    def __init__(self, env: "Environment", spec: Any):
        self.env = env
        self.expression: Expression = parse(spec)

    def expand(self) -> ConceptSet:
        return self.env.realize_concepts(self.expression)

    def any_member(self, concept_ids: Iterable[int]) -> bool:
        return self.env.any_member(self.expression, concept_ids)

    def realize(self) -> ConceptSetCodelist:
        """Expand once into a concrete codelist, for many membership tests."""
        return ConceptSetCodelist(self.expand())

    def __repr__(self) -> str:
        return f"SpecificationCodelist({self.expression!r})"


def make_codelist(env: Optional["Environment"] = None,
                  spec: Any = None,
                  concept_ids: Optional[Iterable[int]] = None) -> Codelist:
    """Make a codelist from either a specification or explicit concept identifiers."""
    if (spec is None) == (concept_ids is None):
        raise ValueError("Provide exactly one of spec or concept_ids")
    if concept_ids is not None:
        return ConceptSetCodelist(concept_ids)
    if env is None:
        raise ValueError("A specification codelist needs an environment")
    return SpecificationCodelist(env, spec)
