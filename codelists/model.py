"""
Codelist expression tree.

A specification is a finite tree of frozen dataclasses: ``Leaf`` nodes
select concepts from one code system and ``And`` / ``Or`` / ``Difference``
combine the concept sets of their children. Trees are immutable and
hashable so identical sub-expressions can share one evaluation.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Tuple, Union

ConceptId = int
ConceptSet = FrozenSet[int]

EMPTY: ConceptSet = frozenset()


class CodeSystem(Enum):
    """Leaf code systems, valued by their specification key"""
    ECL = "ecl"
    ATC = "atc"
    ICD10 = "icd10"


@dataclass(frozen=True)
class Leaf:
    """Concepts selected from one code system.

    For ECL leaves each pattern is an expression; for ATC and ICD-10 leaves
    each is a code pattern (see ``codelists.patterns``). Multiple patterns are
    unioned, and no patterns at all select nothing.
    """
    system: CodeSystem
    patterns: Tuple[str, ...]

    def describe(self) -> str:
        if len(self.patterns) == 1:
            return f"{self.system.value}:{self.patterns[0]}"
        return f"{self.system.value}:{list(self.patterns)}"


@dataclass(frozen=True)
class And:
    children: Tuple["Expression", ...]


@dataclass(frozen=True)
class Or:
    children: Tuple["Expression", ...]


@dataclass(frozen=True)
class Difference:
    positive: "Expression"
    negative: "Expression"


Expression = Union[Leaf, And, Or, Difference]


def leaves(expression: Expression) -> List[Leaf]:
    """All leaves of a tree, depth first."""
    if isinstance(expression, Leaf):
        return [expression]
    if isinstance(expression, (And, Or)):
        result = []
        for child in expression.children:
            result.extend(leaves(child))
        return result
    if isinstance(expression, Difference):
        return leaves(expression.positive) + leaves(expression.negative)
    raise TypeError(f"Not a codelist expression: {expression!r}")


def to_data(expression: Expression) -> Any:
    """Render a tree back to specification data (JSON-compatible)."""
    if isinstance(expression, Leaf):
        value: Any = expression.patterns[0] if len(expression.patterns) == 1 else list(expression.patterns)
        return {expression.system.value: value}
    if isinstance(expression, And):
        return {"and": [to_data(c) for c in expression.children]}
    if isinstance(expression, Or):
        return {"or": [to_data(c) for c in expression.children]}
    if isinstance(expression, Difference):
        positive = to_data(expression.positive)
        data: Dict[str, Any] = dict(positive) if isinstance(positive, dict) and "not" not in positive else {"or": [positive]}
        data["not"] = to_data(expression.negative)
        return data
    raise TypeError(f"Not a codelist expression: {expression!r}")


def disjoint(*sets) -> bool:
    """
    Are the sets disjoint, so that no member appears in more than one of them?

    This differs from an empty intersection: {1, 2}, {2, 3} and {4, 5} have
    no common member, yet are not disjoint.
    """
    seen = set()
    for s in sets:
        for member in s:
            if member in seen:
                return False
            seen.add(member)
    return True
