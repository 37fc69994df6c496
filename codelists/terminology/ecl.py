"""
A subset of the SNOMED CT Expression Constraint Language.

Used by the local snapshot graph. Supported:

- concept references, optionally followed by a ``|term|``
- the wildcard ``*``
- hierarchy operators ``<``, ``<<``, ``<!``, ``>``, ``>>``, ``>!``
- reference set membership ``^``
- ``AND``, ``OR``, ``MINUS`` (and ``,`` for AND), with parentheses

Refinements, filters and history supplements are not supported.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Set, Tuple, Union

_TOKEN = re.compile(r"""
    \s*(?:
        (?P<term>\|[^|]*\|)
      | (?P<op><<|<!|<|>>|>!|>|\^)
      | (?P<lparen>\()
      | (?P<rparen>\))
      | (?P<star>\*)
      | (?P<comma>,)
      | (?P<id>\d+)
      | (?P<word>[A-Za-z]+)
    )""", re.VERBOSE)

_BINARY = {"AND": "AND", "OR": "OR", "MINUS": "MINUS", ",": "AND"}


class EclError(ValueError):
    """The expression is malformed or uses unsupported syntax"""


@dataclass(frozen=True)
class ConceptRef:
    concept_id: int


@dataclass(frozen=True)
class Wildcard:
    pass


@dataclass(frozen=True)
class Constraint:
    operator: str
    focus: "Node"


@dataclass(frozen=True)
class Compound:
    operator: str
    left: "Node"
    right: "Node"


Node = Union[ConceptRef, Wildcard, Constraint, Compound]


def tokenize(ecl: str) -> List[Tuple[str, str]]:
    tokens = []
    position = 0
    text = ecl.rstrip()
    while position < len(text):
        match = _TOKEN.match(text, position)
        if not match or match.end() == position:
            raise EclError(f"Unexpected character at position {position} in '{ecl}'")
        kind = match.lastgroup
        value = match.group(kind)
        position = match.end()
        if kind == "term":
            continue
        if kind == "word":
            word = value.upper()
            if word not in _BINARY:
                raise EclError(f"Unsupported keyword '{value}' in '{ecl}'")
            tokens.append(("binary", word))
        elif kind == "comma":
            tokens.append(("binary", "AND"))
        else:
            tokens.append((kind, value))
    return tokens


class _Parser:

    def __init__(self, ecl: str):
        self.ecl = ecl
        self.tokens = tokenize(ecl)
        self.index = 0

    def _peek(self) -> Optional[Tuple[str, str]]:
        return self.tokens[self.index] if self.index < len(self.tokens) else None

    def _next(self) -> Tuple[str, str]:
        token = self._peek()
        if token is None:
            raise EclError(f"Unexpected end of expression '{self.ecl}'")
        self.index += 1
        return token

    def parse(self) -> Node:
        if not self.tokens:
            raise EclError("Expression is empty")
        node = self._compound()
        if self._peek() is not None:
            raise EclError(f"Unexpected '{self._peek()[1]}' in '{self.ecl}'")
        return node

    def _compound(self) -> Node:
        node = self._sub()
        operator = None
        while self._peek() and self._peek()[0] == "binary":
            _, op = self._next()
            # mixing operators requires parentheses
            if operator and op != operator:
                raise EclError(f"Use parentheses when combining {operator} and {op} in '{self.ecl}'")
            operator = op
            node = Compound(op, node, self._sub())
        return node

    def _sub(self) -> Node:
        kind, value = self._next()
        if kind == "op":
            return Constraint(value, self._sub())
        if kind == "lparen":
            node = self._compound()
            closing = self._next()
            if closing[0] != "rparen":
                raise EclError(f"Expected ')' in '{self.ecl}'")
            return node
        if kind == "id":
            return ConceptRef(int(value))
        if kind == "star":
            return Wildcard()
        raise EclError(f"Unexpected '{value}' in '{self.ecl}'")


def parse(ecl: str) -> Node:
    return _Parser(ecl).parse()


_HIERARCHY = {
    "<": lambda g, c: g.descendants(c),
    "<<": lambda g, c: g.descendants(c) | {c},
    "<!": lambda g, c: g.children(c),
    ">": lambda g, c: g.ancestors(c),
    ">>": lambda g, c: g.ancestors(c) | {c},
    ">!": lambda g, c: g.parents(c),
    "^": lambda g, c: g.refset_members(c),
}


def evaluate(node: Node, graph) -> Set[int]:
    """Evaluate a parsed expression.

    ``graph`` provides all_concepts(), descendants(id), ancestors(id),
    children(id), parents(id) and refset_members(id).
    """
    if isinstance(node, ConceptRef):
        return {node.concept_id}
    if isinstance(node, Wildcard):
        return set(graph.all_concepts())
    if isinstance(node, Constraint):
        if isinstance(node.focus, Wildcard) and node.operator in ("<", "<<"):
            return set(graph.all_concepts())
        focus = evaluate(node.focus, graph)
        lookup = _HIERARCHY[node.operator]
        return _union(lookup(graph, concept_id) for concept_id in focus)
    if isinstance(node, Compound):
        left = evaluate(node.left, graph)
        right = evaluate(node.right, graph)
        if node.operator == "AND":
            return left & right
        if node.operator == "OR":
            return left | right
        return left - right
    raise EclError(f"Cannot evaluate {node!r}")


def _union(sets: Iterable[Set[int]]) -> Set[int]:
    result: Set[int] = set()
    for s in sets:
        result |= s
    return result
