"""
Specification parsing.

Turns specification data (JSON text or decoded ``dict`` / ``list`` values)
into an expression tree, validating structure before anything is evaluated.

Grammar::

    spec  := object | [spec, ...]              a list is an implicit "or"
    object := {"ecl": str | [str],
               "atc": str | [str],
               "icd10": str | [str],
               "and": [spec, ...],
               "or": [spec, ...],
               "not": spec}

Sibling keys in one object are unioned and ``not`` is subtracted from that
union. The older ``{"inclusions": spec, "exclusions": spec}`` form is also
accepted.
"""

import json
import logging
from typing import Any, List, Tuple

from .errors import ValidationError
from .model import And, CodeSystem, Difference, Expression, Leaf, Or

logger = logging.getLogger(__name__)

LEAF_KEYS = tuple(system.value for system in CodeSystem)
SUPPORTED_KEYS = frozenset(LEAF_KEYS + ("and", "or", "not"))
LEGACY_KEYS = frozenset(("inclusions", "exclusions"))


def _reject_duplicate_keys(pairs: List[Tuple[str, Any]]) -> dict:
    result = {}
    for key, value in pairs:
        if key in result:
            raise ValidationError(f"duplicate key '{key}'; use a list of patterns or an explicit 'or'")
        result[key] = value
    return result


def parse_json(text: str) -> Expression:
    """Parse a JSON specification string."""
    if text is None or not text.strip():
        raise ValidationError("specification is empty")
    try:
        data = json.loads(text, object_pairs_hook=_reject_duplicate_keys)
    except json.JSONDecodeError as e:
        raise ValidationError(f"specification is not valid JSON: {e.msg}", original_exception=e) from e
    return parse_specification(data)


def parse(spec: Any) -> Expression:
    """Parse a specification given as JSON text, decoded data or an existing tree."""
    if isinstance(spec, (Leaf, And, Or, Difference)):
        validate(spec)
        return spec
    if isinstance(spec, bytes):
        try:
            spec = spec.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ValidationError("specification is not valid UTF-8", original_exception=e) from e
    if isinstance(spec, str):
        return parse_json(spec)
    return parse_specification(spec)


def parse_specification(data: Any, path: str = "$") -> Expression:
    """Parse decoded specification data into an expression tree."""
    if isinstance(data, list):
        children = tuple(parse_specification(item, f"{path}[{i}]") for i, item in enumerate(data))
        if len(children) == 1:
            return children[0]
        return Or(children)

    if not isinstance(data, dict):
        raise ValidationError(f"expected an object or a list, got {type(data).__name__}", path=path)

    if not data:
        raise ValidationError("specification object has no terms", path=path)

    if LEGACY_KEYS.intersection(data):
        return _parse_legacy(data, path)

    unsupported = sorted(str(k) for k in data if k not in SUPPORTED_KEYS)
    if unsupported:
        raise ValidationError(f"unsupported key(s): {', '.join(unsupported)}", path=path)

    terms: List[Expression] = []
    for key in LEAF_KEYS:
        if key in data:
            terms.append(_parse_leaf(CodeSystem(key), data[key], f"{path}.{key}"))

    if "and" in data:
        children = _parse_children(data["and"], f"{path}.and")
        if not children:
            raise ValidationError("'and' requires at least one specification", path=f"{path}.and")
        terms.append(children[0] if len(children) == 1 else And(children))

    if "or" in data:
        children = _parse_children(data["or"], f"{path}.or")
        terms.append(children[0] if len(children) == 1 else Or(children))

    if "not" in data and not terms:
        raise ValidationError("'not' must be attached to at least one inclusion term", path=path)

    positive = terms[0] if len(terms) == 1 else Or(tuple(terms))

    if "not" in data:
        negative = parse_specification(data["not"], f"{path}.not")
        return Difference(positive, negative)

    return positive


def _parse_legacy(data: dict, path: str) -> Expression:
    extra = sorted(str(k) for k in data if k not in LEGACY_KEYS)
    if extra:
        raise ValidationError(f"unsupported key(s) alongside inclusions/exclusions: {', '.join(extra)}", path=path)
    if "inclusions" not in data:
        raise ValidationError("'exclusions' must be accompanied by 'inclusions'", path=path)
    positive = parse_specification(data["inclusions"], f"{path}.inclusions")
    if "exclusions" in data:
        return Difference(positive, parse_specification(data["exclusions"], f"{path}.exclusions"))
    return positive


def _parse_children(value: Any, path: str) -> Tuple[Expression, ...]:
    if not isinstance(value, list):
        raise ValidationError(f"expected a list of specifications, got {type(value).__name__}", path=path)
    return tuple(parse_specification(item, f"{path}[{i}]") for i, item in enumerate(value))


def _parse_leaf(system: CodeSystem, value: Any, path: str) -> Leaf:
    if isinstance(value, str):
        values = [value]
    elif isinstance(value, list):
        values = value
    else:
        raise ValidationError(f"'{system.value}' must be a string or a list of strings", path=path)

    patterns = []
    for i, pattern in enumerate(values):
        if not isinstance(pattern, str):
            raise ValidationError(f"'{system.value}' patterns must be strings", path=f"{path}[{i}]")
        pattern = pattern.strip()
        if not pattern:
            raise ValidationError(f"'{system.value}' pattern cannot be blank", path=path)
        patterns.append(pattern)

    # first occurrence wins; keeps the tree canonical for identical inputs
    return Leaf(system, tuple(dict.fromkeys(patterns)))


def validate(expression: Expression, path: str = "$") -> None:
    """Check a tree built in code rather than parsed from data."""
    if isinstance(expression, Leaf):
        if not isinstance(expression.system, CodeSystem):
            raise ValidationError(f"unsupported code system {expression.system!r}", path=path)
        for pattern in expression.patterns:
            if not isinstance(pattern, str) or not pattern.strip():
                raise ValidationError(f"'{expression.system.value}' pattern cannot be blank", path=path)
    elif isinstance(expression, And):
        if not expression.children:
            raise ValidationError("'and' requires at least one specification", path=path)
        for i, child in enumerate(expression.children):
            validate(child, f"{path}.and[{i}]")
    elif isinstance(expression, Or):
        for i, child in enumerate(expression.children):
            validate(child, f"{path}.or[{i}]")
    elif isinstance(expression, Difference):
        validate(expression.positive, path)
        validate(expression.negative, f"{path}.not")
    else:
        raise ValidationError(f"not a codelist expression: {type(expression).__name__}", path=path)
