"""
Codelists

Resolves boolean codelist specifications over SNOMED CT ECL, ATC and ICD-10
into sets of SNOMED CT concept identifiers, and tests concept identifiers
against specifications without full expansion.

Usage:
    from codelists import open_environment

    with open_environment() as env:
        concepts = env.realize_concepts({"icd10": "G35", "not": {"ecl": "<24700007"}})
        env.any_member({"atc": "C08*"}, [319283006])
"""

from .classifier import ReverseClassifier, any_member
from .codelist import Codelist, ConceptSetCodelist, SpecificationCodelist, make_codelist
from .config import (
    CodelistsConfig,
    EvaluationConfig,
    ServerConfig,
    SnapshotConfig,
    configure_logging,
    load_config,
)
from .environment import Environment, open_environment
from .errors import (
    CodelistError,
    CollaboratorError,
    ErrorCategory,
    EvaluationCancelled,
    TerminologyServerError,
    ValidationError,
    http_status_for,
)
from .evaluator import Evaluator, realize_concepts
from .model import And, CodeSystem, ConceptSet, Difference, Leaf, Or, disjoint, to_data
from .parser import parse, parse_json, parse_specification
from .results import ExpansionResult
from .translator import AtcTranslator, atc_to_ecl

__all__ = [
    # Model
    "CodeSystem",
    "Leaf",
    "And",
    "Or",
    "Difference",
    "ConceptSet",
    "disjoint",
    "to_data",
    # Parsing
    "parse",
    "parse_json",
    "parse_specification",
    # Evaluation
    "Evaluator",
    "realize_concepts",
    "AtcTranslator",
    "atc_to_ecl",
    "ReverseClassifier",
    "any_member",
    # Codelists
    "Codelist",
    "ConceptSetCodelist",
    "SpecificationCodelist",
    "make_codelist",
    "ExpansionResult",
    # Environment and configuration
    "Environment",
    "open_environment",
    "CodelistsConfig",
    "EvaluationConfig",
    "ServerConfig",
    "SnapshotConfig",
    "load_config",
    "configure_logging",
    # Errors
    "CodelistError",
    "ValidationError",
    "CollaboratorError",
    "TerminologyServerError",
    "EvaluationCancelled",
    "ErrorCategory",
    "http_status_for",
]
