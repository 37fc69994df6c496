"""
Terminology collaborators

Interfaces for the SNOMED CT graph and dm+d product service the evaluator
queries, with two implementations:
- SnapshotTerminologyGraph / SnapshotDrugProductService: in-memory, built from pandas tables
- HermesClient / DmdClient: remote HTTP servers
"""

from .base import (
    ICD10_MAP_REFSET,
    IS_A,
    MAP_TARGET,
    TRADE_FAMILY_REFSET,
    DrugProducts,
    DrugProductService,
    RefsetItem,
    TerminologyGraph,
)
from .client import DmdClient, HermesClient
from .ecl import EclError
from .snapshot import SnapshotDrugProductService, SnapshotTerminologyGraph

__all__ = [
    # Interfaces
    "TerminologyGraph",
    "DrugProductService",
    "RefsetItem",
    "DrugProducts",
    "IS_A",
    "ICD10_MAP_REFSET",
    "TRADE_FAMILY_REFSET",
    "MAP_TARGET",
    # Implementations
    "SnapshotTerminologyGraph",
    "SnapshotDrugProductService",
    "HermesClient",
    "DmdClient",
    "EclError",
]
