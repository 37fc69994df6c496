"""
Local terminology snapshot backed by pandas tables.

Builds an immutable in-memory SNOMED CT graph and dm+d product index from
DataFrames, or from a directory of CSV / Parquet files with the same
columns. Indexes are built once at construction; every query afterwards is a
read-only lookup, so a snapshot can be shared between threads.

Tables (columns marked * are optional):

- concepts: ``id``, ``active``*, ``term``*
- relationships: ``source_id``, ``destination_id``, ``type_id``*, ``active``*
- refset_items: ``refset_id``, ``referenced_component_id``, ``map_target``*, ``active``*
- associations: ``refset_id``*, ``referenced_component_id``, ``target_component_id``, ``active``*
- products: ``id``, ``type`` (VTM, VMP, AMP, VMPP, AMPP), ``atc``*, ``vtm_id``*, ``vmp_id``*, ``amp_id``*
"""

import json
import logging
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from .. import patterns
from . import ecl as ecl_language
from .base import IS_A, MAP_TARGET, DrugProductService, DrugProducts, RefsetItem, TerminologyGraph

logger = logging.getLogger(__name__)

ID_COLUMNS = frozenset((
    "id", "source_id", "destination_id", "type_id", "refset_id", "referenced_component_id",
    "target_component_id", "vtm_id", "vmp_id", "amp_id",
))

# largest integer a float64 holds exactly
MAX_EXACT_FLOAT_ID = 2 ** 53

REFSET_ITEM_FIELDS = {
    MAP_TARGET: "map_target",
    "referencedComponentId": "referenced_component_id",
}


def _with_defaults(df: Optional[pd.DataFrame], columns: Dict[str, Any]) -> pd.DataFrame:
    """Copy of df with missing optional columns filled, identifiers as Python ints, inactive rows removed."""
    if df is None:
        df = pd.DataFrame(columns=list(columns))
    df = df.copy()
    for column, default in columns.items():
        if column not in df.columns:
            df[column] = default
    for column in ID_COLUMNS.intersection(df.columns):
        _check_exact_ids(df[column], column)
        df[column] = pd.Series([_optional_int(v) for v in df[column]], index=df.index, dtype=object)
    if "active" in df.columns:
        active = pd.Series([_parse_bool(v) for v in df["active"]], index=df.index, dtype=bool)
        df = df.loc[active]
    return df


def _read_table(directory: Path, name: str) -> Optional[pd.DataFrame]:
    parquet = directory / f"{name}.parquet"
    if parquet.exists():
        return _arrow_to_frame(pq.read_table(parquet))
    csv = directory / f"{name}.csv"
    if csv.exists():
        return pd.read_csv(csv, dtype=str)
    return None


def _check_exact_ids(series: pd.Series, column: str) -> None:
    """Reject float identifier columns whose values may already have been rounded."""
    if any(isinstance(v, float) and abs(v) >= MAX_EXACT_FLOAT_ID for v in series.dropna()):
        raise ValueError(
            f"Identifier column '{column}' is floating point and holds values too large to be exact; "
            f"build it with dtype=object or the nullable Int64 dtype"
        )


def _arrow_to_frame(table: pa.Table) -> pd.DataFrame:
    """Convert an Arrow table, keeping nullable integer columns as exact Python ints."""
    columns = {}
    for name in table.column_names:
        column = table.column(name)
        if pa.types.is_integer(column.type):
            columns[name] = pd.Series(column.to_pylist(), dtype=object)
        else:
            columns[name] = column.to_pandas()
    return pd.DataFrame(columns)


def _read_metadata(directory: Path) -> Dict[str, Any]:
    path = directory / "metadata.json"
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _optional_int(value: Any) -> Optional[int]:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    if isinstance(value, str):
        return int(value.strip()) if value.strip() else None
    return int(value)


def _optional_str(value: Any) -> Optional[str]:
    if value is None or pd.isna(value):
        return None
    return str(value)


def _parse_bool(value: Any) -> bool:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return True
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "t", "yes", "y"}
    return bool(value)


class SnapshotTerminologyGraph(TerminologyGraph):
    """
    In-memory SNOMED CT graph.

    Hierarchy queries use active IS-A relationships only, so inactive
    concepts are reached through historical associations, never through
    subsumption.
    """

    def __init__(self,
                 concepts: pd.DataFrame,
                 relationships: Optional[pd.DataFrame] = None,
                 refset_items: Optional[pd.DataFrame] = None,
                 associations: Optional[pd.DataFrame] = None,
                 metadata: Optional[Dict[str, Any]] = None):
        concepts = _with_defaults(concepts, {"active": True, "term": None})
        relationships = _with_defaults(relationships, {"source_id": None, "destination_id": None,
                                                       "type_id": IS_A, "active": True})
        refset_items = _with_defaults(refset_items, {"refset_id": None, "referenced_component_id": None,
                                                     "map_target": None, "active": True})
        associations = _with_defaults(associations, {"refset_id": None, "referenced_component_id": None,
                                                     "target_component_id": None, "active": True})

        self._metadata = dict(metadata or {})
        self._active: Set[int] = set(concepts["id"])
        self._terms: Dict[int, str] = {
            row.id: _optional_str(row.term) for row in concepts.itertuples(index=False)
            if _optional_str(row.term) is not None
        }

        self._parents: Dict[int, Set[int]] = defaultdict(set)
        self._children: Dict[int, Set[int]] = defaultdict(set)
        self._sources_by_type: Dict[tuple, Set[int]] = defaultdict(set)
        for row in relationships.itertuples(index=False):
            source, destination, type_id = int(row.source_id), int(row.destination_id), int(row.type_id)
            self._sources_by_type[(destination, type_id)].add(source)
            if type_id == IS_A:
                self._parents[source].add(destination)
                self._children[destination].add(source)

        self._refset_members: Dict[int, Set[int]] = defaultdict(set)
        self._items_by_refset: Dict[int, List[RefsetItem]] = defaultdict(list)
        self._items_by_component: Dict[tuple, List[RefsetItem]] = defaultdict(list)
        for row in refset_items.itertuples(index=False):
            item = RefsetItem(
                refset_id=int(row.refset_id),
                referenced_component_id=int(row.referenced_component_id),
                map_target=_optional_str(row.map_target),
            )
            self._refset_members[item.refset_id].add(item.referenced_component_id)
            self._items_by_refset[item.refset_id].append(item)
            self._items_by_component[(item.referenced_component_id, item.refset_id)].append(item)

        # historical equivalence is symmetric
        self._historical: Dict[int, Set[int]] = defaultdict(set)
        for row in associations.itertuples(index=False):
            source, target = int(row.referenced_component_id), int(row.target_component_id)
            self._historical[source].add(target)
            self._historical[target].add(source)

        logger.info(f"Loaded terminology snapshot: {len(self._active)} active concepts, "
                    f"{len(relationships)} relationships, {len(refset_items)} refset items, "
                    f"{len(associations)} historical associations")

    @classmethod
    def from_directory(cls, directory) -> "SnapshotTerminologyGraph":
        directory = Path(directory)
        concepts = _read_table(directory, "concepts")
        if concepts is None:
            raise FileNotFoundError(f"No concepts table (.csv or .parquet) in {directory}")
        return cls(
            concepts=concepts,
            relationships=_read_table(directory, "relationships"),
            refset_items=_read_table(directory, "refset_items"),
            associations=_read_table(directory, "associations"),
            metadata=_read_metadata(directory).get("hermes"),
        )

    # graph lookups used by the ECL evaluator

    def all_concepts(self) -> Set[int]:
        return set(self._active)

    def parents(self, concept_id: int) -> Set[int]:
        return set(self._parents.get(concept_id, ()))

    def children(self, concept_id: int) -> Set[int]:
        return set(self._children.get(concept_id, ()))

    def ancestors(self, concept_id: int) -> Set[int]:
        return self._closure(concept_id, self._parents)

    def descendants(self, concept_id: int) -> Set[int]:
        return self._closure(concept_id, self._children)

    def refset_members(self, refset_id: int) -> Set[int]:
        return set(self._refset_members.get(refset_id, ()))

    @staticmethod
    def _closure(start: int, edges: Dict[int, Set[int]]) -> Set[int]:
        seen: Set[int] = set()
        stack = list(edges.get(start, ()))
        while stack:
            concept_id = stack.pop()
            if concept_id in seen:
                continue
            seen.add(concept_id)
            stack.extend(edges.get(concept_id, ()))
        return seen

    # TerminologyGraph

    def expand_ecl(self, ecl: str, include_historic: bool = True) -> Set[int]:
        result = ecl_language.evaluate(ecl_language.parse(ecl), self)
        if include_historic:
            return self.with_historical(result)
        return result

    def reverse_map_wildcard(self, refset_id: int, field_name: str, pattern: str) -> Set[int]:
        attribute = REFSET_ITEM_FIELDS.get(field_name)
        if attribute is None:
            raise ValueError(f"Unsupported refset item field '{field_name}'")
        return {
            item.referenced_component_id
            for item in self._items_by_refset.get(refset_id, ())
            if patterns.matches(pattern, str(getattr(item, attribute)) if getattr(item, attribute) is not None else None)
        }

    def with_historical(self, concept_ids: Iterable[int]) -> Set[int]:
        result: Set[int] = set()
        stack = list(concept_ids)
        while stack:
            concept_id = stack.pop()
            if concept_id in result:
                continue
            result.add(concept_id)
            stack.extend(self._historical.get(concept_id, ()))
        return result

    def component_refset_items(self, concept_id: int, refset_id: int) -> List[RefsetItem]:
        return list(self._items_by_component.get((concept_id, refset_id), ()))

    def all_parents(self, concept_id: int) -> Set[int]:
        return self.ancestors(concept_id) | {concept_id}

    def child_relationships_of_type(self, concept_id: int, type_id: int) -> Set[int]:
        return set(self._sources_by_type.get((concept_id, type_id), ()))

    def preferred_terms(self, concept_ids: Iterable[int]) -> Dict[int, str]:
        return {concept_id: self._terms[concept_id] for concept_id in concept_ids if concept_id in self._terms}

    def release_metadata(self) -> Any:
        return self._metadata


class SnapshotDrugProductService(DrugProductService):
    """In-memory dm+d product index"""

    def __init__(self, products: pd.DataFrame, metadata: Optional[Dict[str, Any]] = None):
        products = _with_defaults(products, {"id": None, "type": None, "atc": None,
                                             "vtm_id": None, "vmp_id": None, "amp_id": None})
        products = products.assign(type=products["type"].astype(str).str.upper())
        self._products = products
        self._metadata = dict(metadata or {})
        self._by_id: Dict[int, Any] = {row.id: row for row in products.itertuples(index=False)}
        self._vmps = products[products["type"] == "VMP"]
        self._amps = products[products["type"] == "AMP"]
        logger.info(f"Loaded dm+d snapshot: {len(products)} products")

    @classmethod
    def from_directory(cls, directory) -> "SnapshotDrugProductService":
        directory = Path(directory)
        products = _read_table(directory, "products")
        if products is None:
            raise FileNotFoundError(f"No products table (.csv or .parquet) in {directory}")
        return cls(products, metadata=_read_metadata(directory).get("dmd"))

    def products_for_pattern(self, pattern: str) -> DrugProducts:
        atc = self._vmps["atc"]
        matched = self._vmps[atc.map(lambda code: patterns.matches(pattern, _optional_str(code))).astype(bool)]
        vmp_ids = {int(i) for i in matched["id"]}
        vtm_ids = {int(i) for i in matched["vtm_id"].dropna()}
        amp_ids = {int(i) for i in self._amps[self._amps["vmp_id"].isin(vmp_ids)]["id"]}
        return DrugProducts(vtm=vtm_ids, vmp=vmp_ids, amp=amp_ids)

    def product_to_atc(self, concept_id: int) -> Optional[str]:
        """ATC code for a VTM, VMP or AMP. Packs (VMPP / AMPP) are dispensing units and have none."""
        row = self._by_id.get(concept_id)
        if row is None:
            return None
        if row.type == "VMP":
            return _optional_str(row.atc)
        if row.type == "AMP":
            vmp_id = _optional_int(row.vmp_id)
            return self.product_to_atc(vmp_id) if vmp_id is not None else None
        if row.type == "VTM":
            codes = sorted(c for c in self._vmps[self._vmps["vtm_id"] == concept_id]["atc"].dropna())
            return str(codes[0]) if codes else None
        return None

    def release_metadata(self) -> Any:
        return self._metadata
