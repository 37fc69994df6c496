import tempfile
import unittest
from pathlib import Path

import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from codelists.terminology.base import ICD10_MAP_REFSET, IS_A, MAP_TARGET, TRADE_FAMILY_REFSET
from codelists.terminology.snapshot import SnapshotDrugProductService, SnapshotTerminologyGraph
from tests import fixtures as fx


class TestSnapshotTerminologyGraph(unittest.TestCase):
    def setUp(self):
        self.graph = fx.build_terminology()

    def test_expand_ecl_history(self):
        self.assertIn(fx.MS_INACTIVE, self.graph.expand_ecl("24700007"))
        self.assertEqual(self.graph.expand_ecl("24700007", include_historic=False), {fx.MULTIPLE_SCLEROSIS})

    def test_reverse_map_wildcard(self):
        self.assertEqual(
            self.graph.reverse_map_wildcard(ICD10_MAP_REFSET, MAP_TARGET, "G35"),
            {fx.MULTIPLE_SCLEROSIS, fx.RELAPSING_REMITTING_MS, fx.PRIMARY_PROGRESSIVE_MS},
        )
        self.assertEqual(self.graph.reverse_map_wildcard(ICD10_MAP_REFSET, MAP_TARGET, "G7*"), {fx.MYASTHENIA_GRAVIS})
        self.assertEqual(self.graph.reverse_map_wildcard(ICD10_MAP_REFSET, MAP_TARGET, "G7"), set())

    def test_reverse_map_unknown_field(self):
        with self.assertRaises(ValueError):
            self.graph.reverse_map_wildcard(ICD10_MAP_REFSET, "mapGroup", "1")

    def test_with_historical_is_symmetric(self):
        self.assertEqual(self.graph.with_historical([fx.MS_INACTIVE]), {fx.MS_INACTIVE, fx.MULTIPLE_SCLEROSIS})
        self.assertEqual(self.graph.with_historical([fx.MULTIPLE_SCLEROSIS]), {fx.MS_INACTIVE, fx.MULTIPLE_SCLEROSIS})
        self.assertEqual(self.graph.with_historical([]), set())

    def test_component_refset_items(self):
        items = self.graph.component_refset_items(fx.MYASTHENIA_GRAVIS, ICD10_MAP_REFSET)
        self.assertEqual([item.map_target for item in items], ["G70.0"])
        self.assertEqual(self.graph.component_refset_items(fx.ISTIN_TF, ICD10_MAP_REFSET), [])
        self.assertEqual(len(self.graph.component_refset_items(fx.ISTIN_TF, TRADE_FAMILY_REFSET)), 1)

    def test_all_parents_includes_self(self):
        self.assertEqual(self.graph.all_parents(fx.ISTIN_5MG_AMP), {
            fx.ISTIN_5MG_AMP, fx.AMLODIPINE_5MG_VMP, fx.AMLODIPINE_VTM, fx.ISTIN_TF, fx.PRODUCT, fx.ROOT,
        })

    def test_child_relationships_of_type(self):
        self.assertEqual(self.graph.child_relationships_of_type(fx.ISTIN_TF, IS_A),
                         {fx.ISTIN_5MG_AMP, fx.ISTIN_10MG_AMP})
        self.assertEqual(self.graph.child_relationships_of_type(fx.CNS_STRUCTURE, fx.FINDING_SITE),
                         {fx.MULTIPLE_SCLEROSIS})
        # attribute relationships are not part of the hierarchy
        self.assertNotIn(fx.MULTIPLE_SCLEROSIS, self.graph.descendants(fx.CNS_STRUCTURE))

    def test_intersect_ecl(self):
        self.assertEqual(self.graph.intersect_ecl({fx.MS_INACTIVE, fx.DIABETES_MELLITUS}, "<<6118003"),
                         {fx.MS_INACTIVE})
        self.assertEqual(self.graph.intersect_ecl(set(), "<<6118003"), set())

    def test_preferred_terms_skip_inactive(self):
        terms = self.graph.preferred_terms([fx.MULTIPLE_SCLEROSIS, fx.MS_INACTIVE])
        self.assertEqual(terms, {fx.MULTIPLE_SCLEROSIS: "Multiple sclerosis"})

    def test_inactive_rows_are_ignored(self):
        relationships = fx.relationships_frame()
        relationships["active"] = [True] * (len(relationships) - 1) + ["0"]
        graph = SnapshotTerminologyGraph(fx.concepts_frame(), relationships=relationships)
        self.assertEqual(graph.child_relationships_of_type(fx.CNS_STRUCTURE, fx.FINDING_SITE), set())
        self.assertIn(fx.MULTIPLE_SCLEROSIS, graph.descendants(fx.ROOT))

    def test_large_identifiers_survive_missing_values(self):
        refset_items = pd.DataFrame({
            "refset_id": [TRADE_FAMILY_REFSET, ICD10_MAP_REFSET],
            "referenced_component_id": [str(fx.ISTIN_TF), str(fx.DIABETES_MELLITUS)],
            "map_target": [float("nan"), "E14.9"],
        })
        graph = SnapshotTerminologyGraph(fx.concepts_frame(), refset_items=refset_items)
        self.assertEqual(graph.refset_members(TRADE_FAMILY_REFSET), {fx.ISTIN_TF})

    def test_release_metadata(self):
        self.assertEqual(self.graph.release_metadata(), fx.METADATA["hermes"])


class TestSnapshotDrugProductService(unittest.TestCase):
    def setUp(self):
        self.drugs = fx.build_drugs()

    def test_products_for_pattern(self):
        products = self.drugs.products_for_pattern("C08CA*")
        self.assertEqual(products.vtm, {fx.AMLODIPINE_VTM, fx.NIFEDIPINE_VTM})
        self.assertEqual(products.vmp, {fx.AMLODIPINE_5MG_VMP, fx.AMLODIPINE_10MG_VMP, fx.NIFEDIPINE_10MG_VMP})
        self.assertEqual(products.amp, {fx.ISTIN_5MG_AMP, fx.ISTIN_10MG_AMP})

    def test_no_products(self):
        self.assertTrue(self.drugs.products_for_pattern("C08").is_empty())
        self.assertTrue(self.drugs.products_for_pattern("c08*").is_empty())

    def test_product_to_atc(self):
        self.assertEqual(self.drugs.product_to_atc(fx.NIFEDIPINE_10MG_VMP), "C08CA05")
        self.assertEqual(self.drugs.product_to_atc(fx.TRITACE_2_5MG_AMP), "C09AA05")
        self.assertEqual(self.drugs.product_to_atc(fx.RAMIPRIL_VTM), "C09AA05")

    def test_packs_and_unknown_have_no_atc(self):
        for concept_id in list(fx.PACKS) + [fx.MULTIPLE_SCLEROSIS, fx.ISTIN_TF]:
            with self.subTest(concept_id=concept_id):
                self.assertIsNone(self.drugs.product_to_atc(concept_id))

    def test_lowercase_types(self):
        products = fx.products_frame()
        products["type"] = products["type"].str.lower()
        drugs = SnapshotDrugProductService(products)
        self.assertEqual(drugs.product_to_atc(fx.ISTIN_5MG_AMP), "C08CA01")


class TestSnapshotLargeIdentifiers(unittest.TestCase):
    """dm+d identifiers are 17-18 digits, beyond what float64 holds exactly"""

    VMP = 37365811000001101
    AMP = 37366011000001106

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.directory = Path(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_parquet_with_nullable_identifiers(self):
        table = pa.table({
            "id": pa.array([self.VMP, self.AMP], type=pa.int64()),
            "type": pa.array(["VMP", "AMP"]),
            "atc": pa.array(["C08CA01", None]),
            "vmp_id": pa.array([None, self.VMP], type=pa.int64()),
        })
        pq.write_table(table, self.directory / "products.parquet")

        drugs = SnapshotDrugProductService.from_directory(self.directory)

        self.assertEqual(drugs.products_for_pattern("C08*").amp, {self.AMP})
        self.assertEqual(drugs.product_to_atc(self.AMP), "C08CA01")

    def test_parquet_terminology_tables(self):
        fx.concepts_frame().to_csv(self.directory / "concepts.csv", index=False)
        table = pa.table({
            "refset_id": pa.array([TRADE_FAMILY_REFSET, ICD10_MAP_REFSET], type=pa.int64()),
            "referenced_component_id": pa.array([fx.ISTIN_TF, fx.DIABETES_MELLITUS], type=pa.int64()),
            "map_target": pa.array([None, "E14.9"]),
        })
        pq.write_table(table, self.directory / "refset_items.parquet")

        graph = SnapshotTerminologyGraph.from_directory(self.directory)

        self.assertEqual(graph.refset_members(TRADE_FAMILY_REFSET), {fx.ISTIN_TF})
        self.assertEqual(graph.reverse_map_wildcard(ICD10_MAP_REFSET, MAP_TARGET, "E14.9"), {fx.DIABETES_MELLITUS})

    def test_float_identifiers_are_rejected(self):
        products = pd.DataFrame([
            {"id": self.VMP, "type": "VMP", "atc": "C08CA01"},
            {"id": self.AMP, "type": "AMP", "vmp_id": self.VMP},
        ])
        self.assertEqual(products["vmp_id"].dtype, "float64")
        with self.assertRaises(ValueError) as ctx:
            SnapshotDrugProductService(products)
        self.assertIn("vmp_id", str(ctx.exception))

    def test_nullable_integer_dtype(self):
        products = pd.DataFrame({
            "id": pd.array([self.VMP, self.AMP], dtype="Int64"),
            "type": ["VMP", "AMP"],
            "atc": ["C08CA01", None],
            "vmp_id": pd.array([None, self.VMP], dtype="Int64"),
        })
        drugs = SnapshotDrugProductService(products)
        self.assertEqual(drugs.product_to_atc(self.AMP), "C08CA01")


if __name__ == "__main__":
    unittest.main()
