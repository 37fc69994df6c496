"""
A small terminology snapshot shared by the tests.

Clinical: multiple sclerosis (24700007) and its subtypes, an inactive
duplicate (155023009) recorded as SAME AS the active concept, and ICD-10
cross maps for G35, G70.0 and E14.9.

Drugs (UK product model): VTM <- VMP <- AMP, AMP also IS-A its trade family.
Packs (VMPP / AMPP) sit in their own hierarchy. An inactive amlodipine VMP
(317957003) was REPLACED BY 319283006.
"""

import pandas as pd

from codelists.config import EvaluationConfig
from codelists.environment import Environment
from codelists.terminology.base import ICD10_MAP_REFSET, IS_A, TRADE_FAMILY_REFSET
from codelists.terminology.snapshot import SnapshotDrugProductService, SnapshotTerminologyGraph

FINDING_SITE = 363698007
SAME_AS_REFSET = 900000000000527005
REPLACED_BY_REFSET = 900000000000526001

ROOT = 138875005
CLINICAL_FINDING = 404684003
DEMYELINATING_DISEASE = 6118003
MULTIPLE_SCLEROSIS = 24700007
RELAPSING_REMITTING_MS = 426373005
PRIMARY_PROGRESSIVE_MS = 425500002
MS_INACTIVE = 155023009
MYASTHENIA_GRAVIS = 91637004
DIABETES_MELLITUS = 73211009
CNS_STRUCTURE = 21483005

PRODUCT = 373873005
AMLODIPINE_VTM = 108537001
AMLODIPINE_5MG_VMP = 319283006
AMLODIPINE_10MG_VMP = 319284000
AMLODIPINE_5MG_VMP_INACTIVE = 317957003
ISTIN_TF = 9191801000001103
ISTIN_5MG_AMP = 7304611000001104
ISTIN_10MG_AMP = 10441211000001106
NIFEDIPINE_VTM = 108538006
NIFEDIPINE_10MG_VMP = 317092006
RAMIPRIL_VTM = 386872004
RAMIPRIL_2_5MG_VMP = 408050008
TRITACE_TF = 9353701000001108
TRITACE_2_5MG_AMP = 21912111000001107

PACK_ROOT = 8653601000001108
AMLODIPINE_5MG_VMPP = 1028011000001107
ISTIN_5MG_AMPP = 1028211000001103

CONCEPTS = [
    (ROOT, True, "SNOMED CT Concept"),
    (CLINICAL_FINDING, True, "Clinical finding"),
    (DEMYELINATING_DISEASE, True, "Demyelinating disease of central nervous system"),
    (MULTIPLE_SCLEROSIS, True, "Multiple sclerosis"),
    (RELAPSING_REMITTING_MS, True, "Relapsing remitting multiple sclerosis"),
    (PRIMARY_PROGRESSIVE_MS, True, "Primary progressive multiple sclerosis"),
    (MS_INACTIVE, False, "Multiple sclerosis"),
    (MYASTHENIA_GRAVIS, True, "Myasthenia gravis"),
    (DIABETES_MELLITUS, True, "Diabetes mellitus"),
    (CNS_STRUCTURE, True, "Structure of central nervous system"),
    (PRODUCT, True, "Pharmaceutical / biologic product"),
    (AMLODIPINE_VTM, True, "Amlodipine"),
    (AMLODIPINE_5MG_VMP, True, "Amlodipine 5mg tablets"),
    (AMLODIPINE_10MG_VMP, True, "Amlodipine 10mg tablets"),
    (AMLODIPINE_5MG_VMP_INACTIVE, False, "Amlodipine 5mg tablets"),
    (ISTIN_TF, True, "Istin tablets"),
    (ISTIN_5MG_AMP, True, "Istin 5mg tablets (Pfizer Ltd)"),
    (ISTIN_10MG_AMP, True, "Istin 10mg tablets (Pfizer Ltd)"),
    (NIFEDIPINE_VTM, True, "Nifedipine"),
    (NIFEDIPINE_10MG_VMP, True, "Nifedipine 10mg capsules"),
    (RAMIPRIL_VTM, True, "Ramipril"),
    (RAMIPRIL_2_5MG_VMP, True, "Ramipril 2.5mg capsules"),
    (TRITACE_TF, True, "Tritace capsules"),
    (TRITACE_2_5MG_AMP, True, "Tritace 2.5mg capsules (Sanofi)"),
    (PACK_ROOT, True, "Virtual medicinal product pack"),
    (AMLODIPINE_5MG_VMPP, True, "Amlodipine 5mg tablets 28 tablet"),
    (ISTIN_5MG_AMPP, True, "Istin 5mg tablets (Pfizer Ltd) 28 tablet"),
]

IS_A_EDGES = [
    (CLINICAL_FINDING, ROOT),
    (DEMYELINATING_DISEASE, CLINICAL_FINDING),
    (MULTIPLE_SCLEROSIS, DEMYELINATING_DISEASE),
    (RELAPSING_REMITTING_MS, MULTIPLE_SCLEROSIS),
    (PRIMARY_PROGRESSIVE_MS, MULTIPLE_SCLEROSIS),
    (MYASTHENIA_GRAVIS, CLINICAL_FINDING),
    (DIABETES_MELLITUS, CLINICAL_FINDING),
    (CNS_STRUCTURE, ROOT),
    (PRODUCT, ROOT),
    (AMLODIPINE_VTM, PRODUCT),
    (AMLODIPINE_5MG_VMP, AMLODIPINE_VTM),
    (AMLODIPINE_10MG_VMP, AMLODIPINE_VTM),
    (ISTIN_TF, PRODUCT),
    (ISTIN_5MG_AMP, AMLODIPINE_5MG_VMP),
    (ISTIN_5MG_AMP, ISTIN_TF),
    (ISTIN_10MG_AMP, AMLODIPINE_10MG_VMP),
    (ISTIN_10MG_AMP, ISTIN_TF),
    (NIFEDIPINE_VTM, PRODUCT),
    (NIFEDIPINE_10MG_VMP, NIFEDIPINE_VTM),
    (RAMIPRIL_VTM, PRODUCT),
    (RAMIPRIL_2_5MG_VMP, RAMIPRIL_VTM),
    (TRITACE_TF, PRODUCT),
    (TRITACE_2_5MG_AMP, RAMIPRIL_2_5MG_VMP),
    (TRITACE_2_5MG_AMP, TRITACE_TF),
    (PACK_ROOT, ROOT),
    (AMLODIPINE_5MG_VMPP, PACK_ROOT),
    (ISTIN_5MG_AMPP, AMLODIPINE_5MG_VMPP),
]

ICD10_MAPS = [
    (MULTIPLE_SCLEROSIS, "G35"),
    (RELAPSING_REMITTING_MS, "G35"),
    (PRIMARY_PROGRESSIVE_MS, "G35"),
    (MYASTHENIA_GRAVIS, "G70.0"),
    (DIABETES_MELLITUS, "E14.9"),
]

PRODUCTS = [
    {"id": AMLODIPINE_VTM, "type": "VTM"},
    {"id": AMLODIPINE_5MG_VMP, "type": "VMP", "atc": "C08CA01", "vtm_id": AMLODIPINE_VTM},
    {"id": AMLODIPINE_10MG_VMP, "type": "VMP", "atc": "C08CA01", "vtm_id": AMLODIPINE_VTM},
    {"id": ISTIN_5MG_AMP, "type": "AMP", "vmp_id": AMLODIPINE_5MG_VMP},
    {"id": ISTIN_10MG_AMP, "type": "AMP", "vmp_id": AMLODIPINE_10MG_VMP},
    {"id": NIFEDIPINE_VTM, "type": "VTM"},
    {"id": NIFEDIPINE_10MG_VMP, "type": "VMP", "atc": "C08CA05", "vtm_id": NIFEDIPINE_VTM},
    {"id": RAMIPRIL_VTM, "type": "VTM"},
    {"id": RAMIPRIL_2_5MG_VMP, "type": "VMP", "atc": "C09AA05", "vtm_id": RAMIPRIL_VTM},
    {"id": TRITACE_2_5MG_AMP, "type": "AMP", "vmp_id": RAMIPRIL_2_5MG_VMP},
    {"id": AMLODIPINE_5MG_VMPP, "type": "VMPP", "vmp_id": AMLODIPINE_5MG_VMP},
    {"id": ISTIN_5MG_AMPP, "type": "AMPP", "amp_id": ISTIN_5MG_AMP},
]

PACKS = {AMLODIPINE_5MG_VMPP, ISTIN_5MG_AMPP}

METADATA = {
    "hermes": {"release": "SNOMED CT UK Clinical Edition 2022-05-25"},
    "dmd": {"releaseDate": "2022-05-09"},
}


def concepts_frame() -> pd.DataFrame:
    return pd.DataFrame(CONCEPTS, columns=["id", "active", "term"], dtype=object)


def relationships_frame() -> pd.DataFrame:
    rows = [(source, destination, IS_A) for source, destination in IS_A_EDGES]
    rows.append((MULTIPLE_SCLEROSIS, CNS_STRUCTURE, FINDING_SITE))
    return pd.DataFrame(rows, columns=["source_id", "destination_id", "type_id"], dtype=object)


def refset_items_frame() -> pd.DataFrame:
    rows = [(ICD10_MAP_REFSET, concept_id, code) for concept_id, code in ICD10_MAPS]
    rows += [(TRADE_FAMILY_REFSET, ISTIN_TF, None), (TRADE_FAMILY_REFSET, TRITACE_TF, None)]
    return pd.DataFrame(rows, columns=["refset_id", "referenced_component_id", "map_target"], dtype=object)


def associations_frame() -> pd.DataFrame:
    rows = [
        (SAME_AS_REFSET, MS_INACTIVE, MULTIPLE_SCLEROSIS),
        (REPLACED_BY_REFSET, AMLODIPINE_5MG_VMP_INACTIVE, AMLODIPINE_5MG_VMP),
    ]
    return pd.DataFrame(rows, columns=["refset_id", "referenced_component_id", "target_component_id"],
                        dtype=object)


def products_frame() -> pd.DataFrame:
    return pd.DataFrame(PRODUCTS, columns=["id", "type", "atc", "vtm_id", "vmp_id", "amp_id"], dtype=object)


def build_terminology() -> SnapshotTerminologyGraph:
    return SnapshotTerminologyGraph(
        concepts=concepts_frame(),
        relationships=relationships_frame(),
        refset_items=refset_items_frame(),
        associations=associations_frame(),
        metadata=METADATA["hermes"],
    )


def build_drugs() -> SnapshotDrugProductService:
    return SnapshotDrugProductService(products_frame(), metadata=METADATA["dmd"])


def build_environment(**config) -> Environment:
    return Environment(build_terminology(), build_drugs(), EvaluationConfig(**config))


ALL_CONCEPT_IDS = sorted({row[0] for row in CONCEPTS})
