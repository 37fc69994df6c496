"""
Expansion results stamped for reproducibility, with the {id, term} output mode.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import pandas as pd

from .model import ConceptSet
from .terminology.base import TerminologyGraph


@dataclass
class ExpansionResult:
    """A realized codelist with the releases it was computed against"""
    specification: Any
    concept_ids: ConceptSet
    release: Dict[str, Any] = field(default_factory=dict)
    expanded_at: datetime = field(default_factory=datetime.now)

    def __len__(self) -> int:
        return len(self.concept_ids)

    def ids(self) -> List[int]:
        """Identifiers in ascending order, for stable output."""
        return sorted(self.concept_ids)

    def to_rows(self, terminology: TerminologyGraph) -> List[Dict[str, Any]]:
        """[{id, term}] pairs using preferred terms; term is None when unknown."""
        ids = self.ids()
        terms = terminology.preferred_terms(ids)
        return [{"id": concept_id, "term": terms.get(concept_id)} for concept_id in ids]

    def to_dataframe(self, terminology: Optional[TerminologyGraph] = None) -> pd.DataFrame:
        if terminology is None:
            return pd.DataFrame({"id": pd.Series(self.ids(), dtype="int64")})
        rows = self.to_rows(terminology)
        return pd.DataFrame(rows, columns=["id", "term"]).astype({"id": "int64"})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "specification": self.specification,
            "release": self.release,
            "expanded_at": self.expanded_at.isoformat(),
            "concept_ids": self.ids(),
        }
