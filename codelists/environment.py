"""
The evaluation environment: collaborator handles passed explicitly to every
entry point, opened and closed around a request, a test or a process.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, Optional, Set

from .classifier import ReverseClassifier
from .config import CodelistsConfig, EvaluationConfig, load_config
from .evaluator import Evaluator
from .model import ConceptSet, to_data
from .parser import parse
from .results import ExpansionResult
from .terminology.base import DrugProductService, TerminologyGraph

logger = logging.getLogger(__name__)


@dataclass
class Environment:
    """A terminology graph and drug product service, shared read-only"""
    terminology: TerminologyGraph
    drugs: DrugProductService
    config: EvaluationConfig = field(default_factory=EvaluationConfig)

    def __post_init__(self):
        self._evaluator = Evaluator(self.terminology, self.drugs, self.config)
        self._classifier = ReverseClassifier(self.terminology, self.drugs, self.config, self._evaluator)

    @property
    def evaluator(self) -> Evaluator:
        return self._evaluator

    @property
    def classifier(self) -> ReverseClassifier:
        return self._classifier

    def realize_concepts(self,
                         spec: Any,
                         cancel_event: Optional[threading.Event] = None,
                         timeout: Optional[float] = None) -> ConceptSet:
        return self._evaluator.evaluate(spec, cancel_event=cancel_event, timeout=timeout)

    def expand(self, spec: Any, timeout: Optional[float] = None) -> ExpansionResult:
        """Realize a specification and stamp it with the current releases."""
        expression = parse(spec)
        concept_ids = self._evaluator.evaluate(expression, timeout=timeout)
        return ExpansionResult(specification=to_data(expression), concept_ids=concept_ids,
                               release=self.status())

    def any_member(self, spec: Any, concept_ids: Iterable[int]) -> bool:
        return self._classifier.any_member(spec, concept_ids)

    def to_icd10(self, concept_ids: Iterable[int]) -> Set[str]:
        return self._classifier.to_icd10(concept_ids)

    def to_atc(self, concept_ids: Iterable[int]) -> Set[str]:
        return self._classifier.to_atc(concept_ids)

    def status(self) -> Dict[str, Any]:
        return {
            "hermes": self.terminology.release_metadata(),
            "dmd": self.drugs.release_metadata(),
        }

    def close(self) -> None:
        self.terminology.close()
        self.drugs.close()


def _open_terminology(config: CodelistsConfig) -> TerminologyGraph:
    if config.server.hermes_url:
        from .terminology.client import HermesClient
        return HermesClient(config.server)
    if config.snapshot.directory:
        from .terminology.snapshot import SnapshotTerminologyGraph
        return SnapshotTerminologyGraph.from_directory(config.snapshot.directory)
    raise ValueError("No terminology configured: set a hermes URL or a snapshot directory")


def _open_drugs(config: CodelistsConfig) -> DrugProductService:
    if config.server.dmd_url:
        from .terminology.client import DmdClient
        return DmdClient(config.server)
    if config.snapshot.directory:
        from .terminology.snapshot import SnapshotDrugProductService
        return SnapshotDrugProductService.from_directory(config.snapshot.directory)
    raise ValueError("No drug product service configured: set a dm+d URL or a snapshot directory")


@contextmanager
def open_environment(config: Optional[CodelistsConfig] = None) -> Iterator[Environment]:
    """
    Open collaborators from configuration and close them on exit.

    Remote servers take precedence over a local snapshot directory.
    """
    config = config or load_config()
    terminology = _open_terminology(config)
    try:
        drugs = _open_drugs(config)
    except BaseException:
        terminology.close()
        raise
    env = Environment(terminology=terminology, drugs=drugs, config=config.evaluation)
    logger.info(f"Opened codelists environment with {type(terminology).__name__} "
                f"and {type(drugs).__name__}")
    try:
        yield env
    finally:
        env.close()
        logger.info("Closed codelists environment")
