"""
Forward evaluation of codelist specifications.

Every distinct leaf query in a specification tree, i.e. each
(code system, pattern) pair, is independent of the others, so they are run
together on a bounded worker pool. The boolean algebra is then applied in the
calling thread once all leaf results are in. Because union, intersection and
difference do not depend on completion order, the result is the same however
the queries are scheduled.
"""

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from functools import reduce
from typing import Any, Dict, List, Optional, Tuple

from .config import EvaluationConfig
from .errors import CodelistError, CollaboratorError, EvaluationCancelled
from .model import EMPTY, And, CodeSystem, ConceptSet, Difference, Expression, Leaf, Or, leaves
from .parser import parse
from .terminology.base import ICD10_MAP_REFSET, MAP_TARGET, DrugProductService, TerminologyGraph
from .translator import AtcTranslator

logger = logging.getLogger(__name__)

LeafQuery = Tuple[CodeSystem, str]

# how often to look at a cancel event while waiting on workers
CANCEL_POLL_INTERVAL = 0.05


class Evaluator:
    """Realizes specifications into concept sets against read-only collaborators"""

    def __init__(self,
                 terminology: TerminologyGraph,
                 drugs: DrugProductService,
                 config: Optional[EvaluationConfig] = None):
        self.terminology = terminology
        self.drugs = drugs
        self.config = config or EvaluationConfig()
        self.translator = AtcTranslator(terminology, drugs)

    def evaluate(self,
                 spec: Any,
                 cancel_event: Optional[threading.Event] = None,
                 timeout: Optional[float] = None) -> ConceptSet:
        """
        Realize a specification into a set of concept identifiers.

        Args:
            spec: JSON text, decoded specification data or an expression tree
            cancel_event: set from another thread to abandon the evaluation
            timeout: seconds before the evaluation is abandoned (defaults to config)

        Raises:
            ValidationError: the specification is malformed (raised before any query)
            CollaboratorError: a terminology or drug service query failed
            EvaluationCancelled: cancelled or timed out; no partial result is returned
        """
        expression = parse(spec)
        queries = list(dict.fromkeys(
            (leaf.system, pattern) for leaf in leaves(expression) for pattern in leaf.patterns
        ))
        started = time.monotonic()
        results = self._run(queries, cancel_event, self.config.timeout if timeout is None else timeout)
        concepts = self._combine(expression, results)
        logger.info(f"Evaluated {len(queries)} leaf queries into {len(concepts)} concepts "
                    f"in {time.monotonic() - started:.2f}s")
        return concepts

    def query(self, system: CodeSystem, pattern: str) -> ConceptSet:
        """Concepts selected by a single leaf pattern."""
        if system == CodeSystem.ECL:
            return frozenset(self.terminology.expand_ecl(pattern, self.config.include_historic))

        if system == CodeSystem.ICD10:
            mapped = self.terminology.reverse_map_wildcard(ICD10_MAP_REFSET, MAP_TARGET, pattern)
            return frozenset(self.terminology.with_historical(mapped)) if mapped else EMPTY

        if system == CodeSystem.ATC:
            ecl = self.translator.translate(pattern)
            if not ecl:
                logger.debug(f"No products for ATC pattern '{pattern}'")
                return EMPTY
            return frozenset(self.terminology.expand_ecl(ecl, self.config.include_historic))

        raise ValueError(f"Unsupported code system: {system}")

    def _query_wrapped(self, query: LeafQuery) -> ConceptSet:
        system, pattern = query
        logger.debug(f"Querying {system.value} '{pattern}'")
        try:
            return self.query(system, pattern)
        except Exception as e:
            leaf = f"{system.value}:{pattern}"
            logger.error(f"Query for {leaf} failed: {e}")
            raise CollaboratorError(f"Query for {leaf} failed: {e}", leaf=leaf, original_exception=e) from e

    def _run(self,
             queries: List[LeafQuery],
             cancel_event: Optional[threading.Event],
             timeout: Optional[float]) -> Dict[LeafQuery, ConceptSet]:
        deadline = time.monotonic() + timeout if timeout is not None else None
        results: Dict[LeafQuery, ConceptSet] = {}

        workers = min(self.config.max_workers or 1, len(queries))
        if not self.config.parallel or workers <= 1:
            for query in queries:
                _check_cancelled(cancel_event, deadline, timeout)
                results[query] = self._query_wrapped(query)
            return results

        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="codelists")
        future_to_query = {executor.submit(self._query_wrapped, query): query for query in queries}
        try:
            pending = set(future_to_query)
            while pending:
                _check_cancelled(cancel_event, deadline, timeout)
                done, pending = wait(pending, timeout=_poll_interval(cancel_event, deadline),
                                     return_when=FIRST_COMPLETED)
                for future in done:
                    results[future_to_query[future]] = future.result()
        except BaseException:
            for future in future_to_query:
                future.cancel()
            executor.shutdown(wait=False, cancel_futures=True)
            raise
        executor.shutdown(wait=False)
        return results

    def _combine(self, expression: Expression, results: Dict[LeafQuery, ConceptSet]) -> ConceptSet:
        if isinstance(expression, Leaf):
            return frozenset().union(*(results[(expression.system, p)] for p in expression.patterns))
        if isinstance(expression, And):
            return reduce(lambda a, b: a & b, (self._combine(c, results) for c in expression.children))
        if isinstance(expression, Or):
            return frozenset().union(*(self._combine(c, results) for c in expression.children))
        if isinstance(expression, Difference):
            return self._combine(expression.positive, results) - self._combine(expression.negative, results)
        raise CodelistError(f"Not a codelist expression: {expression!r}")


def _check_cancelled(cancel_event: Optional[threading.Event],
                     deadline: Optional[float],
                     timeout: Optional[float]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise EvaluationCancelled("Evaluation cancelled")
    if deadline is not None and time.monotonic() >= deadline:
        raise EvaluationCancelled(f"Evaluation timed out after {timeout}s")


def _poll_interval(cancel_event: Optional[threading.Event], deadline: Optional[float]) -> Optional[float]:
    intervals = []
    if cancel_event is not None:
        intervals.append(CANCEL_POLL_INTERVAL)
    if deadline is not None:
        intervals.append(max(deadline - time.monotonic(), 0.0))
    return min(intervals) if intervals else None


def realize_concepts(terminology: TerminologyGraph,
                     drugs: DrugProductService,
                     spec: Any,
                     config: Optional[EvaluationConfig] = None) -> ConceptSet:
    return Evaluator(terminology, drugs, config).evaluate(spec)
