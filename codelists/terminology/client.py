"""
Remote hermes and dm+d clients

HTTP implementations of the collaborator interfaces for servers exposing the
hermes SNOMED CT API and a dm+d product API.
Features:
- Retry with exponential backoff for rate limiting, server errors and timeouts
- JSON responses mapped onto the collaborator data types
- Errors raised as TerminologyServerError once retries are exhausted
"""

import json
import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Set
from urllib.parse import quote

import requests

from .. import patterns
from ..config import ServerConfig
from ..errors import TerminologyServerError
from .base import IS_A, DrugProductService, DrugProducts, RefsetItem, TerminologyGraph

logger = logging.getLogger(__name__)

# keeps generated ECL well inside common URL length limits
HISTORICAL_BATCH_SIZE = 100


class _JsonHttpClient:
    """Shared request handling for the hermes and dm+d clients"""

    def __init__(self, base_url: str, config: ServerConfig):
        if not base_url:
            raise ValueError("A server base URL is required")
        self.base_url = base_url.rstrip("/")
        self.config = config
        self._session = requests.Session()

    def _make_request(self,
                      endpoint: str,
                      params: Dict = None,
                      retry_count: int = 0,
                      allow_not_found: bool = False) -> Any:
        """
        Make a GET request with retry logic

        Returns:
            Decoded JSON body, or None for a 404 when allow_not_found is set
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        headers = {
            'Accept': 'application/json',
            'User-Agent': self.config.user_agent,
        }

        try:
            response = self._session.get(
                url,
                headers=headers,
                params=params,
                timeout=self.config.request_timeout
            )

            if response.status_code == 200:
                try:
                    return response.json()
                except json.JSONDecodeError as e:
                    raise TerminologyServerError("Invalid JSON response from server", status_code=200,
                                                 url=url, original_exception=e) from e

            elif response.status_code == 404 and allow_not_found:
                return None

            elif response.status_code == 429 or response.status_code >= 500:
                if retry_count < self.config.max_retries:
                    wait_time = 2 ** retry_count
                    logger.warning(f"HTTP {response.status_code} from {url}, retrying in {wait_time}s")
                    time.sleep(wait_time)
                    return self._make_request(endpoint, params, retry_count + 1, allow_not_found)

                raise TerminologyServerError(
                    f"Server error (HTTP {response.status_code}) after {retry_count} retries",
                    status_code=response.status_code, url=url)

            else:
                raise TerminologyServerError(
                    f"Request failed (HTTP {response.status_code}): {response.text[:200]}",
                    status_code=response.status_code, url=url)

        except requests.exceptions.Timeout as e:
            if retry_count < self.config.max_retries:
                logger.warning(f"Request timeout, retrying (attempt {retry_count + 1})")
                time.sleep(1)
                return self._make_request(endpoint, params, retry_count + 1, allow_not_found)
            raise TerminologyServerError(f"Request to {url} timed out", url=url, original_exception=e) from e

        except requests.exceptions.ConnectionError as e:
            raise TerminologyServerError(f"Cannot connect to {self.base_url}", url=url, original_exception=e) from e

    def close(self) -> None:
        self._session.close()


class HermesClient(_JsonHttpClient, TerminologyGraph):
    """
    hermes SNOMED CT server client

    Wildcard cross-map lookups, historical closure and hierarchy walks are
    expressed as ECL (member filters and the HISTORY supplement) and run
    through the expand endpoint.
    """

    def __init__(self, config: ServerConfig):
        super().__init__(config.hermes_url, config)
        logger.info(f"Initialised hermes client for {self.base_url}")

    def _expand(self, ecl: str, include_historic: bool) -> Set[int]:
        logger.debug(f"Expanding ECL '{ecl}' (historic={include_historic})")
        results = self._make_request("v1/snomed/expand", {
            'ecl': ecl,
            'include-historic': 'true' if include_historic else 'false',
        })
        return {int(result['conceptId']) for result in results or []}

    def expand_ecl(self, ecl: str, include_historic: bool = True) -> Set[int]:
        return self._expand(ecl, include_historic)

    def reverse_map_wildcard(self, refset_id: int, field_name: str, pattern: str) -> Set[int]:
        if patterns.WILDCARD in pattern:
            value = f'wild:"{pattern}"'
        else:
            value = f'"{pattern}"'
        return self._expand(f"^ {refset_id} {{{{ M {field_name} = {value} }}}}", include_historic=False)

    def with_historical(self, concept_ids: Iterable[int]) -> Set[int]:
        concept_ids = sorted(set(concept_ids))
        result = set(concept_ids)
        for start in range(0, len(concept_ids), HISTORICAL_BATCH_SIZE):
            batch = concept_ids[start:start + HISTORICAL_BATCH_SIZE]
            disjunction = " OR ".join(str(concept_id) for concept_id in batch)
            result |= self._expand(f"({disjunction}) {{{{ +HISTORY }}}}", include_historic=False)
        return result

    def component_refset_items(self, concept_id: int, refset_id: int) -> List[RefsetItem]:
        items = self._make_request(f"v1/snomed/concepts/{concept_id}/map/{refset_id}", allow_not_found=True)
        return [
            RefsetItem(
                refset_id=int(item.get('refsetId', refset_id)),
                referenced_component_id=int(item.get('referencedComponentId', concept_id)),
                map_target=item.get('mapTarget'),
                active=bool(item.get('active', True)),
            )
            for item in items or []
            if item.get('active', True)
        ]

    def all_parents(self, concept_id: int) -> Set[int]:
        return self._expand(f">> {concept_id}", include_historic=False)

    def child_relationships_of_type(self, concept_id: int, type_id: int) -> Set[int]:
        if type_id == IS_A:
            return self._expand(f"<! {concept_id}", include_historic=False)
        return self._expand(f"* : {type_id} = {concept_id}", include_historic=False)

    def intersect_ecl(self, concept_ids: Iterable[int], ecl: str, include_historic: bool = True) -> Set[int]:
        concept_ids = set(concept_ids)
        if not concept_ids:
            return set()
        return concept_ids & self._expand(ecl, include_historic)

    def preferred_terms(self, concept_ids: Iterable[int]) -> Dict[int, str]:
        terms = {}
        for concept_id in concept_ids:
            extended = self._make_request(f"v1/snomed/concepts/{concept_id}/extended", allow_not_found=True)
            term = ((extended or {}).get('preferredDescription') or {}).get('term')
            if term:
                terms[concept_id] = term
        return terms

    def release_metadata(self) -> Any:
        return self._make_request("v1/snomed/status", allow_not_found=True) or {}


class DmdClient(_JsonHttpClient, DrugProductService):
    """dm+d server client"""

    def __init__(self, config: ServerConfig):
        super().__init__(config.dmd_url, config)
        logger.info(f"Initialised dm+d client for {self.base_url}")

    def products_for_pattern(self, pattern: str) -> DrugProducts:
        regex = patterns.to_regex(pattern)
        products = self._make_request(f"v1/dmd/atc/{quote(regex, safe='')}/products", allow_not_found=True) or {}
        return DrugProducts(
            vtm={int(i) for i in products.get('VTM', [])},
            vmp={int(i) for i in products.get('VMP', [])},
            amp={int(i) for i in products.get('AMP', [])},
        )

    def product_to_atc(self, concept_id: int) -> Optional[str]:
        result = self._make_request(f"v1/dmd/product/{concept_id}/atc", allow_not_found=True)
        if not result:
            return None
        return result.get('atc') or None

    def release_metadata(self) -> Any:
        status = self._make_request("v1/dmd/status", allow_not_found=True) or {}
        return {'releaseDate': status.get('releaseDate')}
