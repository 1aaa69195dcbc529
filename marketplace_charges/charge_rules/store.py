from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Protocol, Sequence, Tuple
from urllib.parse import quote

import httpx

from ..config import (
    RULE_STORE_CONNECT_TIMEOUT_SECONDS,
    RULE_STORE_TIMEOUT_SECONDS,
    RULE_STORE_TOKEN,
    RULES_DIR,
)
from .errors import InvalidRuleSetError, MalformedRuleStoreData, RuleStoreUnavailable
from .loader import load_rule_sets, parse_rule_set
from .types import ChargeRuleSet

_LOGGER = logging.getLogger(__name__)


class RuleStore(Protocol):
    """Read side of the charge-rule persistence (admin CRUD owns the write side)."""

    def list_rule_sets(self) -> List[ChargeRuleSet]: ...

    def get_rule_set_by_category(self, category_id: str) -> Optional[ChargeRuleSet]: ...

    def get_default_rule_set(self) -> Optional[ChargeRuleSet]: ...


def _find_category(rule_sets: Sequence[ChargeRuleSet], category_id: str) -> Optional[ChargeRuleSet]:
    for rs in rule_sets:
        if rs.is_active and not rs.is_default and rs.category_id == category_id:
            return rs
    return None


def _find_default(rule_sets: Sequence[ChargeRuleSet]) -> Optional[ChargeRuleSet]:
    for rs in rule_sets:
        if rs.is_active and rs.is_default:
            return rs
    return None


# ---------------------------------------------------------------------------
# In-memory snapshot
# ---------------------------------------------------------------------------


@dataclass
class InMemoryRuleStore:
    """Lookup table over an already-parsed snapshot of rule sets."""

    rule_sets: List[ChargeRuleSet] = field(default_factory=list)

    def add(self, rule_set: ChargeRuleSet) -> None:
        self.rule_sets.append(rule_set)

    def list_rule_sets(self) -> List[ChargeRuleSet]:
        return list(self.rule_sets)

    def get_rule_set_by_category(self, category_id: str) -> Optional[ChargeRuleSet]:
        return _find_category(self.rule_sets, category_id)

    def get_default_rule_set(self) -> Optional[ChargeRuleSet]:
        return _find_default(self.rule_sets)


# ---------------------------------------------------------------------------
# Directory of YAML/JSON documents
# ---------------------------------------------------------------------------


class FileRuleStore:
    """Rule sets read from a definitions directory.

    The directory is parsed on first use and then served as an immutable
    snapshot; ``reload()`` swaps in a fresh one.
    """

    def __init__(self, rules_dir: Path | str | None = None) -> None:
        self.rules_dir = Path(rules_dir) if rules_dir else RULES_DIR
        self._snapshot: Optional[Tuple[ChargeRuleSet, ...]] = None

    def _load(self) -> Tuple[ChargeRuleSet, ...]:
        try:
            loaded = load_rule_sets(self.rules_dir)
        except InvalidRuleSetError as ex:
            raise MalformedRuleStoreData(str(ex), source=str(self.rules_dir)) from ex
        except OSError as ex:
            raise RuleStoreUnavailable(
                f"Cannot read rule definitions from {self.rules_dir}: {ex}", source=str(self.rules_dir)
            ) from ex
        _LOGGER.info("Loaded %d rule sets from %s", len(loaded), self.rules_dir)
        return tuple(loaded)

    def _rule_sets(self) -> Tuple[ChargeRuleSet, ...]:
        if self._snapshot is None:
            self._snapshot = self._load()
        return self._snapshot

    def reload(self) -> None:
        self._snapshot = self._load()

    def list_rule_sets(self) -> List[ChargeRuleSet]:
        return list(self._rule_sets())

    def get_rule_set_by_category(self, category_id: str) -> Optional[ChargeRuleSet]:
        return _find_category(self._rule_sets(), category_id)

    def get_default_rule_set(self) -> Optional[ChargeRuleSet]:
        return _find_default(self._rule_sets())


# ---------------------------------------------------------------------------
# Admin service over HTTP
# ---------------------------------------------------------------------------


class HttpRuleStore:
    """Reads charge documents from the admin API.

    Endpoints (relative to ``base_url``):
      GET /charges                    -> list of documents (or {"data": [...]})
      GET /charges/category/{id}      -> one document, 404 when not configured
      GET /charges/default            -> one document, 404 when not configured

    No retries: a failed lookup surfaces as ``RuleStoreUnavailable`` and the
    caller decides whether to retry the whole request.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: Optional[str] = None,
        timeout: Optional[httpx.Timeout] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        if not base_url:
            raise ValueError("HttpRuleStore requires a base_url")
        self.base_url = base_url.rstrip("/")
        self.token = RULE_STORE_TOKEN if token is None else token
        self.timeout = timeout or httpx.Timeout(
            RULE_STORE_TIMEOUT_SECONDS, connect=RULE_STORE_CONNECT_TIMEOUT_SECONDS
        )
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.Client(timeout=self.timeout, headers=headers)
        return self._client

    def close(self) -> None:
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    def __enter__(self) -> "HttpRuleStore":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def _get_json(self, path: str, *, allow_missing: bool = False) -> Any:
        url = f"{self.base_url}{path}"
        try:
            resp = self._get_client().get(url)
            if allow_missing and resp.status_code == 404:
                return None
            resp.raise_for_status()
        except httpx.HTTPError as ex:
            raise RuleStoreUnavailable(f"Rule store request failed: {ex}", source=url) from ex
        try:
            return resp.json()
        except (json.JSONDecodeError, ValueError) as ex:
            raise MalformedRuleStoreData(f"Rule store returned non-JSON body for {url}", source=url) from ex

    @staticmethod
    def _unwrap(payload: Any) -> Any:
        # The admin API wraps payloads as {"success": true, "data": ...}.
        if isinstance(payload, dict) and "data" in payload and "charges" not in payload:
            return payload["data"]
        return payload

    def _parse(self, payload: Any, source: str) -> Optional[ChargeRuleSet]:
        doc = self._unwrap(payload)
        if doc is None:
            return None
        try:
            return parse_rule_set(doc, source=source)
        except InvalidRuleSetError as ex:
            raise MalformedRuleStoreData(str(ex), source=source) from ex

    def list_rule_sets(self) -> List[ChargeRuleSet]:
        docs = self._unwrap(self._get_json("/charges"))
        if not isinstance(docs, list):
            raise MalformedRuleStoreData("Expected a list of charge documents", source=f"{self.base_url}/charges")
        out: List[ChargeRuleSet] = []
        for i, doc in enumerate(docs):
            rs = self._parse(doc, f"{self.base_url}/charges[{i}]")
            if rs is not None:
                out.append(rs)
        return out

    def get_rule_set_by_category(self, category_id: str) -> Optional[ChargeRuleSet]:
        path = f"/charges/category/{quote(category_id, safe='')}"
        rs = self._parse(self._get_json(path, allow_missing=True), f"{self.base_url}{path}")
        if rs is None or not rs.is_active or rs.is_default:
            return None
        return rs

    def get_default_rule_set(self) -> Optional[ChargeRuleSet]:
        path = "/charges/default"
        rs = self._parse(self._get_json(path, allow_missing=True), f"{self.base_url}{path}")
        if rs is None or not rs.is_active or not rs.is_default:
            return None
        return rs


def build_rule_store(
    *, rules_dir: Path | str | None = None, store_url: Optional[str] = None
) -> RuleStore:
    """HTTP store when a URL is given, otherwise the definitions directory."""
    if store_url:
        return HttpRuleStore(store_url)
    return FileRuleStore(rules_dir)


__all__ = [
    "RuleStore",
    "InMemoryRuleStore",
    "FileRuleStore",
    "HttpRuleStore",
    "build_rule_store",
]
