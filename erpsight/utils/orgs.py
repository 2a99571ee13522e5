"""
Organisation name matching and the process-wide organisation registry.

Transactional lists key organisations by sales-org name (영업조직) while the
profit reports use the org-team name (영업조직팀). The two rarely agree
character for character, so lookups try an exact match first and then
substring containment in either direction.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def normalize_org_name(name) -> str:
    return str(name or "").strip()


def fuzzy_match_org(mapping: dict[str, T], name: str) -> Optional[T]:
    """Exact key match, then the first key that contains or is contained by `name`."""
    trimmed = normalize_org_name(name)
    if not trimmed:
        return None
    if trimmed in mapping:
        return mapping[trimmed]
    for key, value in mapping.items():
        if key and (trimmed in key or key in trimmed):
            return value
    return None


def is_same_org(org_a: str, org_b: str) -> bool:
    a = normalize_org_name(org_a)
    b = normalize_org_name(org_b)
    if not a or not b:
        return False
    return a == b or a in b or b in a


def filter_by_org_fuzzy(records: Iterable, org_names, field: str = "org") -> list:
    """Like filter_by_org, but also keeps rows whose org name partially matches a selected name."""
    records = list(records)
    if not org_names:
        return records
    kept = []
    for r in records:
        val = normalize_org_name(getattr(r, field, ""))
        if not val:
            continue
        if val in org_names or any(val in org or org in val for org in org_names):
            kept.append(r)
    return kept


# ── Registry ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class OrgSnapshot:
    codes: frozenset = field(default_factory=frozenset)
    names: frozenset = field(default_factory=frozenset)

    @property
    def is_empty(self) -> bool:
        return not self.codes and not self.names


class OrgRegistry:
    """
    Organisation codes/names loaded from the organisation master file.

    Created empty, replaced wholesale on every master upload, and read only
    through snapshot() so a computation never sees a half-replaced set.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._snapshot = OrgSnapshot()

    def replace(self, codes: Iterable[str], names: Iterable[str]) -> OrgSnapshot:
        new = OrgSnapshot(
            codes=frozenset(c for c in (normalize_org_name(x) for x in codes) if c),
            names=frozenset(n for n in (normalize_org_name(x) for x in names) if n),
        )
        with self._lock:
            self._snapshot = new
        logger.info(f"Organisation registry replaced: {len(new.codes)} codes, {len(new.names)} names")
        return new

    def snapshot(self) -> OrgSnapshot:
        with self._lock:
            return self._snapshot

    def clear(self) -> None:
        with self._lock:
            self._snapshot = OrgSnapshot()


_REGISTRY = OrgRegistry()


def get_org_registry() -> OrgRegistry:
    return _REGISTRY


def set_org_names(codes: Iterable[str], names: Iterable[str]) -> OrgSnapshot:
    return _REGISTRY.replace(codes, names)


def org_names_snapshot() -> OrgSnapshot:
    return _REGISTRY.snapshot()
