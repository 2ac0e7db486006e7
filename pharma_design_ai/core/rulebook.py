"""
GMP regulatory rulebook: immutable rule definitions and check results.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple
import logging

from pharma_design_ai.config.config_loader import (
    get_jurisdiction_sources,
    get_regulatory_rules,
)
from pharma_design_ai.core.errors import InvalidInputError

logger = logging.getLogger(__name__)


class Severity(Enum):
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"


@dataclass(frozen=True)
class RegulatoryRule:
    """A single codified regulatory requirement."""

    id: str
    source: str
    section: str
    requirement: str
    applicable_areas: Tuple[str, ...]
    severity: Severity
    checkable: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegulatoryRule":
        return cls(
            id=data["id"],
            source=data["source"],
            section=data["section"],
            requirement=data["requirement"],
            applicable_areas=tuple(data.get("applicable_areas", ())),
            severity=Severity(data["severity"]),
            checkable=bool(data.get("checkable", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "section": self.section,
            "requirement": self.requirement,
            "applicable_areas": list(self.applicable_areas),
            "severity": self.severity.value,
            "checkable": self.checkable,
        }


@dataclass
class ComplianceCheckResult:
    """Verdict of one rule on one layout."""

    rule_id: str
    passed: bool
    severity: Severity
    message: str
    affected_room_ids: List[str] = field(default_factory=list)
    recommendation: Optional[str] = None
    auto_fix_available: bool = False
    auto_fix: Optional[Dict[str, str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "passed": self.passed,
            "severity": self.severity.value,
            "message": self.message,
            "affected_room_ids": list(self.affected_room_ids),
            "recommendation": self.recommendation,
            "auto_fix_available": self.auto_fix_available,
            "auto_fix": self.auto_fix,
        }


class Rulebook:
    """
    Read-only collection of regulatory rules grouped by jurisdiction.
    """

    def __init__(
        self,
        rules: Iterable[RegulatoryRule],
        jurisdictions: Dict[str, List[str]],
    ):
        """
        Args:
            rules: Rule definitions
            jurisdictions: Jurisdiction code -> rule sources it covers
        """
        self._rules: Tuple[RegulatoryRule, ...] = tuple(rules)
        self._by_id = {rule.id: rule for rule in self._rules}
        self._jurisdictions = {code: tuple(sources) for code, sources in jurisdictions.items()}

        if len(self._by_id) != len(self._rules):
            raise ValueError("Duplicate rule ids in rulebook")

    @classmethod
    def from_config(cls) -> "Rulebook":
        """Load the rulebook shipped in the data directory."""
        rules = [RegulatoryRule.from_dict(r) for r in get_regulatory_rules()]
        return cls(rules, get_jurisdiction_sources())

    @property
    def rules(self) -> Tuple[RegulatoryRule, ...]:
        return self._rules

    @property
    def jurisdictions(self) -> List[str]:
        return list(self._jurisdictions)

    def get(self, rule_id: str) -> Optional[RegulatoryRule]:
        return self._by_id.get(rule_id)

    def has_jurisdiction(self, jurisdiction: str) -> bool:
        return jurisdiction in self._jurisdictions

    def for_jurisdiction(self, jurisdiction: str) -> List[RegulatoryRule]:
        """
        Rules whose source belongs to the jurisdiction.

        Raises:
            InvalidInputError: If the jurisdiction is unknown
        """
        if jurisdiction not in self._jurisdictions:
            raise InvalidInputError(
                f"Unknown regulatory jurisdiction: {jurisdiction}",
                details={"known": self.jurisdictions},
            )
        sources = self._jurisdictions[jurisdiction]
        return [rule for rule in self._rules if rule.source in sources]

    def checkable_for(self, jurisdiction: str) -> List[RegulatoryRule]:
        """Checkable rules of the jurisdiction, in rulebook order."""
        return [rule for rule in self.for_jurisdiction(jurisdiction) if rule.checkable]

    def for_category(self, category: str) -> List[RegulatoryRule]:
        """Rules that list the room category among their applicable areas."""
        return [rule for rule in self._rules if category in rule.applicable_areas]

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self):
        return iter(self._rules)
