"""
Rule-based GMP compliance engine.

Filters the rulebook to the checkable rules of a jurisdiction, runs the
evaluator registered for each and aggregates the verdicts into a scored
report. A failing rule is a normal report outcome and never raises.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging

from pharma_design_ai.core.errors import LayoutGenerationError
from pharma_design_ai.core.rule_checks import RULE_CHECKS, RuleCheck
from pharma_design_ai.core.rulebook import (
    ComplianceCheckResult,
    RegulatoryRule,
    Rulebook,
    Severity,
)
from pharma_design_ai.models.layout import Layout, RelationshipIndex

logger = logging.getLogger(__name__)


@dataclass
class ComplianceReport:
    """Aggregated compliance verdicts for one layout."""

    jurisdiction: str
    overall_score: int = 100
    total_checks: int = 0
    passed: int = 0
    failed: int = 0
    warnings: int = 0
    results: List[ComplianceCheckResult] = field(default_factory=list)
    summary: str = ""

    @property
    def failures(self) -> List[ComplianceCheckResult]:
        return [r for r in self.results if not r.passed]

    def failures_by_severity(self, severity: Severity) -> List[ComplianceCheckResult]:
        return [r for r in self.results if not r.passed and r.severity == severity]

    @property
    def critical_failures(self) -> List[ComplianceCheckResult]:
        return self.failures_by_severity(Severity.CRITICAL)

    def get_result(self, rule_id: str) -> Optional[ComplianceCheckResult]:
        for result in self.results:
            if result.rule_id == rule_id:
                return result
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "jurisdiction": self.jurisdiction,
            "overall_score": self.overall_score,
            "total_checks": self.total_checks,
            "passed": self.passed,
            "failed": self.failed,
            "warnings": self.warnings,
            "results": [r.to_dict() for r in self.results],
            "summary": self.summary,
        }


class ComplianceEngine:
    """
    Evaluates layouts against the checkable rules of a jurisdiction.
    """

    def __init__(
        self,
        rulebook: Optional[Rulebook] = None,
        checks: Optional[Dict[str, RuleCheck]] = None,
        max_workers: Optional[int] = None,
    ):
        """
        Initialize compliance engine.

        Args:
            rulebook: Rulebook to use (loaded from the data directory when omitted)
            checks: Extra or replacement evaluators keyed by rule id
            max_workers: Evaluate rules on a thread pool of this size;
                sequential when None or 1

        Raises:
            ValueError: If a checkable rule has no evaluator
        """
        self.rulebook = rulebook or Rulebook.from_config()
        self._checks: Dict[str, RuleCheck] = dict(RULE_CHECKS)
        self._checks.update(checks or {})
        self.max_workers = max_workers

        missing = [rule.id for rule in self.rulebook if rule.checkable and rule.id not in self._checks]
        if missing:
            raise ValueError(f"Checkable rules without an evaluator: {', '.join(missing)}")

    def register_check(self, rule_id: str, check: RuleCheck) -> None:
        """Register or replace the evaluator of a rule."""
        self._checks[rule_id] = check

    def get_check(self, rule_id: str) -> Optional[RuleCheck]:
        return self._checks.get(rule_id)

    def check(self, layout: Layout, jurisdiction: str = "FDA") -> ComplianceReport:
        """
        Evaluate a layout.

        Args:
            layout: Layout whose rooms and relationships are inspected (read-only)
            jurisdiction: Regulatory zone code (FDA, EMA, ICH, WHO, PIC/S)

        Returns:
            ComplianceReport with one result per checkable rule

        Raises:
            InvalidInputError: If the jurisdiction is unknown
        """
        rules = self.rulebook.checkable_for(jurisdiction)
        index = layout.index()
        logger.debug(f"Evaluating {len(rules)} {jurisdiction} rules on {layout.name}")

        def _evaluate(rule: RegulatoryRule) -> ComplianceCheckResult:
            return self._run_check(rule, layout, index)

        if self.max_workers and self.max_workers > 1 and len(rules) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                results = list(pool.map(_evaluate, rules))
        else:
            results = [_evaluate(rule) for rule in rules]

        report = self._aggregate(jurisdiction, results)
        logger.info(
            f"Compliance evaluation complete: {report.passed}/{report.total_checks} passed, "
            f"score={report.overall_score}"
        )
        return report

    def _run_check(
        self, rule: RegulatoryRule, layout: Layout, index: RelationshipIndex
    ) -> ComplianceCheckResult:
        check = self._checks[rule.id]
        try:
            return check(rule, layout, index)
        except Exception as e:
            raise LayoutGenerationError(
                f"Evaluator for rule {rule.id} failed: {e}", rule_id=rule.id
            ) from e

    def _aggregate(
        self, jurisdiction: str, results: List[ComplianceCheckResult]
    ) -> ComplianceReport:
        total = len(results)
        passed = sum(1 for r in results if r.passed)
        failed = total - passed

        report = ComplianceReport(
            jurisdiction=jurisdiction,
            overall_score=round(100 * passed / total) if total else 100,
            total_checks=total,
            passed=passed,
            failed=failed,
            warnings=sum(1 for r in results if not r.passed and r.severity != Severity.CRITICAL),
            results=results,
        )
        report.summary = self.summarize(report)
        return report

    @staticmethod
    def summarize(report: ComplianceReport) -> str:
        """Severity-weighted summary; critical failures dominate the message."""
        critical = len(report.failures_by_severity(Severity.CRITICAL))
        major = len(report.failures_by_severity(Severity.MAJOR))
        minor = len(report.failures_by_severity(Severity.MINOR))

        if critical:
            return (
                f"Critical compliance issues detected ({critical} critical, {major} major, "
                f"{minor} minor). Immediate action required."
            )
        if major:
            return (
                f"Major compliance gaps found ({major} major, {minor} minor). "
                "Address before finalization."
            )
        if minor:
            return (
                f"Minor improvements recommended ({minor} minor issues). "
                "Overall layout is compliant."
            )
        return "Excellent! All regulatory checks passed. Layout is fully compliant."
