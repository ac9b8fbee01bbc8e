"""Condition mapping QA.

Validates approved matches and ecosystems against the latest market
snapshot:
- Stale markets (a referenced market is absent from the snapshot)
- Stale conditions (a mapped condition no longer exists on its market)
- Low-confidence mappings
- Matches/ecosystems with no ``same`` mapping (nothing to price)

Stale links are not errors for the aggregator, which simply drops the
affected opportunities; the report exists so callers can surface them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Sequence

from arb_matcher.models import Ecosystem, Market, Match, RelationshipType


# ---------------------------------------------------------------------------
# Issue severity
# ---------------------------------------------------------------------------


class IssueSeverity(Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class MappingIssue:
    owner_id: str
    check_name: str
    severity: IssueSeverity
    message: str


# ---------------------------------------------------------------------------
# QA config
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MappingQAConfig:
    """Configuration for mapping QA checks.

    Parameters
    ----------
    check_stale_links:
        Flag markets/conditions missing from the snapshot. Default True.
    check_confidence:
        Flag mappings below ``min_confidence``. Default True.
    check_priceable:
        Note matches with no ``same`` mapping. Default True.
    min_confidence:
        Confidence floor for ``check_confidence``. Default 0.70.
    """

    check_stale_links: bool = True
    check_confidence: bool = True
    check_priceable: bool = True
    min_confidence: float = 0.70


# ---------------------------------------------------------------------------
# QA report
# ---------------------------------------------------------------------------


@dataclass
class MappingQAReport:
    total_matches: int = 0
    total_ecosystems: int = 0
    total_issues: int = 0
    issues: list[MappingIssue] = field(default_factory=list)
    issues_by_severity: Dict[str, int] = field(default_factory=dict)
    issues_by_check: Dict[str, int] = field(default_factory=dict)

    @property
    def has_errors(self) -> bool:
        return self.issues_by_severity.get("error", 0) > 0

    @property
    def has_warnings(self) -> bool:
        return self.issues_by_severity.get("warning", 0) > 0

    @property
    def summary(self) -> str:
        scope = f"{self.total_matches} matches, {self.total_ecosystems} ecosystems"
        if self.total_issues == 0:
            return f"OK: {scope}, no issues"
        parts = []
        for sev in ("error", "warning", "info"):
            count = self.issues_by_severity.get(sev, 0)
            if count > 0:
                parts.append(f"{count} {sev}(s)")
        return f"{scope}, {self.total_issues} issues: {', '.join(parts)}"


# ---------------------------------------------------------------------------
# QA pipeline
# ---------------------------------------------------------------------------


class MappingQAPipeline:
    """Runs quality checks on approved condition mappings.

    Usage::

        pipeline = MappingQAPipeline(config)
        report = pipeline.run(matches, ecosystems, markets_by_key)
        if report.has_warnings:
            ...
    """

    def __init__(self, config: MappingQAConfig | None = None) -> None:
        self._config = config or MappingQAConfig()

    @property
    def config(self) -> MappingQAConfig:
        return self._config

    def run(
        self,
        matches: Sequence[Match],
        ecosystems: Sequence[Ecosystem],
        markets: Mapping[str, Market],
    ) -> MappingQAReport:
        report = MappingQAReport(total_matches=len(matches), total_ecosystems=len(ecosystems))
        cfg = self._config

        for match in matches:
            if cfg.check_stale_links:
                self._check_match_links(match, markets, report)
            if cfg.check_confidence:
                for mapping in match.condition_mappings:
                    if mapping.confidence < cfg.min_confidence:
                        self._add_issue(
                            report, match.match_id, "low_confidence",
                            IssueSeverity.WARNING,
                            f"Mapping '{mapping.key}' confidence {mapping.confidence:.3f} "
                            f"below {cfg.min_confidence:.3f}",
                        )
            if cfg.check_priceable and not any(
                m.relationship is RelationshipType.SAME for m in match.condition_mappings
            ):
                self._add_issue(
                    report, match.match_id, "no_same_mapping",
                    IssueSeverity.INFO,
                    f"Match '{match.match_id}' has no 'same' condition mapping",
                )

        for ecosystem in ecosystems:
            if cfg.check_stale_links:
                self._check_ecosystem_links(ecosystem, markets, report)
            if cfg.check_confidence:
                for mapping in ecosystem.condition_mappings:
                    if mapping.confidence < cfg.min_confidence:
                        self._add_issue(
                            report, ecosystem.ecosystem_id, "low_confidence",
                            IssueSeverity.WARNING,
                            f"Mapping '{mapping.key}' confidence {mapping.confidence:.3f} "
                            f"below {cfg.min_confidence:.3f}",
                        )
            if cfg.check_priceable and not any(
                m.relationship is RelationshipType.SAME for m in ecosystem.condition_mappings
            ):
                self._add_issue(
                    report, ecosystem.ecosystem_id, "no_same_mapping",
                    IssueSeverity.INFO,
                    f"Ecosystem '{ecosystem.ecosystem_id}' has no 'same' condition mapping",
                )

        return report

    def _add_issue(
        self,
        report: MappingQAReport,
        owner_id: str,
        check_name: str,
        severity: IssueSeverity,
        message: str,
    ) -> None:
        report.issues.append(
            MappingIssue(
                owner_id=owner_id,
                check_name=check_name,
                severity=severity,
                message=message,
            )
        )
        report.total_issues += 1
        report.issues_by_severity[severity.value] = (
            report.issues_by_severity.get(severity.value, 0) + 1
        )
        report.issues_by_check[check_name] = report.issues_by_check.get(check_name, 0) + 1

    def _check_match_links(
        self,
        match: Match,
        markets: Mapping[str, Market],
        report: MappingQAReport,
    ) -> None:
        market_a = markets.get(match.market_a.key)
        market_b = markets.get(match.market_b.key)
        for ref, market in ((match.market_a, market_a), (match.market_b, market_b)):
            if market is None:
                self._add_issue(
                    report, match.match_id, "stale_market",
                    IssueSeverity.WARNING,
                    f"Market '{ref.key}' not in snapshot",
                )
        for mapping in match.condition_mappings:
            if market_a is not None and market_a.condition(mapping.condition_a) is None:
                self._add_issue(
                    report, match.match_id, "stale_condition",
                    IssueSeverity.WARNING,
                    f"Condition '{mapping.condition_a}' missing on '{market_a.key}'",
                )
            if market_b is not None and market_b.condition(mapping.condition_b) is None:
                self._add_issue(
                    report, match.match_id, "stale_condition",
                    IssueSeverity.WARNING,
                    f"Condition '{mapping.condition_b}' missing on '{market_b.key}'",
                )

    def _check_ecosystem_links(
        self,
        ecosystem: Ecosystem,
        markets: Mapping[str, Market],
        report: MappingQAReport,
    ) -> None:
        for ref in ecosystem.market_refs:
            if ref.key not in markets:
                self._add_issue(
                    report, ecosystem.ecosystem_id, "stale_market",
                    IssueSeverity.WARNING,
                    f"Market '{ref.key}' not in snapshot",
                )
        for mapping in ecosystem.condition_mappings:
            for key, name in mapping.conditions.items():
                market = markets.get(key)
                if name is None or market is None:
                    continue
                if market.condition(name) is None:
                    self._add_issue(
                        report, ecosystem.ecosystem_id, "stale_condition",
                        IssueSeverity.WARNING,
                        f"Condition '{name}' missing on '{key}'",
                    )
