"""
Quality Gate
============

Turns per-scene quality analysis and user approvals into a render decision.

Reports are plain values: every operation returns a new report rebuilt from
its scene list, so aggregate counts and blocking reasons are always derived
from the current scenes and never patched in place.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any, Sequence, Tuple

from ..core.config import QualityConfig
from ..core.exceptions import ValidationError

logger = logging.getLogger(__name__)


# =============================================================================
# Data Classes
# =============================================================================


class IssueSeverity(Enum):
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"

    @classmethod
    def from_value(cls, value: Any) -> "IssueSeverity":
        """Parse a severity; anything unrecognized counts as minor."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.MINOR


class SceneStatus(Enum):
    PENDING = "pending"
    NEEDS_REVIEW = "needs_review"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class QualityIssue:
    severity: IssueSeverity
    description: str

    def to_dict(self) -> Dict[str, str]:
        return {"severity": self.severity.value, "description": self.description}


@dataclass(frozen=True)
class SceneAnalysis:
    """Automated analysis of one scene, supplied by an external analyzer."""

    score: int
    issues: Tuple[QualityIssue, ...] = ()
    recommendation: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SceneAnalysis":
        """
        Build an analysis from a loose dictionary.

        Accepts ``score`` or ``overall_score`` and issues as dicts with
        ``severity`` and ``description``.
        """
        score = data.get("score", data.get("overall_score", 0))
        issues = tuple(
            QualityIssue(
                severity=IssueSeverity.from_value(issue.get("severity")),
                description=str(issue.get("description", "")),
            )
            for issue in data.get("issues") or []
        )
        return cls(score=int(score), issues=issues, recommendation=data.get("recommendation"))


@dataclass
class SceneQualityStatus:
    """Quality state of one scene."""

    scene_index: int
    score: int
    status: SceneStatus
    issues: List[QualityIssue] = field(default_factory=list)
    user_approved: bool = False
    auto_approved: bool = False
    regeneration_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scene_index": self.scene_index,
            "score": self.score,
            "status": self.status.value,
            "issues": [issue.to_dict() for issue in self.issues],
            "user_approved": self.user_approved,
            "auto_approved": self.auto_approved,
            "regeneration_count": self.regeneration_count,
        }


@dataclass
class ProjectQualityReport:
    """Aggregate quality report for a project."""

    project_id: str
    overall_score: int
    scenes: List[SceneQualityStatus]

    approved_count: int = 0
    needs_review_count: int = 0
    rejected_count: int = 0
    pending_count: int = 0

    critical_issue_count: int = 0
    major_issue_count: int = 0
    minor_issue_count: int = 0

    blocking_reasons: List[str] = field(default_factory=list)
    can_render: bool = False

    last_analyzed_at: datetime = field(default_factory=datetime.now)
    last_approved_at: Optional[datetime] = None

    def scene(self, scene_index: int) -> SceneQualityStatus:
        for scene in self.scenes:
            if scene.scene_index == scene_index:
                return scene
        raise ValidationError(
            f"No scene {scene_index} in project {self.project_id}",
            field="scene_index",
            value=scene_index,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "project_id": self.project_id,
            "overall_score": self.overall_score,
            "scenes": [scene.to_dict() for scene in self.scenes],
            "approved_count": self.approved_count,
            "needs_review_count": self.needs_review_count,
            "rejected_count": self.rejected_count,
            "pending_count": self.pending_count,
            "critical_issue_count": self.critical_issue_count,
            "major_issue_count": self.major_issue_count,
            "minor_issue_count": self.minor_issue_count,
            "blocking_reasons": list(self.blocking_reasons),
            "can_render": self.can_render,
            "last_analyzed_at": self.last_analyzed_at.isoformat(),
            "last_approved_at": self.last_approved_at.isoformat() if self.last_approved_at else None,
        }


# =============================================================================
# Status Derivation
# =============================================================================


def derive_status(
    analysis: SceneAnalysis,
    user_approved: bool = False,
    auto_approve_threshold: int = 85,
    min_scene_score: int = 70,
) -> SceneStatus:
    """
    Status of a scene from its analysis and the user's approval.

    Approval (by the user or by a score at the auto-approve threshold) wins
    over rejection.
    """
    if user_approved or analysis.score >= auto_approve_threshold:
        return SceneStatus.APPROVED
    if analysis.recommendation == "regenerate" or analysis.score < min_scene_score:
        return SceneStatus.REJECTED
    return SceneStatus.NEEDS_REVIEW


# =============================================================================
# Quality Gate
# =============================================================================


class QualityGate:
    """
    Render gate over a project's scenes.

    Example:
        gate = QualityGate(config.quality)
        report = gate.build_report("proj_1", [gate.evaluate_scene(0, analysis)])
        report = gate.approve_scene(report, 0)
        allowed, reasons = gate.can_proceed_to_render(report)
    """

    def __init__(self, config: Optional[QualityConfig] = None):
        self.config = config or QualityConfig()

    def evaluate_scene(
        self,
        scene_index: int,
        analysis: SceneAnalysis,
        user_approved: bool = False,
        regeneration_count: int = 0,
    ) -> SceneQualityStatus:
        """Build the quality state of a freshly analyzed scene."""
        status = derive_status(
            analysis,
            user_approved,
            auto_approve_threshold=self.config.auto_approve_threshold,
            min_scene_score=self.config.min_scene_score,
        )
        return SceneQualityStatus(
            scene_index=scene_index,
            score=analysis.score,
            status=status,
            issues=list(analysis.issues),
            user_approved=user_approved,
            auto_approved=not user_approved and analysis.score >= self.config.auto_approve_threshold,
            regeneration_count=regeneration_count,
        )

    def build_report(
        self,
        project_id: str,
        scenes: Sequence[SceneQualityStatus],
        last_approved_at: Optional[datetime] = None,
    ) -> ProjectQualityReport:
        """
        Aggregate scene states into a project report.

        Args:
            project_id: Project identifier
            scenes: Current scene states
            last_approved_at: Carried over from a previous report

        Returns:
            ProjectQualityReport with counts, blocking reasons and ``can_render``
        """
        scenes = list(scenes)
        counts = {status: 0 for status in SceneStatus}
        severities = {severity: 0 for severity in IssueSeverity}

        for scene in scenes:
            counts[scene.status] += 1
            for issue in scene.issues:
                severities[issue.severity] += 1

        overall_score = round(sum(s.score for s in scenes) / len(scenes)) if scenes else 0

        cfg = self.config
        blocking_reasons = []

        if overall_score < cfg.min_project_score:
            blocking_reasons.append(f"Overall score {overall_score} below minimum {cfg.min_project_score}")

        critical = severities[IssueSeverity.CRITICAL]
        if critical > cfg.max_critical_issues:
            blocking_reasons.append(f"{critical} critical issues (max {cfg.max_critical_issues})")

        major = severities[IssueSeverity.MAJOR]
        if major > cfg.max_major_issues:
            blocking_reasons.append(f"{major} major issues (max {cfg.max_major_issues})")

        rejected = counts[SceneStatus.REJECTED]
        if rejected > 0:
            blocking_reasons.append(f"{rejected} rejected scenes need regeneration")

        needs_review = counts[SceneStatus.NEEDS_REVIEW]
        if cfg.require_user_approval and needs_review > 0:
            blocking_reasons.append(f"{needs_review} scenes need user review")

        report = ProjectQualityReport(
            project_id=project_id,
            overall_score=overall_score,
            scenes=scenes,
            approved_count=counts[SceneStatus.APPROVED],
            needs_review_count=needs_review,
            rejected_count=rejected,
            pending_count=counts[SceneStatus.PENDING],
            critical_issue_count=critical,
            major_issue_count=major,
            minor_issue_count=severities[IssueSeverity.MINOR],
            blocking_reasons=blocking_reasons,
            can_render=not blocking_reasons,
            last_approved_at=last_approved_at,
        )

        logger.info(
            f"Quality report for {project_id}: score={overall_score}, approved={report.approved_count}, "
            f"review={needs_review}, rejected={rejected}, can_render={report.can_render}"
        )
        return report

    # -------------------------------------------------------------------------
    # Mutators (each returns a new, fully re-derived report)
    # -------------------------------------------------------------------------

    def approve_scene(self, report: ProjectQualityReport, scene_index: int) -> ProjectQualityReport:
        """Mark a scene as approved by the user."""
        report.scene(scene_index)
        scenes = [
            replace(s, status=SceneStatus.APPROVED, user_approved=True) if s.scene_index == scene_index else s
            for s in report.scenes
        ]
        return self.build_report(report.project_id, scenes, last_approved_at=datetime.now())

    def reject_scene(
        self,
        report: ProjectQualityReport,
        scene_index: int,
        reason: str,
    ) -> ProjectQualityReport:
        """Mark a scene as rejected by the user and record the reason as a major issue."""
        report.scene(scene_index)
        scenes = [
            replace(
                s,
                status=SceneStatus.REJECTED,
                user_approved=False,
                auto_approved=False,
                issues=s.issues + [QualityIssue(IssueSeverity.MAJOR, f"User rejected: {reason}")],
            )
            if s.scene_index == scene_index else s
            for s in report.scenes
        ]
        return self.build_report(report.project_id, scenes, last_approved_at=report.last_approved_at)

    def auto_approve_eligible(self, report: ProjectQualityReport) -> ProjectQualityReport:
        """Approve every scene awaiting review whose score reaches the auto-approve threshold."""
        threshold = self.config.auto_approve_threshold
        scenes = [
            replace(s, status=SceneStatus.APPROVED, auto_approved=True)
            if s.status == SceneStatus.NEEDS_REVIEW and s.score >= threshold else s
            for s in report.scenes
        ]
        return self.build_report(report.project_id, scenes, last_approved_at=report.last_approved_at)

    def update_scene_analysis(
        self,
        report: ProjectQualityReport,
        scene_index: int,
        analysis: SceneAnalysis,
    ) -> ProjectQualityReport:
        """Replace a regenerated scene's analysis; user approval is reset."""
        previous = report.scene(scene_index)
        updated = self.evaluate_scene(
            scene_index,
            analysis,
            regeneration_count=previous.regeneration_count + 1,
        )
        scenes = [updated if s.scene_index == scene_index else s for s in report.scenes]
        return self.build_report(report.project_id, scenes, last_approved_at=report.last_approved_at)

    def can_proceed_to_render(self, report: ProjectQualityReport) -> Tuple[bool, List[str]]:
        """
        Render decision for a report, re-derived from its scenes.

        Returns:
            (allowed, blocking reasons); reasons are empty when allowed
        """
        fresh = self.build_report(report.project_id, report.scenes, last_approved_at=report.last_approved_at)
        return fresh.can_render, list(fresh.blocking_reasons)
