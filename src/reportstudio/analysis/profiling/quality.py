"""Quality report derived from a DataProfile.

Scores are 0-100:
- column score: completeness, ``(1 - null_ratio) * 100``
- overall score: mean of the column scores

The report is recomputed on demand and never persisted.
"""

from __future__ import annotations

from reportstudio.analysis.profiling.models import (
    DataProfile,
    IssueType,
    QualityReport,
)
from reportstudio.core.models import IssueSeverity


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _validity(profile: DataProfile) -> float:
    invalid = [
        issue.percentage or 0.0
        for cp in profile.columns
        for issue in cp.issues
        if issue.type == IssueType.INVALID
    ]
    if not profile.columns:
        return 0.0
    return 100.0 - _mean(invalid) if invalid else 100.0


def _summary(report: QualityReport) -> str:
    lines = [
        f"Data Quality Score: {report.overall_score:.1f}/100",
        "",
        f"Completeness: {report.completeness:.1f}%",
        f"Uniqueness: {report.uniqueness:.1f}%",
        f"Validity: {report.validity:.1f}%",
        "",
        f"Total Rows: {report.row_count:,}",
        f"Duplicate Rows: {report.duplicate_rows:,}",
        f"Issues Found: {len(report.issues)}",
    ]
    if report.is_sample:
        lines.append("Scores are estimates computed on a sample of the rows.")
    return "\n".join(lines)


def _recommendations(profile: DataProfile, report: QualityReport) -> list[str]:
    recommendations = []
    if report.completeness < 80:
        recommendations.append(
            "High percentage of missing values. "
            "Consider data collection improvements or imputation strategies."
        )
    if profile.profiled_rows and profile.duplicate_rows > profile.profiled_rows * 0.1:
        recommendations.append(
            "Significant duplicate rows detected. Consider deduplication before analysis."
        )

    high_null = [cp for cp in profile.columns if cp.null_percentage > 50]
    if high_null:
        recommendations.append(
            f"{len(high_null)} column(s) have >50% missing values. Review data collection process."
        )

    low_uniqueness = [
        cp
        for cp in profile.columns
        if cp.distinct_percentage < 20 and cp.null_count < cp.distinct_count
    ]
    if low_uniqueness:
        recommendations.append(
            f"{len(low_uniqueness)} column(s) have low uniqueness. "
            "Consider if these should be categorical fields."
        )

    if profile.schema_warnings:
        recommendations.append(
            f"{len(profile.schema_warnings)} declared column type(s) conflict with the data. "
            "Review the declared schema."
        )
    if report.critical_issues:
        recommendations.append(
            f"{len(report.critical_issues)} critical issue(s) require immediate attention."
        )
    return recommendations


def generate_quality_report(profile: DataProfile) -> QualityReport:
    """Derive scores, summary and recommendations from a profile.

    Args:
        profile: Result of profile_data

    Returns:
        QualityReport
    """
    column_scores = {cp.name: cp.completeness_score for cp in profile.columns}
    issues = [
        i for i in profile.issues if i.severity in (IssueSeverity.HIGH, IssueSeverity.MEDIUM)
    ]

    report = QualityReport(
        overall_score=_mean(list(column_scores.values())),
        column_scores=column_scores,
        completeness=_mean(list(column_scores.values())),
        uniqueness=_mean([cp.distinct_percentage for cp in profile.columns]),
        validity=_validity(profile),
        row_count=profile.row_count,
        duplicate_rows=profile.duplicate_rows,
        is_sample=profile.is_sample,
        summary="",
        issues=issues,
        critical_issues=[i for i in issues if i.severity == IssueSeverity.HIGH],
        schema_warnings=list(profile.schema_warnings),
    )
    report.summary = _summary(report)
    report.recommendations = _recommendations(profile, report)
    return report
