from adaptive_job_crawler.models import LivenessReport, ValidationReport


class ReportFormatter:
    """
    Formats validation and link-liveness reports as plain text for logs.
    """

    MAX_CRITICAL_JOBS = 5
    RULE = "=" * 60

    @staticmethod
    def _histogram(counts: dict[str, int]) -> list[str]:
        ranked = sorted(counts.items(), key=lambda item: -item[1])
        return [f"  - {name}: {count}" for name, count in ranked]

    @classmethod
    def format_validation_report(cls, report: ValidationReport) -> str:
        lines = [
            cls.RULE,
            "Job validation report",
            cls.RULE,
            f"Total jobs: {report.total_jobs}",
            f"Valid jobs: {report.valid_jobs}",
            f"Invalid jobs: {report.invalid_jobs}",
            f"Success rate: {report.success_rate:.1f}%",
        ]

        if report.errors_by_type:
            lines += ["", "Errors by field:"] + cls._histogram(report.errors_by_type)
        if report.warnings_by_type:
            lines += ["", "Warnings by field:"] + cls._histogram(report.warnings_by_type)

        critical = [
            result
            for result in report.details
            if any(error.severity == "critical" for error in result.errors)
        ]
        if critical:
            lines += ["", "Jobs with critical errors:"]
            for result in critical[: cls.MAX_CRITICAL_JOBS]:
                lines.append(f"  {result.job_id or '<no id>'} ({result.source or 'unknown'})")
                for error in result.errors:
                    if error.severity == "critical":
                        lines.append(f"    - {error.field}: {error.message}")
            if len(critical) > cls.MAX_CRITICAL_JOBS:
                lines.append(f"  ... and {len(critical) - cls.MAX_CRITICAL_JOBS} more")

        lines.append(cls.RULE)
        return "\n".join(lines)

    @classmethod
    def format_liveness_report(cls, report: LivenessReport) -> str:
        lines = [
            f"Links checked: {report.total} in {report.batches} batches",
            f"Live: {report.valid}, dead: {report.invalid} ({report.success_rate:.1f}% live)",
        ]
        for link in report.invalid_links:
            lines.append(f"  - {link.job_id}: {link.url}")
        return "\n".join(lines)


def format_validation_report(report: ValidationReport) -> str:
    return ReportFormatter.format_validation_report(report)
