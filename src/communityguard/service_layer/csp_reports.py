"""ABOUTME: Classifies Content-Security-Policy violation reports sent by browsers
ABOUTME: Filters extension noise and escalates violations of script, object, base and form directives"""

from dataclasses import dataclass
from typing import Any

import structlog

from communityguard.domain.value_objects import Severity

logger = structlog.get_logger(__name__)

CRITICAL_DIRECTIVES = ("script-src", "object-src", "base-uri", "form-action")

FALSE_POSITIVE_PREFIXES = (
    "chrome-extension:",
    "moz-extension:",
    "safari-extension:",
    "safari-web-extension:",
    "ms-browser-extension:",
    "about:blank",
    "data:text/html,chromewebdata",
)


@dataclass(slots=True, kw_only=True)
class CspViolation:
    directive: str
    blocked_uri: str
    document_uri: str
    source_file: str
    severity: Severity
    is_false_positive: bool


def _violated_directive(report: dict[str, Any]) -> str:
    # effective-directive is the precise one; violated-directive may carry the source list
    directive = report.get("effective-directive") or report.get("violated-directive") or ""
    return str(directive).split(" ")[0]


def classify_csp_report(report: dict[str, Any]) -> CspViolation:
    directive = _violated_directive(report)
    blocked_uri = str(report.get("blocked-uri", ""))
    is_false_positive = blocked_uri.startswith(FALSE_POSITIVE_PREFIXES)
    is_critical = any(directive == d or directive.startswith(f"{d}-") for d in CRITICAL_DIRECTIVES)

    return CspViolation(
        directive=directive,
        blocked_uri=blocked_uri,
        document_uri=str(report.get("document-uri", "")),
        source_file=str(report.get("source-file", "")),
        severity=Severity.HIGH if is_critical else Severity.MEDIUM,
        is_false_positive=is_false_positive,
    )


def record_csp_violation(report: dict[str, Any], user_agent: str = "", client_ip: str = "") -> CspViolation:
    """Classify a report and log it. High severity violations log as errors."""
    violation = classify_csp_report(report)
    if violation.is_false_positive:
        logger.debug("CSP report ignored as browser extension noise", blocked_uri=violation.blocked_uri)
        return violation

    log_context = {
        "directive": violation.directive,
        "blocked_uri": violation.blocked_uri,
        "document_uri": violation.document_uri,
        "source_file": violation.source_file,
        "line_number": report.get("line-number"),
        "severity": violation.severity.value,
        "user_agent": user_agent,
        "client_ip": client_ip,
    }
    if violation.severity == Severity.HIGH:
        logger.error("Critical CSP violation", **log_context)
    else:
        logger.warning("CSP violation", **log_context)
    return violation
