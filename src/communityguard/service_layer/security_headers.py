"""ABOUTME: Builds the Content-Security-Policy and related headers, and scores header sets
ABOUTME: Pure functions: policy builders for the response pipeline plus the weighted audit"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime

from communityguard.domain.value_objects import Severity

CSP_REPORT_PATH = "/api/security/csp-report"

# headers applied in the after_request hook, on top of what Talisman sets
EXTRA_SECURITY_HEADERS = {
    "X-XSS-Protection": "1; mode=block",
    "X-DNS-Prefetch-Control": "on",
    "Cross-Origin-Embedder-Policy": "credentialless",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
}

API_NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def build_csp(development: bool = False) -> dict[str, str | list[str]]:
    """Content-Security-Policy directives in the dict form Talisman takes.

    Scripts are allowed by per-request nonce, which Talisman appends to
    script-src. Only development relaxes this, for debug tooling.
    """
    script_src = ["'self'"]
    style_src = ["'self'", "https://fonts.googleapis.com"]
    if development:
        script_src += ["'unsafe-eval'", "'unsafe-inline'"]
        style_src.append("'unsafe-inline'")

    return {
        "default-src": "'self'",
        "script-src": script_src,
        "style-src": style_src,
        "font-src": ["'self'", "https://fonts.gstatic.com", "data:"],
        "img-src": ["'self'", "data:", "blob:", "https:"],
        "media-src": ["'self'", "https:", "blob:"],
        "connect-src": ["'self'", "https:", "wss:"],
        "frame-src": "'self'",
        "worker-src": ["'self'", "blob:"],
        "manifest-src": "'self'",
        "base-uri": "'self'",
        "form-action": "'self'",
        "frame-ancestors": "'none'",
        "object-src": "'none'",
    }


def format_csp(policy: Mapping[str, str | list[str]]) -> str:
    parts = []
    for directive, sources in policy.items():
        value = " ".join(sources) if isinstance(sources, list) else sources
        parts.append(f"{directive} {value}".strip())
    return "; ".join(parts)


def build_permissions_policy() -> dict[str, str]:
    """Permissions-Policy features: a few allowed for our own origin, the rest off."""
    return {
        "camera": "(self)",
        "microphone": "(self)",
        "geolocation": "(self)",
        "fullscreen": "(self)",
        "publickey-credentials-get": "(self)",
        "screen-wake-lock": "(self)",
        "web-share": "(self)",
        "accelerometer": "()",
        "ambient-light-sensor": "()",
        "autoplay": "()",
        "battery": "()",
        "display-capture": "()",
        "document-domain": "()",
        "encrypted-media": "()",
        "gyroscope": "()",
        "magnetometer": "()",
        "midi": "()",
        "payment": "()",
        "picture-in-picture": "()",
        "sync-xhr": "()",
        "usb": "()",
    }


def build_cors_headers(app_url: str) -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": app_url,
        "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type, Authorization, X-CSRF-Token",
        "Access-Control-Allow-Credentials": "true",
        "Vary": "Origin",
    }


def _get(headers: Mapping[str, str], name: str) -> str | None:
    """Case-insensitive header lookup over any mapping."""
    if name in headers:
        return headers[name]
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


# (header, weight) for the quick completeness score
SCORE_WEIGHTS = (
    ("X-Frame-Options", 15),
    ("X-Content-Type-Options", 10),
    ("Referrer-Policy", 10),
    ("X-XSS-Protection", 10),
    ("Strict-Transport-Security", 20),
    ("Content-Security-Policy", 25),
    ("Permissions-Policy", 10),
)
STRONG_CONFIG_BONUS = 5


def score_security_headers(headers: Mapping[str, str]) -> int:
    """Weighted presence score, with bonuses for strong settings, capped at 100."""
    score = sum(weight for name, weight in SCORE_WEIGHTS if _get(headers, name))

    if (_get(headers, "X-Frame-Options") or "").upper() == "DENY":
        score += STRONG_CONFIG_BONUS
    if "includesubdomains" in (_get(headers, "Strict-Transport-Security") or "").lower():
        score += STRONG_CONFIG_BONUS
    csp = _get(headers, "Content-Security-Policy")
    if csp and "'unsafe-inline'" not in csp:
        score += STRONG_CONFIG_BONUS

    return min(score, 100)


@dataclass(slots=True, kw_only=True)
class HeaderValidation:
    is_valid: bool
    score: int
    missing: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)


def validate_security_headers(headers: Mapping[str, str]) -> HeaderValidation:
    """Valid when every scored header is present and the score is at least 80."""
    missing = [name for name, _weight in SCORE_WEIGHTS if not _get(headers, name)]
    recommendations = [f"Add {name} header" for name in missing]

    csp = _get(headers, "Content-Security-Policy") or ""
    if "'unsafe-inline'" in csp:
        recommendations.append("Remove 'unsafe-inline' from Content-Security-Policy")
    hsts = _get(headers, "Strict-Transport-Security") or ""
    if hsts and "includesubdomains" not in hsts.lower():
        recommendations.append("Add includeSubDomains to Strict-Transport-Security")

    score = score_security_headers(headers)
    return HeaderValidation(
        is_valid=not missing and score >= 80, score=score, missing=missing, recommendations=recommendations
    )


@dataclass(slots=True, kw_only=True, frozen=True)
class AuditCheck:
    header: str
    weight: int
    severity: Severity
    recommendation: str


AUDIT_CHECKS = (
    AuditCheck(
        header="Content-Security-Policy",
        weight=25,
        severity=Severity.CRITICAL,
        recommendation="Implement Content Security Policy to prevent XSS attacks",
    ),
    AuditCheck(
        header="Strict-Transport-Security",
        weight=20,
        severity=Severity.HIGH,
        recommendation="Enable HSTS to enforce HTTPS connections",
    ),
    AuditCheck(
        header="X-Frame-Options",
        weight=15,
        severity=Severity.HIGH,
        recommendation="Set X-Frame-Options to prevent clickjacking",
    ),
    AuditCheck(
        header="X-Content-Type-Options",
        weight=10,
        severity=Severity.MEDIUM,
        recommendation="Set X-Content-Type-Options to nosniff",
    ),
    AuditCheck(
        header="X-XSS-Protection",
        weight=10,
        severity=Severity.MEDIUM,
        recommendation="Enable the legacy XSS filter for older browsers",
    ),
    AuditCheck(
        header="Referrer-Policy",
        weight=8,
        severity=Severity.MEDIUM,
        recommendation="Set a Referrer-Policy to limit referrer leakage",
    ),
    AuditCheck(
        header="Permissions-Policy",
        weight=7,
        severity=Severity.MEDIUM,
        recommendation="Set a Permissions-Policy to restrict browser features",
    ),
    AuditCheck(
        header="Cross-Origin-Embedder-Policy",
        weight=3,
        severity=Severity.LOW,
        recommendation="Set Cross-Origin-Embedder-Policy for cross-origin isolation",
    ),
    AuditCheck(
        header="Cross-Origin-Opener-Policy",
        weight=2,
        severity=Severity.LOW,
        recommendation="Set Cross-Origin-Opener-Policy to isolate the browsing context",
    ),
)


@dataclass(slots=True, kw_only=True)
class HeaderAudit:
    present: bool
    severity: Severity
    recommendation: str
    value: str | None = None

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "present": self.present,
            "severity": self.severity.value,
            "recommendation": self.recommendation,
        }
        if self.value is not None:
            data["value"] = self.value
        return data


@dataclass(slots=True, kw_only=True)
class SecurityAuditResult:
    timestamp: datetime
    headers: dict[str, HeaderAudit]
    score: int
    recommendations: list[str]

    def to_dict(self) -> dict[str, object]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "headers": {name: audit.to_dict() for name, audit in self.headers.items()},
            "score": self.score,
            "recommendations": self.recommendations,
        }


def audit_security_headers(headers: Mapping[str, str]) -> SecurityAuditResult:
    """Weighted audit of a response's headers, as a percentage with recommendations."""
    results: dict[str, HeaderAudit] = {}
    earned = 0
    total = 0
    recommendations: list[str] = []

    for check in AUDIT_CHECKS:
        value = _get(headers, check.header)
        total += check.weight
        if value:
            earned += check.weight
        else:
            recommendations.append(check.recommendation)
        results[check.header] = HeaderAudit(
            present=bool(value), value=value, severity=check.severity, recommendation=check.recommendation
        )

    csp = _get(headers, "Content-Security-Policy") or ""
    if csp:
        if "'unsafe-inline'" in csp:
            recommendations.append("Remove 'unsafe-inline' from CSP and use nonces or hashes instead")
        if "'unsafe-eval'" in csp:
            recommendations.append("Remove 'unsafe-eval' from CSP")
        if "report-uri" not in csp and "report-to" not in csp:
            recommendations.append("Add a report-uri directive to collect CSP violations")
    hsts = _get(headers, "Strict-Transport-Security") or ""
    if hsts and "includesubdomains" not in hsts.lower():
        recommendations.append("Add includeSubDomains to HSTS")
    xfo = _get(headers, "X-Frame-Options") or ""
    if xfo and xfo.upper() != "DENY":
        recommendations.append("Consider X-Frame-Options: DENY unless framing by this origin is needed")

    score = round(earned / total * 100) if total else 0
    return SecurityAuditResult(
        timestamp=datetime.now(UTC), headers=results, score=score, recommendations=recommendations
    )
