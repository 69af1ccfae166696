"""HTTP client for the Google Analytics 4 Data API.

Authenticates with a service account: a self-signed RS256 JWT is traded
for an OAuth access token, which is cached until shortly before it
expires.  A free-text query ("top pages last 30 days") is mapped to one
of a handful of report requests and a date range, and the report rows
are rendered as plain text for the model.

GA4 Data API docs: https://developers.google.com/analytics/devguides/reporting/data/v1
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import date, timedelta
from typing import Any

import httpx
import jwt

from clawsync.config import (
    GA4_DATA_API_URL,
    GA4_PRIVATE_KEY_ENV,
    GA4_PROPERTY_ID_ENV,
    GA4_SCOPE,
    GA4_SERVICE_ACCOUNT_EMAIL_ENV,
    GA4_TOKEN_URL,
    get_secret,
)
from clawsync.services.metrics import metrics

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 15.0
TOKEN_LIFETIME_SECONDS = 3600
TOKEN_REFRESH_MARGIN_SECONDS = 60

NOT_CONFIGURED_MESSAGE = (
    "Google Analytics is not configured. Please set GA4_PROPERTY_ID, "
    "GA4_SERVICE_ACCOUNT_EMAIL, and GA4_PRIVATE_KEY environment variables."
)


class AnalyticsAPIError(Exception):
    """Raised when the token exchange or a report request fails."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


# ── Report requests ─────────────────────────────────────────────────

REPORTS: dict[str, dict[str, Any]] = {
    "overview": {
        "title": "Site Overview",
        "description": "Site overview - sessions, users, pageviews, bounce rate",
        "metrics": [
            "sessions", "totalUsers", "screenPageViews", "bounceRate", "averageSessionDuration",
        ],
    },
    "topPages": {
        "title": "Top Pages",
        "description": "Top pages by pageviews",
        "dimensions": ["pagePath"],
        "metrics": ["screenPageViews", "averageSessionDuration"],
        "limit": 10,
        "order_by": "screenPageViews",
    },
    "trafficSources": {
        "title": "Traffic Sources",
        "description": "Traffic sources breakdown",
        "dimensions": ["sessionSource", "sessionMedium"],
        "metrics": ["sessions", "totalUsers"],
        "limit": 10,
        "order_by": "sessions",
    },
    "deviceBreakdown": {
        "title": "Device Breakdown",
        "description": "Device category breakdown",
        "dimensions": ["deviceCategory"],
        "metrics": ["sessions", "totalUsers", "bounceRate"],
    },
    "countries": {
        "title": "Top Countries",
        "description": "Top countries by users",
        "dimensions": ["country"],
        "metrics": ["totalUsers", "sessions"],
        "limit": 10,
        "order_by": "totalUsers",
    },
}

SUPPORTED_DATE_RANGES: list[str] = [
    "today", "yesterday", "last 7 days", "last 30 days", "last 90 days",
]

# keyword fragments → report, checked in order
_REPORT_KEYWORDS: list[tuple[tuple[str, ...], str]] = [
    (("page", "url", "content"), "topPages"),
    (("source", "traffic", "referr"), "trafficSources"),
    (("device", "mobile", "desktop"), "deviceBreakdown"),
    (("countr", "geo", "location"), "countries"),
]

# keyword fragments → days back from today
_RANGE_KEYWORDS: list[tuple[tuple[str, ...], int]] = [
    (("last 7 days", "this week", "past week"), 7),
    (("last 30 days", "this month", "past month"), 30),
    (("last 90 days", "3 months", "quarter"), 90),
]


def report_catalog() -> list[dict[str, str]]:
    return [
        {"name": name, "description": report["description"]}
        for name, report in REPORTS.items()
    ]


def list_reports() -> str:
    """Plain-text list of the available reports and date ranges."""
    lines = ["Available Analytics Reports", ""]
    lines += [f"- {r['name']}: {r['description']}" for r in report_catalog()]
    lines += ["", "Date ranges: " + ", ".join(SUPPORTED_DATE_RANGES)]
    return "\n".join(lines)


def detect_report_type(query: str) -> str:
    lowered = query.lower()
    for keywords, report in _REPORT_KEYWORDS:
        if any(word in lowered for word in keywords):
            return report
    return "overview"


def parse_date_range(query: str, today: date | None = None) -> tuple[str, str]:
    """Map phrases like "yesterday" or "last 30 days" to ISO start/end dates.

    Defaults to the last 7 days.
    """
    today = today or date.today()
    lowered = query.lower()

    if "today" in lowered:
        return today.isoformat(), today.isoformat()
    if "yesterday" in lowered:
        yesterday = today - timedelta(days=1)
        return yesterday.isoformat(), yesterday.isoformat()
    for keywords, days in _RANGE_KEYWORDS:
        if any(phrase in lowered for phrase in keywords):
            return (today - timedelta(days=days)).isoformat(), today.isoformat()
    return (today - timedelta(days=7)).isoformat(), today.isoformat()


def build_report_request(report_type: str, start_date: str, end_date: str) -> dict[str, Any]:
    """Turn a :data:`REPORTS` entry into a ``runReport`` request body."""
    report = REPORTS[report_type]
    body: dict[str, Any] = {
        "dateRanges": [{"startDate": start_date, "endDate": end_date}],
        "metrics": [{"name": name} for name in report["metrics"]],
    }
    if report.get("dimensions"):
        body["dimensions"] = [{"name": name} for name in report["dimensions"]]
    if report.get("limit"):
        body["limit"] = report["limit"]
    if report.get("order_by"):
        body["orderBys"] = [{"metric": {"metricName": report["order_by"]}, "desc": True}]
    return body


def render_report(report_type: str, response: dict[str, Any]) -> str:
    """Render report rows one per line: ``dimensions: metric=value, ...``."""
    rows = response.get("rows") or []
    if not rows:
        return "No data available for the specified date range."

    report = REPORTS[report_type]
    lines = [report["title"]]
    for row in rows:
        dims = " / ".join(d.get("value", "") for d in row.get("dimensionValues") or [])
        values = ", ".join(
            f"{name}={m.get('value', '0')}"
            for name, m in zip(report["metrics"], row.get("metricValues") or [])
        )
        lines.append(f"- {dims}: {values}" if dims else f"- {values}")
    return "\n".join(lines)


# ── Client ──────────────────────────────────────────────────────────


class AnalyticsClient:
    """GA4 Data API client authenticated as a service account."""

    def __init__(
        self,
        property_id: str | None = None,
        service_account_email: str | None = None,
        private_key: str | None = None,
        *,
        http_client: httpx.Client | None = None,
    ):
        self._property_id = property_id or get_secret(GA4_PROPERTY_ID_ENV)
        self._email = service_account_email or get_secret(GA4_SERVICE_ACCOUNT_EMAIL_ENV)
        key = private_key or get_secret(GA4_PRIVATE_KEY_ENV)
        # keys pasted into env files usually carry literal "\n"
        self._private_key = key.replace("\\n", "\n") if key else None
        self._client = http_client or httpx.Client(timeout=REQUEST_TIMEOUT_SECONDS)
        self._token: str | None = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    @property
    def is_configured(self) -> bool:
        return bool(self._property_id and self._email and self._private_key)

    # ── Auth ─────────────────────────────────────────────────────────

    def _signed_assertion(self, now: int) -> str:
        claims = {
            "iss": self._email,
            "sub": self._email,
            "aud": GA4_TOKEN_URL,
            "iat": now,
            "exp": now + TOKEN_LIFETIME_SECONDS,
            "scope": GA4_SCOPE,
        }
        return jwt.encode(claims, self._private_key, algorithm="RS256")

    def _access_token(self) -> str:
        with self._token_lock:
            if self._token and time.time() < self._token_expires_at:
                return self._token

            now = int(time.time())
            response = self._client.post(
                GA4_TOKEN_URL,
                data={
                    "grant_type": "urn:ietf:params:oauth:grant-type:jwt-bearer",
                    "assertion": self._signed_assertion(now),
                },
            )
            if response.status_code >= 400:
                raise AnalyticsAPIError(
                    f"Failed to get access token: {response.text}",
                    status_code=response.status_code,
                )
            data = response.json()
            self._token = data["access_token"]
            expires_in = int(data.get("expires_in", TOKEN_LIFETIME_SECONDS))
            self._token_expires_at = now + expires_in - TOKEN_REFRESH_MARGIN_SECONDS
            return self._token

    # ── Reports ──────────────────────────────────────────────────────

    def run_report(self, body: dict[str, Any]) -> dict[str, Any]:
        token = self._access_token()
        with metrics.track("ga4", "runReport"):
            response = self._client.post(
                f"{GA4_DATA_API_URL}/properties/{self._property_id}:runReport",
                json=body,
                headers={"Authorization": f"Bearer {token}"},
            )
            if response.status_code >= 400:
                raise AnalyticsAPIError(
                    f"GA4 API error: {response.text}", status_code=response.status_code,
                )
        return response.json()

    def query(self, query: str) -> str:
        """Answer a free-text analytics question with a plain-text report.

        Never raises for API failures: the model receives the error text
        as the tool result instead.
        """
        if not self.is_configured:
            return NOT_CONFIGURED_MESSAGE

        start_date, end_date = parse_date_range(query)
        report_type = detect_report_type(query)
        logger.info("GA4 %s report for %s..%s", report_type, start_date, end_date)

        try:
            response = self.run_report(build_report_request(report_type, start_date, end_date))
        except (AnalyticsAPIError, httpx.HTTPError) as exc:
            logger.error("GA4 query failed: %s", exc)
            return f"Failed to fetch analytics: {exc}"

        return f"{render_report(report_type, response)}\n\nData for {start_date} to {end_date}"


# ── Singleton accessor ──────────────────────────────────────────────

_client: AnalyticsClient | None = None
_client_lock = threading.Lock()


def get_analytics_client() -> AnalyticsClient:
    """Return a module-level AnalyticsClient (thread-safe lazy init)."""
    global _client
    if _client is None:
        with _client_lock:
            if _client is None:
                _client = AnalyticsClient()
    return _client


def query_analytics(query: str) -> str:
    return get_analytics_client().query(query)
