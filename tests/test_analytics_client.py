"""Tests for the GA4 Data API client."""

from __future__ import annotations

import json
from datetime import date
from unittest.mock import patch

import httpx
import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from clawsync.config import GA4_TOKEN_URL
from clawsync.services.analytics_client import (
    NOT_CONFIGURED_MESSAGE,
    REPORTS,
    SUPPORTED_DATE_RANGES,
    AnalyticsClient,
    build_report_request,
    detect_report_type,
    list_reports,
    parse_date_range,
    render_report,
)

TODAY = date(2026, 3, 15)


@pytest.fixture(scope="module")
def rsa_key_pair():
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    return private_pem, key.public_key()


class FakeGA4:
    """httpx transport handler standing in for the token and Data API endpoints."""

    def __init__(self, rows=None, report_status: int = 200):
        self.rows = rows if rows is not None else []
        self.report_status = report_status
        self.token_requests = 0
        self.report_bodies: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if str(request.url) == GA4_TOKEN_URL:
            self.token_requests += 1
            return httpx.Response(200, json={"access_token": "tok-1", "expires_in": 3600})
        assert request.headers["Authorization"] == "Bearer tok-1"
        self.report_bodies.append(json.loads(request.content))
        if self.report_status >= 400:
            return httpx.Response(self.report_status, text="PERMISSION_DENIED")
        return httpx.Response(200, json={"rows": self.rows})


def _client(fake: FakeGA4) -> AnalyticsClient:
    return AnalyticsClient(
        "123456",
        "svc@example.iam.gserviceaccount.com",
        "unused-key",
        http_client=httpx.Client(transport=httpx.MockTransport(fake)),
    )


class TestQueryParsing:
    @pytest.mark.parametrize(
        ("query", "expected"),
        [
            ("what are my top pages", "topPages"),
            ("where does my traffic come from", "trafficSources"),
            ("mobile vs desktop", "deviceBreakdown"),
            ("which countries visit", "countries"),
            ("how is the site doing", "overview"),
        ],
    )
    def test_detect_report_type(self, query, expected):
        assert detect_report_type(query) == expected

    def test_default_range_is_last_week(self):
        assert parse_date_range("overview", today=TODAY) == ("2026-03-08", "2026-03-15")

    def test_yesterday(self):
        assert parse_date_range("visits yesterday", today=TODAY) == ("2026-03-14", "2026-03-14")

    def test_last_30_days(self):
        assert parse_date_range("top pages last 30 days", today=TODAY) == (
            "2026-02-13",
            "2026-03-15",
        )

    def test_build_report_request(self):
        body = build_report_request("topPages", "2026-03-08", "2026-03-15")
        assert body["dimensions"] == [{"name": "pagePath"}]
        assert body["limit"] == 10
        assert body["orderBys"][0]["metric"]["metricName"] == "screenPageViews"
        assert "dimensions" not in build_report_request("overview", "a", "b")


class TestRenderReport:
    def test_no_rows(self):
        assert render_report("overview", {}) == "No data available for the specified date range."

    def test_rows_with_dimensions(self):
        response = {
            "rows": [
                {
                    "dimensionValues": [{"value": "/pricing"}],
                    "metricValues": [{"value": "42"}, {"value": "31.5"}],
                }
            ]
        }
        assert render_report("topPages", response) == (
            "Top Pages\n- /pricing: screenPageViews=42, averageSessionDuration=31.5"
        )


class TestListReports:
    def test_lists_every_report_with_its_description(self):
        text = list_reports()
        for name, report in REPORTS.items():
            assert f"- {name}: {report['description']}" in text

    def test_lists_date_ranges(self):
        last_line = list_reports().splitlines()[-1]
        assert last_line == "Date ranges: " + ", ".join(SUPPORTED_DATE_RANGES)

    def test_date_ranges_are_understood_by_the_parser(self):
        for phrase in SUPPORTED_DATE_RANGES:
            start, end = parse_date_range(phrase, today=TODAY)
            assert start <= end <= TODAY.isoformat()


class TestAnalyticsClient:
    def test_not_configured(self):
        client = AnalyticsClient(http_client=httpx.Client(transport=httpx.MockTransport(FakeGA4())))
        assert client.is_configured is False
        assert client.query("overview") == NOT_CONFIGURED_MESSAGE

    def test_query_runs_report(self):
        fake = FakeGA4(rows=[{"metricValues": [{"value": "10"}]}])
        with patch.object(AnalyticsClient, "_signed_assertion", return_value="signed"):
            result = _client(fake).query("overview")

        assert result.startswith("Site Overview\n- sessions=10")
        assert "Data for " in result
        assert fake.report_bodies[0]["metrics"][0] == {"name": "sessions"}

    def test_token_is_cached(self):
        fake = FakeGA4()
        client = _client(fake)
        with patch.object(AnalyticsClient, "_signed_assertion", return_value="signed"):
            client.query("overview")
            client.query("top pages")
        assert fake.token_requests == 1
        assert len(fake.report_bodies) == 2

    def test_api_error_becomes_text(self):
        fake = FakeGA4(report_status=403)
        with patch.object(AnalyticsClient, "_signed_assertion", return_value="signed"):
            result = _client(fake).query("overview")
        assert result.startswith("Failed to fetch analytics: GA4 API error")

    def test_signed_assertion_is_rs256_jwt(self, rsa_key_pair):
        private_pem, public_key = rsa_key_pair
        client = AnalyticsClient(
            "123456",
            "svc@example.iam.gserviceaccount.com",
            private_pem.replace("\n", "\\n"),
            http_client=httpx.Client(transport=httpx.MockTransport(FakeGA4())),
        )
        token = client._signed_assertion(1_700_000_000)
        claims = jwt.decode(token, public_key, algorithms=["RS256"], audience=GA4_TOKEN_URL,
                            options={"verify_exp": False})
        assert claims["iss"] == "svc@example.iam.gserviceaccount.com"
        assert claims["exp"] - claims["iat"] == 3600
