# ABOUTME: Tests for best-effort usage recording
# ABOUTME: Verifies rows are appended, unknown keys are dropped, and failures never raise

from datetime import datetime

from apiplatform.models.database import APIUsage
from apiplatform.services.usage import UsageRecord, record_usage
from tests.conftest import issue_test_key


def test_record_usage_appends_row(platform, db_session):
    _, key_id = issue_test_key(platform)

    record_usage(db_session, UsageRecord(
        api_key_id=key_id,
        endpoint="/api/jobs",
        method="get",
        status_code=200,
        response_time_ms=42,
        request_size=0,
        response_size=512,
        ip_address="10.0.0.1",
        user_agent="pytest",
        region="us-west",
    ))

    row = db_session.query(APIUsage).one()
    assert row.api_key_id == key_id
    assert row.method == "GET"
    assert row.status_code == 200
    assert row.response_time_ms == 42
    assert row.response_size == 512
    assert row.region == "us-west"
    assert row.timestamp is not None


def test_record_usage_keeps_given_timestamp(platform, db_session):
    _, key_id = issue_test_key(platform)
    when = datetime(2025, 1, 2, 3, 4, 5)

    record_usage(db_session, UsageRecord(api_key_id=key_id, endpoint="/api/jobs", method="GET",
                                         status_code=200, timestamp=when))

    assert db_session.query(APIUsage).one().timestamp == when


def test_usage_for_unknown_key_is_dropped(db_session):
    record_usage(db_session, UsageRecord(api_key_id="key_missing", endpoint="/api/jobs", method="GET",
                                         status_code=200))

    assert db_session.query(APIUsage).count() == 0


def test_recording_does_not_touch_rate_limit_counters(platform, db_session):
    """Only the limiter counts requests; recording the same call must not double it."""
    plaintext, key_id = issue_test_key(platform, tier="free")

    for _ in range(5):
        platform.record_usage(db_session, UsageRecord(api_key_id=key_id, endpoint="/api/jobs", method="GET",
                                                      status_code=200))

    result = platform.validate(db_session, plaintext, "/api/jobs", "GET")
    assert result.rate_limit_status.remaining == 59


def test_storage_failure_is_swallowed(platform, db_session):
    """A broken session is logged and rolled back, never raised to the caller."""
    _, key_id = issue_test_key(platform)

    def broken_commit():
        raise RuntimeError("disk full")

    db_session.commit = broken_commit
    record_usage(db_session, UsageRecord(api_key_id=key_id, endpoint="/api/jobs", method="GET",
                                         status_code=200))

    del db_session.commit
    assert db_session.query(APIUsage).count() == 0
