import sys
import os
import json
import logging
import datetime
import dataclasses

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from insight_core.verification_log import (
    FailedCheckRecord,
    build_verification_log_entry,
    emit_verification_log,
)

NOW = datetime.datetime(2026, 3, 1, 12, 30, tzinfo=datetime.timezone.utc)


def _entry(**overrides):
    params = dict(
        evaluation_id="eval-1",
        checks_run=5,
        checks_failed=2,
        repairs_used=2,
        fatal_failure=False,
        quality_warnings=["No technical or go-to-market risks identified"],
        failed_checks=[
            FailedCheckRecord("competitive_not_empty", "major", "empty", True, True),
            FailedCheckRecord("risks_identified", "minor", "none", True, False),
        ],
        duration_ms=12.34567,
        now=NOW,
    )
    params.update(overrides)
    return build_verification_log_entry(**params)


class TestBuildVerificationLogEntry:
    def test_counters(self):
        entry = _entry()
        assert entry.checks_passed == 3
        assert entry.repairs_attempted == 2
        assert entry.repairs_succeeded == 1
        assert entry.duration_ms == 12.35

    def test_timestamp_iso(self):
        assert _entry().timestamp == "2026-03-01T12:30:00+00:00"

    def test_default_timestamp_is_current_utc(self):
        entry = _entry(now=None)
        stamp = datetime.datetime.fromisoformat(entry.timestamp)
        assert stamp.tzinfo is not None

    def test_immutable(self):
        entry = _entry()
        with pytest.raises(dataclasses.FrozenInstanceError):
            entry.checks_run = 9
        assert isinstance(entry.failed_checks, tuple)
        assert isinstance(entry.quality_warnings, tuple)

    def test_caller_lists_not_shared(self):
        warnings = ["a"]
        entry = _entry(quality_warnings=warnings)
        warnings.append("b")
        assert entry.quality_warnings == ("a",)

    def test_to_dict_is_json_ready(self):
        d = _entry().to_dict()
        assert d["failed_checks"][0]["check_id"] == "competitive_not_empty"
        assert d["quality_warnings"] == ["No technical or go-to-market risks identified"]
        json.dumps(d)


class TestEmitVerificationLog:
    def test_info_for_normal_run(self, caplog):
        with caplog.at_level(logging.INFO, logger="insight.verification_log"):
            emit_verification_log(_entry())
        rec = caplog.records[-1]
        assert rec.levelno == logging.INFO
        payload = json.loads(rec.getMessage().split(" ", 1)[1])
        assert payload["evaluation_id"] == "eval-1"

    def test_warning_for_fatal_run(self, caplog):
        with caplog.at_level(logging.INFO, logger="insight.verification_log"):
            emit_verification_log(_entry(fatal_failure=True, repairs_used=0, failed_checks=[]))
        assert caplog.records[-1].levelno == logging.WARNING
