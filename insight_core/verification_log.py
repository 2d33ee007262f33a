"""
Structured log entry for one verification run.

build_verification_log_entry() is a pure constructor; emit_verification_log()
is the only place that performs I/O (a single structured log line).
"""

from __future__ import annotations
import datetime
import json
import logging
from dataclasses import dataclass, asdict
from typing import Dict, Optional, Sequence, Tuple

log = logging.getLogger("insight.verification_log")


@dataclass(frozen=True)
class FailedCheckRecord:
    check_id: str
    severity: str     # fatal, major, minor
    detail: str
    repair_attempted: bool = False
    repair_succeeded: bool = False

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass(frozen=True)
class VerificationLogEntry:
    evaluation_id: str
    checks_run: int
    checks_passed: int
    checks_failed: int
    repairs_attempted: int
    repairs_succeeded: int
    fatal_failure: bool
    quality_warnings: Tuple[str, ...]
    failed_checks: Tuple[FailedCheckRecord, ...]
    duration_ms: float
    timestamp: str

    def to_dict(self) -> Dict:
        d = asdict(self)
        d["quality_warnings"] = list(self.quality_warnings)
        d["failed_checks"] = [fc.to_dict() for fc in self.failed_checks]
        return d


def build_verification_log_entry(
    evaluation_id: str,
    checks_run: int,
    checks_failed: int,
    repairs_used: int,
    fatal_failure: bool,
    quality_warnings: Sequence[str],
    failed_checks: Sequence[FailedCheckRecord],
    duration_ms: float,
    now: Optional[datetime.datetime] = None,
) -> VerificationLogEntry:
    stamp = now or datetime.datetime.now(datetime.timezone.utc)
    return VerificationLogEntry(
        evaluation_id=evaluation_id,
        checks_run=checks_run,
        checks_passed=checks_run - checks_failed,
        checks_failed=checks_failed,
        repairs_attempted=repairs_used,
        repairs_succeeded=sum(1 for fc in failed_checks if fc.repair_succeeded),
        fatal_failure=fatal_failure,
        quality_warnings=tuple(quality_warnings),
        failed_checks=tuple(failed_checks),
        duration_ms=round(duration_ms, 2),
        timestamp=stamp.isoformat(),
    )


def emit_verification_log(entry: VerificationLogEntry) -> None:
    level = logging.WARNING if entry.fatal_failure else logging.INFO
    log.log(level, "verification_log %s", json.dumps(entry.to_dict()))
