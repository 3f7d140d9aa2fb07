"""
Booking error taxonomy plus error aggregation to keep repeated failures quiet.
"""
import hashlib
import time
from collections import defaultdict
from enum import Enum
from typing import Any, Dict, Optional

import structlog
from fastapi import HTTPException

logger = structlog.get_logger(__name__)


class BookingError(Exception):
    """Base class for failures surfaced by the booking core."""

    reason = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidBookingRequest(BookingError):
    """Caller input violates the provider's calendar."""

    reason = "invalid_request"


class ProviderNotFound(BookingError):
    reason = "provider_not_found"

    def __init__(self, provider_id: str):
        super().__init__(f"Provider {provider_id} was not found.")
        self.provider_id = provider_id


class BookingGroupNotFound(BookingError):
    reason = "not_found"

    def __init__(self, booking_group_id: str):
        super().__init__(f"Booking {booking_group_id} was not found.")
        self.booking_group_id = booking_group_id


class StoreUnavailable(BookingError):
    """The ledger could not complete a transaction. Transient."""

    reason = "store_failure"


class InvalidCalendar(ValueError):
    """A provider calendar breaks its own invariants (e.g. shift_start >= shift_end)."""


class ErrorSeverity(Enum):
    """Error severity levels for smart alerting."""
    LOW = "low"           # validation errors, conflicts, expected failures
    MEDIUM = "medium"     # store timeouts, recoverable errors
    HIGH = "high"         # store unreachable after retries, data problems
    CRITICAL = "critical" # service down

class ErrorPattern:
    """Track error patterns to reduce duplicate logging."""

    def __init__(self, error_type: str, message: str, context: Dict[str, Any]):
        self.error_type = error_type
        self.message = message[:100]
        self.context = {k: v for k, v in context.items() if k in ['endpoint', 'provider_id', 'operation']}
        self.fingerprint = self._generate_fingerprint()
        self.first_seen = time.time()
        self.last_seen = time.time()
        self.count = 1

    def _generate_fingerprint(self) -> str:
        content = f"{self.error_type}:{self.message}:{self.context.get('operation', '')}"
        return hashlib.md5(content.encode(), usedforsecurity=False).hexdigest()[:8]

    def update(self):
        self.last_seen = time.time()
        self.count += 1

class ErrorAggregator:
    """Aggregate and deduplicate errors so a flapping store doesn't flood the logs."""

    def __init__(self, log_threshold: int = 10, time_window: int = 300, max_patterns: int = 500):
        self.log_threshold = log_threshold  # Log every Nth occurrence
        self.time_window = time_window      # 5 minutes
        self.max_patterns = max_patterns
        self.patterns: Dict[str, ErrorPattern] = {}
        self.last_cleanup = time.time()
        self.severity_override = {
            "InvalidBookingRequest": ErrorSeverity.LOW,
            "ProviderNotFound": ErrorSeverity.LOW,
            "BookingGroupNotFound": ErrorSeverity.LOW,
            "ValidationError": ErrorSeverity.LOW,
            "StoreUnavailable": ErrorSeverity.HIGH,
            "OperationalError": ErrorSeverity.MEDIUM,
            "TimeoutError": ErrorSeverity.MEDIUM,
            "ConnectionError": ErrorSeverity.MEDIUM,
            "DatabaseError": ErrorSeverity.HIGH,
        }

    def _determine_severity(self, error: Exception) -> ErrorSeverity:
        error_type = type(error).__name__

        if error_type in self.severity_override:
            return self.severity_override[error_type]

        if isinstance(error, HTTPException):
            if error.status_code < 500:
                return ErrorSeverity.LOW
            elif error.status_code < 503:
                return ErrorSeverity.MEDIUM
            else:
                return ErrorSeverity.HIGH

        text = str(error).lower()
        if "refused" in text or "unreachable" in text:
            return ErrorSeverity.HIGH
        return ErrorSeverity.MEDIUM

    def should_log(self, pattern: ErrorPattern, severity: ErrorSeverity) -> bool:
        if severity in [ErrorSeverity.HIGH, ErrorSeverity.CRITICAL]:
            return True

        if pattern.count == 1:
            return True

        if severity == ErrorSeverity.MEDIUM and pattern.count % self.log_threshold == 0:
            return True

        if severity == ErrorSeverity.LOW and pattern.count % (self.log_threshold * 5) == 0:
            return True

        return False

    def log_error(self, error: Exception, context: Optional[Dict[str, Any]] = None,
                  severity: Optional[ErrorSeverity] = None) -> str:
        """Log error with deduplication and frequency control. Returns the fingerprint."""
        context = context or {}

        if severity is None:
            severity = self._determine_severity(error)

        error_type = type(error).__name__
        message = str(error)

        pattern = ErrorPattern(error_type, message, context)
        fingerprint = pattern.fingerprint

        if fingerprint in self.patterns:
            self.patterns[fingerprint].update()
            pattern = self.patterns[fingerprint]
        else:
            self.patterns[fingerprint] = pattern
            self._enforce_limits()

        if self.should_log(pattern, severity):
            logger.error(
                "aggregated_error",
                error_hash=fingerprint,
                error_type=error_type,
                detail=message[:200],
                count=pattern.count,
                severity=severity.value,
                first_seen=pattern.first_seen,
                **context
            )

        return fingerprint

    def get_error_summary(self) -> Dict[str, Any]:
        """Get summary of recent errors for monitoring."""
        now = time.time()
        recent_errors = {
            fp: pattern for fp, pattern in self.patterns.items()
            if now - pattern.last_seen < self.time_window
        }

        by_type = defaultdict(int)
        for pattern in recent_errors.values():
            by_type[pattern.error_type] += pattern.count

        top_errors = sorted(recent_errors.values(), key=lambda p: p.count, reverse=True)[:5]
        return {
            "total_unique_errors": len(recent_errors),
            "total_error_count": sum(p.count for p in recent_errors.values()),
            "by_type": dict(by_type),
            "top_errors": [
                {
                    "fingerprint": p.fingerprint,
                    "type": p.error_type,
                    "message": p.message,
                    "count": p.count
                }
                for p in top_errors
            ],
        }

    def _enforce_limits(self):
        if time.time() - self.last_cleanup > self.time_window:
            self.cleanup_old_patterns()

        overflow = len(self.patterns) - self.max_patterns
        if overflow > 0:
            # Drop the least recently seen patterns first
            stale = sorted(self.patterns.values(), key=lambda p: p.last_seen)[:overflow]
            for pattern in stale:
                del self.patterns[pattern.fingerprint]

    def cleanup_old_patterns(self):
        """Remove old error patterns to prevent memory leaks."""
        now = time.time()
        cutoff = now - (self.time_window * 10)  # Keep 10x time window
        self.last_cleanup = now

        old_patterns = [
            fp for fp, pattern in self.patterns.items()
            if pattern.last_seen < cutoff
        ]

        for fp in old_patterns:
            del self.patterns[fp]

        if old_patterns:
            logger.info("error_cleanup", removed_patterns=len(old_patterns))

    def reset(self):
        self.patterns.clear()

# Global error aggregator instance
error_aggregator = ErrorAggregator()

def log_error(error: Exception, context: Optional[Dict[str, Any]] = None,
              severity: Optional[ErrorSeverity] = None) -> str:
    """Convenience function to log errors through the global aggregator."""
    return error_aggregator.log_error(error, context, severity)

def get_error_summary() -> Dict[str, Any]:
    return error_aggregator.get_error_summary()
