"""
kudos.errors — Economy Error Taxonomy
======================================

Every failure a collaborator can observe is a :class:`KudosError` with a
stable ``code`` and an HTTP status.  Rejections happen before any write;
``ConcurrencyConflict`` (a lost conditional update, retried by the caller)
and ``RecomputeUnavailable`` (turned into a warning) are internal signals.
"""

from __future__ import annotations


class KudosError(Exception):
    """Base class for all economy errors."""

    code = "error"
    status_code = 400

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> dict:
        return {"ok": False, "error": self.code, "detail": self.message}


# ---------------------------------------------------------------------------
# Rejected pre-write
# ---------------------------------------------------------------------------
class ValidationError(KudosError):
    code = "validation_error"


class InvalidAmount(ValidationError):
    code = "invalid_amount"


class AuthorizationError(KudosError):
    code = "forbidden"
    status_code = 403


class NotFound(KudosError):
    code = "not_found"
    status_code = 404


class CatalogInconsistency(KudosError):
    """A referenced catalog item is missing or unusable."""

    code = "catalog_inconsistency"
    status_code = 409


class ItemDisabled(CatalogInconsistency):
    code = "item_disabled"


# ---------------------------------------------------------------------------
# Eligibility gates
# ---------------------------------------------------------------------------
class EligibilityError(KudosError):
    code = "not_eligible"


class InsufficientLevel(EligibilityError):
    code = "insufficient_level"


class InsufficientPoints(EligibilityError):
    code = "insufficient_points"


class RequiresEligibility(EligibilityError):
    code = "requires_eligibility"


class Locked(EligibilityError):
    code = "locked"


class GiftUnavailable(KudosError):
    code = "gift_unavailable"


# ---------------------------------------------------------------------------
# Internal signals — never surfaced to collaborators as failures
# ---------------------------------------------------------------------------
class ConcurrencyConflict(KudosError):
    code = "concurrency_conflict"
    status_code = 409


class RecomputeUnavailable(KudosError):
    code = "recompute_unavailable"
    status_code = 503
