# cityatlas/core/errors.py
"""
Domain error taxonomy.

Authorization and validation failures are never transient: they are raised
straight to the caller and never retried. Only store failures are retried
(see cityatlas.db.session) and, once the retry budget is spent, surface as
StoreUnavailable.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

FORBIDDEN_MESSAGE = "You do not have permission to perform this action."


class CityAtlasError(Exception):
    code: str = "error"
    message: str = "Request failed."

    def __init__(self, message: Optional[str] = None, **details: Any) -> None:
        self.message = message or self.message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body.update(self.details)
        return body


# ---------------------------------------------------------
# Authorization
# ---------------------------------------------------------
class AuthorizationDenied(CityAtlasError):
    code = "forbidden"
    message = FORBIDDEN_MESSAGE

    def to_dict(self) -> dict[str, Any]:
        # Same body for every deny: never reveal which tenant/record exists.
        return {"code": self.code, "message": FORBIDDEN_MESSAGE}


class PrivilegeEscalationAttempt(AuthorizationDenied):
    """An actor tried to hand out (or take away) a role above their own authority."""


# ---------------------------------------------------------
# Validation
# ---------------------------------------------------------
class ValidationError(CityAtlasError):
    code = "validation_error"
    message = "Validation failed."


class CardinalityViolation(ValidationError):
    code = "cardinality_violation"

    def __init__(self, type_slug: str, value_slugs: Iterable[str]) -> None:
        slugs = sorted(value_slugs)
        super().__init__(
            f"Taxonomy type '{type_slug}' accepts a single value, got {len(slugs)}.",
            taxonomy_type=type_slug,
            values=slugs,
        )


class MissingRequiredClassification(ValidationError):
    code = "missing_required_classification"

    def __init__(self, type_slugs: Iterable[str]) -> None:
        slugs = sorted(type_slugs)
        super().__init__(
            f"Missing required classification: {', '.join(slugs)}.",
            taxonomy_types=slugs,
        )


class CrossScopeReference(ValidationError):
    code = "cross_scope_reference"

    def __init__(self, type_slug: str, value_ids: Iterable[Any]) -> None:
        ids = sorted(str(v) for v in value_ids)
        super().__init__(
            f"Values do not belong to taxonomy type '{type_slug}' in this tenant.",
            taxonomy_type=type_slug,
            values=ids,
        )


class RetiredTaxonomyType(ValidationError):
    code = "retired_taxonomy_type"

    def __init__(self, type_slug: str) -> None:
        super().__init__(
            f"Taxonomy type '{type_slug}' is retired and accepts no new assignments.",
            taxonomy_type=type_slug,
        )


class InvalidTransition(ValidationError):
    code = "invalid_transition"


class DuplicateSlug(ValidationError):
    code = "duplicate_slug"

    def __init__(self, slug: str, scope: str) -> None:
        super().__init__(f"Slug '{slug}' is already used in this {scope}.", slug=slug, scope=scope)


# ---------------------------------------------------------
# Invariants
# ---------------------------------------------------------
class InvariantViolation(CityAtlasError):
    code = "invariant_violation"
    message = "The operation would break a data invariant."


class DuplicateGrant(InvariantViolation):
    code = "duplicate_grant"


# ---------------------------------------------------------
# Lookups / infrastructure
# ---------------------------------------------------------
class NotFound(CityAtlasError):
    code = "not_found"
    message = "Not found."


class StoreUnavailable(CityAtlasError):
    code = "unavailable"
    message = "The data store is temporarily unavailable. Please retry."


class UnknownAction(ValueError):
    """Malformed action identifier. A programming error, never a Deny."""
