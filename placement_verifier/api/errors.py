# File: placement_verifier/api/errors.py
"""
Verification error taxonomy.

Every failure the pipeline can report is a VerificationError carrying a
`kind` (used for metrics labels and report output) and a `context` dict with
the offending entity identifiers and expected vs. actual values.
"""

from typing import Any, Dict, Optional


class VerificationError(Exception):
    """Base class for all verification failures."""

    kind = "verification_error"

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self):
        return f"{self.kind}: {self.message}"


class MalformedInput(VerificationError):
    kind = "malformed_input"


class InconsistentDeclaration(VerificationError):
    kind = "inconsistent_declaration"


class GroupResolutionError(VerificationError):
    kind = "group_resolution_error"


class MembershipMismatch(VerificationError):
    kind = "membership_mismatch"


class PolicyMismatch(VerificationError):
    """Declared install-config policy disagrees with the provider-side group."""

    kind = "policy_mismatch"


class PhysicalPolicyViolation(VerificationError):
    kind = "physical_policy_violation"


class CollaboratorUnavailable(VerificationError):
    """A query to the orchestration layer or compute provider failed."""

    kind = "collaborator_unavailable"


class ConfigError(Exception):
    """Configuration is unusable; raised before any verification starts."""
