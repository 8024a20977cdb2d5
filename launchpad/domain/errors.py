from __future__ import annotations


class LaunchpadError(Exception):
    """Base class for engine errors surfaced to the web layer."""

    status_code = 500


class ValidationError(LaunchpadError):
    """Bad input; the caller's fault."""

    status_code = 400


class AssetNotFound(ValidationError):
    status_code = 404


class NotReady(LaunchpadError):
    """A dependent resource has not materialised yet. Safe to retry later."""

    status_code = 409


class ConfigurationDrift(LaunchpadError):
    """The held signing secret does not match the published treasury identity."""

    status_code = 500


class PaymentUnverified(LaunchpadError):
    """The claimed payment could not be verified (or was already consumed)."""

    status_code = 402


class ExternalDependencyFailure(LaunchpadError):
    """Ledger or database unreachable."""

    status_code = 503
