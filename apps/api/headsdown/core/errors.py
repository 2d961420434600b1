from __future__ import annotations


class HeadsDownError(RuntimeError):
    """Base class for errors the service knows how to report."""


class ConfigurationError(HeadsDownError):
    """Required secrets or ids are missing. Fatal at boot, 503 at request time."""


class AuthorizationError(HeadsDownError):
    """Caller is not allowed to do this (non-member, bad OAuth state, missing code)."""


class UpstreamError(HeadsDownError):
    """A Slack API call failed. Logged, never retried."""


class MalformedResponseError(UpstreamError):
    """Slack answered successfully but without the fields we need."""
