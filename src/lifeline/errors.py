"""Application-level exception types for lifeline."""

from __future__ import annotations


class LifelineError(Exception):
    """Base exception for lifeline."""


class ConfigurationError(LifelineError):
    """Base exception for configuration and startup validation errors."""


class InvalidThresholdsError(ConfigurationError):
    """Raised when survival thresholds are not strictly descending and non-negative."""


class ModelNotConfiguredError(ConfigurationError):
    """Raised when model configuration is missing."""


class StoreError(LifelineError):
    """Raised when the durable state store cannot be read or written."""


class LifecycleTransitionError(LifelineError):
    """Raised when a lifecycle transition is not allowed by the state table."""


class ToolExecutionError(LifelineError):
    """Raised inside tool handlers; always wrapped into a tool call result."""


class ReasoningError(LifelineError):
    """Raised when the reasoning collaborator fails or times out."""
