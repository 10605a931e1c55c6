from __future__ import annotations


class PodifyError(Exception):
    """Base exception for domain-safe errors."""


class ConfigurationError(PodifyError):
    """Missing provider credentials or invalid input; raised before any stage runs."""


class ProviderError(PodifyError):
    """Text-generation or speech-synthesis call failed or returned malformed data."""


class AssemblyError(PodifyError):
    """Mandatory normalize/concatenate step failed."""


class RegistrationError(PodifyError):
    """Manifest write or asset upload failed after the artifact already exists."""


class CleanupError(PodifyError):
    pass
