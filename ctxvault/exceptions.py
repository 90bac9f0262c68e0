"""
Exception hierarchy for ctxvault.
"""


class CtxVaultError(Exception):
    """Base exception for ctxvault errors."""
    pass


class ConfigError(CtxVaultError):
    """Invalid configuration value."""
    pass


class EnumerationError(CtxVaultError):
    """The directory to index is missing or cannot be walked."""
    pass


class StoreError(CtxVaultError):
    """Document store operation failed."""
    pass


class EmbeddingError(CtxVaultError):
    """Embedding generation failed."""
    pass


class JobNotFoundError(CtxVaultError):
    """No job with the given id is registered."""

    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class InvalidJobTransition(CtxVaultError):
    """A job status change that the job state machine does not allow."""

    def __init__(self, job_id: str, current: str, requested: str):
        super().__init__(f"Job {job_id} cannot move from {current} to {requested}")
        self.job_id = job_id
        self.current = current
        self.requested = requested
