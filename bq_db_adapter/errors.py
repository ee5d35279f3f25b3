"""
Error classes for bq_db_adapter.

These error types enable retry classification at the caller's boundary:
- TransientError: Safe to retry (rate limits, backend hiccups, job timeouts)
- PermanentError: Do not retry (bad SQL, permissions, missing context)

The adapter never retries and never swallows an error. Every failure
aborts the current operation and propagates to the caller, who decides
what to do based on the class hierarchy below.
"""


class AdapterError(Exception):
    """Base exception for bq_db_adapter."""
    pass


class TransientError(AdapterError):
    """
    Transient error - safe to retry.

    Examples:
    - Rate limit / quota exceeded (429)
    - BigQuery backend error (500, 503)
    - Job did not finish within the configured timeout
    """
    pass


class PermanentError(AdapterError):
    """
    Permanent error - do not retry.

    Examples:
    - Invalid SQL
    - Table or dataset not found
    - Permission denied
    - Missing adapter settings or tenant context
    """
    pass


class ConfigurationError(PermanentError):
    """Required adapter settings are missing or invalid."""
    pass


class MissingContextError(PermanentError):
    """No tenant context was attached to the call.

    Signals that the hook responsible for attaching the context did not
    run. The adapter never falls back to a default table.
    """

    def __init__(self, message: str | None = None):
        super().__init__(
            message
            or "Unable to retrieve private context, please make sure you apply one via a hook."
        )


class EngineSubmissionError(AdapterError):
    """BigQuery rejected the job at creation time.

    Attributes:
        sql: The submitted SQL text (for logs, not for end users)
        location: Region the job was submitted under
    """

    def __init__(self, message: str, *, sql: str = "", location: str | None = None):
        super().__init__(message)
        self.sql = sql
        self.location = location


class TransientSubmissionError(EngineSubmissionError, TransientError):
    """Job creation failed for a reason that may clear up (quota, 5xx)."""
    pass


class PermanentSubmissionError(EngineSubmissionError, PermanentError):
    """Job creation failed for a reason retrying will not fix."""
    pass


class EngineExecutionError(AdapterError):
    """The job was accepted but failed while running or being waited on.

    BigQuery validates SQL after the job is created, so invalid SQL and
    missing tables surface here rather than as an EngineSubmissionError.

    Attributes:
        job_id: BigQuery job id
        sql: The submitted SQL text
        errors: Error records reported by the job, if any
    """

    def __init__(
        self,
        message: str,
        *,
        job_id: str | None = None,
        sql: str = "",
        errors: list[dict] | None = None,
    ):
        super().__init__(message)
        self.job_id = job_id
        self.sql = sql
        self.errors = errors or []


class TransientExecutionError(EngineExecutionError, TransientError):
    """The wait for the job hit a retryable failure (quota, 5xx)."""
    pass


class PermanentExecutionError(EngineExecutionError, PermanentError):
    """The job failed for a reason retrying will not fix (bad SQL, access)."""
    pass


class JobTimeoutError(TransientError):
    """The job did not complete within ``job_timeout`` and was cancelled."""

    def __init__(self, message: str, *, job_id: str | None = None, sql: str = ""):
        super().__init__(message)
        self.job_id = job_id
        self.sql = sql
