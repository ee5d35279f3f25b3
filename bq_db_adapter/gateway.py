"""
Job execution gateway - the single boundary where the adapter talks to BigQuery.

The adapter depends only on the QueryEngine protocol; BigQueryEngine is
the real implementation on top of google-cloud-bigquery. Tests and dry
runs plug in their own engines.

Error classification:
- Job creation rejected with 429/5xx -> TransientSubmissionError (retryable)
- Job creation rejected otherwise (auth, bad request) -> PermanentSubmissionError
- Waiting on the job hit 429/5xx -> TransientExecutionError (retryable)
- Job accepted but finished in error -> PermanentExecutionError. Invalid SQL
  and missing tables are reported here, by job.result(), not at creation
- Job still running after job_timeout -> job cancelled, JobTimeoutError

Nothing is retried here; retries are the caller's decision.
"""

import concurrent.futures
import logging
from typing import Any, Protocol, runtime_checkable

from google.api_core import exceptions as google_api_exceptions
from google.cloud import bigquery

from bq_db_adapter.errors import (
    JobTimeoutError,
    PermanentExecutionError,
    PermanentSubmissionError,
    TransientExecutionError,
    TransientSubmissionError,
)
from bq_db_adapter.sql_builder import QueryParam

logger = logging.getLogger(__name__)


DEFAULT_LOCATION = "US"

TRANSIENT_API_ERRORS = (
    google_api_exceptions.TooManyRequests,
    google_api_exceptions.InternalServerError,
    google_api_exceptions.BadGateway,
    google_api_exceptions.ServiceUnavailable,
    google_api_exceptions.GatewayTimeout,
)


@runtime_checkable
class QueryEngine(Protocol):
    """
    Protocol for submitting SQL and awaiting its rows.

    Implementations run the SQL as one job in ``location``, wait for it
    to finish and return the rows of its (last) statement as dicts.
    """

    def run(
        self,
        sql: str,
        *,
        location: str,
        query_params: list[QueryParam] | None = None,
    ) -> list[dict[str, Any]]:
        ...


def to_bigquery_params(
    query_params: list[QueryParam] | None,
) -> list[bigquery.ScalarQueryParameter | bigquery.ArrayQueryParameter]:
    """Convert builder QueryParams into google-cloud-bigquery parameters."""
    converted = []
    for p in query_params or []:
        if p.array_type:
            converted.append(bigquery.ArrayQueryParameter(p.name, p.type, p.value))
        else:
            converted.append(bigquery.ScalarQueryParameter(p.name, p.type, p.value))
    return converted


class BigQueryEngine:
    """QueryEngine backed by a google.cloud.bigquery.Client.

    One client per engine, created on first use and reused for every call.

    Args:
        project: GCP project the jobs run in
        job_timeout: Seconds to wait for a job before cancelling it
            (None waits indefinitely)
        show_logs: Log SQL text at INFO instead of DEBUG
        client: Pre-built client (tests, custom credentials)
    """

    def __init__(
        self,
        project: str,
        *,
        job_timeout: float | None = None,
        show_logs: bool = False,
        client: bigquery.Client | None = None,
    ):
        self.project = project
        self.job_timeout = job_timeout
        self.show_logs = show_logs
        self._client = client

    @property
    def client(self) -> bigquery.Client:
        if self._client is None:
            self._client = bigquery.Client(project=self.project)
        return self._client

    def _log_sql(self, message: str) -> None:
        logger.log(logging.INFO if self.show_logs else logging.DEBUG, message)

    def run(
        self,
        sql: str,
        *,
        location: str = DEFAULT_LOCATION,
        query_params: list[QueryParam] | None = None,
    ) -> list[dict[str, Any]]:
        """Run sql as a query job and return its rows fully materialized.

        Raises:
            TransientSubmissionError: Job creation hit a retryable failure
            PermanentSubmissionError: Job creation was rejected
            TransientExecutionError: Waiting on the job hit a retryable failure
            PermanentExecutionError: The job finished in a failed state
            JobTimeoutError: The job exceeded job_timeout and was cancelled
        """
        job_config = bigquery.QueryJobConfig(query_parameters=to_bigquery_params(query_params))

        try:
            job = self.client.query(sql, job_config=job_config, location=location)
        except TRANSIENT_API_ERRORS as e:
            logger.error(f"Job submission failed (retryable) in {location}: {e}")
            self._log_sql(f"Rejected query: {sql}")
            raise TransientSubmissionError(str(e), sql=sql, location=location) from e
        except google_api_exceptions.GoogleAPICallError as e:
            logger.error(f"Job submission rejected in {location}: {e}")
            self._log_sql(f"Rejected query: {sql}")
            raise PermanentSubmissionError(str(e), sql=sql, location=location) from e

        self._log_sql(f"Job {job.job_id} started for query {sql}")

        try:
            result = job.result(timeout=self.job_timeout)
        except concurrent.futures.TimeoutError as e:
            logger.warning(f"Job {job.job_id} exceeded {self.job_timeout}s, cancelling")
            try:
                job.cancel()
            except google_api_exceptions.GoogleAPICallError as cancel_error:
                logger.error(f"Failed to cancel job {job.job_id}: {cancel_error}")
            raise JobTimeoutError(
                f"Job {job.job_id} did not complete within {self.job_timeout}s",
                job_id=job.job_id,
                sql=sql,
            ) from e
        except TRANSIENT_API_ERRORS as e:
            logger.error(f"Job {job.job_id} failed (retryable): {e}")
            self._log_sql(f"Failed query: {sql}")
            raise TransientExecutionError(
                str(e), job_id=job.job_id, sql=sql, errors=job.errors
            ) from e
        except google_api_exceptions.GoogleAPICallError as e:
            logger.error(f"Job {job.job_id} failed: {e}")
            self._log_sql(f"Failed query: {sql}")
            raise PermanentExecutionError(
                str(e), job_id=job.job_id, sql=sql, errors=job.errors
            ) from e

        rows = [dict(row.items()) for row in result]
        logger.info(f"Job {job.job_id} complete ({len(rows)} rows)")
        return rows


class RecordingEngine:
    """QueryEngine that records submissions instead of running them.

    Used for dry runs (SQL rendering) and tests. Each run() pops the next
    canned response from ``responses``; with none left it returns [].

    Attributes:
        submissions: (sql, location, query_params) tuples in call order
    """

    def __init__(self, responses: list[list[dict[str, Any]]] | None = None):
        self.responses = list(responses or [])
        self.submissions: list[tuple[str, str, list[QueryParam]]] = []

    def run(
        self,
        sql: str,
        *,
        location: str = DEFAULT_LOCATION,
        query_params: list[QueryParam] | None = None,
    ) -> list[dict[str, Any]]:
        self.submissions.append((sql, location, list(query_params or [])))
        logger.debug(f"Recorded query for {location}: {sql}")
        if self.responses:
            return self.responses.pop(0)
        return []
