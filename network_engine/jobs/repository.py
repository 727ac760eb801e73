"""
Persisted job run records.
"""

import json
from typing import Any

from network_engine.db.helpers import execute_query, fetch_val, with_db_retry


class JobRunRepository:
    @staticmethod
    @with_db_retry()
    async def start(job_name: str) -> str:
        return await fetch_val(
            "INSERT INTO job_runs (job_name, status) VALUES (%s, 'running') RETURNING id",
            (job_name,),
        )

    @staticmethod
    @with_db_retry()
    async def finish(
        run_id: str,
        status: str,
        processed: int = 0,
        summary: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        await execute_query(
            """
            UPDATE job_runs
               SET status = %s, processed = %s, summary = %s, error = %s, finished_at = NOW()
             WHERE id = %s
            """,
            (status, processed, json.dumps(summary or {}, default=str), error, run_id),
        )
