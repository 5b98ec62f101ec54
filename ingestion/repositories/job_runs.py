"""Job run bookkeeping for pipeline stages."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.orm import Session

from ingestion.db.models import JobRun, JobStage, JobStatus


class JobRunRecorder:
    """Context manager to record a stage's lifecycle in ``job_runs``."""

    def __init__(
        self,
        session: Session,
        *,
        stage: JobStage,
        task_name: str,
        trace_id: str | None = None,
        items_in: int = 0,
    ) -> None:
        self._session = session
        self._job = JobRun(
            stage=stage,
            status=JobStatus.RUNNING,
            task_name=task_name,
            trace_id=trace_id,
            items_in=items_in,
            started_at=datetime.now(timezone.utc),
        )

    def __enter__(self) -> JobRun:
        self._session.add(self._job)
        # durable RUNNING row even if the stage later fails
        self._session.commit()
        return self._job

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        if exc is None:
            self._job.status = JobStatus.SUCCEEDED
        else:
            self._job.status = JobStatus.FAILED
            self._job.error_message = str(exc)[:512]
        self._job.finished_at = datetime.now(timezone.utc)
        self._session.add(self._job)
        try:
            self._session.commit()
        except Exception:  # pragma: no cover - do not mask the original error
            self._session.rollback()
