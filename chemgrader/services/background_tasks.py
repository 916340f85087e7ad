"""
Background execution of the submission pipeline.

Two dispatchers are available: ``ThreadDispatcher`` runs each pipeline on a
daemon thread inside the Flask application context, ``CeleryDispatcher``
queues the ``run_submission_pipeline`` Celery task. ``PIPELINE_EXECUTOR``
selects between them.
"""
import threading

from celery import Celery

from chemgrader.config.unified_config import config
from utils.logger import logger

# Initialize Celery
celery_app = Celery("chemgrader")

# Configure Celery (using database instead of Redis)
celery_app.conf.update(
    broker_url=config.celery.broker_url,
    result_backend=config.celery.result_backend,
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes
    task_soft_time_limit=25 * 60,  # 25 minutes
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
)

_worker_app = None


def _get_worker_app():
    """Flask app used by Celery workers, created on first task."""
    global _worker_app
    if _worker_app is None:
        from webapp.app_factory import create_app

        _worker_app = create_app()
    return _worker_app


class ThreadDispatcher:
    """Runs each pipeline on its own daemon thread."""

    def __init__(self, app):
        self.app = app

    def dispatch(self, submission_id: str) -> threading.Thread:
        thread = threading.Thread(
            target=self._run,
            args=(submission_id,),
            name=f"pipeline-{submission_id[:8]}",
            daemon=True,
        )
        thread.start()
        logger.info(f"Pipeline for submission {submission_id} started on {thread.name}")
        return thread

    def _run(self, submission_id: str) -> None:
        with self.app.app_context():
            pipeline = self.app.extensions["chemgrader"]["pipeline"]
            try:
                pipeline.run_pipeline(submission_id)
            except Exception as e:
                logger.log_error_with_context(e, {"submission_id": submission_id})


class CeleryDispatcher:
    """Queues pipelines on the Celery broker."""

    def dispatch(self, submission_id: str):
        result = run_submission_pipeline.delay(submission_id)
        logger.info(f"Pipeline for submission {submission_id} queued as task {result.id}")
        return result


@celery_app.task(bind=True, name="run_submission_pipeline")
def run_submission_pipeline(self, submission_id: str):
    """
    Celery task running the full pipeline for one submission.

    Args:
        submission_id: ID of the submission to process
    """
    app = _get_worker_app()
    with app.app_context():
        pipeline = app.extensions["chemgrader"]["pipeline"]
        status = pipeline.run_pipeline(submission_id)
        logger.info(f"Task {self.request.id} finished submission {submission_id}: {status.value}")
        return {"submission_id": submission_id, "status": status.value}


def create_dispatcher(app, executor: str = None):
    executor = executor or config.pipeline.executor
    if executor == "celery":
        return CeleryDispatcher()
    return ThreadDispatcher(app)
