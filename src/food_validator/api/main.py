"""FastAPI app entrypoint for the food validation gateway.

Beginner terms used in this file:
- Application factory: `create_app` builds a fresh app; tests inject doubles.
- app.state: shared runtime objects (queue, settings, static resources).
- Exception handler: maps a domain error to an HTTP status and JSON body.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.responses import HTMLResponse, JSONResponse

from ..broker import build_broker_store
from ..config.settings import Settings, get_settings
from ..errors import BrokerUnavailable, JobNotFound, NoImageProvided
from ..queue import FoodValidationTask, JobState, TaskQueue, attach_logging_listeners
from ..static import StaticResources, load_static_resources
from .schemas import QueueJobsResponse, QueueStatusResponse, TaskStatusResponse, ValidateFoodResponse

logger = logging.getLogger(__name__)


def _ensure_runtime_state(
    app: FastAPI,
    *,
    settings: Settings,
    queue_override: TaskQueue | None,
    resources_override: StaticResources | None,
) -> None:
    if not hasattr(app.state, "settings"):
        app.state.settings = settings

    if not hasattr(app.state, "resources"):
        app.state.resources = resources_override or load_static_resources(settings)

    if not hasattr(app.state, "queue"):
        if queue_override is None:
            queue = TaskQueue.from_settings(build_broker_store(settings), settings)
            attach_logging_listeners(queue)
        else:
            queue = queue_override
        app.state.queue = queue


def create_app(
    *,
    queue: TaskQueue | None = None,
    settings_override: Settings | None = None,
    resources: StaticResources | None = None,
) -> FastAPI:
    settings = settings_override or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _ensure_runtime_state(
            app,
            settings=settings,
            queue_override=queue,
            resources_override=resources,
        )
        logger.info(
            "gateway event=start queue=%s api_key_available=%s",
            app.state.queue.name,
            bool(settings.resolved_openai_api_key()),
        )
        yield
        if queue is None:
            app.state.queue.close()

    app_lifespan = lifespan if queue is None else None
    app = FastAPI(title=settings.app_name, lifespan=app_lifespan)

    # Keep test paths reliable when lifespan is not executed by the client.
    if queue is not None:
        _ensure_runtime_state(
            app,
            settings=settings,
            queue_override=queue,
            resources_override=resources,
        )

    def _get_queue(request: Request) -> TaskQueue:
        if not hasattr(request.app.state, "queue"):
            _ensure_runtime_state(
                request.app,
                settings=settings,
                queue_override=queue,
                resources_override=resources,
            )
        return request.app.state.queue

    def _get_resources(request: Request) -> StaticResources:
        _get_queue(request)
        return request.app.state.resources

    @app.exception_handler(NoImageProvided)
    def no_image_handler(_: Request, exc: NoImageProvided) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(JobNotFound)
    def job_not_found_handler(_: Request, exc: JobNotFound) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": "Task not found", "taskId": exc.job_id})

    @app.exception_handler(BrokerUnavailable)
    def broker_unavailable_handler(_: Request, exc: BrokerUnavailable) -> JSONResponse:
        logger.error("gateway event=broker_unavailable reason=%s", exc)
        return JSONResponse(
            status_code=503,
            content={"error": "Queue broker unavailable", "details": str(exc)},
        )

    @app.get("/", response_class=HTMLResponse)
    def home(request: Request) -> str:
        return _get_resources(request).homepage_html

    @app.get("/health")
    def health(request: Request) -> dict[str, object]:
        static = _get_resources(request)
        return {
            "status": "healthy",
            "timestamp": datetime.now(tz=UTC).isoformat(),
            "system_prompt_loaded": static.system_prompt_loaded,
            "html_content_loaded": static.homepage_loaded,
            "api_key_available": bool(settings.resolved_openai_api_key()),
        }

    @app.post("/validate-food", response_model=ValidateFoodResponse)
    def validate_food(
        request: Request,
        image: UploadFile | None = File(default=None),
        imageUrl: str | None = Form(default=None),  # noqa: N803
        imageBase64: str | None = Form(default=None),  # noqa: N803
        foodName: str | None = Form(default=None),  # noqa: N803
        ingredients: str | None = Form(default=None),
    ) -> ValidateFoodResponse:
        image_bytes = image.file.read() if image is not None else b""
        task = FoodValidationTask(
            image_file=image_bytes or None,
            image_url=(imageUrl or "").strip() or None,
            image_base64=(imageBase64 or "").strip() or None,
            media_type=(image.content_type if image_bytes and image is not None else None),
            food_name=(foodName or "").strip() or None,
            ingredients=(ingredients or "").strip() or None,
        )
        logger.info("validate_food event=received input=%s", task.describe())
        if not task.has_image():
            raise NoImageProvided()

        task_id = _get_queue(request).enqueue(task)
        logger.info("validate_food event=enqueued task_id=%s", task_id)
        return ValidateFoodResponse(task_id=task_id, status_endpoint=f"/task-status/{task_id}")

    @app.get("/task-status/{task_id}", response_model=TaskStatusResponse)
    def task_status(task_id: str, request: Request) -> TaskStatusResponse:
        record = _get_queue(request).require_job(task_id)
        return TaskStatusResponse.from_record(record)

    @app.get("/queue-status", response_model=QueueStatusResponse)
    def queue_status(request: Request) -> QueueStatusResponse:
        task_queue = _get_queue(request)
        counts = task_queue.get_job_counts()
        return QueueStatusResponse(queue=task_queue.name, counts=counts, total=sum(counts.values()))

    @app.get("/queue-status/{state}", response_model=QueueJobsResponse)
    def queue_jobs(state: str, request: Request) -> QueueJobsResponse | JSONResponse:
        try:
            job_state = JobState(state)
        except ValueError as exc:
            return JSONResponse(status_code=400, content={"error": f"Unknown job state: {state}"})
        task_queue = _get_queue(request)
        return QueueJobsResponse.from_records(
            task_queue.name, job_state.value, task_queue.list_by_state(job_state)
        )

    return app


app = create_app()
