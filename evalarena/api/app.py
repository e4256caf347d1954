"""
HTTP API

FastAPI application exposing the streaming evaluation endpoint plus the
experiment / test case / result resources.

Usage:
    uvicorn evalarena.api.app:create_app --factory
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse

from utils.exceptions import DatabaseError, NotFoundError, RequestError

from .. import __version__
from ..catalog import ModelCatalog
from ..evaluation.models import EvaluationRequest
from ..evaluation.orchestrator import EvaluationOrchestrator
from ..reporting.summary import summarize_results
from ..scoring.metrics import EvaluationMetric
from ..storage.store import ResultStore
from .schemas import (
    BulkTestCasesBody,
    CreateExperimentBody,
    EvaluateBody,
    ExperimentResultBody,
    LinkTestCaseBody,
    TestCaseBody,
)

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

router = APIRouter(prefix="/api")


def _orchestrator(request: Request) -> EvaluationOrchestrator:
    return request.app.state.orchestrator


def _store(request: Request) -> ResultStore:
    return request.app.state.store


def _catalog(request: Request) -> ModelCatalog:
    return request.app.state.catalog


def _experiment_detail(request: Request, experiment_id: str) -> Dict[str, Any]:
    store = _store(request)
    catalog = _catalog(request)
    experiment = store.get_experiment(experiment_id)
    data = experiment.to_dict()
    models = []
    for model_id in experiment.model_ids:
        entry = catalog.get(model_id)
        if entry is None:
            models.append({"value": model_id, "label": model_id})
        else:
            models.append({**entry.to_dict(), "category": entry.category})
    data["models"] = models
    data["testCases"] = [tc.to_dict() for tc in store.get_test_cases_for_experiment(experiment_id)]
    return data


# -- Evaluation ----------------------------------------------------------------


@router.post("/evaluate")
async def evaluate(body: EvaluateBody, request: Request) -> StreamingResponse:
    """Stream one evaluation as Server-Sent Events."""
    try:
        evaluation = EvaluationRequest.from_dict(body.model_dump(by_alias=True, mode="json"))
    except RequestError as e:
        raise HTTPException(status_code=422, detail=str(e))

    logger.info(f"POST /api/evaluate models={list(evaluation.selected_models)}")
    return StreamingResponse(
        _orchestrator(request).stream(evaluation),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/models")
async def list_models(request: Request) -> List[Dict[str, Any]]:
    return _catalog(request).grouped()


# -- Experiments ---------------------------------------------------------------
# ResultStore blocks on file I/O; plain def handlers run in the threadpool.


@router.post("/experiments")
def create_experiment(body: CreateExperimentBody, request: Request) -> Dict[str, Any]:
    experiment = _store(request).create_experiment(
        name=body.name,
        system_prompt=body.system_prompt,
        model_ids=body.model_ids,
        test_case_ids=body.test_case_ids,
    )
    return experiment.to_dict()


@router.get("/experiments", response_model=None)
def list_experiments(
    request: Request,
    id: Optional[str] = None,
    include_test_cases: bool = Query(False, alias="includeTestCases"),
) -> Any:
    store = _store(request)
    if id:
        if include_test_cases:
            return _experiment_detail(request, id)
        return store.get_experiment(id).to_dict()
    return [e.to_dict() for e in store.list_experiments()]


@router.get("/experiments/{experiment_id}")
def get_experiment(experiment_id: str, request: Request) -> Dict[str, Any]:
    return _experiment_detail(request, experiment_id)


@router.get("/experiments/{experiment_id}/test-cases")
def list_experiment_test_cases(experiment_id: str, request: Request) -> List[Dict[str, Any]]:
    return [tc.to_dict() for tc in _store(request).get_test_cases_for_experiment(experiment_id)]


@router.post("/experiments/{experiment_id}/test-cases")
def link_test_case(
    experiment_id: str, body: LinkTestCaseBody, request: Request
) -> Dict[str, Any]:
    if not body.test_case_id:
        raise HTTPException(status_code=400, detail="testCaseId is required")
    return _store(request).add_test_case_to_experiment(experiment_id, body.test_case_id).to_dict()


@router.post("/experiments/{experiment_id}/test-cases/bulk")
def bulk_create_test_cases(
    experiment_id: str, body: BulkTestCasesBody, request: Request
) -> Dict[str, Any]:
    items = [
        {
            "userMessage": tc.user_message,
            "expectedOutput": tc.expected_output,
            "metrics": [m.value for m in tc.metrics] if tc.metrics else None,
        }
        for tc in body.test_cases
    ]
    created = _store(request).create_test_cases(items, experiment_id=experiment_id)
    logger.info(f"Added {len(created)} test case(s) to experiment {experiment_id}")
    return {"count": len(created), "testCases": [tc.to_dict() for tc in created]}


@router.get("/experiments/{experiment_id}/summary")
def experiment_summary(experiment_id: str, request: Request) -> Dict[str, Any]:
    store = _store(request)
    experiment = store.get_experiment(experiment_id)
    results = store.get_experiment_results(experiment_id)
    test_cases = store.get_test_cases({r.test_case_id for r in results})
    summary = summarize_results(results, experiment=experiment, test_cases=test_cases)
    return summary.to_dict()


# -- Test cases ----------------------------------------------------------------


@router.post("/test-cases")
def create_test_case(body: TestCaseBody, request: Request) -> Dict[str, Any]:
    case = _store(request).create_test_case(
        body.user_message,
        body.expected_output,
        [m.value for m in body.metrics] if body.metrics else None,
    )
    return case.to_dict()


@router.get("/test-cases", response_model=None)
def get_test_cases(
    request: Request,
    id: Optional[str] = None,
    experiment_id: Optional[str] = Query(None, alias="experimentId"),
) -> Any:
    store = _store(request)
    if not id and not experiment_id:
        raise HTTPException(status_code=400, detail="Either test case ID or experiment ID is required")
    if experiment_id:
        return [tc.to_dict() for tc in store.get_test_cases_for_experiment(experiment_id)]
    return store.get_test_case(id).to_dict()


# -- Results -------------------------------------------------------------------


@router.post("/experiment-results")
def create_experiment_result(body: ExperimentResultBody, request: Request) -> Dict[str, Any]:
    if not body.experiment_id or not body.test_case_id or not body.model_id:
        raise HTTPException(
            status_code=400, detail="experimentId, testCaseId, and modelId are required"
        )

    scores = None
    if body.metrics is not None:
        # Every metric gets a value; unscored ones are recorded as 0
        scores = {m.value: float(body.metrics.get(m, 0)) for m in EvaluationMetric}

    result = _store(request).create_experiment_result(
        experiment_id=body.experiment_id,
        test_case_id=body.test_case_id,
        model_id=body.model_id,
        response=body.response,
        scores=scores,
        timing=body.timing,
        error=body.error,
    )
    return result.to_dict()


@router.get("/experiment-results")
def get_experiment_results(
    request: Request,
    experiment_id: Optional[str] = Query(None, alias="experimentId"),
    test_case_id: Optional[str] = Query(None, alias="testCaseId"),
) -> List[Dict[str, Any]]:
    if not experiment_id:
        raise HTTPException(status_code=400, detail="Experiment ID is required")
    store = _store(request)
    if test_case_id:
        results = store.get_test_case_results(experiment_id, test_case_id)
    else:
        results = store.get_experiment_results(experiment_id)
    return [r.to_dict() for r in results]


# -- Application ---------------------------------------------------------------


def create_app(
    orchestrator: Optional[EvaluationOrchestrator] = None,
    store: Optional[ResultStore] = None,
    catalog: Optional[ModelCatalog] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Missing dependencies are built from config; tests pass their own.
    """
    if catalog is None or orchestrator is None or store is None:
        from .. import bootstrap

        catalog = catalog or bootstrap.load_catalog()
        orchestrator = orchestrator or bootstrap.build_orchestrator(catalog)
        store = store or bootstrap.build_store()

    app = FastAPI(title="EvalArena API", version=__version__)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.orchestrator = orchestrator
    app.state.store = store
    app.state.catalog = catalog

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(DatabaseError)
    async def database_error_handler(request: Request, exc: DatabaseError) -> JSONResponse:
        logger.warning(f"{request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        return {"status": "ok", "version": __version__, "models": len(catalog.entries)}

    app.include_router(router)
    return app
