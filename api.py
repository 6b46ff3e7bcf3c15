"""
Module: api.py
Purpose: FastAPI endpoints for mock test generation, attempts and analysis.
"""

import time
from typing import List, Optional, Union

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from dotenv import load_dotenv

from pyqmock.config import reload_config
from pyqmock.core.errors import (
    AlreadyFinalized, AttemptNotFound, InsufficientSupply, TestNotFound, UnknownExamType
)
from pyqmock.core.models import Response
from pyqmock.services.engine import MockTestEngine, get_engine
from pyqmock.tools.utils import (
    clear_correlation_id, get_logger, initialize_logging, set_correlation_id
)

load_dotenv()
initialize_logging()
logger = get_logger("FastAPI")

app = FastAPI(title="PYQ Mock Test Engine", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class GenerateTestRequest(BaseModel):
    exam_type: str = Field(..., min_length=1, max_length=50)
    difficulty: Optional[str] = Field(default=None, description="easy, medium, hard or mixed")
    question_count: Optional[int] = Field(default=None, gt=0, le=500)
    time_limit_minutes: Optional[int] = Field(default=None, gt=0, le=600)


class StartAttemptRequest(BaseModel):
    mock_test_id: str


class ResponseItem(BaseModel):
    question_id: str
    selected_options: List[Union[str, int]] = []
    time_spent: int = Field(default=0, ge=0)

    def to_response(self) -> Response:
        return Response(
            question_id=self.question_id,
            selected_options=tuple(str(s) for s in self.selected_options),
            time_spent=self.time_spent,
        )


class SaveProgressRequest(BaseModel):
    responses: List[ResponseItem] = []


class SubmitAttemptRequest(BaseModel):
    responses: List[ResponseItem] = []
    auto_submit: bool = False


def _raise_for(e: Exception, action: str):
    """Map engine errors onto HTTP status codes"""
    if isinstance(e, HTTPException):
        raise e
    if isinstance(e, InsufficientSupply):
        raise HTTPException(status_code=422, detail=str(e))
    if isinstance(e, (UnknownExamType, TestNotFound, AttemptNotFound)):
        raise HTTPException(status_code=404, detail=str(e))
    if isinstance(e, AlreadyFinalized):
        raise HTTPException(status_code=409, detail=str(e))
    if isinstance(e, ValueError):
        raise HTTPException(status_code=400, detail=str(e))
    logger.error(f"{action} failed: {type(e).__name__}: {e}")
    raise HTTPException(status_code=500, detail=str(e))


# =============================================================================
# EXAMS & TRENDS
# =============================================================================

@app.get("/api/v1/exams")
async def list_exams(engine: MockTestEngine = Depends(get_engine)):
    """Exam types in the catalog and how many PYQs back each one"""
    exams = []
    for exam_type in engine.catalog.exam_types():
        config = engine.catalog.get(exam_type)
        exams.append({
            "exam_type": exam_type,
            "name": config.name,
            "total_questions": config.total_questions,
            "time_limit_minutes": config.time_limit_minutes,
            "sections": [s.to_dict() for s in config.sections],
            "pyq_count": len(engine.corpus.questions(exam_type)),
            "supply_shortfall": engine.supply_shortfall(exam_type),
        })
    return {"exams": exams, "count": len(exams)}


@app.get("/api/v1/mock-test/analysis")
async def trend_analysis(exam_type: str = "cbse_10", engine: MockTestEngine = Depends(get_engine)):
    """
    PYQ trend analysis for an exam type.

    Returns per-chapter counts, years, recency/consistency scores and both
    the historical and the optimized distribution.
    """
    try:
        report = engine.trend_report(exam_type)
        return {"status": "success", "trend_analysis": report.to_dict()}
    except Exception as e:
        _raise_for(e, "Trend analysis")


# =============================================================================
# TEST GENERATION
# =============================================================================

@app.post("/api/v1/mock-test/generate")
async def generate_test(request: GenerateTestRequest, engine: MockTestEngine = Depends(get_engine)):
    try:
        start_time = time.time()
        test = engine.generate_test(
            request.exam_type,
            difficulty=request.difficulty,
            question_count=request.question_count,
            time_limit_minutes=request.time_limit_minutes,
        )
        duration = round(time.time() - start_time, 3)
        return {
            "status": "success",
            "test": test.to_dict(),
            "meta": {"duration_seconds": duration},
        }
    except Exception as e:
        _raise_for(e, "Test generation")


# =============================================================================
# ATTEMPTS
# =============================================================================

@app.post("/api/v1/mock-test/attempt")
async def start_attempt(request: StartAttemptRequest, engine: MockTestEngine = Depends(get_engine)):
    try:
        attempt = engine.start_attempt(request.mock_test_id)
        return {"status": "success", "attempt_id": attempt.id, "attempt": attempt.to_dict()}
    except Exception as e:
        _raise_for(e, "Attempt start")


@app.put("/api/v1/mock-test/attempt/{attempt_id}/responses")
async def save_progress(attempt_id: str, request: SaveProgressRequest,
                        engine: MockTestEngine = Depends(get_engine)):
    """Save answers while the attempt is still running"""
    set_correlation_id(attempt_id)
    try:
        saved = engine.save_progress(attempt_id, [r.to_response() for r in request.responses])
        return {"status": "success", "saved": saved}
    except Exception as e:
        _raise_for(e, "Saving progress")
    finally:
        clear_correlation_id()


@app.post("/api/v1/mock-test/attempt/{attempt_id}/submit")
async def submit_attempt(attempt_id: str, request: SubmitAttemptRequest,
                         engine: MockTestEngine = Depends(get_engine)):
    set_correlation_id(attempt_id)
    try:
        result = engine.submit_attempt(
            attempt_id,
            [r.to_response() for r in request.responses],
            auto_submit=request.auto_submit,
        )
        return {"status": "success", "result": result.to_dict()}
    except Exception as e:
        _raise_for(e, "Attempt submission")
    finally:
        clear_correlation_id()


@app.post("/api/v1/mock-test/expire")
async def expire_overdue(engine: MockTestEngine = Depends(get_engine)):
    """Auto-submit attempts past their deadline (called by the scheduler)"""
    try:
        results = engine.expire_overdue_attempts()
        return {"status": "success", "auto_submitted": [r.attempt.id for r in results]}
    except Exception as e:
        _raise_for(e, "Auto-submit sweep")


@app.get("/api/v1/mock-test/attempt/{attempt_id}/analysis")
async def get_attempt_analysis(attempt_id: str, engine: MockTestEngine = Depends(get_engine)):
    try:
        analysis = engine.get_analysis(attempt_id)
        if analysis is None:
            raise HTTPException(status_code=404, detail="Attempt has not been submitted yet")
        return {"status": "success", "analysis": analysis.to_dict()}
    except Exception as e:
        _raise_for(e, "Fetching analysis")


# =============================================================================
# OBSERVABILITY / CONFIG
# =============================================================================

@app.get("/api/v1/metrics")
async def get_engine_metrics(engine: MockTestEngine = Depends(get_engine)):
    """Generation and submission counts, timings and recent failures"""
    return {"status": "success", "metrics": engine.metrics.get_stats()}


@app.post("/api/v1/metrics/reset")
async def reset_metrics(engine: MockTestEngine = Depends(get_engine)):
    engine.metrics.reset()
    return {"status": "success", "message": "Metrics reset"}


@app.post("/api/v1/config/reload")
async def reload_configuration():
    """Reload the exam catalog YAML without restart."""
    try:
        reload_config()
        return {"status": "success", "message": "Configuration reloaded"}
    except Exception as e:
        _raise_for(e, "Config reload")


@app.get("/health")
async def health_check():
    return {"status": "ok"}
