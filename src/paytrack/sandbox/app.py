"""FastAPI application factory for the sandbox payroll backend.

Serves the same payroll endpoints as the production server from an
in-memory store, for local development and tests:

    uvicorn paytrack.sandbox.app:create_app --factory
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse, Response

from paytrack.api.schemas.payroll import (
    Acknowledgement,
    GenerateFileRequest,
    InitiateRunRequest,
    InitiateRunResponse,
    PayrollStatusResponse,
)
from paytrack.domain.exceptions import ConflictError, NotFoundError
from paytrack.sandbox.store import SandboxPayrollStore


def get_store(request: Request) -> SandboxPayrollStore:
    return request.app.state.store


def require_bearer(authorization: str | None = Header(default=None)) -> str:
    if not authorization or not authorization.startswith("Bearer ") or not authorization[7:].strip():
        raise HTTPException(status_code=401, detail="Missing or invalid bearer token")
    return authorization[7:].strip()


router = APIRouter(prefix="/payroll", tags=["payroll"], dependencies=[Depends(require_bearer)])


def _attachment(filename: str, content: bytes, media_type: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/initiate-run", response_model=InitiateRunResponse, status_code=202)
def initiate_run(
    payload: InitiateRunRequest, store: SandboxPayrollStore = Depends(get_store),
) -> InitiateRunResponse:
    run = store.create_run(payload.payroll_month, payload.payroll_year)
    return InitiateRunResponse(
        payroll_run_id=run.id,
        message=f"Payroll initiation accepted for {run.period_label}.",
    )


@router.get("/run-status/{run_id}", response_model=PayrollStatusResponse)
def run_status(run_id: str, store: SandboxPayrollStore = Depends(get_store)) -> PayrollStatusResponse:
    return store.read_status(run_id)


@router.post("/send-payslips/{run_id}", response_model=Acknowledgement, status_code=202)
def send_payslips(run_id: str, store: SandboxPayrollStore = Depends(get_store)) -> Acknowledgement:
    return Acknowledgement(message=store.send_payslips(run_id))


@router.post("/generate-bulk-files/{run_id}")
def generate_bulk_files(run_id: str, store: SandboxPayrollStore = Depends(get_store)) -> Response:
    filename, content = store.bulk_archive(run_id)
    return _attachment(filename, content, "application/zip")


@router.post("/generate-file/{run_id}")
def generate_file(
    run_id: str, payload: GenerateFileRequest, store: SandboxPayrollStore = Depends(get_store),
) -> Response:
    filename, content = store.report_file(run_id, payload.file_type)
    return _attachment(filename, content, "text/csv")


def create_app(store: SandboxPayrollStore | None = None) -> FastAPI:
    app = FastAPI(title="Payroll Sandbox API", version="0.1.0")
    app.state.store = store or SandboxPayrollStore()
    app.include_router(router)

    @app.exception_handler(NotFoundError)
    def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": exc.message})

    @app.exception_handler(ConflictError)
    def _conflict(request: Request, exc: ConflictError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"error": exc.message})

    @app.get("/health", tags=["ops"])
    def health() -> dict:
        return {"status": "ok"}

    return app
