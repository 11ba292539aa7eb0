"""FastAPI application entrypoint for modspec service mode."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import uvicorn
from fastapi import Depends, FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..errors import (
    ConfigurationError,
    DocumentNotFoundError,
    ModSpecError,
    ValidationError,
    WorkflowTransitionError,
)
from ..models import GenerateOptions
from ..orchestrator import ModuleOrchestrator


class HealthResponse(BaseModel):
    status: str


class GenerateRequest(BaseModel):
    module_types: Optional[List[str]] = None
    force_regenerate: bool = False
    parallel: Optional[bool] = None
    include_related_modules: bool = False


class ApproveRequest(BaseModel):
    approved_by: Optional[str] = None


class UpdateModuleRequest(BaseModel):
    content: str


class ModuleContentResponse(BaseModel):
    module_type: str
    content: str


class UpdateModuleResponse(BaseModel):
    module_type: str
    checksum: str


class WorkflowStateResponse(BaseModel):
    module_type: str
    workflow_state: str


class StatusResponse(BaseModel):
    can_progress_to_tasks: bool


def _default_orchestrator() -> ModuleOrchestrator:
    return ModuleOrchestrator.from_workspace(Path(os.getenv("MODSPEC_WORKSPACE", ".")))


def _encode(value: Any) -> Any:
    return jsonable_encoder(value)


def create_app(
    orchestrator_factory: Callable[[], ModuleOrchestrator] = _default_orchestrator,
) -> FastAPI:
    """Create the FastAPI application exposing module operations."""
    app = FastAPI(title="modspec", version="0.1.0")
    holder: Dict[str, ModuleOrchestrator] = {}

    async def get_orchestrator() -> ModuleOrchestrator:
        # One orchestrator per app so the module cache and metadata locks are shared.
        if "instance" not in holder:
            holder["instance"] = orchestrator_factory()
        return holder["instance"]

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/features/{feature}/modules/generate")
    async def generate_modules(
        feature: str,
        payload: GenerateRequest,
        orchestrator: ModuleOrchestrator = Depends(get_orchestrator),
    ) -> Dict[str, Any]:
        result = await orchestrator.generate_modules(
            feature,
            GenerateOptions(
                module_types=payload.module_types,
                force_regenerate=payload.force_regenerate,
                parallel=payload.parallel,
                include_related_modules=payload.include_related_modules,
            ),
        )
        return result.as_dict()

    @app.get("/features/{feature}/modules")
    async def list_modules(
        feature: str, orchestrator: ModuleOrchestrator = Depends(get_orchestrator)
    ) -> List[Dict[str, Any]]:
        return _encode(await orchestrator.get_module_list(feature))

    @app.post("/features/{feature}/modules/{module_type}/generate", response_model=ModuleContentResponse)
    async def generate_specific(
        feature: str, module_type: str, orchestrator: ModuleOrchestrator = Depends(get_orchestrator)
    ) -> ModuleContentResponse:
        content = await orchestrator.generate_specific_module(feature, module_type)
        return ModuleContentResponse(module_type=module_type, content=content)

    @app.post("/features/{feature}/modules/{module_type}/regenerate", response_model=ModuleContentResponse)
    async def regenerate(
        feature: str, module_type: str, orchestrator: ModuleOrchestrator = Depends(get_orchestrator)
    ) -> ModuleContentResponse:
        content = await orchestrator.regenerate_module(feature, module_type)
        return ModuleContentResponse(module_type=module_type, content=content)

    @app.get("/features/{feature}/modules/{module_type}", response_model=ModuleContentResponse)
    async def get_content(
        feature: str, module_type: str, orchestrator: ModuleOrchestrator = Depends(get_orchestrator)
    ) -> ModuleContentResponse:
        content = await orchestrator.get_module_content(feature, module_type)
        return ModuleContentResponse(module_type=module_type, content=content)

    @app.put("/features/{feature}/modules/{module_type}", response_model=UpdateModuleResponse)
    async def update_content(
        feature: str,
        module_type: str,
        payload: UpdateModuleRequest,
        orchestrator: ModuleOrchestrator = Depends(get_orchestrator),
    ) -> UpdateModuleResponse:
        checksum = await orchestrator.update_module(feature, module_type, payload.content)
        return UpdateModuleResponse(module_type=module_type, checksum=checksum)

    @app.delete("/features/{feature}/modules/{module_type}", status_code=204)
    async def delete_module(
        feature: str, module_type: str, orchestrator: ModuleOrchestrator = Depends(get_orchestrator)
    ) -> None:
        await orchestrator.delete_module(feature, module_type)

    @app.post("/features/{feature}/modules/{module_type}/approve", response_model=WorkflowStateResponse)
    async def approve(
        feature: str,
        module_type: str,
        payload: ApproveRequest,
        orchestrator: ModuleOrchestrator = Depends(get_orchestrator),
    ) -> WorkflowStateResponse:
        state = await orchestrator.approve_module(feature, module_type, approved_by=payload.approved_by)
        return WorkflowStateResponse(module_type=module_type, workflow_state=state.value)

    @app.post("/features/{feature}/modules/{module_type}/reject", response_model=WorkflowStateResponse)
    async def reject(
        feature: str, module_type: str, orchestrator: ModuleOrchestrator = Depends(get_orchestrator)
    ) -> WorkflowStateResponse:
        state = await orchestrator.reject_module(feature, module_type)
        return WorkflowStateResponse(module_type=module_type, workflow_state=state.value)

    @app.post("/features/{feature}/migrate")
    async def migrate(
        feature: str, orchestrator: ModuleOrchestrator = Depends(get_orchestrator)
    ) -> Dict[str, Any]:
        return _encode(await orchestrator.migrate_legacy_design(feature))

    @app.get("/features/{feature}/references")
    async def analyze_references(
        feature: str, orchestrator: ModuleOrchestrator = Depends(get_orchestrator)
    ) -> Dict[str, Any]:
        return _encode(await orchestrator.analyze_references(feature))

    @app.get("/features/{feature}/status", response_model=StatusResponse)
    async def status(
        feature: str, orchestrator: ModuleOrchestrator = Depends(get_orchestrator)
    ) -> StatusResponse:
        return StatusResponse(can_progress_to_tasks=await orchestrator.can_progress_to_tasks(feature))

    @app.exception_handler(DocumentNotFoundError)
    async def not_found_handler(_: Any, exc: DocumentNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(WorkflowTransitionError)
    async def transition_handler(_: Any, exc: WorkflowTransitionError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(ValidationError)
    async def validation_handler(_: Any, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(ConfigurationError)
    async def configuration_handler(_: Any, exc: ConfigurationError) -> JSONResponse:
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    @app.exception_handler(ModSpecError)
    async def modspec_error_handler(_: Any, exc: ModSpecError) -> JSONResponse:
        return JSONResponse(
            status_code=502 if exc.category.value == "generation" else 500,
            content={"detail": str(exc), "category": exc.category.value},
        )

    return app


def run_service(host: str = "127.0.0.1", port: int = 8000) -> None:  # pragma: no cover - integration path
    uvicorn.run(create_app(), host=host, port=port)


__all__ = ["create_app", "run_service"]
