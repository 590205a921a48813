"""API routes for the yard dock board, dock commits, milestones, air cargo, SLA timers and template rules."""
from __future__ import annotations

from typing import Any, List, Optional

from fastapi import APIRouter, Body, HTTPException, Query
from fastapi.responses import JSONResponse

from dockboard.core.logging import logger
from dockboard.models.docks import (
    AirCargoResponse,
    AirItemRequest,
    CommitOutcome,
    ConflictResult,
    DemoSeedRequest,
    DockBoardResponse,
    DockCommitRequest,
    DockCommitResult,
    ImportRowsRequest,
    MilestoneField,
    MilestoneStampRequest,
    OperativaRecord,
    RecordUpdateRequest,
    SlaEvaluation,
    SnapshotReplaceRequest,
    TemplateRule,
    TemplateRuleUpdateRequest,
    YardSummary,
)
from dockboard.services.dock_conflicts import DockConfirmationRequired, InvalidDockValueError
from dockboard.services.yard_engine import yard_engine

router = APIRouter(prefix="/docks", tags=["docks"])


def _invalid_dock(exc: InvalidDockValueError) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail={"error": str(exc), "value": str(exc.value), "allowed": exc.allowed},
    )


def _needs_confirmation(result: DockCommitResult) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={
            "outcome": result.outcome.value,
            "dock": result.dock,
            "conflict": result.conflict.model_dump(mode="json", by_alias=True),
        },
    )


@router.get("/board", response_model=DockBoardResponse)
def get_dock_board():
    return yard_engine.dock_board()


@router.get("/catalog")
def get_catalog():
    return yard_engine.catalog()


@router.get("/snapshot")
def get_snapshot():
    return yard_engine.snapshot()


@router.put("/snapshot")
def replace_snapshot(request: SnapshotReplaceRequest):
    try:
        return yard_engine.replace_snapshot(request)
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc))


@router.get("/sides/{side}/records", response_model=List[OperativaRecord])
def list_records(side: str):
    try:
        return yard_engine.list_records(side)
    except KeyError:
        raise HTTPException(status_code=404, detail="Side not found")


@router.post("/sides/{side}/records", response_model=OperativaRecord)
def add_record(side: str):
    try:
        return yard_engine.add_record(side)
    except KeyError:
        raise HTTPException(status_code=404, detail="Side not found")


@router.delete("/sides/{side}/records")
def clear_side(side: str):
    try:
        return yard_engine.clear_side(side)
    except KeyError:
        raise HTTPException(status_code=404, detail="Side not found")


@router.patch("/sides/{side}/records/{record_id}", response_model=OperativaRecord)
def update_record(side: str, record_id: str, request: RecordUpdateRequest):
    try:
        return yard_engine.update_record(side, record_id, request)
    except InvalidDockValueError as exc:
        raise _invalid_dock(exc)
    except DockConfirmationRequired as exc:
        return _needs_confirmation(exc.result)
    except KeyError:
        raise HTTPException(status_code=404, detail="Record not found")
    except Exception as exc:
        logger.error("Failed to update record", side=side, record_id=record_id, error=str(exc))
        raise HTTPException(status_code=400, detail=str(exc))


@router.delete("/sides/{side}/records/{record_id}")
def remove_record(side: str, record_id: str):
    try:
        return yard_engine.remove_record(side, record_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Record not found")


@router.post("/sides/{side}/records/{record_id}/dock")
def commit_dock(side: str, record_id: str, request: DockCommitRequest):
    try:
        result = yard_engine.commit_dock(side, record_id, request)
    except InvalidDockValueError as exc:
        raise _invalid_dock(exc)
    except KeyError:
        raise HTTPException(status_code=404, detail="Record not found")

    if result.outcome is CommitOutcome.NEEDS_CONFIRMATION:
        return _needs_confirmation(result)
    _, record = result.snapshot.find(side, record_id)
    return {
        "outcome": result.outcome.value,
        "dock": result.dock,
        "record": record.model_dump(mode="json", by_alias=True),
    }


@router.get("/sides/{side}/records/{record_id}/conflict", response_model=ConflictResult)
def check_dock_conflict(side: str, record_id: str, dock: str = Query(...)):
    try:
        return yard_engine.check_conflict(side, record_id, dock)
    except KeyError:
        raise HTTPException(status_code=404, detail="Record not found")


@router.get("/sides/{side}/records/{record_id}/sla", response_model=SlaEvaluation)
def record_sla(side: str, record_id: str):
    try:
        return yard_engine.evaluate_record(side, record_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Record not found")


@router.post("/sides/{side}/records/{record_id}/preference", response_model=TemplateRule)
def save_preference(side: str, record_id: str):
    try:
        return yard_engine.save_preference(side, record_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Record not found")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


def _stamp(side: str, record_id: str, field: MilestoneField, request: Optional[MilestoneStampRequest]):
    overwrite = bool(request and request.overwrite)
    try:
        result = yard_engine.stamp_milestone(side, record_id, field, overwrite=overwrite)
    except KeyError:
        raise HTTPException(status_code=404, detail="Record not found")

    wire_field = OperativaRecord.model_fields[field.value].alias
    if result.outcome is CommitOutcome.NEEDS_CONFIRMATION:
        return JSONResponse(
            status_code=409,
            content={
                "outcome": result.outcome.value,
                "field": wire_field,
                "current": result.previous,
                "proposed": result.value,
            },
        )
    _, record = result.snapshot.find(side, record_id)
    return {
        "outcome": result.outcome.value,
        "field": wire_field,
        "value": result.value,
        "record": record.model_dump(mode="json", by_alias=True),
    }


@router.post("/sides/{side}/records/{record_id}/arrival")
def stamp_arrival(side: str, record_id: str, request: Optional[MilestoneStampRequest] = None):
    return _stamp(side, record_id, MilestoneField.ARRIVAL, request)


@router.post("/sides/{side}/records/{record_id}/departure")
def stamp_departure(side: str, record_id: str, request: Optional[MilestoneStampRequest] = None):
    return _stamp(side, record_id, MilestoneField.DEPARTURE, request)


@router.get("/sides/{side}/records/{record_id}/air", response_model=AirCargoResponse)
def get_air_cargo(side: str, record_id: str):
    try:
        return yard_engine.air_cargo(side, record_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Record not found")


@router.post("/sides/{side}/records/{record_id}/air", response_model=AirCargoResponse)
def add_air_item(side: str, record_id: str, request: AirItemRequest):
    try:
        return yard_engine.add_air_item(side, record_id, request)
    except KeyError:
        raise HTTPException(status_code=404, detail="Record not found")


@router.patch("/sides/{side}/records/{record_id}/air/{item_id}", response_model=AirCargoResponse)
def update_air_item(side: str, record_id: str, item_id: str, request: AirItemRequest):
    try:
        return yard_engine.update_air_item(side, record_id, item_id, request)
    except KeyError:
        raise HTTPException(status_code=404, detail="Air cargo line not found")


@router.delete("/sides/{side}/records/{record_id}/air/{item_id}", response_model=AirCargoResponse)
def remove_air_item(side: str, record_id: str, item_id: str):
    try:
        return yard_engine.remove_air_item(side, record_id, item_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Air cargo line not found")


@router.post("/sides/{side}/import")
def import_rows(side: str, request: ImportRowsRequest):
    try:
        return yard_engine.import_rows(side, request)
    except KeyError:
        raise HTTPException(status_code=404, detail="Side not found")
    except Exception as exc:
        logger.error("Failed to import rows", side=side, error=str(exc))
        raise HTTPException(status_code=400, detail=str(exc))


@router.post("/sides/{side}/apply-templates")
def apply_templates(side: str):
    try:
        return yard_engine.apply_templates(side)
    except KeyError:
        raise HTTPException(status_code=404, detail="Side not found")


@router.get("/sla/summary", response_model=YardSummary)
def sla_summary():
    return yard_engine.sla_summary()


@router.get("/templates", response_model=List[TemplateRule])
def list_templates():
    return yard_engine.list_rules()


@router.post("/templates", response_model=TemplateRule)
def add_template(rule: TemplateRule):
    return yard_engine.add_rule(rule)


@router.put("/templates", response_model=List[TemplateRule])
def replace_templates(rules: Any = Body(...)):
    try:
        return yard_engine.replace_rules(rules)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.patch("/templates/{rule_id}", response_model=TemplateRule)
def update_template(rule_id: str, request: TemplateRuleUpdateRequest):
    try:
        return yard_engine.update_rule(rule_id, request)
    except KeyError:
        raise HTTPException(status_code=404, detail="Template not found")


@router.delete("/templates/{rule_id}")
def remove_template(rule_id: str):
    try:
        return yard_engine.remove_rule(rule_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Template not found")


@router.post("/seed/demo")
def seed_demo(request: DemoSeedRequest):
    try:
        return yard_engine.seed_demo(request)
    except Exception as exc:
        logger.error("Failed to seed demo yard", error=str(exc))
        raise HTTPException(status_code=400, detail=str(exc))
