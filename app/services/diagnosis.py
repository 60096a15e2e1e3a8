"""
Diagnosis service

Один діагноз на repair-тікет. repair_type визначає, чи потрібна закупівля
і якого типу work order дозволено створити.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from app.db.models import (
    Diagnosis,
    RepairTicket,
    RepairTypeEnum,
    User,
    WorkOrderTypeEnum,
)
from app.services.errors import ValidationError

if TYPE_CHECKING:
    from app.schemas.tickets import DiagnosisIn

PROCUREMENT_WORK_ORDER_TYPES: dict[RepairTypeEnum, WorkOrderTypeEnum] = {
    RepairTypeEnum.need_sparepart: WorkOrderTypeEnum.sparepart,
    RepairTypeEnum.need_vendor: WorkOrderTypeEnum.vendor,
    RepairTypeEnum.need_license: WorkOrderTypeEnum.license,
}

# можна закривати без жодного work order
SELF_CONTAINED_REPAIR_TYPES = frozenset({RepairTypeEnum.direct_repair, RepairTypeEnum.unrepairable})


def needs_procurement(diagnosis: Optional[Diagnosis]) -> bool:
    return diagnosis is not None and diagnosis.repair_type in PROCUREMENT_WORK_ORDER_TYPES


def permitted_work_order_types(diagnosis: Optional[Diagnosis]) -> frozenset[WorkOrderTypeEnum]:
    if diagnosis is None:
        return frozenset()
    wo_type = PROCUREMENT_WORK_ORDER_TYPES.get(diagnosis.repair_type)
    return frozenset({wo_type}) if wo_type else frozenset()


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def validate_diagnosis(data: DiagnosisIn) -> None:
    """Умовні поля залежно від repair_type."""
    if data.repair_type is RepairTypeEnum.direct_repair and _blank(data.repair_description):
        raise ValidationError(
            "repair_description is required for direct_repair",
            entity="diagnosis", field="repair_description",
        )
    if data.repair_type is RepairTypeEnum.unrepairable:
        if _blank(data.unrepairable_reason):
            raise ValidationError(
                "unrepairable_reason is required for unrepairable",
                entity="diagnosis", field="unrepairable_reason",
            )
        if _blank(data.alternative_solution):
            raise ValidationError(
                "alternative_solution is required for unrepairable",
                entity="diagnosis", field="alternative_solution",
            )


def apply_diagnosis(ticket: RepairTicket, data: DiagnosisIn, technician: User) -> Diagnosis:
    """Створює діагноз або перезаписує наявний (ре-діагностика)."""
    validate_diagnosis(data)
    fields = data.model_dump()
    if data.repair_type is not RepairTypeEnum.unrepairable:
        fields["unrepairable_reason"] = None
        fields["alternative_solution"] = None

    diagnosis = ticket.diagnosis
    if diagnosis is None:
        # присвоєння з боку тікета: save-update каскадиться лише в цьому напрямку
        diagnosis = Diagnosis(technician_id=technician.id, technician=technician, **fields)
        ticket.diagnosis = diagnosis
    else:
        for key, value in fields.items():
            setattr(diagnosis, key, value)
        diagnosis.technician_id = technician.id
        diagnosis.technician = technician
    return diagnosis
