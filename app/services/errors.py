"""
Workflow errors.

Усі помилки детерміновані: стан + запитана дія. Ядро їх не ретраїть і не ковтає;
API-шар перекладає їх у HTTP (див. app/main.py).
"""
from __future__ import annotations

from typing import Any, Optional


class WorkflowError(Exception):
    code = "workflow_error"

    def __init__(
        self,
        reason: str,
        *,
        entity: str | None = None,
        entity_id: Any = None,
        field: str | None = None,
    ) -> None:
        super().__init__(reason)
        self.reason = reason
        self.entity = entity
        self.entity_id = entity_id
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "detail": self.reason,
            "entity": self.entity,
            "entity_id": self.entity_id,
            "field": self.field,
            "reason": self.reason,
        }


class NotFound(WorkflowError):
    code = "not_found"


class InvalidTransition(WorkflowError):
    """Дія не визначена для поточного статусу."""

    code = "invalid_transition"

    def __init__(self, reason: str, *, status: str | None = None, action: str | None = None, **kw: Any) -> None:
        super().__init__(reason, **kw)
        self.status = status
        self.action = action

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({"status": self.status, "action": self.action})
        return data


class PreconditionFailed(WorkflowError):
    """Перехід структурно допустимий, але бізнес-правило його блокує."""

    code = "precondition_failed"


class ValidationError(WorkflowError):
    """Бракує обов'язкового поля (або воно некоректне) для цільового статусу."""

    code = "validation_error"


class Forbidden(WorkflowError):
    """Дію дозволено лише певній ролі або учаснику тікета."""

    code = "forbidden"


class _ScheduleOverlap(WorkflowError):
    def __init__(self, reason: str, *, event: Optional[dict[str, Any]] = None, **kw: Any) -> None:
        super().__init__(reason, **kw)
        self.event = event

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["conflict"] = self.event
        return data


class ScheduleConflict(_ScheduleOverlap):
    """Перетин із вже підтвердженим бронюванням; потрібен інший інтервал."""

    code = "schedule_conflict"


class ScheduleWarning(_ScheduleOverlap):
    """
    М'який перетин (інше бронювання ще на розгляді). Це не відмова, а точка
    рішення: повторна подача з override=True пройде.
    """

    code = "schedule_warning"
    override_required = True

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["override_required"] = self.override_required
        return data
