# app/api/routes/reports.py
from typing import Any, Dict

from fastapi import APIRouter, Depends

from ..deps import DBDep, require_role
from app.db.models import RoleEnum as Role
from app.services import reports

router = APIRouter()


@router.get("/technician-workload", dependencies=[Depends(require_role(Role.service_admin))])
async def technician_workload(db: DBDep) -> Dict[str, Any]:
    return await reports.technician_workload(db)
