# app/api/routes/assets.py
from fastapi import APIRouter, Depends

from ..deps import DBDep, require_staff
from app.schemas.ledger import MaintenanceLedger
from app.services.ledger import build_ledger

router = APIRouter()


@router.get(
    "/{asset_code}/ledger",
    response_model=MaintenanceLedger,
    dependencies=[Depends(require_staff())],
)
async def asset_ledger(asset_code: str, db: DBDep, nup: str | None = None):
    """Kartu Kendali активу. Для невідомого коду повертаємо порожній ledger."""
    return await build_ledger(db, asset_code, nup)
