from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from .. import repo
from ..auth.deps import get_current_user
from ..http_helpers import ok
from ..services.filters import FILTER_COLUMNS, default_filters, validate_filters

router = APIRouter()


def _filters_view(row: dict[str, Any] | None) -> dict[str, Any]:
    out = default_filters()
    for column in FILTER_COLUMNS:
        if row and row.get(column) is not None:
            out[column] = row[column]
    return out


@router.get("/filters")
def filters_get(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    return ok(_filters_view(repo.get_user_filters(current_user["id"])))


@router.put("/filters")
def filters_save(payload: dict[str, Any], current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    try:
        values = validate_filters(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    row = repo.upsert_user_filters(current_user["id"], values)
    return ok(_filters_view(row), "Filters saved")


@router.delete("/filters")
def filters_reset(current_user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    repo.delete_user_filters(current_user["id"])
    return ok(default_filters(), "Filters reset")
