"""Types API endpoint.

GET /type - List all pokemon types
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from pokedex.api.app import get_executor
from pokedex.db import repo
from pokedex.db.executor import QueryExecutor
from pokedex.models.types import TypeDetail

router = APIRouter()


@router.get("/type", response_model=list[TypeDetail])
def list_types(executor: QueryExecutor = Depends(get_executor)) -> list[TypeDetail]:
    """List all pokemon types."""
    return [TypeDetail.from_record(t) for t in repo.list_types(executor)]
