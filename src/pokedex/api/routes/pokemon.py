"""Pokemon API endpoints.

GET    /                    - Service description
GET    /pokemon             - List all pokemons with their type names
GET    /pokemon/{id}        - Get pokemon by id
GET    /pokemon/name/{name} - Get pokemon by name
POST   /pokemon             - Insert new pokemon
PUT    /pokemon             - Update pokemon
DELETE /pokemon/{id}        - Delete pokemon
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.responses import PlainTextResponse

from pokedex.api.app import get_aggregation_settings, get_executor
from pokedex.config import AggregationSettings
from pokedex.db import repo
from pokedex.db.executor import QueryExecutor
from pokedex.models.domain import PokemonRecord
from pokedex.models.types import PokemonDetail, PokemonInput

router = APIRouter()

INDEX_TEXT = (
    "Pokemon Example:\n"
    "     GET /type                - List all pokemon types\n"
    "     GET /pokemon             - List all pokemons\n"
    "     GET /pokemon/{id}        - Get pokemon by id\n"
    "     GET /pokemon/name/{name} - Get pokemon by name\n"
    "    POST /pokemon             - Insert new pokemon:\n"
    '                                {"id":<id>,"name":<name>,"type":[<type_id>, ...]}\n'
    "     PUT /pokemon             - Update pokemon\n"
    '                                {"id":<id>,"name":<name>,"type":[<type_id>, ...]}\n'
    "  DELETE /pokemon/{id}        - Delete pokemon with specified id\n"
)


@router.get("/", response_class=PlainTextResponse)
def index() -> str:
    """Return the service description."""
    return INDEX_TEXT


@router.get("/pokemon", response_model=list[PokemonDetail])
def list_pokemons(
    executor: QueryExecutor = Depends(get_executor),
    settings: AggregationSettings = Depends(get_aggregation_settings),
) -> list[PokemonDetail]:
    """List all pokemons, each with the names of its types.

    Raises:
        AggregationError: Mapped to 500/504 by the application.
    """
    documents = repo.list_pokemons(executor, settings)
    return [PokemonDetail.from_document(d) for d in documents]


@router.get("/pokemon/name/{name}", response_model=PokemonDetail)
def get_pokemon_by_name(
    name: str,
    executor: QueryExecutor = Depends(get_executor),
    settings: AggregationSettings = Depends(get_aggregation_settings),
) -> PokemonDetail:
    """Get pokemon by name.

    Raises:
        HTTPException: 404 if pokemon not found.
    """
    document = repo.get_pokemon_by_name(executor, name, settings)
    if document is None:
        raise HTTPException(status_code=404, detail="Pokemon not found")
    return PokemonDetail.from_document(document)


@router.get("/pokemon/{pokemon_id}", response_model=PokemonDetail)
def get_pokemon(
    pokemon_id: int,
    executor: QueryExecutor = Depends(get_executor),
    settings: AggregationSettings = Depends(get_aggregation_settings),
) -> PokemonDetail:
    """Get pokemon by id.

    Raises:
        HTTPException: 404 if pokemon not found.
    """
    document = repo.get_pokemon(executor, pokemon_id, settings)
    if document is None:
        raise HTTPException(status_code=404, detail="Pokemon not found")
    return PokemonDetail.from_document(document)


@router.post("/pokemon", response_model=PokemonDetail, status_code=201)
def create_pokemon(
    body: PokemonInput,
    executor: QueryExecutor = Depends(get_executor),
    settings: AggregationSettings = Depends(get_aggregation_settings),
) -> PokemonDetail:
    """Insert new pokemon.

    Raises:
        HTTPException: 409 if the id is taken, 422 if a type id is unknown.
    """
    try:
        repo.create_pokemon(executor, PokemonRecord(id=body.id, name=body.name), body.type)
    except repo.PokemonExistsError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except repo.UnknownTypeError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    document = repo.get_pokemon(executor, body.id, settings)
    if document is None:
        raise HTTPException(status_code=500, detail="Pokemon was not stored")
    return PokemonDetail.from_document(document)


@router.put("/pokemon", response_model=PokemonDetail)
def update_pokemon(
    body: PokemonInput,
    executor: QueryExecutor = Depends(get_executor),
    settings: AggregationSettings = Depends(get_aggregation_settings),
) -> PokemonDetail:
    """Update pokemon name and types.

    Raises:
        HTTPException: 404 if pokemon not found, 422 if a type id is unknown.
    """
    try:
        updated = repo.update_pokemon(
            executor, PokemonRecord(id=body.id, name=body.name), body.type
        )
    except repo.UnknownTypeError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    if not updated:
        raise HTTPException(status_code=404, detail="Pokemon not found")

    document = repo.get_pokemon(executor, body.id, settings)
    if document is None:
        raise HTTPException(status_code=404, detail="Pokemon not found")
    return PokemonDetail.from_document(document)


@router.delete("/pokemon/{pokemon_id}", status_code=204)
def delete_pokemon(
    pokemon_id: int,
    executor: QueryExecutor = Depends(get_executor),
) -> Response:
    """Delete pokemon with specified id.

    Raises:
        HTTPException: 404 if pokemon not found.
    """
    if not repo.delete_pokemon(executor, pokemon_id):
        raise HTTPException(status_code=404, detail="Pokemon not found")
    return Response(status_code=204)
