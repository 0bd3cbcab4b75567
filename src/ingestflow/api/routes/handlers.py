"""Handler configuration schemas for generic form renderers."""

from fastapi import APIRouter, Depends, HTTPException, status

from ingestflow.api.auth import verify_api_key
from ingestflow.api.models import ErrorResponse, HandlerSchemaResponse
from ingestflow.errors import ConfigError
from ingestflow.ingestion.handler_config import CONFIG_MODELS, handler_config_schema

router = APIRouter()


@router.get("/handlers", response_model=list[str], summary="List handler names")
async def list_handlers(api_key: str = Depends(verify_api_key)) -> list[str]:
    return sorted(CONFIG_MODELS)


@router.get(
    "/handlers/{name}/schema",
    response_model=HandlerSchemaResponse,
    responses={404: {"model": ErrorResponse, "description": "Unknown handler"}},
    summary="Handler config JSON schema",
)
async def handler_schema(name: str, api_key: str = Depends(verify_api_key)) -> HandlerSchemaResponse:
    try:
        schema = handler_config_schema(name)
    except ConfigError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return HandlerSchemaResponse(handler=name, json_schema=schema)
