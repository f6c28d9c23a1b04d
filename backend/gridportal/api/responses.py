"""
Response helpers
"""
from pydantic import BaseModel
from fastapi.responses import JSONResponse


def model_response(model: BaseModel, status_code: int) -> JSONResponse:
    """Serialize a schema with camelCase keys under a non-200 status."""
    return JSONResponse(status_code=status_code, content=model.model_dump(by_alias=True, mode="json"))
