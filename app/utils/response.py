from typing import Any, Optional, Dict
from pydantic import BaseModel
from bson import ObjectId
from app.schemas.base import BaseSchema

class APIResponse(BaseModel):
    success: bool = True
    message: str = "Success"
    data: Optional[Any] = None
    error: Optional[Dict[str, Any]] = None

def to_payload(obj):
    if isinstance(obj, ObjectId):
        return str(obj)
    elif isinstance(obj, BaseSchema):
        return obj.to_api()
    elif isinstance(obj, list):
        return [to_payload(item) for item in obj]
    elif isinstance(obj, dict):
        return {k: to_payload(v) for k, v in obj.items()}
    else:
        return obj

def success_response(data: Any = None, message: str = "Success") -> APIResponse:
    return APIResponse(success=True, message=message, data=to_payload(data))

def error_response(message: str = "Error", error: Dict[str, Any] = None) -> APIResponse:
    return APIResponse(success=False, message=message, error=error)
