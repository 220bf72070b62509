from datetime import datetime,timezone
from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

def now() -> datetime:
    return datetime.now(timezone.utc)


def build_error(code: str = "internal_error",
                message: str = "internal server error",
                fields: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:

    return {"error": {"code": code, "message": message, "fields": fields}}

def json_ok(content: Any, status_code: int = 200,headers = None) -> JSONResponse:
    return JSONResponse(jsonable_encoder(content), status_code=status_code,headers=headers)

def json_error(content: Dict[str, Any], status_code: int = 500, headers=None) -> JSONResponse:
    return JSONResponse(content, status_code=status_code, headers=headers)

def success_response(message: str, status_code: int = 200,headers: Optional[Dict[str, Any]] = None) -> JSONResponse:
    return json_ok({"message": message, "success": True}, status_code=status_code,headers=headers)
