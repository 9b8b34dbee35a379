from pydantic import BaseModel, Field
from typing import Dict, Literal

ServiceStatus = Literal["running", "stopped"]

class CodeRequest(BaseModel):
    code: int = Field(..., ge=0, le=255, description="HID usage code (low byte)")

class InjectResult(BaseModel):
    ok: bool = True
    event: str

class HealthStatus(BaseModel):
    status: Literal["healthy", "unhealthy"]
    services: Dict[str, ServiceStatus]
    version: str
