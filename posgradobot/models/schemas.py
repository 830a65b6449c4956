# posgradobot/models/schemas.py
"""
Pydantic schemas for API inputs/outputs and stored records.
"""
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field


class ContactRequest(BaseModel):
    """Immutable record appended to the contact log."""

    id: int
    usuario_id: str = Field(..., alias="usuarioId")
    tipo_consulta: str = Field("No especificado", alias="tipoConsulta")
    canal: str = "No especificado"
    nombre: str = "No proporcionado"
    correo: str = "No proporcionado"
    telefono: str = "No proporcionado"
    mensaje: str = ""
    created_at: str = Field(..., alias="createdAt")

    class Config:
        frozen = True
        populate_by_name = True


class UserStateOut(BaseModel):
    user_id: str
    node: Optional[str] = None
    session: Dict[str, Any] = {}
    state: Optional[Dict[str, Any]] = None


class InboundMessage(BaseModel):
    from_number: str = Field(..., alias="from")
    body: str = ""
    name: Optional[str] = None


class OutboundMessage(BaseModel):
    number: str
    message: str
    url_media: Optional[str] = Field(None, alias="urlMedia")


class RegisterRequest(BaseModel):
    number: str
    name: Optional[str] = None


class ProgramasRequest(BaseModel):
    number: str


class BlacklistRequest(BaseModel):
    number: str
    intent: str = Field(..., pattern="^(add|remove)$")


class BlacklistOut(BaseModel):
    status: str = "ok"
    blacklist: List[str] = []


class PromotionRequest(BaseModel):
    # all optional here: missing fields are reported as a 400 by the endpoint
    numero: Optional[str] = None
    mensaje: Optional[str] = None
    facultad: Optional[str] = None
    programa: Optional[str] = None
