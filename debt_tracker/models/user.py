from sqlmodel import SQLModel, Field
from uuid import uuid4, UUID
from datetime import datetime

from debt_tracker.utils.dates import utcnow


# El registro y login viven fuera de este servicio; aquí solo guardamos la
# identidad del dueño para validar la propiedad de deudas y movimientos.
class User(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    email: str = Field(index=True, unique=True)
    created_at: datetime = Field(default_factory=utcnow)
    role: str = Field(default="user")
