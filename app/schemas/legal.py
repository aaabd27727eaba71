"""Legal term schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from app.models import LegalTermType
from app.schemas.common import CamelModel


class LegalTermResponse(CamelModel):
    id: UUID
    type: LegalTermType
    version: str
    title: str
    content: str
    published_at: Optional[datetime] = None
