from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional, List
from uuid import UUID
from datetime import datetime
from facturo.modules.number_series.models import DocumentType

ID_PLACEHOLDER = "{{{id}}}"


def _validate_format(v):
    if v is not None and ID_PLACEHOLDER not in v:
        raise ValueError(f"El formato debe incluir el marcador {ID_PLACEHOLDER}")
    return v


class NumberSeriesCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    document_type: DocumentType = DocumentType.BOTH
    identifier_format: str = Field(ID_PLACEHOLDER, min_length=1, max_length=100)
    next_id: int = Field(1, ge=1)
    left_pad: int = Field(0, ge=0, le=10)
    is_default: bool = False
    is_active: bool = True

    @field_validator("identifier_format")
    @classmethod
    def validate_identifier_format(cls, v):
        return _validate_format(v)


class NumberSeriesUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    document_type: Optional[DocumentType] = None
    identifier_format: Optional[str] = Field(None, min_length=1, max_length=100)
    next_id: Optional[int] = Field(None, ge=1, description="Solo puede aumentar")
    left_pad: Optional[int] = Field(None, ge=0, le=10)
    is_default: Optional[bool] = None
    is_active: Optional[bool] = None

    @field_validator("identifier_format")
    @classmethod
    def validate_identifier_format(cls, v):
        return _validate_format(v)


class NumberSeriesOut(BaseModel):
    id: UUID
    name: str
    document_type: DocumentType
    identifier_format: str
    next_id: int
    left_pad: int
    is_default: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NumberSeriesList(BaseModel):
    series: List[NumberSeriesOut]
    total: int


class NextNumberPreview(BaseModel):
    series_id: UUID
    next_number: str
    next_id: int
