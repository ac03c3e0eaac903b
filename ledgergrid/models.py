"""Persisted document shapes.

Field names on the wire are camelCase (``rowIndex``, ``updatedAt``); the
models accept either spelling and dump with aliases.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .core import EMPTY

CellValue = Union[int, float, str]


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _clean_cells(value):
    if value is None:
        return []
    return [EMPTY if v is None else v for v in value]


class _Document(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class SheetMeta(_Document):
    year: int
    month: int
    rows: int
    cols: int
    format: str
    updated_at: str = Field(default_factory=utc_now, alias="updatedAt")


class RowDocument(_Document):
    row_index: int = Field(alias="rowIndex", ge=0)
    data: list[CellValue] = Field(default_factory=list)
    updated_at: str = Field(default_factory=utc_now, alias="updatedAt")

    @field_validator("data", mode="before")
    @classmethod
    def _clean_data(cls, value):
        return _clean_cells(value)


class FixedColumnConfig(_Document):
    title: str
    type: str = "text"
    width: int = 120


class ColumnConfig(_Document):
    fixed_cols: list[FixedColumnConfig] = Field(alias="fixedCols")
    format: str
    updated_at: str = Field(default_factory=utc_now, alias="updatedAt")
    updated_by: Optional[str] = Field(default=None, alias="updatedBy")


class LocalSheetBlob(_Document):
    meta: SheetMeta
    rows: list[list[CellValue]] = Field(default_factory=list)

    @field_validator("rows", mode="before")
    @classmethod
    def _clean_rows(cls, value):
        if value is None:
            return []
        return [_clean_cells(r) for r in value]
