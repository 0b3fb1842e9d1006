"""Pydantic schemas for lifecycle job runs"""
from pydantic import BaseModel, ConfigDict


class JobResultRead(BaseModel):
    job: str
    matched: int
    affected: int
    failed: int
    skipped: bool

    model_config = ConfigDict(from_attributes=True)
