"""Housekeeping request/response models."""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, Field, StrictInt, field_validator

DEFAULT_CHUNK_SIZE = 100


class WatcherStats(BaseModel):
    totalWatchers: int = Field(ge=0)
    activeWatchers: int = Field(ge=0)
    inactiveWatchers: int = Field(ge=0)
    totalVCs: int = Field(ge=0)
    watchedVCs: int = Field(ge=0)
    unwatchedVCs: int = Field(ge=0)


class AddWatchersRequest(BaseModel):
    chunkSize: Annotated[StrictInt, Field(gt=0)] | None = None


class ReconcileSummary(BaseModel):
    totalProcessed: int
    watchersAdded: int
    errors: int


class AddWatchersResponse(BaseModel):
    success: bool
    message: str
    data: ReconcileSummary


MAX_IMPORT_BATCH = 1000


class CredentialImport(BaseModel):
    vcPublicId: str = Field(min_length=1, max_length=255)
    identifier: str | None = Field(default=None, max_length=1500)
    userId: str | None = Field(default=None, max_length=255)

    @field_validator("vcPublicId")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("vcPublicId must not be blank")
        return v


class ImportCredentialsRequest(BaseModel):
    credentials: list[CredentialImport] = Field(min_length=1, max_length=MAX_IMPORT_BATCH)


class ImportSummary(BaseModel):
    received: int
    added: int


class ImportCredentialsResponse(BaseModel):
    success: bool
    message: str
    data: ImportSummary
