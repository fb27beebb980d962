"""VC watch registration and callback models."""

from __future__ import annotations

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, EmailStr, Field, TypeAdapter, ValidationInfo, field_validator
from pydantic import ValidationError as PydanticValidationError

_HTTP_URL = TypeAdapter(AnyHttpUrl)

MAX_URL_LENGTH = 1500


def is_http_url(value: str) -> bool:
    """True if ``value`` is an absolute http(s) URL."""
    try:
        _HTTP_URL.validate_python(value)
    except PydanticValidationError:
        return False
    return True


class WatchVcRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    vcPublicId: str = Field(min_length=1)
    email: EmailStr | None = None
    identifier: str | None = None
    callbackUrl: str | None = Field(default=None, max_length=MAX_URL_LENGTH)
    forwardWatcherCallbackUrl: str | None = Field(default=None, max_length=MAX_URL_LENGTH)

    @field_validator("vcPublicId")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("vcPublicId must not be blank")
        return v

    @field_validator("callbackUrl", "forwardWatcherCallbackUrl")
    @classmethod
    def _valid_url(cls, v: str | None, info: ValidationInfo) -> str | None:
        if v is not None and not is_http_url(v):
            raise ValueError(f"{info.field_name} must be a valid URL")
        return v


class WatchVcData(BaseModel):
    vcPublicId: str
    watchStatus: str


class WatchVcResponse(BaseModel):
    success: bool
    message: str
    data: WatchVcData


class WatchCallback(BaseModel):
    """Webhook payload sent by Dhiway. Every field is optional and untrusted."""

    identifier: str | None = None
    recordPublicId: str | None = None
    type: str | None = None
    message: str | None = None
    user_id: str | None = None
    status: str | None = None
    timestamp: str | None = None


class CallbackAck(BaseModel):
    success: bool = True
    message: str
    matched: bool
    forwarded: bool = False
