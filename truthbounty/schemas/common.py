from pydantic import BaseModel


class ErrorResponse(BaseModel):
    error: str
    detail: str | None = None


class AmountResponse(BaseModel):
    value: str
    currency: str
