"""
============================================================================
Project Wishlist Relay v1.0.0
Submission Schemas - Pydantic Request Models
============================================================================

Reliability Level: STANDARD
Input Constraints: JSON bodies using camelCase keys
Side Effects: None (pure validation)

Shape validation only. Country/currency normalization (trim, uppercase,
UK → GB) and range rules live in the services so every caller gets the
same errors.

============================================================================
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SubmitRequest(BaseModel):
    """Customer submit body: {note?, countryCode?}"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    note: Optional[str] = Field(None, description="Free-text note for the merchant")
    country_code: Optional[str] = Field(
        None,
        alias="countryCode",
        description="ISO-2 country used to pick the presentment currency",
    )


class AdminSubmitRequest(BaseModel):
    """Manual conversion body. The note is fixed to 'manual conversion'."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    country_code: Optional[str] = Field(None, alias="countryCode")


class CurrencyRuleIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    country_code: str = Field(..., alias="countryCode", min_length=1, max_length=8)
    currency: str = Field(..., min_length=1, max_length=8)

    @field_validator("country_code", "currency")
    @classmethod
    def strip_value(cls, value: str) -> str:
        return value.strip()


class DefaultCurrencyIn(BaseModel):
    """Shop fallback currency; null or empty clears it."""

    model_config = ConfigDict(extra="forbid")

    currency: Optional[str] = Field(None, max_length=8)


__all__ = ["SubmitRequest", "AdminSubmitRequest", "CurrencyRuleIn", "DefaultCurrencyIn"]
