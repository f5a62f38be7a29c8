# ============================================================================
# Project Wishlist Relay v1.0.0
# Pydantic Schemas - Data Validation Layer
# ============================================================================

from app.schemas.submission import (
    SubmitRequest,
    AdminSubmitRequest,
    CurrencyRuleIn,
    DefaultCurrencyIn,
)

__all__ = ["SubmitRequest", "AdminSubmitRequest", "CurrencyRuleIn", "DefaultCurrencyIn"]
