"""
Blueprint models for recurring templates.

A blueprint is the snapshot of line items and notes that a recurring template
copies into every invoice it generates. It is validated once when the
template is created and stored as plain JSON on the template row; generation
parses that JSON again and clones the lines into fresh invoice line items, so
the stored snapshot is never shared or mutated.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping

from django.conf import settings
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from billing.exceptions import BlueprintError


def _default_payment_terms() -> int:
    return int(getattr(settings, "BILLING_DEFAULT_PAYMENT_TERMS_DAYS", 30))


class BlueprintLineItem(BaseModel):
    """One line of a blueprint: what to bill, how many, and at what price."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore", str_strip_whitespace=True)

    description: str = Field(min_length=1, max_length=500)
    quantity: Decimal = Field(default=Decimal("1"), ge=0, max_digits=10, decimal_places=2)
    unit_price: Decimal = Field(
        ge=0,
        max_digits=10,
        decimal_places=2,
        validation_alias=AliasChoices("unit_price", "unitPrice"),
    )


class InvoiceBlueprint(BaseModel):
    """
    Line items, notes and payment terms cloned into each generated invoice.

    Accepts the camelCase keys (``lineItems``, ``unitPrice``,
    ``paymentTerms``) used by templates imported from the previous system.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore", str_strip_whitespace=True)

    line_items: tuple[BlueprintLineItem, ...] = Field(
        min_length=1,
        validation_alias=AliasChoices("line_items", "lineItems"),
    )
    notes: str = ""
    payment_terms_days: int = Field(
        default_factory=_default_payment_terms,
        ge=0,
        validation_alias=AliasChoices("payment_terms_days", "paymentTerms"),
    )

    @classmethod
    def from_data(cls, raw: Any) -> "InvoiceBlueprint":
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, Mapping):
            raise BlueprintError("Blueprint must be an object with line items.")
        try:
            return cls.model_validate(dict(raw))
        except PydanticValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in err['loc']) or 'blueprint'}: {err['msg']}"
                for err in exc.errors()
            )
            raise BlueprintError(f"Invalid blueprint: {problems}") from exc

    def to_data(self) -> dict[str, Any]:
        """JSON-safe snapshot stored on the template (decimals as strings)."""
        return self.model_dump(mode="json")
