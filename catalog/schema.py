"""
Validated shape of one record in a catalog chunk file

Records come from the API as flat JSON objects. Only the identifier is
required; every other attribute is optional, but when present it must have
the expected type so that a malformed record is rejected (and counted as
skipped) instead of being half-imported.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidatorFunctionWrapHandler,
    field_validator,
)

__all__ = ["CatalogRecord", "ValidationError", "parse_record"]

# Bounds of the database columns the values end up in
INTEGER_LIMIT = 2**31 - 1
PRICE_LIMIT = Decimal("100000000")

ColumnInteger = Annotated[int, Field(ge=-INTEGER_LIMIT - 1, le=INTEGER_LIMIT)]
Price = Annotated[Decimal, Field(gt=-PRICE_LIMIT, lt=PRICE_LIMIT)]


class CatalogRecord(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    external_id: str = Field(alias="id", min_length=1, max_length=100)

    markethashname: Optional[str] = None
    marketname: Optional[str] = None
    slug: Optional[str] = None

    quality: Optional[str] = None
    rarity: Optional[str] = None
    classid: Optional[str] = None
    instanceid: Optional[str] = None
    groupid: Optional[str] = None

    itemimage: Optional[str] = None
    bordercolor: Optional[str] = None
    color: Optional[str] = None

    tradable: Optional[bool] = None
    marketable: Optional[bool] = None
    points: Optional[ColumnInteger] = None

    pricelatestsell: Optional[Price] = None
    pricemedian: Optional[Price] = None
    pricemin: Optional[Price] = None
    pricemax: Optional[Price] = None
    soldtotal: Optional[ColumnInteger] = None
    sold30d: Optional[ColumnInteger] = None
    priceupdatedat: Optional[datetime] = None

    @field_validator("external_id", mode="before")
    @classmethod
    def normalize_external_id(cls, value: Any) -> Any:
        # The API sends both numeric and string identifiers
        if isinstance(value, bool):
            return value
        if isinstance(value, int):
            return str(value)
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("classid", "instanceid", "groupid", mode="before")
    @classmethod
    def stringify_numeric_ids(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @field_validator("priceupdatedat", mode="wrap")
    @classmethod
    def unwrap_price_timestamp(
        cls, value: Any, handler: ValidatorFunctionWrapHandler
    ) -> Optional[datetime]:
        """
        The API reports the price timestamp either as a string or as an
        object like ``{"date": "2025-11-17 04:00:00.000000", ...}``.
        Unparseable timestamps are dropped rather than failing the record.
        """
        if isinstance(value, dict):
            value = value.get("date")
        if isinstance(value, str):
            value = value.strip()
        if value in ("", None):
            return None
        try:
            return handler(value)
        except ValidationError:
            return None

    @property
    def has_price_data(self) -> bool:
        return any(
            value is not None
            for value in (
                self.pricelatestsell,
                self.pricemedian,
                self.pricemin,
                self.pricemax,
            )
        )

    @property
    def volume(self) -> Optional[int]:
        if self.soldtotal is not None:
            return self.soldtotal
        return self.sold30d


def parse_record(data: Any) -> CatalogRecord:
    """
    Validate one raw record.

    Raises:
        ValidationError: If the record has no usable identifier or an
            attribute of the wrong type.
    """
    return CatalogRecord.model_validate(data)
