from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

TRANSFER_KEY = "transfer"
LEGACY_TRANSFER_KEY = "Transferencia"
LEGACY_TIP_KEY = "_PROPINA_OVERRIDE"


class FlowKind(str, Enum):
    INITIAL = "initial"
    REQUEST = "request"
    CHECKOUT = "checkout"
    FINAL = "final"
    HOUSE = "casa"
    DEBT = "deuda"
    AREA_TO_AREA = "area2area"

    @property
    def is_multi_slot(self) -> bool:
        return self in {FlowKind.INITIAL, FlowKind.FINAL}

    @property
    def auto_sync(self) -> bool:
        return self not in {FlowKind.HOUSE, FlowKind.DEBT, FlowKind.AREA_TO_AREA}

    @property
    def is_ledger(self) -> bool:
        return self in {FlowKind.HOUSE, FlowKind.DEBT}


def _to_decimal(value: Any, default: Decimal | None = Decimal("0")) -> Decimal | None:
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip().replace(",", "."))
    except InvalidOperation:
        return default


class ProductEntry(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    name: str = ""
    unit_kind: str | None = Field(
        default=None,
        validation_alias=AliasChoices("unitKind", "unitOfMeasureId", "unit_kind"),
        serialization_alias="unitKind",
    )
    price: Decimal | None = None
    stock: Decimal | None = None
    net_content: Decimal | None = Field(
        default=None,
        validation_alias=AliasChoices("netContent", "net_content"),
        serialization_alias="netContent",
    )
    counts: list[str] = Field(default_factory=list)
    quantity: str = ""
    sold: Decimal = Decimal("0")
    commission_rate: Decimal = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("commissionRate", "comision", "commission_rate"),
        serialization_alias="commissionRate",
    )
    monto: Decimal = Decimal("0")

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, value: Any) -> str:
        return str(value)

    @field_validator("price", "stock", "net_content", mode="before")
    @classmethod
    def _optional_decimal(cls, value: Any) -> Decimal | None:
        return _to_decimal(value, default=None)

    @field_validator("sold", "commission_rate", "monto", mode="before")
    @classmethod
    def _decimal_or_zero(cls, value: Any) -> Decimal:
        return _to_decimal(value) or Decimal("0")

    @field_validator("quantity", mode="before")
    @classmethod
    def _quantity_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("counts", mode="before")
    @classmethod
    def _counts_text(cls, value: Any) -> list[str]:
        if not value:
            return []
        return ["" if item is None else str(item) for item in value]

    def wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class LedgerItem(BaseModel):
    id: str
    quantity: Decimal

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, value: Any) -> str:
        return str(value)

    @field_validator("quantity", mode="before")
    @classmethod
    def _quantity(cls, value: Any) -> Decimal:
        parsed = _to_decimal(value, default=None)
        if parsed is None:
            raise ValueError(f"invalid ledger quantity {value!r}")
        return parsed


class ConsumptionLedger(BaseModel):
    """House-consumption or debt-consumption record for the current shift."""

    model_config = ConfigDict(populate_by_name=True)

    items: list[LedgerItem] = Field(default_factory=list)
    created_at: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("createdAt", "created_at", "savedAt"),
        serialization_alias="createdAt",
    )

    @model_validator(mode="before")
    @classmethod
    def _legacy_shapes(cls, data: Any) -> Any:
        if isinstance(data, list):
            return {"items": data}
        if isinstance(data, dict) and "createdAt" not in data and isinstance(data.get("meta"), dict):
            saved_at = data["meta"].get("savedAt")
            if saved_at:
                return {**data, "createdAt": saved_at}
        return data

    def quantities(self) -> dict[str, Decimal]:
        return {item.id: item.quantity for item in self.items}

    def is_fresh(self, now: datetime | None = None) -> bool:
        if self.created_at is None:
            return False
        current = now or datetime.now()
        created = self.created_at
        if created.tzinfo is not None:
            created = created.astimezone()
            if current.tzinfo is None:
                current = current.astimezone()
        elif current.tzinfo is not None:
            current = current.replace(tzinfo=None)
        return (created.year, created.month, created.day) == (current.year, current.month, current.day)


class CashTotals(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_cash: Decimal = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("totalCash", "totalCaja", "total_cash"),
        serialization_alias="totalCash",
    )
    tip: Decimal = Field(default=Decimal("0"), validation_alias=AliasChoices("tip", "propina"))
    commission: Decimal = Field(default=Decimal("0"), validation_alias=AliasChoices("commission", "comision"))
    salary: Decimal = Field(default=Decimal("0"), validation_alias=AliasChoices("salary", "salario"))
    settlement: Decimal = Field(default=Decimal("0"), validation_alias=AliasChoices("settlement", "liquidacion"))
    sales_amount: Decimal = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("salesAmount", "importe", "sales_amount"),
        serialization_alias="salesAmount",
    )
    transfer_amount: Decimal = Field(
        default=Decimal("0"),
        validation_alias=AliasChoices("transferAmount", "transferencia", "transfer_amount"),
        serialization_alias="transferAmount",
    )


class CashBreakdown(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    denominations: dict[str, str] = Field(default_factory=dict)
    exchange_rates: dict[str, Decimal] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("exchangeRates", "exchange_rates"),
        serialization_alias="exchangeRates",
    )
    totals: CashTotals = Field(default_factory=CashTotals)
    tip_override: str | None = Field(
        default=None,
        validation_alias=AliasChoices("tipOverride", "tip_override"),
        serialization_alias="tipOverride",
    )
    saved_at: datetime | None = Field(
        default=None,
        validation_alias=AliasChoices("savedAt", "saved_at"),
        serialization_alias="savedAt",
    )

    @model_validator(mode="before")
    @classmethod
    def _legacy_shapes(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        denominations = dict(data.get("denominations") or {})
        if LEGACY_TRANSFER_KEY in denominations:
            denominations.setdefault(TRANSFER_KEY, denominations.pop(LEGACY_TRANSFER_KEY))
        if LEGACY_TIP_KEY in denominations:
            data.setdefault("tipOverride", denominations.pop(LEGACY_TIP_KEY))
        if data.get("tipOverride") is not None:
            data["tipOverride"] = str(data["tipOverride"])
        data["denominations"] = {key: "" if value is None else str(value) for key, value in denominations.items()}
        if "savedAt" not in data and isinstance(data.get("meta"), dict):
            data["savedAt"] = data["meta"].get("savedAt")
        return data

    def wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class SyncPayload(BaseModel):
    productos: list[dict[str, Any]]
    user_id: str | None = Field(default=None, serialization_alias="userId")
    area_id: str | None = Field(default=None, serialization_alias="areaId")


class AreaToAreaPayload(SyncPayload):
    to_area_id: str = Field(serialization_alias="toAreaId")
    to_user_id: str | None = Field(default=None, serialization_alias="toUserId")


class Area(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, value: Any) -> str:
        return str(value)


class Employee(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, value: Any) -> str:
        return str(value)
