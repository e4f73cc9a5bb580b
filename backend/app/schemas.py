"""
Raw marketplace records — one optional-field input model per endpoint.

The statistics API omits fields freely and sends nulls; these models are the
single point where missing values get their defaults (0, "" or False), so
nothing downstream ever sees None. ``to_row()`` returns the column values of
the matching ORM model.
"""

from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from app.utils import day_part


class RawRecord(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        """A null is treated exactly like an absent key, so field defaults apply."""
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class RawOrder(RawRecord):
    order_id: str = Field("", alias="orderId")
    date: str = ""
    nm_id: int = Field(0, alias="nmId")
    supplier_article: str = Field("", alias="supplierArticle")
    quantity: int = 0
    total_price: float = Field(0.0, alias="totalPrice")
    discount_percent: float = Field(0.0, alias="discountPercent")
    warehouse_name: str = Field("", alias="warehouseName")
    status: str = ""
    is_cancel: bool = Field(False, alias="isCancel")

    @field_validator("order_id", mode="before")
    @classmethod
    def _stringify_id(cls, v):
        return str(v)

    @field_validator("date", mode="before")
    @classmethod
    def _trim_date(cls, v):
        return day_part(v)

    def to_row(self) -> dict:
        return self.model_dump()


class RawSale(RawRecord):
    sale_id: str = Field("", alias="saleID")
    date: str = ""
    nm_id: int = Field(0, alias="nmId")
    supplier_article: str = Field("", alias="supplierArticle")
    quantity: int = 0
    price_with_disc: float = Field(0.0, alias="priceWithDisc")
    for_pay: float = Field(0.0, alias="forPay")
    finished_price: float = Field(0.0, alias="finishedPrice")
    is_return: Optional[bool] = Field(None, alias="isReturn")
    warehouse_name: str = Field("", alias="warehouseName")

    @field_validator("sale_id", mode="before")
    @classmethod
    def _stringify_id(cls, v):
        return str(v)

    @field_validator("date", mode="before")
    @classmethod
    def _trim_date(cls, v):
        return day_part(v)

    @property
    def resolved_is_return(self) -> bool:
        """Explicit flag wins; otherwise return ids carry an "R" prefix."""
        if self.is_return is not None:
            return self.is_return
        return self.sale_id.startswith("R")

    def to_row(self) -> dict:
        row = self.model_dump()
        row["is_return"] = self.resolved_is_return
        return row


class RawStock(RawRecord):
    warehouse_name: str = Field("", alias="warehouseName")
    nm_id: int = Field(0, alias="nmId")
    supplier_article: str = Field("", alias="supplierArticle")
    subject: str = ""
    quantity: int = 0

    def to_row(self) -> dict:
        return self.model_dump()


class RawReportLine(RawRecord):
    """One line of reportDetailByPeriod (snake_case source names)."""
    rrd_id: int = 0
    report_id: int = Field(0, alias="realizationreport_id")
    date_from: str = ""
    date_to: str = ""
    supplier_article: str = Field("", alias="supplierArticle")
    nm_id: int = 0
    subject: str = Field("", alias="subject_name")
    retail_amount: float = 0.0
    return_amount: float = 0.0
    delivery_amount: float = 0.0
    storno_delivery_amount: float = 0.0
    pay_for_seller: float = Field(0.0, alias="ppvz_for_pay")
    penalty: float = 0.0
    additional_payment: float = 0.0
    storage_amount: float = 0.0
    deduction_amount: float = Field(0.0, alias="deduction")
    site_country: str = ""
    warehouse_name: str = Field("", alias="office_name")
    document_date: str = Field("", alias="create_dt")
    doc_type_name: str = ""

    @model_validator(mode="before")
    @classmethod
    def _apply_fallback_fields(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            if data.get("supplierArticle") is None and data.get("sa_name") is not None:
                data["supplierArticle"] = data["sa_name"]
            if data.get("storage_amount") is None and data.get("storage_fee") is not None:
                data["storage_amount"] = data["storage_fee"]
        return data

    @field_validator("date_from", "date_to", "document_date", mode="before")
    @classmethod
    def _trim_date(cls, v):
        return day_part(v)

    def to_row(self) -> dict:
        return self.model_dump(exclude={"rrd_id"})


class CampaignRecord(RawRecord):
    """A campaign with lifetime totals already summed from the stats breakdown."""
    campaign_id: int
    name: str = ""
    budget: float = 0.0
    spent: float = 0.0
    impressions: int = 0
    clicks: int = 0

    def to_row(self) -> dict:
        return self.model_dump()
