"""Product domain models."""

from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator


class Product(BaseModel):
    """Product record as stored in the remote products table."""

    id: str = Field(..., description="Unique product ID from the remote store")
    name: str = Field(..., description="Product name (e.g., 'Milk')")
    barcode: str | None = Field(default=None, description="Scanned barcode, if any")
    expiry_date: date = Field(..., description="Calendar expiry date (no time component)")
    category: str | None = Field(default=None, description="Category name, matched against reminder overrides")
    storage_location: str | None = Field(default=None, description="Where the product is kept (e.g., 'Fridge')")
    details: str | None = Field(default=None, description="Free-text notes")
    badges: list[str] = Field(default_factory=list, description="Health badges from the barcode lookup")
    health_tips: list[str] = Field(default_factory=list, description="Health tips shown with the product")
    created_at: datetime | None = Field(default=None, description="When the record was created remotely")

    @field_validator("badges", "health_tips", mode="before")
    @classmethod
    def none_as_empty(cls, v: list[str] | None) -> list[str]:
        """Remote rows carry null for empty lists."""
        return v or []


class ProductCreate(BaseModel):
    """Fields required to create a product."""

    name: str = Field(..., min_length=1, description="Product name")
    expiry_date: date = Field(..., description="Calendar expiry date")
    barcode: str | None = Field(default=None, description="Scanned barcode")
    category: str | None = Field(default=None, description="Category name")
    storage_location: str | None = Field(default=None, description="Storage location")
    details: str | None = Field(default=None, description="Free-text notes")
    badges: list[str] | None = Field(default=None, description="Health badges")
    health_tips: list[str] | None = Field(default=None, description="Health tips")


class ProductUpdate(BaseModel):
    """Partial product update; only fields that were set are sent."""

    name: str | None = Field(default=None, min_length=1)
    expiry_date: date | None = None
    barcode: str | None = None
    category: str | None = None
    storage_location: str | None = None
    details: str | None = None
    badges: list[str] | None = None
    health_tips: list[str] | None = None


class CategoryReminderSetting(BaseModel):
    """Per-category override of how many days before expiry to remind."""

    id: str | None = Field(default=None, description="Row ID from the remote store")
    category_name: str = Field(..., description="Category the override applies to")
    reminder_days: int = Field(..., ge=0, description="Days before expiry to send the first reminder")
