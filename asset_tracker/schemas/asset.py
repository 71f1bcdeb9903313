"""Asset schemas."""

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Location(str, Enum):
    CHASHAN = "茶山"
    SONGSHAN_LAKE = "松山湖"
    OTHER = "其他"


class Category(str, Enum):
    ELECTRONICS = "电子设备"
    OFFICE_FURNITURE = "办公家具"
    OTHER = "其他"


class InvoiceType(str, Enum):
    REGULAR = "普票"
    SPECIAL = "专票"
    NONE = "无票"


class AssetStatus(str, Enum):
    IN_USE = "在用"
    IDLE = "闲置"
    UNDER_REPAIR = "维修中"
    SCRAPPED = "报废"


class AssetFields(BaseModel):
    """Fields shared by every asset payload; wire names are camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, use_enum_values=True)

    name: str = Field(..., min_length=1, max_length=255, description="Asset name")
    model_spec: str = Field(..., min_length=1, description="Model and specification")
    owner: str = Field(..., min_length=1, max_length=255, description="Person responsible for the asset")
    storage_place: str = Field(..., min_length=1, max_length=255, description="Where the asset is kept")
    purchase_date: date = Field(..., description="Purchase date (YYYY-MM-DD)")
    last_check_date: date = Field(..., description="Date of the last inventory check (YYYY-MM-DD)")
    location: Location = Field(..., description="Site the asset belongs to")
    category: Category = Field(..., description="Asset category")
    invoice_type: InvoiceType = Field(..., description="Invoice type")
    status: AssetStatus = Field(..., description="Usage status")
    price: float = Field(..., ge=0, description="Purchase price")
    tax_rate: float = Field(..., ge=0, le=1, description="Tax rate as a fraction, e.g. 0.06")
    image_urls: list[str] = Field(default_factory=list, description="Photo URLs in display order")

    @field_validator("name", "model_spec", "owner", "storage_place", mode="before")
    @classmethod
    def strip_text(cls, v: str) -> str:
        """Normalize free text by stripping whitespace."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator("image_urls", mode="before")
    @classmethod
    def default_image_urls(cls, v: Optional[list[str]]) -> list[str]:
        """Records migrated without photos store no list at all."""
        if v is None:
            return []
        return v


class AssetCreate(AssetFields):
    """Schema for creating a new asset. ``id`` is the scanned code, if any."""

    id: Optional[str] = Field(None, max_length=64, description="Client supplied asset code")

    @field_validator("id", mode="before")
    @classmethod
    def normalize_id(cls, v: Optional[str]) -> Optional[str]:
        """Blank codes mean "allocate one for me"."""
        if isinstance(v, str):
            v = v.strip()
            return v or None
        return v


class AssetUpdate(AssetFields):
    """Schema for replacing every mutable field of an asset.

    ``id`` may be echoed back by clients but can never change.
    """

    id: Optional[str] = Field(None, description="Must match the asset being replaced when given")


class AssetResponse(AssetFields):
    """Schema for returning asset information."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, use_enum_values=True, from_attributes=True)

    id: str = Field(..., description="Unique asset code")


class ScanFlow(str, Enum):
    VIEW = "view"
    GUIDED_CREATE = "guided_create"
    FREE_CREATE = "free_create"


class ScanResponse(BaseModel):
    """Where a scanned code leads: the stored asset or a pre-filled creation form."""

    found: bool = Field(..., description="Whether an asset with this exact code exists")
    flow: ScanFlow = Field(..., description="Next step for the client")
    code: Optional[str] = Field(None, description="The scanned code, pre-filled on creation")
    asset: Optional[AssetResponse] = Field(None, description="The stored asset when found")


class UploadResponse(BaseModel):
    """Schema for the single-image upload endpoint."""

    success: bool = Field(..., description="Whether the upload succeeded")
    url: str = Field(..., description="Public URL of the uploaded image")
    message: str = Field(..., description="Status message")


class BatchUploadResponse(BaseModel):
    """Schema for the multi-image upload endpoint."""

    success: bool = Field(..., description="Whether the whole batch succeeded")
    urls: list[str] = Field(..., description="Existing URLs followed by the new ones, in submission order")
    message: str = Field(..., description="Status message")
