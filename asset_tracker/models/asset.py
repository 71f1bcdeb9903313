"""Asset model."""

from sqlalchemy import JSON, Column, Date, Float, String, Text

from asset_tracker.database import Base


class Asset(Base):
    """A tracked piece of equipment or furniture, keyed by its printed code."""

    __tablename__ = "assets"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    purchase_date = Column("purchaseDate", Date, nullable=False)
    location = Column(String(32), nullable=False)
    price = Column(Float, nullable=False)
    invoice_type = Column("invoiceType", String(32), nullable=False)
    tax_rate = Column("taxRate", Float, nullable=False)
    model_spec = Column("modelSpec", Text, nullable=False)
    category = Column(String(32), nullable=False)
    last_check_date = Column("lastCheckDate", Date, nullable=False)
    # JSON-encoded ordered list of photo URLs; supersedes the legacy imageUrl column
    image_urls = Column("imageUrls", JSON(none_as_null=True), nullable=True)
    status = Column(String(32), nullable=False)
    storage_place = Column("storagePlace", String(255), nullable=False)
    owner = Column(String(255), nullable=False)

    def __repr__(self) -> str:
        """String representation of Asset."""
        return f"<Asset(id={self.id}, name={self.name}, status={self.status})>"
