from pydantic import ConfigDict, Field, field_validator

from models.base import CamelDTO


class ProductDTO(CamelDTO):
    """
    Snapshot of a catalog product as it was when added to the cart.

    Unknown fields from the catalog are kept so the snapshot survives
    backend schema additions.
    """
    model_config = ConfigDict(extra="allow")

    id: str
    name: str = ""
    brand: str = "Unknown Brand"
    item_type: str = "General"
    location: str = "Unknown Location"
    balance: float = 0
    status: str = "in-stock"
    price: float | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_string(cls, value):
        if isinstance(value, (int, float)):
            return str(int(value))
        return value

    @staticmethod
    def status_for(balance: float, item_status: str | None = None) -> str:
        if item_status:
            api_status = item_status.lower()
            if "out of stock" in api_status:
                return "out-of-stock"
            if "low" in api_status:
                return "low-stock"
            return "in-stock"
        if balance > 10:
            return "in-stock"
        return "low-stock" if balance > 0 else "out-of-stock"


class ApiItemDTO(CamelDTO):
    """Row of the backend items endpoint, validated before conversion."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    item_no: str = Field(alias="item_no")
    item_name: str = Field(alias="item_name", min_length=1)
    brand: str = Field("Unknown Brand", alias="brand")
    item_type: str = Field("General", alias="item_type")
    location: str = Field("Unknown Location", alias="location")
    balance: float = Field(alias="balance", ge=0)
    item_status: str | None = Field(None, alias="item_status")
    price: float | None = Field(None, alias="price")

    @field_validator("item_no", mode="before")
    @classmethod
    def _item_no_as_string(cls, value):
        if isinstance(value, (int, float)):
            return str(int(value))
        return value

    def to_product(self) -> ProductDTO:
        return ProductDTO(
            id=self.item_no,
            name=self.item_name,
            brand=self.brand or "Unknown Brand",
            item_type=self.item_type or "General",
            location=self.location or "Unknown Location",
            balance=self.balance,
            status=ProductDTO.status_for(self.balance, self.item_status),
            price=self.price,
        )
