"""Read-only views of listings and users owned by the catalog/auth services."""

from pydantic import BaseModel, Field


class Listing(BaseModel):
    id: str
    title: str
    price: float  # major units, e.g. rupees
    currency: str = "INR"
    owner_id: str
    is_active: bool = True
    images: list[str] = Field(default_factory=list)

    def summary(self) -> dict:
        return {"id": self.id, "title": self.title, "price": self.price, "images": self.images}


class User(BaseModel):
    id: str
    email: str
    name: str = ""
    role: str = "user"
    phone: str | None = None
    upi_handle: str | None = None  # seller payee VPA, e.g. name@bank
    session_version: int = 0
