from datetime import datetime

from sqlmodel import Field, SQLModel


class Bid(SQLModel, table=True):
    """Satıcı teklifi. Ödeme tarafında sadece komisyon/atama (attribution) için okunur."""

    __tablename__ = "bids"
    id: int | None = Field(default=None, primary_key=True)
    user_id: int | None = None
    vendor_id: int = Field(index=True)
    plant_id: int | None = None
    conversation_id: int | None = Field(default=None, index=True)
    price: int = 0
    status: str = "pending"  # pending | accepted | rejected | completed | paid | shipping | delivered
    created_at: datetime = Field(default_factory=datetime.utcnow)
