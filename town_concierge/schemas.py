"""
Request and response models.

The ephemeral records of the chat pipeline (ParsedMessage,
ProductSearchResult, InboundMessage, SendResult) live here too, next to
the HTTP bodies that expose them.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .models import OrderStatus, PaymentMethod, Role


# Chat pipeline
class InboundMessage(BaseModel):
    from_: str = Field(..., alias="from", description="Sender phone")
    body: str
    timestamp: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True)


class SendResult(BaseModel):
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class ParsedMessage(BaseModel):
    original_text: str
    normalized_text: str
    keywords: List[str]
    intent: str
    confidence: float = Field(..., ge=0, le=1)


class SearchOptions(BaseModel):
    limit: int = Field(5, ge=1, le=50)
    include_out_of_stock: bool = False
    category_filter: Optional[str] = None
    min_price: Optional[int] = Field(None, ge=0, description="Minimum price in cents")
    max_price: Optional[int] = Field(None, ge=0, description="Maximum price in cents")


class SellerInfo(BaseModel):
    store_name: str
    tower: Optional[str] = None
    phone: Optional[str] = None
    name: Optional[str] = None


class ProductSearchResult(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    price_cents: int
    stock: int
    image_url: Optional[str] = None
    category: Optional[str] = None
    seller: Optional[SellerInfo] = None
    relevance_score: int = 0


class SearchRequest(BaseModel):
    keywords: List[str]
    options: SearchOptions = Field(default_factory=SearchOptions)


class DevMessageRequest(BaseModel):
    message: str
    phone: str


# Users and sellers
class UserCreate(BaseModel):
    phone: str = Field(..., pattern=r"^\+[1-9]\d{6,14}$")
    name: Optional[str] = Field(None, max_length=120)
    email: Optional[str] = Field(None, max_length=255)
    role: Role = Role.CUSTOMER


class UserOut(BaseModel):
    id: str
    phone: str
    name: Optional[str] = None
    role: Role

    model_config = ConfigDict(from_attributes=True)


class SellerCreate(BaseModel):
    user_id: str
    store_name: str = Field(..., min_length=1, max_length=120)
    tower: Optional[str] = Field(None, max_length=50)


class SellerOut(BaseModel):
    id: str
    user_id: str
    store_name: str
    tower: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# Products
class ProductCreate(BaseModel):
    seller_id: str = Field(..., min_length=1, description="Owning seller, required")
    title: str = Field(..., min_length=3, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    price_cents: int = Field(..., gt=0, le=999_999_999)
    stock: int = Field(0, ge=0, le=999_999)
    category: Optional[str] = Field(None, min_length=1, max_length=50)
    country: Optional[str] = Field(None, min_length=2, max_length=2)
    image_url: Optional[str] = Field(None, max_length=500)
    active: bool = True


class ProductUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=3, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    price_cents: Optional[int] = Field(None, gt=0, le=999_999_999)
    stock: Optional[int] = Field(None, ge=0, le=999_999)
    category: Optional[str] = Field(None, min_length=1, max_length=50)
    country: Optional[str] = Field(None, min_length=2, max_length=2)
    image_url: Optional[str] = Field(None, max_length=500)
    active: Optional[bool] = None


class ProductOut(BaseModel):
    id: str
    seller_id: str
    title: str
    description: Optional[str] = None
    price_cents: int
    stock: int
    category: Optional[str] = None
    country: Optional[str] = None
    image_url: Optional[str] = None
    active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Checkout and orders
class CartItem(BaseModel):
    product_id: str = Field(..., min_length=1)
    qty: int = Field(..., gt=0, le=999)


class CheckoutRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    items: List[CartItem]
    payment: PaymentMethod = PaymentMethod.CASH
    address: Optional[str] = Field(None, max_length=200)
    note: Optional[str] = Field(None, max_length=300)


class OrderLine(BaseModel):
    product_id: Optional[str] = None
    title: str
    qty: int
    unit_price_cents: int
    subtotal_cents: int


class OrderReceipt(BaseModel):
    order_id: str
    user_id: str
    total_cents: int
    coins_granted: int
    status: OrderStatus
    payment: PaymentMethod
    address: Optional[str] = None
    note: Optional[str] = None
    created_at: Optional[datetime] = None
    items: List[OrderLine]


class OrderStatusUpdate(BaseModel):
    status: str


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class OrderPage(BaseModel):
    data: List[OrderReceipt]
    pagination: Pagination


# Coins
class CoinEntryOut(BaseModel):
    id: str
    coins: int
    reason: str
    order_id: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CoinBalance(BaseModel):
    user_id: str
    balance: int
    transactions: List[CoinEntryOut]
