"""
Data Models for Med Price Scout.

This module defines Pydantic models used throughout the application for type
safety and validation of the data that flows between the upstream price
aggregation service, the stream relay and the client.

Classes:
    PriceQuote: One pharmacy's quote for a medicine, as streamed by upstream.
    MedicineQuery: The name / pack size / pin code triple behind one search.
    StreamState: Lifecycle states of a relayed stream.
    CloseReason: Why a relayed stream reached CLOSED.
    StreamSession: Per-request state owned by the stream relay.
    MedicineSuggestion: One autocomplete entry from the medicine name search.
"""

import re
import time
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field, field_validator

_AMOUNT_RE = re.compile(r"-?\d+(?:\.\d+)?")


def parse_amount(value) -> Optional[Decimal]:
    """Turn an upstream money value ("₹1,234.50", 99, "Free") into a Decimal or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))

    match = _AMOUNT_RE.search(str(value).replace(",", ""))
    if not match:
        return None
    try:
        return Decimal(match.group(0))
    except InvalidOperation:
        return None


class PriceQuote(BaseModel):
    """
    One vendor's quote for a medicine.

    Built from a single `data:` line of the upstream stream and never mutated
    afterwards. Field aliases match the wire format, so a quote can be parsed
    from and dumped back to the camelCase JSON the upstream service emits.

    Attributes:
        name: Pharmacy / vendor name.
        item: Medicine display name as listed by the vendor.
        price: Unit price.
        delivery_charge: Delivery fee.
        final_charge: Price plus delivery, what the buyer pays.
        delivery_time: Free-text estimate such as "2-3 days".
        img_link: Product image URL.
        link: Outbound purchase URL, the unique key of a quote.
        location: Vendor location label.

    Example:
        >>> quote = PriceQuote.model_validate({
        ...     "name": "PharmEasy", "item": "Paracetamol 500mg",
        ...     "finalCharge": "₹45.50", "deliveryTime": "2-3 days",
        ...     "link": "https://pharmeasy.in/p/1",
        ... })
        >>> quote.final_charge
        Decimal('45.50')
    """

    name: Optional[str] = None
    item: Optional[str] = None
    price: Optional[Decimal] = None
    delivery_charge: Optional[Decimal] = Field(default=None, alias="deliveryCharge")
    final_charge: Optional[Decimal] = Field(default=None, alias="finalCharge")
    delivery_time: Optional[str] = Field(default=None, alias="deliveryTime")
    img_link: Optional[str] = Field(default=None, alias="imgLink")
    link: str
    location: Optional[str] = Field(default=None, alias="lson")

    class Config:
        """Pydantic model configuration."""
        populate_by_name = True
        frozen = True

    @field_validator("price", "delivery_charge", "final_charge", mode="before")
    @classmethod
    def _clean_amount(cls, value):
        return parse_amount(value)

    @field_validator("delivery_time", mode="before")
    @classmethod
    def _delivery_time_as_text(cls, value):
        return None if value is None else str(value)

    @field_validator("link")
    @classmethod
    def _link_required(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("link must not be empty")
        return value

    def to_wire(self) -> dict:
        """Dump using the upstream camelCase field names."""
        return self.model_dump(mode="json", by_alias=True)


class MedicineQuery(BaseModel):
    """Medicine name, pack size and delivery pin code for one price lookup."""

    name: str = Field(min_length=1)
    pack: str = Field(min_length=1)
    pin: str = Field(min_length=1)

    class Config:
        """Pydantic model configuration."""
        str_strip_whitespace = True
        frozen = True


class StreamState(str, Enum):
    OPEN = "open"
    RECEIVING = "receiving"
    IDLE_FLUSHING = "idle_flushing"
    CLOSED = "closed"


class CloseReason(str, Enum):
    NORMAL = "normal"
    TIMED_OUT = "timed_out"
    ERRORED = "errored"
    CANCELLED = "cancelled"


class StreamSession(BaseModel):
    """
    Ephemeral state tying one client query to one upstream connection.

    The fetcher records its attempt count here before the relay takes over;
    the relay owns everything else until the response closes.
    """

    query: MedicineQuery
    started_at: float = Field(default_factory=time.monotonic)
    last_data_at: Optional[float] = None
    buffer: str = ""
    attempts: int = 0
    state: StreamState = StreamState.OPEN
    close_reason: Optional[CloseReason] = None

    def touch(self, now: float = None):
        self.last_data_at = time.monotonic() if now is None else now
        self.state = StreamState.RECEIVING

    def close(self, reason: CloseReason):
        # First reason wins; a cancelled stream stays cancelled during cleanup.
        if self.state is StreamState.CLOSED:
            return
        self.state = StreamState.CLOSED
        self.close_reason = reason

    @property
    def closed(self) -> bool:
        return self.state is StreamState.CLOSED


class MedicineSuggestion(BaseModel):
    """Autocomplete entry; upstream fields beyond medicineName/packSize are passed through."""

    medicine_name: str = Field(alias="medicineName")
    pack_size: Optional[str] = Field(default=None, alias="packSize")

    class Config:
        """Pydantic model configuration."""
        populate_by_name = True
        extra = "allow"

    @field_validator("pack_size", mode="before")
    @classmethod
    def _pack_as_text(cls, value):
        return None if value is None else str(value)

    def to_wire(self) -> dict:
        """Dump using the upstream camelCase field names."""
        return self.model_dump(mode="json", by_alias=True)
