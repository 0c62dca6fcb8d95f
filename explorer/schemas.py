from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class GetPastEventsRequest(BaseModel):
    """
    Request schema for past events of a bridge contract.

    Attributes
    ----------
    contract : Literal["METToken", "Auctions", "AutonomousConverter", "TokenPorter"]
        Configured contract to read
    event : str
        Event name in the contract ABI
    from_block : int
        First block
    to_block : int | None
        Last block; the chain tip when omitted (uncached)
    filter : dict
        Indexed argument values to match
    """
    contract: Literal["METToken", "Auctions", "AutonomousConverter", "TokenPorter"] = Field(
        default="METToken",
        description="Configured contract to read"
    )
    event: str = Field(..., min_length=1, description="Event name")
    from_block: int = Field(..., ge=0, description="First block")
    to_block: int | None = Field(default=None, ge=0, description="Last block")
    filter: dict[str, Any] = Field(default_factory=dict, description="Indexed argument values")

    @field_validator('event')
    @classmethod
    def validate_event(cls, v: str) -> str:
        if not v.isidentifier():
            raise ValueError('Invalid event name')
        return v

    @model_validator(mode='after')
    def validate_range(self) -> "GetPastEventsRequest":
        if self.to_block is not None and self.to_block < self.from_block:
            raise ValueError('to_block must not be lower than from_block')
        return self

    model_config = ConfigDict(from_attributes=True)


class PastEventResponse(BaseModel):
    """
    Response schema for a single event.

    Attributes
    ----------
    transaction_hash : str
        Transaction hash
    block_number : int
        Block number
    log_index : int
        Log index
    event_name : str
        Event name
    args : dict
        Event arguments
    address : str
        Contract address
    """
    transaction_hash: str
    block_number: int
    log_index: int
    event_name: str
    args: dict
    address: str

    model_config = ConfigDict(from_attributes=True)


class PastEventsResponse(BaseModel):
    """
    Response schema for past events query.

    Attributes
    ----------
    contract_address : str
        Contract address
    from_block : int
        First block
    to_block : int
        Last block read
    events : list[PastEventResponse]
        Decoded events
    total_events : int
        Number of events
    """
    contract_address: str
    from_block: int
    to_block: int
    events: list[PastEventResponse]
    total_events: int

    model_config = ConfigDict(from_attributes=True)


class GasPriceResponse(BaseModel):
    """Response schema for the current gas price (wei, decimal string)."""
    gas_price: str = Field(serialization_alias="gasPrice")

    model_config = ConfigDict(from_attributes=True)
