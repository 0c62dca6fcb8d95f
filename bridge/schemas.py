from pydantic import BaseModel, ConfigDict, Field, field_validator


class ContractAddressResponse(BaseModel):
    """
    Response schema for a configured contract address.

    Attributes
    ----------
    name : str
        Contract name
    address : str
        Checksum address
    """
    name: str
    address: str

    model_config = ConfigDict(from_attributes=True)


class ConvertEstimateRequest(BaseModel):
    """
    Request schema for a coin to MET conversion quote.

    Attributes
    ----------
    value : int
        Coin to convert, smallest unit
    """
    value: int = Field(..., gt=0, description="Coin to convert")

    model_config = ConfigDict(from_attributes=True)


class ConvertEstimateResponse(BaseModel):
    """Response schema for a conversion quote (MET, decimal string)."""
    result: str

    model_config = ConfigDict(from_attributes=True)


class GasLimitRequest(BaseModel):
    """
    Request schema for gas limit estimates.

    Attributes
    ----------
    from_address : str
        Sending address
    value : int
        Coin sent with the call
    """
    from_address: str = Field(..., alias="from", description="Sending address")
    value: int = Field(..., gt=0, description="Coin sent with the call")

    @field_validator('from_address')
    @classmethod
    def validate_address(cls, v: str) -> str:
        if not v.startswith('0x') or len(v) != 42:
            raise ValueError('Invalid Ethereum address format')
        return v.lower()

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class GasLimitResponse(BaseModel):
    """Response schema for gas limit estimates."""
    gas_limit: int = Field(serialization_alias="gasLimit")

    model_config = ConfigDict(from_attributes=True)
