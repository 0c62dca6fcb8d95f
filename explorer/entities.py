from pydantic import BaseModel, ConfigDict


class PastEventEntity(BaseModel):
    """
    Entity representing one decoded contract event.

    Attributes
    ----------
    transaction_hash : str
        Transaction hash
    block_number : int
        Block number where event occurred
    log_index : int
        Log index in the block
    event_name : str
        Name of the event
    args : dict
        Decoded event arguments; integers as decimal strings
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
