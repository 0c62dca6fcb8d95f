from typing import Any

from web3 import AsyncWeb3, Web3

from core.exceptions import ContractNotFoundException, InvalidAddressException


def _function(name: str, inputs: list[tuple[str, str]], outputs: list[str], mutability: str = "nonpayable") -> dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "inputs": [{"name": arg, "type": abi_type} for arg, abi_type in inputs],
        "outputs": [{"name": "", "type": abi_type} for abi_type in outputs],
        "stateMutability": mutability,
    }


def _event(name: str, inputs: list[tuple[str, str, bool]]) -> dict[str, Any]:
    return {
        "type": "event",
        "name": name,
        "anonymous": False,
        "inputs": [
            {"name": arg, "type": abi_type, "indexed": indexed}
            for arg, abi_type, indexed in inputs
        ],
    }


MET_TOKEN_ABI = [
    _function("balanceOf", [("_owner", "address")], ["uint256"], "view"),
    _function("transfer", [("_to", "address"), ("_value", "uint256")], ["bool"]),
    _function(
        "export",
        [
            ("_destChain", "bytes8"),
            ("_destMetronomeAddr", "address"),
            ("_destRecipAddr", "address"),
            ("_amount", "uint256"),
            ("_fee", "uint256"),
            ("_extraData", "bytes"),
        ],
        ["bool"]
    ),
    _function(
        "importMET",
        [
            ("_originChain", "bytes8"),
            ("_destinationChain", "bytes8"),
            ("_addresses", "address[]"),
            ("_extraData", "bytes"),
            ("_burnHashes", "bytes32[]"),
            ("_supplyOnAllChains", "uint256[]"),
            ("_importData", "uint256[]"),
            ("_proof", "bytes"),
        ],
        ["bool"]
    ),
    _event("Transfer", [("_from", "address", True), ("_to", "address", True), ("_value", "uint256", False)]),
]

AUCTIONS_ABI = [
    _function("genesisTime", [], ["uint256"], "view"),
    _function("dailyAuctionStartTime", [], ["uint256"], "view"),
    _function(
        "heartbeat",
        [],
        [
            "bytes8",
            "address",
            "address",
            "address",
            "uint256",
            "uint256",
            "uint256",
            "uint256",
            "uint256",
            "uint256",
            "uint256",
            "uint256",
            "uint256",
            "uint256",
        ],
        "view"
    ),
    _event(
        "LogAuctionFundsIn",
        [
            ("sender", "address", True),
            ("amount", "uint256", False),
            ("tokens", "uint256", False),
            ("purchasePrice", "uint256", False),
            ("refund", "uint256", False),
        ]
    ),
]

AUTONOMOUS_CONVERTER_ABI = [
    _function("getMetForEthResult", [("_depositAmount", "uint256")], ["uint256"], "view"),
    _function("convertEthToMet", [("_mintReturn", "uint256")], ["uint256"], "payable"),
]

TOKEN_PORTER_ABI = [
    _function("exportFee", [], ["uint256"], "view"),
    _function("minimumExportFee", [], ["uint256"], "view"),
]

CONTRACT_ABIS = {
    "METToken": MET_TOKEN_ABI,
    "Auctions": AUCTIONS_ABI,
    "AutonomousConverter": AUTONOMOUS_CONVERTER_ABI,
    "TokenPorter": TOKEN_PORTER_ABI,
}


def to_bytes8(chain: str) -> bytes:
    """
    Encode a chain identifier as the ``bytes8`` the porter contracts expect.

    Parameters
    ----------
    chain : str
        Chain identifier (``ETH``, ``ETC``, ...) or ``0x`` hex

    Returns
    -------
    bytes
        Identifier right-padded with zero bytes to 8 bytes

    Raises
    ------
    InvalidAddressException
        If the identifier is longer than 8 bytes
    """
    raw = bytes.fromhex(chain[2:]) if chain.startswith("0x") else chain.encode()
    if len(raw) > 8:
        raise InvalidAddressException(f"error.chain.invalid: {chain}")
    return raw.ljust(8, b"\x00")


def chain_hex(chain: str) -> str:
    """Hex form of a chain identifier, as shown in transaction meta."""
    return chain if chain.startswith("0x") else "0x" + chain.encode().hex()


class ContractRegistry:
    """
    Configured bridge contracts of one chain.

    Parameters
    ----------
    web3 : AsyncWeb3
        Web3 client
    addresses : dict[str, str]
        Contract name to address
    """

    def __init__(self, web3: AsyncWeb3, addresses: dict[str, str]):
        self.web3 = web3
        self.addresses = dict(addresses)

    def get_contract_address(self, name: str) -> str:
        """
        Address of a named contract.

        Parameters
        ----------
        name : str
            Contract name (``METToken``, ``Auctions``, ...)

        Returns
        -------
        str
            Checksum address

        Raises
        ------
        ContractNotFoundException
            If the contract is unknown or not configured
        """
        address = self.addresses.get(name)
        if name not in CONTRACT_ABIS or not address:
            raise ContractNotFoundException(f"error.contract.not_found: {name}")
        return Web3.to_checksum_address(address)

    def get_contract(self, name: str):
        return self.web3.eth.contract(address=self.get_contract_address(name), abi=CONTRACT_ABIS[name])

    async def balance_of(self, address: str) -> int:
        """MET balance of an address."""
        met = self.get_contract("METToken")
        return await met.functions.balanceOf(Web3.to_checksum_address(address)).call()
