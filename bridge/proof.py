from web3 import Web3

from core.exceptions import InvalidInputException
from wallet.meta_parsers import to_bytes, to_hex


def compute_merkle_root(burn_hashes: list[str]) -> str:
    """
    Merkle root over burn hashes, as the porter contracts verify it.

    Pairs are sorted before hashing, so no position flags are needed to
    verify a proof. An odd node is carried up unchanged.

    Parameters
    ----------
    burn_hashes : list[str]
        32-byte burn hashes, ``0x`` hex

    Returns
    -------
    str
        Root hash, ``0x`` hex

    Raises
    ------
    InvalidInputException
        If the list is empty or a hash is not 32 bytes
    """
    if not burn_hashes:
        raise InvalidInputException("error.proof.empty")

    level = [to_bytes(burn_hash) for burn_hash in burn_hashes]
    if any(len(node) != 32 for node in level):
        raise InvalidInputException("error.proof.invalid_hash")

    while len(level) > 1:
        next_level = []
        for i in range(0, len(level), 2):
            if i + 1 == len(level):
                next_level.append(level[i])
                continue
            left, right = sorted((level[i], level[i + 1]))
            next_level.append(bytes(Web3.keccak(left + right)))
        level = next_level

    return to_hex(level[0])
