import asyncio
import logging

from bridge.contracts import ContractRegistry
from core.exceptions import BaseCustomException, TransportFailureException


FEE_DENOMINATOR = 10000


class PorterFeeEstimator:
    """
    Export fee quoted by the TokenPorter contract.

    Parameters
    ----------
    contracts : ContractRegistry
        Configured contracts
    logger : logging.Logger
        Logger instance
    """

    def __init__(self, contracts: ContractRegistry, logger: logging.Logger):
        self.contracts = contracts
        self.logger = logger

    async def get_export_met_fee(self, value: int) -> int:
        """
        Fee for exporting ``value`` MET.

        The porter charges ``exportFee`` per ten thousand, never less than
        ``minimumExportFee``.

        Parameters
        ----------
        value : int
            Amount to export

        Returns
        -------
        int
            Fee in MET base units

        Raises
        ------
        TransportFailureException
            If the porter contract could not be read
        """
        porter = self.contracts.get_contract("TokenPorter")
        try:
            minimum_fee, fee_per_ten_thousand = await asyncio.gather(
                porter.functions.minimumExportFee().call(),
                porter.functions.exportFee().call()
            )
        except BaseCustomException:
            raise
        except Exception as e:
            raise TransportFailureException(f"Could not read export fee: {e}")

        fee = max(minimum_fee, value * fee_per_ten_thousand // FEE_DENOMINATOR)
        self.logger.debug(f"Export fee for {value}: {fee}")
        return fee
