import logging
import sys
from typing import Annotated

from dishka import FromComponent, Provider, provide, Scope

from core.environment.config import Settings


class LoggerProvider(Provider):
    """
    Provider for logging configuration and logger instances.

    Configures logging to output to console (stdout) at the level
    named by ``Settings.log_level``.
    """
    component = "logger"

    @provide(scope=Scope.APP)
    def get_logger(
        self,
        settings: Annotated[Settings, FromComponent("environment")]
    ) -> logging.Logger:
        """
        Provide configured logger instance.

        Parameters
        ----------
        settings : Settings
            Application settings

        Returns
        -------
        logging.Logger
            Wallet core logger that writes to console
        """
        if not logging.getLogger().handlers:
            logging.basicConfig(
                level=settings.log_level.upper(),
                format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                handlers=[
                    logging.StreamHandler(sys.stdout)
                ]
            )

        logger = logging.getLogger("wallet_core")
        logger.setLevel(settings.log_level.upper())
        return logger
