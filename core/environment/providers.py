from dishka import Provider, Scope, provide
from core.environment.config import Settings


class EnvironmentProvider(Provider):
    """
    Provider for wallet core configuration.

    Settings are read once and shared, unchanged, by every component.
    """

    component = "environment"
    scope = Scope.APP

    @provide
    def get_environment(self) -> Settings:
        """
        Provide wallet core settings.

        Returns
        -------
        Settings
            Immutable settings read from the environment and ``.env``
        """
        return Settings()
