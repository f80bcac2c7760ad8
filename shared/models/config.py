from pydantic import BaseModel, field_validator

from shared.helper.HelperConfig import HelperConfig

DEFAULT_KB_API_BASE_URL = "http://localhost:8000"


class EnvConfig(BaseModel):
    """
    Represents a single configuration parameter required for a env setting.

    Attributes:
        env_key (str): The key/name of the environment variable to read.
        val_type (str): The expected type of the environment variable's value. Supported types are "string", "number" and "bool".
        default (str | int | bool | None): An optional default value if the environment variable is not set. If None, the variable is required and an error will be raised if it is not set.
    """

    env_key: str
    val_type: str
    default: str | int | bool | None = None


class KBApiConfig(BaseModel):
    """
    Connection settings for the knowledge-base backend API.

    Passed explicitly into every KB client at construction. The only
    recognised option is the base URL; it defaults to a locally running
    backend and can be overridden with the KB_API_BASE_URL env variable.

    Attributes:
        base_url (str): Base URL of the backend, e.g. "http://localhost:8000".
    """

    base_url: str = DEFAULT_KB_API_BASE_URL

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("base_url must not be empty")
        return value.rstrip("/")

    @classmethod
    def from_helper_config(cls, helper_config: HelperConfig) -> "KBApiConfig":
        """
        Builds the config from the environment.

        Args:
            helper_config (HelperConfig): The config helper used to read KB_API_BASE_URL.

        Returns:
            KBApiConfig: The resolved configuration.
        """
        return cls(base_url=helper_config.get_string_val("KB_API_BASE_URL", default=DEFAULT_KB_API_BASE_URL))
