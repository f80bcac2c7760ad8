from shared.helper.HelperConfig import HelperConfig
from shared.clients.entrystore.EntryReaderInterface import EntryReaderInterface

DEFAULT_ENTRYSTORE_ENGINE = "firestore"


class EntryReaderManager:
    """
    Instantiates the entry store reader for the configured engine.
    """

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """
        Reads the entry store engine from ENV configuration (ENTRYSTORE_ENGINE).

        Returns:
            str: The engine name, capitalized for class lookup (e.g. "Firestore").
        """
        engine = self.helper_config.get_string_val("ENTRYSTORE_ENGINE", default=DEFAULT_ENTRYSTORE_ENGINE)
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> EntryReaderInterface:
        """
        Instantiates the reader class for the configured engine.

        Returns:
            EntryReaderInterface: The reader instance.

        Raises:
            ValueError: If the engine is not supported.
        """
        engine = self._get_engine_from_env()
        className = f"EntryReader{engine}"
        try:
            module = __import__(
                f"shared.clients.entrystore.{engine.lower()}.{className}",
                fromlist=[className],
            )
            client_class = getattr(module, className)
        except (ImportError, AttributeError) as e:
            raise ValueError(f"Unsupported entry store engine specified: '{engine}'. Error: {e}")
        self.logging.debug("Instantiated entry store reader for engine: %s", engine)
        return client_class(helper_config=self.helper_config)

    def get_client(self) -> EntryReaderInterface:
        return self.client
