from typing import Any

from pydantic_core import to_jsonable_python

from shared.clients.ClientInterface import ClientInterface
from shared.exceptions import BackendError, NotFoundError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import DEFAULT_KB_API_BASE_URL, EnvConfig, KBApiConfig


class KBClientInterface(ClientInterface):
    """
    Base class for all clients of the knowledge-base backend API.

    Every endpoint of the backend answers with a JSON envelope carrying a
    ``success`` flag and, on failure, an ``error`` message. This class turns
    that envelope into either the decoded body or a raised BackendError.
    """

    def __init__(self, helper_config: HelperConfig, api_config: KBApiConfig | None = None):
        self._api_config = api_config or KBApiConfig.from_helper_config(helper_config)
        super().__init__(helper_config=helper_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "kb"

    def _get_engine_name(self) -> str:
        return "Api"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=DEFAULT_KB_API_BASE_URL),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._api_config.base_url

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def _extract_error_message(self, body: Any, fallback: str) -> str:
        """
        Pulls a human-readable error out of a backend response body.

        Args:
            body (Any): The decoded JSON body, if any.
            fallback (str): Message used when the body carries no error.

        Returns:
            str: The error message.
        """
        if isinstance(body, dict):
            for key in ("error", "detail", "message"):
                value = body.get(key)
                if value:
                    return value if isinstance(value, str) else str(value)
        return fallback

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_kb_request(
        self,
        method: str,
        endpoint: str,
        json: dict | None = None,
        params: dict | None = None,
        data: dict | None = None,
        files: dict | None = None,
        require_success_flag: bool = True,
    ) -> dict:
        """Send a request to the KB backend and unwrap its JSON envelope.

        Args:
            method (str): HTTP method.
            endpoint (str): Path relative to the backend base URL.
            json (dict | None): JSON body. Datetimes and models are converted automatically.
            params (dict | None): URL query parameters.
            data (dict | None): Form fields (multipart uploads).
            files (dict | None): Multipart files.
            require_success_flag (bool): Whether the body must carry "success": true.

        Returns:
            dict: The decoded response body.

        Raises:
            NetworkError: If the request could not be delivered.
            NotFoundError: If the backend answered 404.
            BackendError: On any other non-2xx status, a malformed body, or "success": false.
        """
        resp = await self.do_request(
            method=method,
            endpoint=endpoint,
            json=to_jsonable_python(json) if json is not None else None,
            params=params,
            data=data,
            files=files,
        )

        try:
            body = resp.json()
        except ValueError:
            body = None

        if resp.status_code >= 300:
            message = self._extract_error_message(body, f"Backend returned {resp.status_code}: {resp.text}")
            self.logging.error("%s %s failed with status %d: %s", method, endpoint, resp.status_code, message)
            error_class = NotFoundError if resp.status_code == 404 else BackendError
            raise error_class(message, status_code=resp.status_code)

        if not isinstance(body, dict):
            self.logging.error("%s %s returned a malformed body: %s", method, endpoint, resp.text[:200])
            raise BackendError(f"Malformed response from {endpoint}", status_code=resp.status_code)

        if require_success_flag and body.get("success") is not True:
            message = self._extract_error_message(body, f"{endpoint} did not report success")
            self.logging.error("%s %s was rejected by the backend: %s", method, endpoint, message)
            raise BackendError(message, status_code=resp.status_code)

        return body
