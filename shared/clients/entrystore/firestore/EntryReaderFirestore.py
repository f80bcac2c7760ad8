from shared.clients.entrystore.EntryReaderInterface import EntryReaderInterface
from shared.clients.entrystore.firestore.firestore_values import parse_timestamp, decode_fields, encode_value
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig

DEFAULT_FIRESTORE_BASE_URL = "https://firestore.googleapis.com/v1"


class EntryReaderFirestore(EntryReaderInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._base_url = self.get_config_val("BASE_URL", default=DEFAULT_FIRESTORE_BASE_URL, val_type="string")
        self._project_id = self.get_config_val("PROJECT_ID", default=None, val_type="string")
        self._database = self.get_config_val("DATABASE", default="(default)", val_type="string")
        self._collection = self.get_config_val("COLLECTION", default="kb_entries", val_type="string")
        self._api_key = self.get_config_val("API_KEY", default="", val_type="string")
        self._access_token = self.get_config_val("ACCESS_TOKEN", default="", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Firestore"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BASE_URL", val_type="string", default=DEFAULT_FIRESTORE_BASE_URL),
            EnvConfig(env_key="PROJECT_ID", val_type="string", default=None),
            EnvConfig(env_key="DATABASE", val_type="string", default="(default)"),
            EnvConfig(env_key="COLLECTION", val_type="string", default="kb_entries"),
            EnvConfig(env_key="API_KEY", val_type="string", default=""),
            EnvConfig(env_key="ACCESS_TOKEN", val_type="string", default=""),
        ]

    ################ AUTH ##################
    def _get_auth_header(self) -> dict:
        headers = {}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        if self._api_key:
            headers["x-goog-api-key"] = self._api_key
        return headers

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_documents_root(self) -> str:
        return f"/projects/{self._project_id}/databases/{self._database}/documents"

    def _get_endpoint_run_query(self) -> str:
        return f"{self._get_documents_root()}:runQuery"

    def _get_endpoint_document(self, entry_id: str) -> str:
        return f"{self._get_documents_root()}/{self._collection}/{entry_id}"

    ##########################################
    ########### PAYLOAD BUILDER ##############
    ##########################################

    def get_query_payload(self, filters: list[dict], order_by: str | None = None, descending: bool = True) -> dict:
        field_filters = [
            {
                "fieldFilter": {
                    "field": {"fieldPath": f["field"]},
                    "op": "EQUAL",
                    "value": encode_value(f["value"]),
                }
            }
            for f in filters
        ]
        query: dict = {"from": [{"collectionId": self._collection}]}
        if len(field_filters) == 1:
            query["where"] = field_filters[0]
        elif field_filters:
            query["where"] = {"compositeFilter": {"op": "AND", "filters": field_filters}}
        if order_by:
            query["orderBy"] = [{
                "field": {"fieldPath": order_by},
                "direction": "DESCENDING" if descending else "ASCENDING",
            }]
        return {"structuredQuery": query}

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def extract_query_documents(self, raw_response: list | dict) -> list[dict]:
        # runQuery streams one object per result; objects without "document" only carry readTime
        items = raw_response if isinstance(raw_response, list) else [raw_response]
        return [item["document"] for item in items if isinstance(item, dict) and item.get("document")]

    def decode_document_fields(self, raw_document: dict) -> dict:
        fields = decode_fields(raw_document.get("fields", {}))
        fields["id"] = raw_document.get("name", "").rsplit("/", 1)[-1]
        if raw_document.get("updateTime"):
            fields["_updateTime"] = parse_timestamp(raw_document["updateTime"])
        return fields
