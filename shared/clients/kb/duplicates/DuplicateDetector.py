import pydantic

from shared.clients.kb.KBClientInterface import KBClientInterface
from shared.clients.kb.models.DuplicateCandidate import DuplicateCandidate
from shared.exceptions import BackendError, DuplicateCheckUnavailable, NetworkError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import KBApiConfig
from shared.models.form_data import EntryType


class DuplicateDetector(KBClientInterface):
    """
    Advisory pre-create similarity check.

    The check is fail-open: when the service is unreachable, answers with an
    error status, or returns something unparseable, the result is an empty
    candidate list. Duplicate detection must never block entry creation.
    """

    def __init__(self, helper_config: HelperConfig, api_config: KBApiConfig | None = None):
        super().__init__(helper_config=helper_config, api_config=api_config)

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ ENDPOINTS ##################
    def _get_endpoint_check_duplicates(self) -> str:
        return "/api/kb/check-duplicates"

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def _parse_candidates(self, body: dict) -> list[DuplicateCandidate]:
        raw_entries = body.get("similar_entries") or []
        if not isinstance(raw_entries, list):
            raise DuplicateCheckUnavailable("'similar_entries' is not a list")
        try:
            candidates = [DuplicateCandidate.model_validate(item) for item in raw_entries]
        except pydantic.ValidationError as exc:
            raise DuplicateCheckUnavailable(f"Malformed duplicate candidate: {exc}") from exc
        return sorted(candidates, key=lambda c: c.similarity_score, reverse=True)

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def _do_check(self, title: str, content: str, entry_type: EntryType | str) -> list[DuplicateCandidate]:
        try:
            body = await self.do_kb_request(
                method="POST",
                endpoint=self._get_endpoint_check_duplicates(),
                json={"title": title, "content": content, "type": EntryType(entry_type).value},
                require_success_flag=False,
            )
        except (BackendError, NetworkError) as exc:
            raise DuplicateCheckUnavailable(str(exc)) from exc
        return self._parse_candidates(body)

    async def do_check(self, title: str, content: str, entry_type: EntryType | str) -> list[DuplicateCandidate]:
        """
        Looks for existing entries similar to the one about to be created.

        Args:
            title (str): Title of the new entry.
            content (str): Canonical content of the new entry.
            entry_type (EntryType | str): Type of the new entry.

        Returns:
            list[DuplicateCandidate]: Candidates, most similar first. Empty when
                                      nothing is similar or the check is unavailable.
        """
        try:
            candidates = await self._do_check(title, content, entry_type)
        except DuplicateCheckUnavailable as exc:
            self.logging.warning("Duplicate check unavailable, continuing without it: %s", exc)
            return []
        if candidates:
            self.logging.info(
                "Duplicate check for '%s' found %d candidate(s), best match %d%%",
                title, len(candidates), candidates[0].get_similarity_percent(),
            )
        return candidates
