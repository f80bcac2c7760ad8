"""Type-specific form payloads (``rawFormData``) for knowledge-base entries.

The entry ``type`` is the discriminant: every ``EntryType`` maps to exactly
one form model in ``FORM_MODELS``. Unknown keys are preserved so that a
payload read back from the store round-trips unchanged.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class EntryType(str, Enum):
    DEFINITION = "definition"
    HOW_TO = "how_to"
    ERROR = "error"


class RelatedLink(BaseModel):
    """A structured related-document reference as produced by the link editor."""
    model_config = ConfigDict(extra="allow")

    title: str | None = None
    url: str | None = None


RelatedLinks = str | list[str | RelatedLink] | None


class FormDataBase(BaseModel):
    model_config = ConfigDict(extra="allow")

    related_links: RelatedLinks = None


class DefinitionFormData(FormDataBase):
    term: str | None = None
    definition: str | None = None
    examples: str | None = None
    also_known_as: str | None = None


class HowToStep(BaseModel):
    model_config = ConfigDict(extra="allow")

    step_title: str | None = None
    description: str | None = None
    action: str | None = None
    expected_outcome: str | None = None


class HowToFormData(FormDataBase):
    title: str | None = None
    overview: str | None = None
    estimated_time: str | None = None
    prerequisites: str | None = None
    step_type: str | None = None  # "single" | "multi"
    single_step_description: str | None = None
    steps: list[HowToStep] = []
    common_issues: str | None = None
    tips: str | None = None


class ErrorCause(BaseModel):
    model_config = ConfigDict(extra="allow")

    cause_description: str | None = None
    solution: str | None = None
    related_help: str | None = None


class ErrorFormData(FormDataBase):
    issue_title: str | None = None
    issue_description: str | None = None
    error_code: str | None = None
    causes: list[ErrorCause] = []


FormData = DefinitionFormData | HowToFormData | ErrorFormData

FORM_MODELS: dict[EntryType, type[FormDataBase]] = {
    EntryType.DEFINITION: DefinitionFormData,
    EntryType.HOW_TO: HowToFormData,
    EntryType.ERROR: ErrorFormData,
}

_missing_form_models = set(EntryType) - set(FORM_MODELS)
if _missing_form_models:
    raise NotImplementedError(f"No form model for entry types: {sorted(t.value for t in _missing_form_models)}")


def parse_form_data(entry_type: EntryType | str, raw_form_data: dict[str, Any] | FormDataBase | None) -> FormData:
    """
    Validates a raw form payload against the model for the given entry type.

    Args:
        entry_type (EntryType | str): The discriminating entry type.
        raw_form_data (dict | FormDataBase | None): The raw payload or an already parsed model.

    Returns:
        FormData: The parsed, type-specific form model.

    Raises:
        ValueError: If the entry type is unknown.
        pydantic.ValidationError: If the payload does not match the type's shape.
    """
    entry_type = EntryType(entry_type)
    model = FORM_MODELS[entry_type]
    if isinstance(raw_form_data, FormDataBase):
        if not isinstance(raw_form_data, model):
            raise ValueError(f"Form data of type {type(raw_form_data).__name__} does not match entry type '{entry_type.value}'.")
        return raw_form_data
    return model.model_validate(raw_form_data or {})


def dump_form_data(form_data: FormDataBase) -> dict[str, Any]:
    """Serialises a form model back into the wire ``rawFormData`` dict."""
    return form_data.model_dump(mode="json", exclude_none=True)
