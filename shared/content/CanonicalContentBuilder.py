"""Canonical content builder.

Turns an entry's structured form data into the exact text that is submitted
for embedding. The output depends on ``(type, rawFormData)`` only, so the
stored ``content`` can always be re-derived and compared byte for byte.
"""

import re
from typing import Any, Callable

from shared.models.form_data import (
    DefinitionFormData,
    EntryType,
    ErrorFormData,
    FormDataBase,
    HowToFormData,
    RelatedLink,
    parse_form_data,
)

_RELATED_SPLIT = re.compile(r"[\n,]")

UNTITLED_TITLES: dict[EntryType, str] = {
    EntryType.DEFINITION: "Untitled Definition",
    EntryType.HOW_TO: "Untitled How-To",
    EntryType.ERROR: "Untitled Issue",
}


def _has_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def split_related(raw: str) -> list[str]:
    """Splits a comma/newline delimited reference string into trimmed, non-empty items."""
    return [part.strip() for part in _RELATED_SPLIT.split(raw) if part.strip()]


class CanonicalContentBuilder:
    """Builds the canonical, section-structured text for an entry."""

    def __init__(self) -> None:
        self._renderers: dict[EntryType, Callable[[Any], list[str]]] = {
            EntryType.DEFINITION: self._render_definition,
            EntryType.HOW_TO: self._render_how_to,
            EntryType.ERROR: self._render_error,
        }
        missing = set(EntryType) - set(self._renderers)
        if missing:
            raise NotImplementedError(f"No content renderer for entry types: {sorted(t.value for t in missing)}")

    ##########################################
    ################ PUBLIC ##################
    ##########################################

    def build(self, entry_type: EntryType | str, raw_form_data: dict[str, Any] | FormDataBase | None) -> str:
        """
        Builds the canonical content string.

        Args:
            entry_type (EntryType | str): The entry type that selects the template.
            raw_form_data (dict | FormDataBase | None): The structured form payload.

        Returns:
            str: The canonical content. Sections without a value are omitted.
        """
        entry_type = EntryType(entry_type)
        form = parse_form_data(entry_type, raw_form_data)
        return "\n".join(self._renderers[entry_type](form))

    def extract_title(self, entry_type: EntryType | str, raw_form_data: dict[str, Any] | FormDataBase | None) -> str:
        """
        Derives the entry title from its form data.

        Args:
            entry_type (EntryType | str): The entry type.
            raw_form_data (dict | FormDataBase | None): The structured form payload.

        Returns:
            str: The title, or the type-specific "Untitled ..." default.
        """
        entry_type = EntryType(entry_type)
        form = parse_form_data(entry_type, raw_form_data)
        candidates: list[str | None]
        if isinstance(form, DefinitionFormData):
            candidates = [form.term]
        elif isinstance(form, HowToFormData):
            candidates = [form.title]
        else:
            candidates = [form.issue_title, form.error_code]
        for candidate in candidates:
            if _has_text(candidate):
                return candidate.strip()
        return UNTITLED_TITLES[entry_type]

    def extract_related_documents(self, entry_type: EntryType | str, raw_form_data: dict[str, Any] | FormDataBase | None) -> list[str]:
        """
        Collects related-document titles as a flat list.

        Delimited strings, plain string lists and link objects all normalise
        to the same list. Error entries without related_links fall back to
        the related_help of their causes.

        Returns:
            list[str]: Related document titles in input order.
        """
        entry_type = EntryType(entry_type)
        form = parse_form_data(entry_type, raw_form_data)
        related = self._normalise_related_links(form)
        if related or not isinstance(form, ErrorFormData):
            return related
        help_refs: list[str] = []
        for cause in form.causes:
            if _has_text(cause.related_help):
                help_refs.extend(split_related(cause.related_help))
        return help_refs

    def build_metadata_extras(self, entry_type: EntryType | str, raw_form_data: dict[str, Any] | FormDataBase | None) -> dict[str, Any]:
        """
        Returns the metadata keys that are derived from the form data on create.

        Returns:
            dict[str, Any]: entryType, related_documents and the type-specific
                            extras (error_code, process_type, step_count).
        """
        entry_type = EntryType(entry_type)
        form = parse_form_data(entry_type, raw_form_data)
        extras: dict[str, Any] = {
            "entryType": entry_type.value,
            "related_documents": self.extract_related_documents(entry_type, form),
        }
        if isinstance(form, ErrorFormData) and _has_text(form.error_code):
            extras["error_code"] = form.error_code
        if isinstance(form, HowToFormData):
            if form.step_type:
                extras["process_type"] = form.step_type
            if form.step_type == "multi":
                extras["step_count"] = len(form.steps)
        return extras

    ##########################################
    ############### RENDERERS ################
    ##########################################

    def _normalise_related_links(self, form: FormDataBase) -> list[str]:
        links = form.related_links
        if links is None:
            return []
        if isinstance(links, str):
            return split_related(links)
        titles: list[str] = []
        for link in links:
            if isinstance(link, RelatedLink):
                title = link.title
            else:
                title = link
            if _has_text(title):
                titles.append(title.strip())
        return titles

    def _related_section(self, form: FormDataBase) -> list[str]:
        related = self._normalise_related_links(form)
        if not related:
            return []
        return [f"\nRelated Documents:\n{', '.join(related)}"]

    def _render_definition(self, form: DefinitionFormData) -> list[str]:
        parts: list[str] = []
        if _has_text(form.term):
            parts.append(f"Term: {form.term}")
        if _has_text(form.definition):
            parts.append(f"\nDefinition:\n{form.definition}")
        if _has_text(form.examples):
            parts.append(f"\nExamples:\n{form.examples}")
        if _has_text(form.also_known_as):
            parts.append(f"\nAlso Known As:\n{form.also_known_as}")
        parts.extend(self._related_section(form))
        return parts

    def _render_how_to(self, form: HowToFormData) -> list[str]:
        parts: list[str] = []
        if _has_text(form.title):
            parts.append(f"How to: {form.title}")
        if _has_text(form.overview):
            parts.append(f"\nOverview:\n{form.overview}")
        if _has_text(form.estimated_time):
            parts.append(f"\nEstimated Time: {form.estimated_time}")
        if _has_text(form.prerequisites):
            parts.append(f"\nPrerequisites:\n{form.prerequisites}")

        if form.step_type == "single":
            if _has_text(form.single_step_description):
                parts.append(f"\nSteps:\n{form.single_step_description}")
        else:
            step_lines: list[str] = []
            number = 0
            for step in form.steps:
                body: list[str] = []
                if _has_text(step.step_title):
                    body.append(step.step_title)
                if _has_text(step.description):
                    body.append(step.description)
                if _has_text(step.action):
                    body.append(f"Action: {step.action}")
                if _has_text(step.expected_outcome):
                    body.append(f"Expected: {step.expected_outcome}")
                if not body:
                    continue
                number += 1
                step_lines.extend(["", f"Step {number}:", *body])
            if step_lines:
                parts.append("\nSteps:")
                parts.extend(step_lines)

        if _has_text(form.common_issues):
            parts.append(f"\nCommon Issues:\n{form.common_issues}")
        if _has_text(form.tips):
            parts.append(f"\nTips:\n{form.tips}")
        parts.extend(self._related_section(form))
        return parts

    def _render_error(self, form: ErrorFormData) -> list[str]:
        parts: list[str] = []
        if _has_text(form.issue_title):
            parts.append(f"Error: {form.issue_title}")
        if _has_text(form.issue_description):
            parts.append(f"\nIssue Description:\n{form.issue_description}")
        if _has_text(form.error_code):
            parts.append(f"\nError Code: {form.error_code}")

        cause_lines: list[str] = []
        number = 0
        for cause in form.causes:
            if not any(_has_text(v) for v in (cause.cause_description, cause.solution, cause.related_help)):
                continue
            number += 1
            cause_lines.extend(["", f"Cause {number}:"])
            if _has_text(cause.cause_description):
                cause_lines.append(cause.cause_description)
            if _has_text(cause.solution):
                cause_lines.extend(["", "Solution:", cause.solution])
            if _has_text(cause.related_help):
                cause_lines.extend(["", "Related Help:", cause.related_help])
        if cause_lines:
            parts.append("\nTroubleshooting:")
            parts.extend(cause_lines)

        parts.extend(self._related_section(form))
        return parts
