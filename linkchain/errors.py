"""Wire codec for append and peer rejections.

A rejection travels as ``{"error": <label>, "reason": <reason>}``. The label
picks the error class; the reason is a fixed English template carrying the
error payload. Decoding parses the template back with the patterns below and
never raises: anything it cannot read decodes to the matching Unknown error.

The templates are part of the wire contract, spelling included.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from .chain import (
    HashNotMatchingError,
    InvalidBlockError,
    NotCorrelatedError,
    NotPosteriorError,
    UnknownBlockError,
)
from .models import MAX_INDEX, MAX_TIMESTAMP
from .peers import (
    AlreadyPresentError,
    EntryRejectedError,
    InvalidURLError,
    MemberEntry,
    UnknownEntryError,
)

HASH_NOT_MATCHING_LABEL = "Previous hash not matching"
INDEX_NOT_CORRELATIVE_LABEL = "New block index is not correlative"
TIMESTAMP_NOT_LATER_LABEL = "New block timestamp must be later to previous"

ENTRY_ALREADY_PRESENT_LABEL = "Entry is already on list"
ENTRY_URL_INVALID_LABEL = "Invalid entry URL"

UNKNOWN_LABEL = "Unknown error"
UNKNOWN_REASON = "reason"

HASH_NOT_MATCHING_TEMPLATE = "previous hash is {expected} but {given} was provided"
NOT_CORRELATIVE_TEMPLATE = "expected index {expected} but received {given} which is not inmediate next"
NOT_POSTERIOR_TEMPLATE = "Given timestamp {given} is not later to {expected}"
ENTRY_ALREADY_PRESENT_TEMPLATE = "Entry is already a member: {peer}"
ENTRY_INVALID_URL_TEMPLATE = "Entry URL is invalid: {url}"

HASH_NOT_MATCHING_DESC_REGEX = re.compile(r"previous hash is (.*?) but (.*) was provided", re.DOTALL)
NOT_CORRELATIVE_DESC_REGEX = re.compile(r"expected index ([0-9]+) but received ([0-9]+) which is not inmediate next")
NOT_POSTERIOR_DESC_REGEX = re.compile(r"Given timestamp ([0-9]+) is not later to ([0-9]+)")
ENTRY_ALREADY_PRESENT_DESC_REGEX = re.compile(r"Entry is already a member: (.*)", re.DOTALL)
ENTRY_INVALID_URL_DESC_REGEX = re.compile(r"Entry URL is invalid: (.*)", re.DOTALL)


@dataclass(frozen=True)
class APIErrorAndReason:
    error: str
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.error, "reason": self.reason}

    @classmethod
    def from_dict(cls, data: Any) -> "APIErrorAndReason":
        if not isinstance(data, dict):
            return cls(error="", reason="")
        error = data.get("error")
        reason = data.get("reason")
        return cls(
            error=error if isinstance(error, str) else "",
            reason=reason if isinstance(reason, str) else "",
        )


UNKNOWN = APIErrorAndReason(error=UNKNOWN_LABEL, reason=UNKNOWN_REASON)


def _parse_uint(text: str, upper: int) -> int | None:
    value = int(text)
    if value > upper:
        return None
    return value


def encode_block_error(error: InvalidBlockError) -> APIErrorAndReason:
    if isinstance(error, HashNotMatchingError):
        return APIErrorAndReason(
            error=HASH_NOT_MATCHING_LABEL,
            reason=HASH_NOT_MATCHING_TEMPLATE.format(expected=error.expected, given=error.given),
        )
    if isinstance(error, NotCorrelatedError):
        return APIErrorAndReason(
            error=INDEX_NOT_CORRELATIVE_LABEL,
            reason=NOT_CORRELATIVE_TEMPLATE.format(expected=error.expected, given=error.given),
        )
    if isinstance(error, NotPosteriorError):
        return APIErrorAndReason(
            error=TIMESTAMP_NOT_LATER_LABEL,
            reason=NOT_POSTERIOR_TEMPLATE.format(given=error.given, expected=error.expected),
        )
    return UNKNOWN


def decode_block_error(api_error: APIErrorAndReason) -> InvalidBlockError:
    if not isinstance(api_error.reason, str):
        return UnknownBlockError()

    if api_error.error == HASH_NOT_MATCHING_LABEL:
        match = HASH_NOT_MATCHING_DESC_REGEX.fullmatch(api_error.reason)
        if match is None:
            return UnknownBlockError()
        expected, given = match.group(1), match.group(2)
        return HashNotMatchingError(given, expected)

    if api_error.error == INDEX_NOT_CORRELATIVE_LABEL:
        match = NOT_CORRELATIVE_DESC_REGEX.fullmatch(api_error.reason)
        if match is None:
            return UnknownBlockError()
        expected = _parse_uint(match.group(1), MAX_INDEX)
        given = _parse_uint(match.group(2), MAX_INDEX)
        if expected is None or given is None:
            return UnknownBlockError()
        return NotCorrelatedError(given, expected)

    if api_error.error == TIMESTAMP_NOT_LATER_LABEL:
        match = NOT_POSTERIOR_DESC_REGEX.fullmatch(api_error.reason)
        if match is None:
            return UnknownBlockError()
        given = _parse_uint(match.group(1), MAX_TIMESTAMP)
        expected = _parse_uint(match.group(2), MAX_TIMESTAMP)
        if given is None or expected is None:
            return UnknownBlockError()
        return NotPosteriorError(given, expected)

    return UnknownBlockError()


def encode_entry_error(error: EntryRejectedError) -> APIErrorAndReason:
    if isinstance(error, AlreadyPresentError):
        return APIErrorAndReason(
            error=ENTRY_ALREADY_PRESENT_LABEL,
            reason=ENTRY_ALREADY_PRESENT_TEMPLATE.format(peer=error.entry.peer),
        )
    if isinstance(error, InvalidURLError):
        return APIErrorAndReason(
            error=ENTRY_URL_INVALID_LABEL,
            reason=ENTRY_INVALID_URL_TEMPLATE.format(url=error.url),
        )
    return UNKNOWN


def decode_entry_error(api_error: APIErrorAndReason) -> EntryRejectedError:
    if not isinstance(api_error.reason, str):
        return UnknownEntryError()

    if api_error.error == ENTRY_URL_INVALID_LABEL:
        match = ENTRY_INVALID_URL_DESC_REGEX.fullmatch(api_error.reason)
        if match is None:
            return UnknownEntryError()
        return InvalidURLError(match.group(1))

    if api_error.error == ENTRY_ALREADY_PRESENT_LABEL:
        match = ENTRY_ALREADY_PRESENT_DESC_REGEX.fullmatch(api_error.reason)
        if match is None:
            return UnknownEntryError()
        return AlreadyPresentError(MemberEntry(peer=match.group(1)))

    return UnknownEntryError()
