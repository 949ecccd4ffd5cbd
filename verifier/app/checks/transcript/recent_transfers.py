"""
Recent-transfer recovery from attestations and HTTP transcripts.

Transfer history reaches the verifier in two places: as structured fields
declared in the attestation itself, and as JSON bodies embedded in the
raw HTTP response transcript (``recv``) of the notarized session. This
module mines both into a bounded, deduplicated, ordered list of
RecentTransfer rows.

The rows are non-authoritative. They are offered so the caller can
cross-reference a selected transfer; they are never hashed.

ORDERING
--------
Roots are scanned in a fixed order (attestation, its ``claimData``,
``data`` and ``fields`` sections, then each transcript body). Arrays
within a root are visited in depth-first discovery order and items in
their original order. Scanning stops as soon as the limit is reached, so
attestation-declared rows outrank transcript-mined rows, and earlier
transcript entries outrank later ones.

DEDUPLICATION
-------------
Rows merge on transferId, timestamp, amount and payerRef. A weak row
(neither transferId nor timestamp) is also keyed by its scan position,
so it is never merged, even with itself when overlapping roots reach the
same element twice.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Iterator, List, Mapping, Optional, Sequence, Set, Tuple

from verifier.app.checks.claim.normalization import (
    AMOUNT_ALIASES,
    PAYER_REF_ALIASES,
    TIMESTAMP_ALIASES,
    TRANSFER_ID_ALIASES,
    build_field_view,
)
from verifier.app.schemas.claims import RecentTransfer, SelectedTransfer
from verifier.app.utils.payload import (
    as_record,
    maybe_parse_json_string,
    pick_string,
    pick_text,
    to_finite_number,
)

logger = logging.getLogger("verifier.recent_transfers")

DEFAULT_RECENT_COUNT = 5
MIN_RECENT_COUNT = 1
MAX_RECENT_COUNT = 10

# Epoch values above this are milliseconds.
MILLISECOND_THRESHOLD = 10**12

# Guards Python's recursion limit; real payloads are far shallower.
MAX_SCAN_DEPTH = 64

# Seconds of tolerance when matching a selection by timestamp.
SELECTION_TIMESTAMP_TOLERANCE = 60

ROOT_SECTIONS: Tuple[str, ...] = ("claimData", "data", "fields")

ITEM_AMOUNT_ALIASES: Tuple[str, ...] = AMOUNT_ALIASES + ("value", "primaryAmount")
ITEM_TIMESTAMP_ALIASES: Tuple[str, ...] = TIMESTAMP_ALIASES + (
    "createdAt",
    "createdOn",
    "created",
    "date",
    "completedAt",
    "updatedAt",
)
ITEM_CURRENCY_ALIASES: Tuple[str, ...] = (
    "currency",
    "currencyCode",
    "sourceCurrency",
    "targetCurrency",
)
ITEM_STATUS_ALIASES: Tuple[str, ...] = ("status", "state", "transferStatus")
ITEM_DESCRIPTION_ALIASES: Tuple[str, ...] = (
    "description",
    "title",
    "subtitle",
    "details",
    "narrative",
)

TRANSACTION_NUMBER_RE = re.compile(
    r"transaction\s*(?:number|id)?\s*#?\s*(\d{6,})",
    re.IGNORECASE,
)

_BLANK_LINE_RE = re.compile(r"\r?\n\r?\n")


# ------------------------------------------------------------------
# Limits
# ------------------------------------------------------------------


def clamp_recent_count(value: Any, default: int = DEFAULT_RECENT_COUNT) -> int:
    """
    Coerce a caller-supplied count into ``[1, 10]``.

    Zero, non-numeric and missing values fall back to ``default``.
    """
    parsed = to_finite_number(value)
    count = math.trunc(parsed) if parsed else default
    return max(MIN_RECENT_COUNT, min(MAX_RECENT_COUNT, count))


# ------------------------------------------------------------------
# Transcript bodies
# ------------------------------------------------------------------


def _candidate_bodies(text: str) -> List[str]:
    """
    Recover candidate JSON texts from a raw transcript.

    Three independent heuristics are unioned, in this order:
    blank-line separated segments that open with ``{`` or ``[``, the
    outermost ``{...}`` span, and the outermost ``[...]`` span.
    """
    candidates: List[str] = []

    for segment in _BLANK_LINE_RE.split(text):
        trimmed = segment.strip()
        if trimmed.startswith(("{", "[")):
            candidates.append(trimmed)

    for opener, closer in (("{", "}"), ("[", "]")):
        start = text.find(opener)
        end = text.rfind(closer)
        if start != -1 and end > start:
            candidates.append(text[start : end + 1])

    unique: List[str] = []
    seen: Set[str] = set()
    for candidate in candidates:
        if candidate not in seen:
            seen.add(candidate)
            unique.append(candidate)
    return unique


def extract_json_bodies(transcript_text: Optional[str]) -> List[Any]:
    """Parse every candidate body in ``transcript_text``; failures are dropped."""
    if not transcript_text:
        return []

    bodies: List[Any] = []
    for candidate in _candidate_bodies(transcript_text):
        parsed = maybe_parse_json_string(candidate)
        if parsed is not None:
            bodies.append(parsed)
    return bodies


# ------------------------------------------------------------------
# Tree traversal
# ------------------------------------------------------------------


def _collect_arrays(node: Any, arrays: List[list], depth: int = 0) -> None:
    """Append every list reachable from ``node`` in depth-first pre-order."""
    if depth > MAX_SCAN_DEPTH:
        return
    if isinstance(node, list):
        arrays.append(node)
        for element in node:
            _collect_arrays(element, arrays, depth + 1)
    elif isinstance(node, Mapping):
        for value in node.values():
            _collect_arrays(value, arrays, depth + 1)


def _scan_roots(attestation: Any, bodies: Sequence[Any]) -> List[Mapping[str, Any]]:
    root = as_record(attestation)
    roots: List[Any] = [root]
    roots.extend(root.get(section) for section in ROOT_SECTIONS)
    roots.extend(bodies)
    # Non-mapping roots (including top-level JSON arrays) contribute nothing.
    return [as_record(item) for item in roots]


# ------------------------------------------------------------------
# Item normalization
# ------------------------------------------------------------------


def _parse_date_text(text: str) -> Optional[int]:
    candidate = text.strip()
    if not candidate:
        return None

    parsed: Optional[datetime] = None
    try:
        parsed = datetime.fromisoformat(candidate.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = parsedate_to_datetime(candidate)
        except (TypeError, ValueError, IndexError):
            return None

    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return math.trunc(parsed.timestamp())


def normalize_item_timestamp(value: Any) -> Optional[int]:
    """
    Convert an epoch number, numeric string, or date string to seconds.

    Epoch values above 10^12 are treated as milliseconds.
    """
    if isinstance(value, bool):
        return None

    number = to_finite_number(value)
    if number is None and isinstance(value, str):
        return _parse_date_text(value)
    if number is None:
        return None

    if abs(number) > MILLISECOND_THRESHOLD:
        number = number / 1000
    return math.trunc(number)


def _pick_item_timestamp(view: Mapping[str, Any]) -> Optional[int]:
    for key in ITEM_TIMESTAMP_ALIASES:
        if key in view:
            timestamp = normalize_item_timestamp(view[key])
            if timestamp is not None:
                return timestamp
    return None


def _pick_item_amount(view: Mapping[str, Any]) -> Tuple[Optional[str], Optional[str]]:
    """Return ``(amount, currency)``; structured amounts carry their currency."""
    for key in ITEM_AMOUNT_ALIASES:
        value = view.get(key)
        if isinstance(value, Mapping):
            amount = pick_text(value, ("value", "amount"))
            if amount:
                return amount, pick_string(value, ITEM_CURRENCY_ALIASES)
            continue
        amount = pick_text(view, (key,))
        if amount:
            return amount, None
    return None, None


def _pick_transaction_number(view: Mapping[str, Any]) -> Optional[str]:
    for key in ITEM_DESCRIPTION_ALIASES:
        value = view.get(key)
        if not isinstance(value, str):
            continue
        match = TRANSACTION_NUMBER_RE.search(value)
        if match:
            return match.group(1)
    return None


def normalize_transfer_item(item: Any) -> Optional[RecentTransfer]:
    """
    Normalize one array element into a RecentTransfer.

    Returns None for non-mappings and for items carrying none of amount,
    transferId and payerRef.
    """
    if not isinstance(item, Mapping):
        return None

    view = build_field_view(item)

    amount, amount_currency = _pick_item_amount(view)
    transfer_id = pick_text(view, TRANSFER_ID_ALIASES) or _pick_transaction_number(
        view
    )
    payer_ref = pick_text(view, PAYER_REF_ALIASES)

    if not (amount or transfer_id or payer_ref):
        return None

    return RecentTransfer(
        amount=amount,
        timestamp=_pick_item_timestamp(view),
        payer_ref=payer_ref,
        transfer_id=transfer_id,
        status=pick_text(view, ITEM_STATUS_ALIASES),
        currency=pick_string(view, ITEM_CURRENCY_ALIASES) or amount_currency,
    )


ScanPosition = Tuple[int, int, int]


def _dedup_key(record: RecentTransfer, position: ScanPosition) -> str:
    key = "|".join(
        [
            record.transfer_id or "",
            "" if record.timestamp is None else str(record.timestamp),
            record.amount or "",
            record.payer_ref or "",
        ]
    )
    # Weak rows (no id, no timestamp) never merge with one another.
    if not record.transfer_id and record.timestamp is None:
        key = "{}|{}:{}:{}".format(key, *position)
    return key


def _iter_candidates(
    roots: Sequence[Mapping[str, Any]],
) -> Iterator[Tuple[ScanPosition, Any]]:
    """Yield every array item with its (root, array, item) scan position."""
    for root_index, root in enumerate(roots):
        arrays: List[list] = []
        _collect_arrays(root, arrays)
        for array_index, array in enumerate(arrays):
            for item_index, item in enumerate(array):
                yield (root_index, array_index, item_index), item


# ------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------


def extract_recent_transfers(
    attestation: Any,
    transcript_text: Optional[str] = "",
    limit: Any = DEFAULT_RECENT_COUNT,
) -> List[RecentTransfer]:
    """
    Recover at most ``clamp(limit, 1, 10)`` recent transfers.

    See the module docstring for the scan order.
    """
    cap = clamp_recent_count(limit)
    bodies = extract_json_bodies(transcript_text)
    roots = _scan_roots(attestation, bodies)

    results: List[RecentTransfer] = []
    seen: Set[str] = set()

    for position, item in _iter_candidates(roots):
        record = normalize_transfer_item(item)
        if record is None:
            continue

        key = _dedup_key(record, position)
        if key in seen:
            continue
        seen.add(key)
        results.append(record)

        if len(results) >= cap:
            break

    logger.debug(
        "recent_transfers_extracted",
        extra={
            "transcript_bodies": len(bodies),
            "count": len(results),
            "limit": cap,
        },
    )
    return results


def find_matching_recent_transfer(
    recent: Sequence[RecentTransfer],
    selected: Optional[SelectedTransfer],
) -> Optional[RecentTransfer]:
    """
    Locate the caller's selected transfer among recovered rows.

    An exact transferId match wins. Failing that, the first row with the
    same amount and either the same payerRef or a timestamp within
    SELECTION_TIMESTAMP_TOLERANCE seconds is returned.
    """
    if selected is None:
        return None

    transfer_id = (selected.transfer_id or "").strip()
    if transfer_id:
        for row in recent:
            if (row.transfer_id or "").strip() == transfer_id:
                return row

    amount = (selected.amount or "").strip()
    payer_ref = (selected.payer_ref or "").strip()

    for row in recent:
        same_amount = bool(amount) and (row.amount or "").strip() == amount
        if not same_amount:
            continue
        same_payer = bool(payer_ref) and (row.payer_ref or "").strip() == payer_ref
        same_time = (
            selected.timestamp is not None
            and row.timestamp is not None
            and abs(row.timestamp - selected.timestamp)
            <= SELECTION_TIMESTAMP_TOLERANCE
        )
        if same_payer or same_time:
            return row

    return None
