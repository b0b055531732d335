"""
Entity Extraction Module

Responsibility: Pull structured values (provider, date, time, reason,
medication fields, document type) out of a short free-text utterance.

Does NOT:
- Classify the utterance (CommandParser's job)
- Raise on unrecognized input (every extractor has a documented default)
- Call external services (completely local, regex only)

Defaults when the utterance does not say:
- date      -> tomorrow
- time      -> 14:00
- reason    -> "General"
- dosage    -> "1 tablet"
- frequency -> "once daily"
- provider / medication name / strength -> None
"""

import re
from datetime import date, timedelta
from typing import Dict, Optional

from portal_assistant.policy import (
    DEFAULT_APPOINTMENT_REASON,
    DEFAULT_APPOINTMENT_TIME,
    DEFAULT_DOCUMENT_TYPE,
    DEFAULT_DOSAGE,
    DEFAULT_FREQUENCY,
)

# Fixed weekday ordering (matches date.weekday(): Monday == 0)
WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

# ============================================================================
# PROVIDER
# ============================================================================

# Tried in order; first match wins. One capture group each.
PROVIDER_PATTERNS = [
    re.compile(r"\b(?:with|see)\s+(?:(?:dr\.?|doctor)\s+)?([a-z][\w'-]*)", re.IGNORECASE),
    re.compile(r"\b(?:dr\.?|doctor)\s+([a-z][\w'-]*)", re.IGNORECASE),
    re.compile(r"\bbook\s+me\s+with\s+(?:(?:dr\.?|doctor)\s+)?([a-z][\w'-]*)", re.IGNORECASE),
]


def extract_provider_name(text: str) -> Optional[str]:
    """
    Extract the provider's name.

    Examples:
    - "Book with Dr. Patel tomorrow" -> "Patel"
    - "I need to see Nguyen on friday" -> "Nguyen"
    - "dr smith at 3" -> "smith"

    Returns:
        Name as written in the input, or None
    """
    for pattern in PROVIDER_PATTERNS:
        match = pattern.search(text or "")
        if match:
            return match.group(1)
    return None


# ============================================================================
# DATE
# ============================================================================

ISO_DATE_PATTERN = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
US_DATE_PATTERN = re.compile(r"\b(\d{1,2})/(\d{1,2})(?:/(\d{4}))?\b")


def next_weekday(day_name: str, today: Optional[date] = None) -> date:
    """
    Next occurrence of a weekday strictly after today.

    If the named day is today's weekday, resolves to the same day next week.

    Raises:
        ValueError: If day_name is not a weekday name
    """
    today = today or date.today()
    target = WEEKDAYS.index(day_name.lower())
    days_ahead = (target - today.weekday()) % 7 or 7
    return today + timedelta(days=days_ahead)


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def extract_date(text: str, today: Optional[date] = None) -> str:
    """
    Extract an appointment date as an ISO string (YYYY-MM-DD).

    Rules (in priority order):
    1. "today"
    2. "day after tomorrow" (+2), "tomorrow" (+1)
    3. Weekday name -> next occurrence strictly after today
    4. "next week" (+7)
    5. Explicit ISO date (YYYY-MM-DD)
    6. US date MM/DD[/YYYY] (year defaults to the current year)
    7. Default: tomorrow
    """
    today = today or date.today()
    lowered = (text or "").lower()

    if re.search(r"\btoday\b", lowered):
        return today.isoformat()

    if "day after tomorrow" in lowered:
        return (today + timedelta(days=2)).isoformat()

    if re.search(r"\btomorrow\b", lowered):
        return (today + timedelta(days=1)).isoformat()

    for day_name in WEEKDAYS:
        if re.search(rf"\b{day_name}\b", lowered):
            return next_weekday(day_name, today).isoformat()

    if "next week" in lowered:
        return (today + timedelta(days=7)).isoformat()

    iso_match = ISO_DATE_PATTERN.search(lowered)
    if iso_match:
        parsed = _safe_date(*(int(part) for part in iso_match.groups()))
        if parsed:
            return parsed.isoformat()

    us_match = US_DATE_PATTERN.search(lowered)
    if us_match:
        month, day, year = us_match.groups()
        parsed = _safe_date(int(year) if year else today.year, int(month), int(day))
        if parsed:
            return parsed.isoformat()

    return (today + timedelta(days=1)).isoformat()


# ============================================================================
# TIME
# ============================================================================

OCLOCK_PATTERN = re.compile(r"\b(\d{1,2})\s*o'?\s?clock\b", re.IGNORECASE)
MERIDIEM_PATTERN = re.compile(r"\b(\d{1,2})(?::(\d{2}))?\s*([ap])\.?\s?m\b\.?", re.IGNORECASE)
CLOCK_PATTERN = re.compile(r"\b(\d{1,2}):(\d{2})\b")
BARE_HOUR_PATTERN = re.compile(r"(?:\bat|@)\s*(\d{1,2})\b(?![:/\d])", re.IGNORECASE)


def _daytime_hour(hour: int) -> int:
    """
    Resolve an hour given without am/pm.

    1-8 -> afternoon/evening (PM), 9-11 -> morning (AM).
    12 without am/pm is noon; only an explicit "12 am" gives 00:00.
    0 and 13-23 are already unambiguous 24-hour values.
    """
    if 1 <= hour <= 8:
        return hour + 12
    return hour


def _format_time(hour: int, minute: int) -> Optional[str]:
    if 0 <= hour <= 23 and 0 <= minute <= 59:
        return f"{hour:02d}:{minute:02d}"
    return None


def extract_time(text: str) -> str:
    """
    Extract an appointment time as 24-hour HH:MM.

    Recognized (in priority order):
    1. "3pm", "3:30 PM", "11 a.m."
    2. "3 o'clock"
    3. "15:00", "3:30" (hours 1-8 without am/pm read as PM)
    4. "at 3" (1-8 -> PM, 9-12 -> AM with 12 as noon)
    5. Default: 14:00
    """
    text = text or ""

    match = MERIDIEM_PATTERN.search(text)
    if match:
        hour = int(match.group(1))
        minute = int(match.group(2) or 0)
        period = match.group(3).lower()
        if 1 <= hour <= 12:
            if period == "p" and hour != 12:
                hour += 12
            elif period == "a" and hour == 12:
                hour = 0
            formatted = _format_time(hour, minute)
            if formatted:
                return formatted

    match = OCLOCK_PATTERN.search(text)
    if match:
        formatted = _format_time(_daytime_hour(int(match.group(1))), 0)
        if formatted:
            return formatted

    match = CLOCK_PATTERN.search(text)
    if match:
        formatted = _format_time(_daytime_hour(int(match.group(1))), int(match.group(2)))
        if formatted:
            return formatted

    match = BARE_HOUR_PATTERN.search(text)
    if match:
        formatted = _format_time(_daytime_hour(int(match.group(1))), 0)
        if formatted:
            return formatted

    return DEFAULT_APPOINTMENT_TIME


# ============================================================================
# REASON
# ============================================================================

_REASON_TERMINATORS = r"at|on|with|today|tomorrow|next|this|" + "|".join(WEEKDAYS)
REASON_PATTERN = re.compile(
    rf"\b(?:for|about|regarding)\s+(.+?)(?=\s+(?:{_REASON_TERMINATORS})\b|[.?!]|$)",
    re.IGNORECASE,
)

# A captured clause made only of scheduling words is not a reason
_SCHEDULING_ONLY_PATTERN = re.compile(
    r"^(?:(?:today|tomorrow|tonight|next|this|week|day|after|the|morning|afternoon|evening|noon|"
    + "|".join(WEEKDAYS)
    + r"|\d{1,2}(?::\d{2})?\s*(?:[ap]\.?m\.?)?)\s*)+$",
    re.IGNORECASE,
)

COMMON_REASONS = [
    "chest pain",
    "back pain",
    "sore throat",
    "headache",
    "fever",
    "cough",
    "rash",
    "annual exam",
    "physical",
    "check-up",
    "checkup",
    "follow-up",
    "followup",
]


def capitalize_first(value: str) -> str:
    """Uppercase the first character only; the rest is left untouched."""
    return value[:1].upper() + value[1:]


def extract_reason(text: str) -> str:
    """
    Extract the visit reason.

    1. Explicit "for/about/regarding X" clause (up to at/on/with, a date word,
       or end of string); a clause that only names a date or time is skipped
    2. First common symptom / visit phrase mentioned
    3. Default: "General"
    """
    text = text or ""
    for match in REASON_PATTERN.finditer(text):
        reason = match.group(1).strip(" ,")
        if reason and not _SCHEDULING_ONLY_PATTERN.match(reason):
            return capitalize_first(reason)

    lowered = text.lower()
    for phrase in COMMON_REASONS:
        if phrase in lowered:
            return capitalize_first(phrase)

    return DEFAULT_APPOINTMENT_REASON


# ============================================================================
# MEDICATION
# ============================================================================

_UNIT = r"(?:mcg|mg|ml|g|iu|units?|%)"
_STRENGTH = rf"\d+(?:\.\d+)?\s*{_UNIT}(?![a-z])"
_NAME_WORD = r"[a-z][\w-]*"

MEDICATION_WITH_STRENGTH_PATTERN = re.compile(
    rf"\b(?:add|take|taking|prescribed)\s+({_NAME_WORD}(?:\s+{_NAME_WORD})?)\s+({_STRENGTH})",
    re.IGNORECASE,
)
MEDICATION_VERB_PATTERN = re.compile(r"\b(?:add|take|taking|prescribed)\s+(.+)", re.IGNORECASE)
STRENGTH_PATTERN = re.compile(rf"({_STRENGTH})", re.IGNORECASE)
DOSAGE_PATTERN = re.compile(r"\b(\d+|one|two|three|half a)\s*(tablet|pill|capsule|drop|puff)s?\b", re.IGNORECASE)

# Words skipped when the medication name is taken from the word after the verb
_NAME_FILLER = {
    "a", "an", "the", "my", "new", "some", "to", "me",
    "medication", "medicine", "meds", "called", "named",
}

# Phrase -> canonical frequency; longer phrases first so they win
FREQUENCY_MAP: Dict[str, str] = {
    "three times daily": "three times daily",
    "three times a day": "three times daily",
    "two times daily": "twice daily",
    "two times a day": "twice daily",
    "twice daily": "twice daily",
    "twice a day": "twice daily",
    "one time daily": "once daily",
    "once daily": "once daily",
    "once a day": "once daily",
    "every 4 hours": "every 4 hours",
    "every 6 hours": "every 6 hours",
    "every 8 hours": "every 8 hours",
    "every 12 hours": "every 12 hours",
    "at bedtime": "at bedtime",
    "nightly": "at bedtime",
    "as needed": "as needed",
    "prn": "as needed",
    "daily": "once daily",
}


def extract_frequency(text: str) -> str:
    lowered = (text or "").lower()
    for phrase, canonical in FREQUENCY_MAP.items():
        if re.search(rf"\b{re.escape(phrase)}\b", lowered):
            return canonical
    return DEFAULT_FREQUENCY


def extract_medication(text: str) -> Dict[str, Optional[str]]:
    """
    Extract medication fields.

    Examples:
    - "Add metformin 500mg once daily"
        -> {name: "metformin", strength: "500mg", dosage: "1 tablet", frequency: "once daily"}
    - "I'm taking lisinopril twice a day"
        -> {name: "lisinopril", strength: None, dosage: "1 tablet", frequency: "twice daily"}

    Returns:
        Dict with name, strength, dosage, frequency (dosage and frequency never empty)
    """
    text = text or ""
    name = None
    strength = None

    match = MEDICATION_WITH_STRENGTH_PATTERN.search(text)
    if match:
        name = match.group(1).lower()
        strength = match.group(2)
    else:
        verb_match = MEDICATION_VERB_PATTERN.search(text)
        if verb_match:
            for word in verb_match.group(1).split():
                word = word.strip(".,!?").lower()
                if not word or word in _NAME_FILLER:
                    continue
                if re.fullmatch(_NAME_WORD, word):
                    name = word
                break

    if not strength:
        strength_match = STRENGTH_PATTERN.search(text)
        if strength_match:
            strength = strength_match.group(1)

    dosage_match = DOSAGE_PATTERN.search(text)
    dosage = dosage_match.group(0).lower() if dosage_match else DEFAULT_DOSAGE

    return {
        "name": name,
        "strength": strength,
        "dosage": dosage,
        "frequency": extract_frequency(text),
    }


# ============================================================================
# DOCUMENTS
# ============================================================================

DOCUMENT_TYPES = [
    ("lab_result", ("lab", "blood work", "bloodwork", "test result")),
    ("insurance_card", ("insurance",)),
    ("prescription", ("prescription", "rx")),
    ("imaging", ("x-ray", "xray", "mri", "scan of", "ultrasound", "imaging")),
]


def extract_document_type(text: str) -> str:
    lowered = (text or "").lower()
    for doc_type, hints in DOCUMENT_TYPES:
        if any(re.search(rf"\b{re.escape(hint)}", lowered) for hint in hints):
            return doc_type
    return DEFAULT_DOCUMENT_TYPE
