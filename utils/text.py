"""Text helpers shared by the conversation components."""

import re
from typing import Optional

PHONE_PATTERN = re.compile(r"(?:\+?1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}")

ADDRESS_PATTERN = re.compile(
    r"\b\d{1,5}\s+(?:[A-Za-z0-9.'-]+\s+){0,4}?"
    r"(?:street|st|avenue|ave|road|rd|boulevard|blvd|drive|dr|lane|ln|way|"
    r"court|ct|place|pl|parkway|pkwy|highway|hwy|circle|cir)\b\.?"
    r"(?:,?\s*(?:suite|ste|unit|#)\s*[\w-]+)?",
    re.IGNORECASE,
)

# Ordered: the first preposition that yields a usable phrase wins
LOCATION_PREFIX_PATTERNS = [
    re.compile(r"\bnear\s+([^,.?!]+(?:,\s*[^,.?!]+)?)", re.IGNORECASE),
    re.compile(r"\baround\s+([^,.?!]+(?:,\s*[^,.?!]+)?)", re.IGNORECASE),
    re.compile(r"\bin\s+([^,.?!]+(?:,\s*[^,.?!]+)?)", re.IGNORECASE),
    re.compile(r"\bat\s+([^,.?!]+(?:,\s*[^,.?!]+)?)", re.IGNORECASE),
]

CURRENT_LOCATION_WORDS = {
    "me", "here", "my area", "my location", "my city", "my town",
    "around me", "near me", "nearby", "close by", "this area", "where i am",
    "area", "the area", "your area", "local area",
}

# A location phrase ends where a new clause or purpose starts
LOCATION_CLAUSE_BREAK = re.compile(
    r"\s+(?:for|with|and|to|so|because|but|if|since|where|who|that|which)\b.*$",
    re.IGNORECASE,
)

NON_LOCATION_WORDS = {
    "danger", "trouble", "crisis", "need", "fear", "pain", "shock", "court",
    "person", "general", "detail", "details", "english", "spanish", "touch",
    "order", "the meantime", "case", "time", "all", "least", "once", "first",
}

NON_LOCATION_PRONOUNS = {"my", "your", "our", "their", "his", "her", "this", "that", "which", "what"}

CONVERSATIONAL_FILLERS = sorted(
    [
        "hey", "hi", "hello", "excuse me", "pardon me", "sorry",
        "um", "uh", "like", "you know", "i mean", "basically",
        "actually", "honestly", "just", "really", "okay", "ok", "so", "well",
        "can you", "could you", "would you", "please",
        "good morning", "good afternoon", "good evening",
    ],
    key=len,
    reverse=True,
)


def normalize_text(text: str) -> str:
    """Lowercase, trim and collapse internal whitespace."""
    return re.sub(r"\s+", " ", (text or "").strip().lower())


def truncate(text: str, limit: int, suffix: str = "...") -> str:
    """Truncate text to at most ``limit`` characters, suffix included."""
    if text is None:
        return ""
    if len(text) <= limit:
        return text
    return text[: max(limit - len(suffix), 0)].rstrip() + suffix


def clean_result_title(title: str) -> str:
    """
    Shorten a search-result title for speech and SMS.

    Strips a leading ``[PDF]``-style tag and any `` - Site Name`` suffix,
    then caps the result at 50 characters.
    """
    if not title:
        return "Unknown Resource"
    cleaned = re.sub(r"^\[[^\]]*\]\s*", "", title.strip())
    cleaned = re.sub(r"\s+[-|]\s+.*$", "", cleaned).strip()
    if len(cleaned) > 50:
        cleaned = cleaned[:47] + "..."
    return cleaned or title.strip()


def extract_phone_numbers(text: str) -> list[str]:
    """Return distinct phone numbers in order of appearance."""
    seen = []
    for match in PHONE_PATTERN.findall(text or ""):
        number = match.strip()
        if number not in seen:
            seen.append(number)
    return seen


def extract_phone(text: str) -> Optional[str]:
    """Return the first phone number in text, if any."""
    numbers = extract_phone_numbers(text)
    return numbers[0] if numbers else None


def extract_addresses(text: str) -> list[str]:
    """Return distinct street addresses in order of appearance."""
    seen = []
    for match in ADDRESS_PATTERN.finditer(text or ""):
        address = match.group(0).strip().rstrip(",")
        if address not in seen:
            seen.append(address)
    return seen


def is_current_location_phrase(phrase: str) -> bool:
    """True for phrases like "me" or "near me" that name no place."""
    return normalize_text(phrase) in CURRENT_LOCATION_WORDS


def extract_location_from_query(query: str) -> Optional[str]:
    """
    Pull a location phrase out of an utterance.

    Looks for ``near/around/in/at <phrase>``. Phrases that refer to the
    caller's own position ("near me", "here") yield None.
    """
    if not query:
        return None
    for pattern in LOCATION_PREFIX_PATTERNS:
        for match in pattern.finditer(query):
            candidate = LOCATION_CLAUSE_BREAK.sub("", match.group(1).strip())
            candidate = re.sub(r"^(?:the|a)\s+", "", candidate, flags=re.IGNORECASE)
            candidate = re.sub(r"\s+(?:area|please|today|tonight|now)$", "", candidate, flags=re.IGNORECASE)
            candidate = candidate.strip(" ?!.")
            if not candidate or is_current_location_phrase(candidate):
                continue
            first_word = candidate.split()[0]
            if candidate.lower() in NON_LOCATION_WORDS or first_word.lower() in NON_LOCATION_PRONOUNS:
                continue
            # "in finding a shelter"; capitalised place names like "Lansing" pass
            if first_word.islower() and first_word.endswith("ing"):
                continue
            return candidate
    return None


def clean_conversational_fillers(query: str) -> str:
    """Strip greetings and hedges from the start of a query."""
    if not query:
        return query
    cleaned = query.strip()
    previous = None
    while cleaned and cleaned != previous:
        previous = cleaned
        for filler in CONVERSATIONAL_FILLERS:
            cleaned = re.sub(
                rf"^\s*{re.escape(filler)}\b\s*[!.,;:?]*\s*",
                "",
                cleaned,
                flags=re.IGNORECASE,
            )
        cleaned = re.sub(r"^[!.,;:?\s]+", "", cleaned)
    return cleaned.strip() or query.strip()
