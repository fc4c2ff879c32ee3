"""Channel formatting for search results and generated text."""

import re
from html import escape
from typing import List, Optional

from schemas.evidence import ResourceResult
from utils.text import clean_result_title, truncate

HOTLINE = "1-800-799-7233"
SMS_LIMIT = 160

GENERATIVE_FALLBACK_MESSAGE = (
    "I understand your question. Please call the National Domestic Violence Hotline "
    f"at {HOTLINE} for immediate support and guidance."
)
LAST_RESORT_MESSAGE = (
    "I apologize, but I'm having trouble processing your request right now. "
    f"Please call the National Domestic Violence Hotline at {HOTLINE} for immediate support."
)
OFF_TOPIC_REDIRECT = (
    "I'm here to help with domestic violence support and resources. "
    "If you have any questions about that, please let me know!"
)
NO_CONTEXT_MESSAGE = (
    "I don't have the previous search results available. "
    "Could you please repeat your location or question?"
)
DEFAULT_SUMMARY = "This resource provides support and assistance for those in need."
CLOSING_QUESTION = "How else can I help you today?"

# content keyword(s) -> service name, in the order they are listed back
SERVICE_KEYWORDS = [
    (("emergency shelter", "crisis shelter"), "emergency shelter"),
    (("transitional housing", "long-term housing"), "transitional housing"),
    (("counseling", "therapy"), "counseling services"),
    (("legal", "attorney", "restraining order"), "legal assistance"),
    (("support group", "group therapy"), "support groups"),
    (("hotline", "24/7"), "24/7 hotline"),
    (("children", "kids", "family"), "family services"),
    (("transportation", "transport"), "transportation assistance"),
    (("job", "employment", "career"), "employment assistance"),
    (("education", "training"), "education and training"),
]

ORDINAL_WORDS = ["First", "Second", "Third"]


def _area(location: Optional[str]) -> str:
    return location or "your area"


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


def join_human(items: List[str]) -> str:
    """'a', 'a and b', 'a, b, and c'."""
    if not items:
        return ""
    if len(items) == 1:
        return items[0]
    if len(items) == 2:
        return f"{items[0]} and {items[1]}"
    return f"{', '.join(items[:-1])}, and {items[-1]}"


def result_summary(result: ResourceResult) -> str:
    """One-sentence description of what a resource offers."""
    if not result.content:
        return DEFAULT_SUMMARY

    content = result.content.lower()
    services = [
        service for keywords, service in SERVICE_KEYWORDS
        if any(keyword in content for keyword in keywords)
    ]
    if services:
        return f"This shelter provides {join_human(services)}."

    sentences = [s.strip() for s in re.split(r"[.!?]+", result.content) if len(s.strip()) > 10]
    if not sentences:
        return DEFAULT_SUMMARY
    return truncate(sentences[0], 100)


def format_voice_results(results: List[ResourceResult], location: Optional[str]) -> str:
    if not results:
        return (
            f"I wasn't able to find shelters in {_area(location)}. Please call the National "
            f"Domestic Violence Hotline at {HOTLINE} for immediate assistance."
        )

    parts = [f"I found {_plural(len(results), 'shelter')} in {_area(location)}."]
    for index, result in enumerate(results, start=1):
        entry = f"{index}. {clean_result_title(result.title)}"
        if result.phone:
            entry += f". Phone: {result.phone}"
        parts.append(entry + ".")
    parts.append("Please call these shelters directly to check availability and policies.")
    return " ".join(parts)


def format_sms_results(results: List[ResourceResult], location: Optional[str]) -> str:
    if not results:
        return f"No shelters found in {_area(location)}. Call {HOTLINE} for help."

    lines = [f"Shelters in {_area(location)}:"]
    for index, result in enumerate(results, start=1):
        line = f"{index}. {clean_result_title(result.title)}"
        if result.phone:
            line += f" ({result.phone})"
        lines.append(line)
        if result.url:
            lines.append(result.url)
    return truncate("\n".join(lines), SMS_LIMIT)


def format_web_results(results: List[ResourceResult], location: Optional[str]) -> str:
    if not results:
        return format_voice_results(results, location)

    html = f"I found {_plural(len(results), 'shelter')} in {escape(_area(location))}:<br><br>"
    for index, result in enumerate(results, start=1):
        title = escape(clean_result_title(result.title))
        if result.url:
            html += f'<strong>{index}. <a href="{escape(result.url)}">{title}</a></strong><br>'
        else:
            html += f"<strong>{index}. {title}</strong><br>"
        if result.phone:
            html += f"Phone: {escape(result.phone)}<br>"
        if result.address:
            html += f"Address: {escape(result.address)}<br>"
        html += "<br>"
    html += "Please call these shelters directly to check availability and policies."
    return html


def format_results_summary(results: List[ResourceResult], location: Optional[str]) -> str:
    if not results:
        return f"No shelters found in {_area(location)}. Please call {HOTLINE} for assistance."
    return (
        f"Found {_plural(len(results), 'shelter')} in {_area(location)}. "
        "Please call them directly for availability."
    )


def sms_from_text(text: str) -> str:
    """Strip greetings and thanks from generated text and fit it in one SMS."""
    sms = re.sub(r"^Hello[^.]*\.", "", text or "")
    sms = re.sub(r"Thank you[^.]*\.", "", sms).strip()
    if not sms:
        return f"Thank you for reaching out. Please call {HOTLINE} for immediate support."
    return truncate(sms, SMS_LIMIT)


def summary_from_text(text: str) -> str:
    """First two substantial sentences of generated text."""
    sentences = [s.strip() for s in re.split(r"[.!?]+", text or "") if len(s.strip()) > 10]
    if len(sentences) <= 2:
        return text
    return ". ".join(sentences[:2]) + "."


def generic_recap(results: List[ResourceResult], location: Optional[str]) -> str:
    """Short recap of previous results by name."""
    if not results:
        return NO_CONTEXT_MESSAGE

    area = location or "that area"
    titles = [clean_result_title(r.title) for r in results]
    if len(titles) == 1:
        return f"I found one helpful resource in {area}: {titles[0]}. {CLOSING_QUESTION}"
    if len(titles) == 2:
        return (
            f"I found two helpful resources in {area}: {titles[0]}, and {titles[1]}. "
            f"{CLOSING_QUESTION}"
        )
    return (
        f"I found {len(titles)} helpful resources in {area}: {join_human(titles)}. "
        f"{CLOSING_QUESTION}"
    )


def detailed_recap(results: List[ResourceResult], location: Optional[str]) -> str:
    """Per-result service summaries for "tell me more" requests."""
    if not results:
        return NO_CONTEXT_MESSAGE

    if len(results) == 1:
        result = results[0]
        text = (
            f"Here's detailed information about {clean_result_title(result.title)}: "
            f"{result_summary(result)}"
        )
        if result.phone:
            text += f" You can contact them at {result.phone}."
        return f"{text} {CLOSING_QUESTION}"

    parts = [f"Here's what I found about the shelters in {location or 'that area'}:"]
    for ordinal, result in zip(ORDINAL_WORDS, results):
        parts.append(f"{ordinal}, {clean_result_title(result.title)}: {result_summary(result)}")
    parts.append(CLOSING_QUESTION)
    return " ".join(parts)
