"""
Partner URL rewriting - align booking links with the user's currency and language
"""
from typing import List, Optional, Pattern, Tuple
from dataclasses import dataclass
import logging
import re

logger = logging.getLogger(__name__)

DOMAIN_PATTERN = re.compile(r"https?://(?:www\.)?([^/?#]+)", re.IGNORECASE)

CURRENCY_PATTERNS = [
    re.compile(r"([?&](?:currency|curr|cur|moeda)=)[A-Z]{3}", re.IGNORECASE),
    re.compile(r"(currency%3A)[A-Z]{3}", re.IGNORECASE),
]

LANGUAGE_PATTERNS = [
    re.compile(r"([?&](?:locale|lang|language|idioma)=)[a-z]{2}(?:-[a-z]{2})?", re.IGNORECASE),
    re.compile(r"(locale%3A)[a-z]{2}(?:-[a-z]{2})?", re.IGNORECASE),
]

# Gates that use their own fixed parameter spelling
UBFLY_DOMAIN = "ubfly.br.com"


@dataclass
class RewrittenUrl:
    url: str
    modified: bool
    domain: str


def partner_domain(url: str) -> str:
    """Host of a partner URL without ``www.``"""
    match = DOMAIN_PATTERN.match(url or "")
    return match.group(1) if match else "unknown"


def _is_portuguese(language: Optional[str]) -> bool:
    return bool(language) and language.lower().startswith("pt")


def _append(url: str, parameter: str) -> str:
    return f"{url}{'&' if '?' in url else '?'}{parameter}"


def _substitute(patterns: List[Pattern], url: str, value: str) -> Tuple[str, bool]:
    """Replace the value of every matching parameter, keeping its name"""
    found = False
    for pattern in patterns:
        url, count = pattern.subn(lambda match: match.group(1) + value, url)
        found = found or count > 0
    return url, found


def apply_parameter_changes(
    url: str,
    currency: Optional[str] = None,
    language: Optional[str] = None,
) -> RewrittenUrl:
    """
    Rewrite currency and language query parameters of a partner booking URL.

    Existing parameters keep their spelling and only get a new value; when a
    parameter is missing it is appended.
    """
    if not url:
        return RewrittenUrl(url=url, modified=False, domain="unknown")

    domain = partner_domain(url)
    wants_portuguese = _is_portuguese(language)

    if UBFLY_DOMAIN in domain:
        rewritten = url
        if currency == "BRL":
            rewritten = rewritten.replace("Currency=USD", "Currency=BRL")
        if wants_portuguese:
            rewritten = rewritten.replace("Locale=EN", "Locale=PT")
        if rewritten != url:
            logger.info(f"Applied {UBFLY_DOMAIN} parameter rules")
            return RewrittenUrl(url=rewritten, modified=True, domain=domain)

    rewritten = url
    modified = False

    if currency:
        rewritten, found = _substitute(CURRENCY_PATTERNS, rewritten, currency)
        if not found:
            rewritten = _append(rewritten, f"currency={currency}")
        modified = True

    if language:
        language_code = "pt-BR" if wants_portuguese else language
        rewritten, found = _substitute(LANGUAGE_PATTERNS, rewritten, language_code)
        if found:
            modified = True
        elif wants_portuguese:
            if "Locale=" in rewritten or "Language=" in rewritten:
                rewritten = _append(rewritten, "Locale=PT")
            else:
                rewritten = _append(rewritten, "locale=pt-BR")
            modified = True

    return RewrittenUrl(url=rewritten, modified=modified, domain=domain)
