"""
Transaction code normalization.

Collapses superficially different statement descriptions ("ZUL1 CARTAO 1MK1EX",
"ZUL2 CARTOES 1LPL3D") into one canonical grouping key ("ZUL CARTAO").

The locale-specific vocabulary lives in NormalizationRules so regional variants
can be supplied; the ordered rule list is the RULE_PIPELINE table below.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, FrozenSet, List, Mapping, Tuple

# Rules never shrink a key below this many characters
MIN_KEY_LENGTH = 2


@dataclass(frozen=True)
class NormalizationRules:
    """Regional vocabulary used by the aggressive normalizer"""

    # Trailing location / qualifier words and phrases (may be multi-word)
    location_qualifiers: FrozenSet[str] = field(default_factory=frozenset)
    # Plural/variant spellings folded to one canonical token
    word_unifications: Mapping[str, str] = field(default_factory=dict)
    # Payment keywords reported in the code structure analysis
    payment_keywords: Tuple[str, ...] = ()


BRAZILIAN_RULES = NormalizationRules(
    location_qualifiers=frozenset(
        {
            "BR",
            "BRA",
            "BRASIL",
            "BRAZIL",
            "DIGITAL",
            "ONLINE",
            "SP",
            "RJ",
            "MG",
            "SAO PAULO",
            "RIO DE JANEIRO",
            "BELO HORIZONTE",
            "CAMPINAS",
            "OSASCO",
            "BARUERI",
            "ITAIM",
            "ITAIM BIBI",
            "PINHEIROS",
            "MOEMA",
            "JARDINS",
            "VILA MADALENA",
            "VILA OLIMPIA",
            "PAULISTA",
            "MORUMBI",
            "IGUATEMI",
            "IBIRAPUERA",
            "CENTRO",
            "SHOPPING",
            "LTDA",
            "EIRELI",
        }
    ),
    word_unifications={
        "CARTOES": "CARTAO",
        "PAGAMENTOS": "PAGAMENTO",
        "SERVICOS": "SERVICO",
        "COMPRAS": "COMPRA",
        "ASSINATURAS": "ASSINATURA",
    },
    payment_keywords=(
        "PAG",
        "PAGTO",
        "TED",
        "DOC",
        "PIX",
        "TRANSF",
        "CARTAO",
        "CARD",
        "DEBITO",
        "CREDITO",
        "REC",
        "RECARGA",
        "SAQUE",
        "DEP",
        "DEPOSITO",
    ),
)

DEFAULT_RULES = BRAZILIAN_RULES

_WHITESPACE = re.compile(r"\s+")
_FUSED_DIGITS_BEFORE_SPACE = re.compile(r"\b([A-Z]{2,})\d+(?=\s)")
_ISOLATED_SHORT_NUMBER = re.compile(r"^\d{1,3}$")
_HYPHEN_SUFFIX = re.compile(r"\s*-\s*[A-Z0-9]{1,6}$")
_LONG_NUMERIC_SUFFIX = re.compile(r"\s+\d{6,}$")
_SHORT_NUMERIC_SUFFIX = re.compile(r"\s+\d{1,5}$")
_FUSED_TRAILING_DIGITS = re.compile(r"(?<=[A-Z])\d+$")
_HEX_SUFFIX = re.compile(r"\s+([0-9A-F]{8,})$")


def _collapse(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def _guarded(original: str, candidate: str, min_length: int = MIN_KEY_LENGTH) -> str:
    """Accept candidate only if it leaves a usable key"""
    candidate = _collapse(candidate)
    return candidate if len(candidate) >= min_length else original


def _has_letter(token: str) -> bool:
    return any(ch.isalpha() for ch in token)


def _has_digit(token: str) -> bool:
    return any(ch.isdigit() for ch in token)


def _strip_fused_digits_before_space(text: str, rules: NormalizationRules) -> str:
    return _guarded(text, _FUSED_DIGITS_BEFORE_SPACE.sub(r"\1", text))


def _strip_isolated_short_numbers(text: str, rules: NormalizationRules) -> str:
    """Drop runs of 1-3 digit tokens enclosed by word tokens ("LOJA 1 2 CARTAO")"""
    tokens = text.split(" ")
    kept: List[str] = []
    i = 0
    while i < len(tokens):
        if not _ISOLATED_SHORT_NUMBER.match(tokens[i]):
            kept.append(tokens[i])
            i += 1
            continue
        end = i
        while end < len(tokens) and _ISOLATED_SHORT_NUMBER.match(tokens[end]):
            end += 1
        enclosed = 0 < i and end < len(tokens) and _has_letter(tokens[i - 1]) and _has_letter(tokens[end])
        if not enclosed:
            kept.extend(tokens[i:end])
        i = end
    return _guarded(text, " ".join(kept))


def _unify_word_variants(text: str, rules: NormalizationRules) -> str:
    tokens = [rules.word_unifications.get(token, token) for token in text.split(" ")]
    return _guarded(text, " ".join(tokens))


def _truncate_at_asterisk(text: str, rules: NormalizationRules) -> str:
    if "*" not in text:
        return text
    head = _collapse(text.split("*", 1)[0])
    if len(head) >= MIN_KEY_LENGTH:
        return head
    # Leading asterisk ("*PAYPAL"): keep the text, drop the markers
    return _guarded(text, text.replace("*", " "))


def _strip_hyphen_suffix(text: str, rules: NormalizationRules) -> str:
    return _guarded(text, _HYPHEN_SUFFIX.sub("", text))


def _strip_mixed_alphanumeric_suffix(text: str, rules: NormalizationRules) -> str:
    head, _, last = text.rpartition(" ")
    if head and len(last) >= 6 and last.isalnum() and _has_letter(last) and _has_digit(last):
        return _guarded(text, head)
    return text


def _strip_long_numeric_suffix(text: str, rules: NormalizationRules) -> str:
    return _guarded(text, _LONG_NUMERIC_SUFFIX.sub("", text))


def _strip_short_numeric_suffix(text: str, rules: NormalizationRules) -> str:
    # "99" must survive, so the prefix has to be longer than 2 characters
    return _guarded(text, _SHORT_NUMERIC_SUFFIX.sub("", text), min_length=3)


def _strip_fused_trailing_digits(text: str, rules: NormalizationRules) -> str:
    return _guarded(text, _FUSED_TRAILING_DIGITS.sub("", text), min_length=3)


def _strip_hex_suffix(text: str, rules: NormalizationRules) -> str:
    match = _HEX_SUFFIX.search(text)
    if match and _has_digit(match.group(1)):
        return _guarded(text, text[: match.start()])
    return text


def _strip_location_qualifier(text: str, rules: NormalizationRules) -> str:
    for phrase in sorted(rules.location_qualifiers, key=len, reverse=True):
        if text.endswith(" " + phrase):
            return _guarded(text, text[: -len(phrase)])
    return text


def _collapse_duplicate_tokens(text: str, rules: NormalizationRules) -> str:
    tokens: List[str] = []
    for token in text.split(" "):
        if not tokens or tokens[-1] != token:
            tokens.append(token)
    return " ".join(tokens)


def _collapse_whitespace(text: str, rules: NormalizationRules) -> str:
    return _collapse(text)


NormalizationRule = Callable[[str, NormalizationRules], str]

RULE_PIPELINE: Tuple[Tuple[str, NormalizationRule], ...] = (
    ("fused_digits_before_space", _strip_fused_digits_before_space),
    ("isolated_short_numbers", _strip_isolated_short_numbers),
    ("word_variants", _unify_word_variants),
    ("asterisk_truncation", _truncate_at_asterisk),
    ("hyphen_suffix", _strip_hyphen_suffix),
    ("mixed_alphanumeric_suffix", _strip_mixed_alphanumeric_suffix),
    ("long_numeric_suffix", _strip_long_numeric_suffix),
    ("short_numeric_suffix", _strip_short_numeric_suffix),
    ("fused_trailing_digits", _strip_fused_trailing_digits),
    ("hex_suffix", _strip_hex_suffix),
    ("location_qualifier", _strip_location_qualifier),
    ("duplicate_tokens", _collapse_duplicate_tokens),
    ("whitespace", _collapse_whitespace),
)


def conservative_normalize(raw: str) -> str:
    """
    Light normalization: uppercase, collapse whitespace, drop numeric suffixes.

    Short numeric suffixes (1-5 digits) are only dropped when the remaining
    prefix is longer than 2 characters, so names like "99" are kept.
    """
    normalized = _collapse(raw.upper())
    normalized = _LONG_NUMERIC_SUFFIX.sub("", normalized)
    if _SHORT_NUMERIC_SUFFIX.search(normalized):
        without_suffix = _SHORT_NUMERIC_SUFFIX.sub("", normalized)
        if len(without_suffix) > 2:
            normalized = without_suffix
    return normalized


def aggressive_normalize(raw: str, rules: NormalizationRules = DEFAULT_RULES) -> str:
    """
    Produce the canonical grouping key for a transaction description.

    Applies RULE_PIPELINE in order, each rule on the previous output, and
    repeats the pass until nothing changes. Every rule only ever shortens the
    key, so the loop terminates and the result is idempotent.

    Examples:
        "ZUL 1 CARTAO"        -> "ZUL CARTAO"
        "IFOOD *RESTABCD"     -> "IFOOD"
        "UBER UBER * MEMBERS" -> "UBER"
        "DROGASIL1984"        -> "DROGASIL"
        "99 FOOD"             -> "99 FOOD"
    """
    current = _collapse(raw.upper())
    while True:
        result = current
        for _, rule in RULE_PIPELINE:
            result = rule(result, rules)
        if result == current:
            return result
        current = result
