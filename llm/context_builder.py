"""
Character-budget context builder.

Fits template variables into a token budget before the template is rendered.
File contents and diagnostic dumps are the only variables that grow without
bound, so they are truncated first; the request text itself is never cut.

Token counting is approximate (1 token ≈ 4 characters) to avoid a hard
tokenizer dependency.
"""

from typing import Any

_CHARS_PER_TOKEN = 4
_DEFAULT_MAX_TOKENS = 6144

# Most expendable first
_TRUNCATION_ORDER = (
    "feature_log",
    "diagnostics",
    "file_content",
    "plan",
    "overview",
)

_TRUNCATION_MARKER = "\n...[TRUNCATED FOR CONTEXT BUDGET]"


def estimate_tokens(text: str) -> int:
    return max(1, len(text) // _CHARS_PER_TOKEN)


def _truncate_to_tokens(text: str, max_tokens: int) -> str:
    max_chars = max(0, max_tokens) * _CHARS_PER_TOKEN
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + _TRUNCATION_MARKER


def fit_variables(
    variables: dict[str, Any],
    max_context_tokens: int = _DEFAULT_MAX_TOKENS,
) -> dict[str, Any]:
    """
    Return a copy of `variables` whose combined size fits the budget.

    Each expendable field is cut to what remains of the budget after every
    other field is counted, in _TRUNCATION_ORDER, until the total fits.
    """
    fitted = {k: ("" if v is None else str(v)) for k, v in variables.items()}

    def total() -> int:
        return sum(estimate_tokens(v) for v in fitted.values())

    for name in _TRUNCATION_ORDER:
        if total() <= max_context_tokens:
            break
        if name not in fitted:
            continue
        others = total() - estimate_tokens(fitted[name])
        fitted[name] = _truncate_to_tokens(fitted[name], max_context_tokens - others)

    return fitted
