import logging
from typing import Dict, Iterable, List

log = logging.getLogger(__name__)


def replace_text(value: str, replacements: Dict[str, str]) -> str:
    """
    Replaces all occurrences of specified substrings within a string.
    Does not use regular expressions.

    Args:
        value: The original string, e.g. a manifest argument such as
               "-Djava.library.path=${natives_directory}" or a config value
               containing ":thisdir:".
        replacements: Mapping of literal tokens to their substitutes.

    Returns:
        The string with every token replaced. Non-string input is
        returned unchanged.
    """
    if not isinstance(value, str):
        log.warning(f"replace_text: expected a string, got {type(value).__name__}. Returning original value.")
        return value

    if not isinstance(replacements, dict):
        log.warning("replace_text: replacements is not a dictionary. Returning original value.")
        return value

    modified_value = value
    for search_string, replace_string in replacements.items():
        if isinstance(search_string, str) and isinstance(replace_string, str):
            modified_value = modified_value.replace(search_string, replace_string)
        else:
            log.warning(f"replace_text: skipping non-string replacement for key {search_string!r}")

    return modified_value


def substitute_all(values: Iterable[str], replacements: Dict[str, str]) -> List[str]:
    """Applies replace_text to every token of an argument list."""
    return [replace_text(value, replacements) for value in values]


def unresolved_placeholders(value: str) -> List[str]:
    """Returns the ${...} tokens still present in value."""
    found = []
    start = value.find("${")
    while start != -1:
        end = value.find("}", start)
        if end == -1:
            break
        found.append(value[start:end + 1])
        start = value.find("${", end)
    return found
