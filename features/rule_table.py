"""
Rule Tables
-----------
Ordered category definitions consumed by the classifier.

A rule table is a plain list of CategoryDefinition tuples. Table order is
significant: when a code matches prefixes of more than one category, the
category declared first wins.
"""

from typing import NamedTuple, Union


class ConfigurationError(ValueError):
    """Fatal configuration problem detected before any patient is processed."""


class CategoryDefinition(NamedTuple):
    category_id: str
    label: str
    prefixes: tuple[str, ...]


def clean_code(code: str) -> str:
    """Trim, uppercase and drop "." separators: "i21.9 " -> "I219"."""
    return code.strip().upper().replace(".", "")


def split_prefixes(prefixes: Union[str, list, tuple]) -> tuple[str, ...]:
    """Accept 'I21|I22|I23' or a sequence of prefix strings, cleaned like codes."""
    if isinstance(prefixes, str):
        prefixes = prefixes.split("|")
    return tuple(clean_code(p) if isinstance(p, str) else p for p in prefixes)


def make_rule_table(entries: list[tuple], name: str = "rule table") -> list[CategoryDefinition]:
    """Build and validate a rule table from (category_id, label, prefixes) tuples.

    Parameters
    ----------
    entries : list[tuple]
        (category_id, label, prefixes) in priority order. Prefixes may be a
        '|'-delimited string or a sequence.
    name : str
        Used in error messages.

    Returns
    -------
    list[CategoryDefinition]
    """
    table = [
        CategoryDefinition(category_id, label, split_prefixes(prefixes))
        for category_id, label, prefixes in entries
    ]
    validate_rule_table(table, name)
    return table


def validate_rule_table(table: list[CategoryDefinition], name: str = "rule table") -> None:
    """Raise ConfigurationError if the table is malformed."""
    if not table:
        raise ConfigurationError(f"{name}: no categories declared")

    seen_ids = set()
    for definition in table:
        cid = definition.category_id
        if not isinstance(cid, str) or not cid:
            raise ConfigurationError(f"{name}: invalid category id {cid!r}")
        if cid in seen_ids:
            raise ConfigurationError(f"{name}: duplicate category id {cid!r}")
        seen_ids.add(cid)

        if not definition.prefixes:
            raise ConfigurationError(f"{name}: category {cid!r} has no code prefixes")
        seen_prefixes = set()
        for prefix in definition.prefixes:
            if not isinstance(prefix, str) or not prefix.strip():
                raise ConfigurationError(
                    f"{name}: category {cid!r} has a blank or non-string prefix {prefix!r}"
                )
            # Codes are cleaned before matching; any other prefix could never match
            if prefix != clean_code(prefix):
                raise ConfigurationError(
                    f"{name}: category {cid!r} prefix {prefix!r} is not in cleaned form "
                    f"{clean_code(prefix)!r}"
                )
            if prefix in seen_prefixes:
                raise ConfigurationError(
                    f"{name}: category {cid!r} repeats prefix {prefix!r}"
                )
            seen_prefixes.add(prefix)


def category_ids(table: list[CategoryDefinition]) -> list[str]:
    return [d.category_id for d in table]


def find_overlapping_prefixes(table: list[CategoryDefinition]) -> list[tuple[str, str, str]]:
    """List prefixes that can never win because an earlier category shadows them.

    Returns (prefix, earlier_category_id, later_category_id) for every prefix
    of a later category that starts with a prefix of an earlier one. Such
    overlaps are resolved first-declared-wins by the classifier; this is a
    diagnostic for table authors, not an error.
    """
    overlaps = []
    for j, later in enumerate(table):
        for prefix in later.prefixes:
            for earlier in table[:j]:
                hit = next((p for p in earlier.prefixes if prefix.startswith(p)), None)
                if hit is not None:
                    overlaps.append((prefix, earlier.category_id, later.category_id))
                    break
    return overlaps
