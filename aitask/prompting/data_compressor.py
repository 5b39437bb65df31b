"""Lossless structural compaction of JSON-like task inputs.

Shrinks prompt payloads by collapsing keyed object lists into mappings and by
dropping attributes the task does not need.

Example:
    `[{"name": "a", "data": 1}, {"name": "b", "data": 2}]` -> `{"a": 1, "b": 2}`

Design constraints:
    - Works recursively on nested dicts and lists.
    - Never mutates the caller's data; every step returns new containers.
    - Unknown method names are ignored.
"""

from typing import Any, Callable


COLLAPSE_ARRAY_TO_OBJECT = "collapse_array_to_object"
SCALAR_KEY_TYPES = (str, int, float, bool)


def compress_data(
    data: Any,
    methods=(COLLAPSE_ARRAY_TO_OBJECT,),
    collapse_options: dict | None = None,
    omit=None,
) -> Any:
    """Apply the configured compaction methods to `data`.

    Args:
        data: JSON-like value.
        methods: Method names applied in order.
        collapse_options: Keyword options for `collapse_array_to_object`.
        omit: Pattern or list of patterns for `omit_attributes`.

    Returns:
        Compacted copy of `data`.
    """
    result = data

    if COLLAPSE_ARRAY_TO_OBJECT in methods:
        result = collapse_array_to_object(result, **(collapse_options or {}))

    if omit:
        result = omit_attributes(result, omit)

    return result


def collapse_array_to_object(
    data: Any,
    key_attr: str = "name",
    collapse_single_attr: bool = True,
    deep: bool = True,
) -> Any:
    """Collapse lists of keyed objects into a mapping keyed by `key_attr`.

    Edge cases:
        - Lists where any item is not a dict holding `key_attr` are kept as-is.
        - Lists whose `key_attr` values are not scalars are kept as-is.
        - With `collapse_single_attr`, entries that all hold exactly one remaining
          attribute are replaced by that attribute's value.
    """
    options = {
        "key_attr": key_attr,
        "collapse_single_attr": collapse_single_attr,
        "deep": deep,
    }

    if not isinstance(data, list):
        if deep and isinstance(data, dict):
            return {k: collapse_array_to_object(v, **options) for k, v in data.items()}
        return data

    if not data or not all(isinstance(item, dict) and key_attr in item for item in data):
        return data

    if not all(isinstance(item[key_attr], SCALAR_KEY_TYPES) for item in data):
        return data

    collapsed = {}
    for item in data:
        rest = {k: v for k, v in item.items() if k != key_attr}
        collapsed[item[key_attr]] = rest

    if collapse_single_attr and all(len(v) == 1 for v in collapsed.values()):
        collapsed = {k: next(iter(v.values())) for k, v in collapsed.items()}

    if deep:
        collapsed = {k: collapse_array_to_object(v, **options) for k, v in collapsed.items()}

    return collapsed


def omit_attributes(data: Any, patterns) -> Any:
    """Drop attributes matching `patterns`.

    Pattern forms:
        - `"key"`: shallow key.
        - `"a.b.c"`: nested path.
        - `"*.key"`: scalar `key` at this level, or `key` inside any direct child.
        - `("pattern", predicate)`: omit only when `predicate(value)` is true.
    """
    if not isinstance(data, (dict, list)):
        return data

    if not isinstance(patterns, list):
        patterns = [patterns]

    if isinstance(data, list):
        return [omit_attributes(item, patterns) for item in data]

    result = dict(data)

    for pattern in patterns:
        test: Callable[[Any], bool] = lambda value: True
        if isinstance(pattern, (tuple, list)):
            pattern, test = pattern[0], pattern[1]
        if not isinstance(pattern, str) or not pattern:
            continue

        parts = pattern.split(".")

        if parts[0] == "*":
            deep_key = ".".join(parts[1:])
            for key in list(result):
                value = result[key]
                if isinstance(value, (dict, list)):
                    result[key] = omit_attributes(value, [(deep_key, test)])
                elif key == deep_key and test(value):
                    del result[key]

        elif len(parts) == 1:
            if pattern in result and test(result[pattern]):
                del result[pattern]

        else:
            head, rest = parts[0], ".".join(parts[1:])
            if isinstance(result.get(head), dict):
                result[head] = omit_attributes(result[head], [(rest, test)])

    return result
