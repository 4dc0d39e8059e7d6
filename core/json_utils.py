import json
from typing import Any, List

def find_first_array(obj: Any) -> List[Any]:
    """
    Depth-first search for the first non-empty list inside a decoded JSON value.

    LLM providers running in JSON-object mode wrap arrays in an envelope
    such as {"headings": [...]}; a bare list is returned as-is.
    """
    if isinstance(obj, list):
        return obj
    if isinstance(obj, dict):
        for value in obj.values():
            found = find_first_array(value)
            if found:
                return found
    return []

def loads_array(content_str: str) -> List[Any]:
    """
    Parse model output into a list of items.

    Raises ValueError when the text is not JSON at all; a JSON value with
    no array inside yields an empty list.
    """
    try:
        parsed = json.loads(content_str)
    except (TypeError, json.JSONDecodeError) as e:
        raise ValueError(f"LLM returned non-JSON content: {e}") from e
    return find_first_array(parsed)
