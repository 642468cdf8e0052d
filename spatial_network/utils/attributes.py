"""
Attribute merging for nodes and edges that are combined into one.
"""

import numpy as np
import pandas as pd

from ..network_config import NETWORK_CONFIG


def _missing(value):
    return value is None or (pd.api.types.is_scalar(value) and pd.isna(value))


def _concat(values):
    flat = []
    for value in values:
        if isinstance(value, list):
            flat.extend(value)
        else:
            flat.append(value)
    if all(_same(flat[0], v) for v in flat[1:]):
        return flat[0]
    return flat


def _same(a, b):
    try:
        return bool(a == b)
    except (TypeError, ValueError):
        return a is b


SUMMARISERS = {
    'first': lambda values: values[0],
    'last': lambda values: values[-1],
    'sum': lambda values: sum(values),
    'mean': lambda values: float(np.mean(values)),
    'min': min,
    'max': max,
    'concat': _concat,
}


def summarise_values(values, how='concat'):
    """
    Combine a list of attribute values into one.

    Parameters
    ----------
    values : list
        Values in traversal order, missing values (None or NaN) already removed
    how : str or callable
        One of ``SUMMARISERS`` or a function taking the list

    Returns
    -------
    object
        Combined value
    """
    if callable(how):
        return how(values)
    if how not in SUMMARISERS:
        raise ValueError(f"Unknown summarise rule {how!r}; use one of {sorted(SUMMARISERS)}")
    return SUMMARISERS[how](values)


def merge_attributes(attribute_dicts, rules=None):
    """
    Merge attribute dicts so that no key is silently dropped.

    Missing values, None or a pandas NA such as NaN, are ignored; a key
    with no other value merges to None.

    Parameters
    ----------
    attribute_dicts : list of dict
        Attributes in traversal order
    rules : str, callable or dict, optional
        A single rule for every key, or a dict mapping keys to rules. Keys
        not in the dict use the configured default rule.

    Returns
    -------
    dict
        Merged attributes
    """
    default = NETWORK_CONFIG['summarise_attributes']
    if rules is None:
        rules = default

    keys = []
    for attrs in attribute_dicts:
        for key in attrs:
            if key not in keys:
                keys.append(key)

    merged = {}
    for key in keys:
        values = [attrs[key] for attrs in attribute_dicts if key in attrs and not _missing(attrs[key])]
        if not values:
            merged[key] = None
            continue
        rule = rules.get(key, default) if isinstance(rules, dict) else rules
        merged[key] = summarise_values(values, rule)
    return merged
