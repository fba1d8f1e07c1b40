from typing import Any


def _is_map(value: Any) -> bool:
    return isinstance(value, dict)


def deep_merge(target: Any, patch: Any) -> Any:
    """
    Merge `patch` into `target` without mutating either.

    Maps recurse key by key; anything else (lists, scalars, None) in the
    patch replaces the existing value outright:

      deep_merge({"bluetooth": {"rssi": -52, "statusLabel": "Connected"}},
                 {"bluetooth": {"statusLabel": "Disconnected"}})
      -> {"bluetooth": {"rssi": -52, "statusLabel": "Disconnected"}}
    """
    if not _is_map(target) or not _is_map(patch):
        return patch
    out = dict(target)
    for key, value in patch.items():
        current = target.get(key)
        out[key] = deep_merge(current, value) if _is_map(current) and _is_map(value) else value
    return out
