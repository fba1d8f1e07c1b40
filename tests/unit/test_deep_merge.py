from aquavolt_device.merge import deep_merge


def test_nested_leaf_update_keeps_siblings():
    stored = {"bluetooth": {"rssi": -52, "statusLabel": "Connected"}}
    out = deep_merge(stored, {"bluetooth": {"statusLabel": "Disconnected"}})
    assert out == {"bluetooth": {"rssi": -52, "statusLabel": "Disconnected"}}
    assert stored["bluetooth"]["statusLabel"] == "Connected"  # input untouched


def test_lists_and_scalars_replace():
    out = deep_merge({"tags": [1, 2], "name": "a", "wifi": {"ssid": "x"}}, {"tags": [3], "name": "b"})
    assert out == {"tags": [3], "name": "b", "wifi": {"ssid": "x"}}


def test_map_over_scalar_replaces():
    assert deep_merge({"wifi": None}, {"wifi": {"ssid": "x"}}) == {"wifi": {"ssid": "x"}}
    assert deep_merge({"wifi": {"ssid": "x"}}, {"wifi": "off"}) == {"wifi": "off"}


def test_non_map_target_returns_patch():
    assert deep_merge(None, {"a": 1}) == {"a": 1}
    assert deep_merge({"a": 1}, 5) == 5
