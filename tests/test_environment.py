import pytest

from environment import Environment
from errors import UnboundIdentifierError
from values import number, string


def test_resolve_walks_outwards():
    root = Environment()
    root.define("x", number(1))
    inner = root.child().child()
    assert inner.resolve("x").value == 1.0


def test_assign_updates_nearest_binding():
    root = Environment()
    root.define("x", number(1))
    inner = root.child()
    inner.assign("x", number(2))
    assert root.resolve("x").value == 2.0
    assert "x" not in inner.values


def test_assign_creates_binding_in_current_frame():
    root = Environment()
    inner = root.child()
    inner.assign("y", number(5))
    assert "y" in inner.values
    assert "y" not in root.values


def test_define_shadows():
    root = Environment()
    root.define("x", number(1))
    inner = root.child()
    inner.define("x", number(9))
    assert inner.resolve("x").value == 9.0
    assert root.resolve("x").value == 1.0


def test_unbound_identifier():
    with pytest.raises(UnboundIdentifierError, match="no such variable: nope"):
        Environment().resolve("nope")


def test_snapshot_truncates_long_values():
    inner = Environment().child()
    inner.define("s", string("a" * 100))
    snapshot = inner.snapshot()
    assert snapshot["s"].startswith("STRING:aaa")
    assert snapshot["s"].endswith("...")
