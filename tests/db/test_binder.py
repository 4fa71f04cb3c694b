"""Tests for binding descriptors, in-list expansion and typed parameter binding."""

from __future__ import annotations

from datetime import date, datetime, time

import pytest
from sqlalchemy.types import Boolean, Integer, LargeBinary, NullType, Numeric, String

from sqlconduit.db.binder import (
    Binder,
    Binding,
    BindType,
    expand_in_bindings,
    placeholder_name,
)
from sqlconduit.exceptions import BindingError


def bound(clause):
    """Map placeholder names to their BindParameter objects."""
    return dict(clause._bindparams)


@pytest.fixture
def binder() -> Binder:
    return Binder()


class TestBindType:
    """Test type labels and aliases."""

    @pytest.mark.parametrize("label,expected", [
        ("boolean", BindType.BOOL),
        ("Integer", BindType.INT),
        ("number", BindType.INT),
        ("varchar2", BindType.STRING),
        ("lob", BindType.BLOB),
        ("like", BindType.LIKE),
        (" IN ", BindType.IN),
    ])
    def test_parse(self, label, expected):
        assert BindType.parse(label) is expected

    def test_parse_unknown(self):
        assert BindType.parse("geometry") is None

    def test_unknown_label_is_kept(self):
        assert Binding("x", "geometry").type == "geometry"

    def test_sqlalchemy_type_class_is_instantiated(self):
        assert isinstance(Binding(1, Integer).type, Integer)


class TestBinding:
    """Test binding descriptor validation."""

    def test_in_requires_list(self):
        with pytest.raises(BindingError, match="only a list is allowed"):
            Binding(5, BindType.IN)

    def test_nested_in_rejected(self):
        with pytest.raises(BindingError, match="already using `in`"):
            Binding([1, 2], "in", "in")

    def test_placeholder_name(self):
        assert placeholder_name(":user_id") == "user_id"
        assert placeholder_name("user_id") == "user_id"
        with pytest.raises(BindingError):
            placeholder_name(":bad name")


class TestInExpansion:
    """Test unpacking of list bindings."""

    def test_expands_each_element(self):
        statement, bindings = expand_in_bindings(
            "SELECT * FROM t WHERE id IN (:ids) AND kind = :kind",
            {":ids": Binding([4, 5, 6], "in", "int"), ":kind": "a"},
        )

        assert statement == "SELECT * FROM t WHERE id IN (:ids_0, :ids_1, :ids_2) AND kind = :kind"
        assert list(bindings) == ["kind", "ids_0", "ids_1", "ids_2"]
        assert bindings["ids_1"] == Binding(5, BindType.INT)

    def test_similar_names_untouched(self):
        statement, _ = expand_in_bindings(
            "SELECT :id, :ids_extra FROM t WHERE id IN (:id)",
            {"id": Binding([1], "in")},
        )
        assert statement == "SELECT :id_0, :ids_extra FROM t WHERE id IN (:id_0)"

    def test_empty_list_rejected(self):
        with pytest.raises(BindingError, match="empty list"):
            expand_in_bindings("SELECT 1 WHERE 1 IN (:ids)", {"ids": Binding([], "in")})


class TestBinder:
    """Test conversion of bindings into bound parameters."""

    def test_prepare_drops_unused(self, binder):
        statement, bindings = binder.prepare("SELECT :a", {"a": 1, ":b": 2})
        assert statement == "SELECT :a"
        assert bindings == {"a": 1}

    def test_plain_values(self, binder):
        params = bound(binder.bind("SELECT :a, :b", {"a": 1, "b": "two"}))
        assert params["a"].value == 1
        assert params["b"].value == "two"

    def test_unused_placeholder_skipped(self, binder):
        params = bound(binder.bind("SELECT :a", {"a": 1, "zzz": 2}))
        assert "zzz" not in params

    @pytest.mark.parametrize("raw,expected", [
        (True, True),
        (0, False),
        ("false", False),
        ("off", False),
        ("", False),
        ("yes", True),
    ])
    def test_bool(self, binder, raw, expected):
        param = bound(binder.bind("SELECT :flag", {"flag": Binding(raw, "bool")}))["flag"]
        assert param.value is expected
        assert isinstance(param.type, Boolean)

    @pytest.mark.parametrize("bind_type", ["int", "limit", "offset", "integer"])
    def test_integers(self, binder, bind_type):
        param = bound(binder.bind("SELECT :n", {"n": Binding("12.7", bind_type)}))["n"]
        assert param.value == 12
        assert isinstance(param.type, Integer)

    def test_null(self, binder):
        param = bound(binder.bind("SELECT :n", {"n": Binding("ignored", "null")}))["n"]
        assert param.value is None
        assert isinstance(param.type, NullType)

    def test_like(self, binder):
        param = bound(binder.bind("SELECT :q", {"q": Binding("ali", "like")}))["q"]
        assert param.value == "%ali%"

    def test_float_binds_as_string(self, binder):
        param = bound(binder.bind("SELECT :f", {"f": Binding(1.5, "float")}))["f"]
        assert param.value == "1.5"
        assert isinstance(param.type, String)

    def test_unknown_label_binds_as_string(self, binder):
        param = bound(binder.bind("SELECT :g", {"g": Binding(42, "geometry")}))["g"]
        assert param.value == "42"

    @pytest.mark.parametrize("bind_type,expected", [
        ("date", "2024-03-05"),
        ("time", "14:30:15.000000"),
        ("datetime", "2024-03-05 14:30:15.000000"),
    ])
    def test_temporal(self, binder, bind_type, expected):
        value = datetime(2024, 3, 5, 14, 30, 15)
        param = bound(binder.bind("SELECT :t", {"t": Binding(value, bind_type)}))["t"]
        assert param.value == expected

    def test_bytes(self, binder):
        param = bound(binder.bind("SELECT :s", {"s": Binding(1536, "bytes")}))["s"]
        assert param.value == "1.5 KiB"

    def test_blob(self, binder):
        param = bound(binder.bind("SELECT :b", {"b": Binding("abc", "blob")}))["b"]
        assert param.value == b"abc"
        assert isinstance(param.type, LargeBinary)
        assert param.type.length == 3

    @pytest.mark.parametrize("value,expected", [(42, b"42"), (1.5, b"1.5"), (bytearray(b"\x00\x01"), b"\x00\x01")])
    def test_blob_coerces_non_strings(self, binder, value, expected):
        param = bound(binder.bind("SELECT :b", {"b": Binding(value, "blob")}))["b"]
        assert param.value == expected
        assert param.type.length == len(expected)

    def test_match_uses_sanitizer(self):
        binder = Binder(match_sanitizer=lambda text: text.upper())
        param = bound(binder.bind("SELECT :m", {"m": Binding("word", "match")}))["m"]
        assert param.value == "WORD"

    def test_raw_sqlalchemy_type(self, binder):
        param = bound(binder.bind("SELECT :d", {"d": Binding("1.25", Numeric())}))["d"]
        assert isinstance(param.type, Numeric)

    def test_invalid_utf8_is_scrubbed(self, binder):
        param = bound(binder.bind("SELECT :s", {"s": "bad\udcffvalue"}))["s"]
        assert param.value == "bad?value"

    def test_coercion_failure(self, binder):
        with pytest.raises(BindingError) as excinfo:
            binder.bind("SELECT :n", {"n": Binding("twelve", "int")})

        assert excinfo.value.placeholder == "n"
        assert excinfo.value.bind_type == "int"
        assert "twelve" in str(excinfo.value)

    def test_unexpanded_in_rejected(self, binder):
        with pytest.raises(BindingError, match="must be expanded"):
            binder.bind("SELECT :ids", {"ids": Binding([1], "in")})


class TestTemporalStorage:
    """Test that temporal bindings survive a write and read through SQLite."""

    @pytest.mark.parametrize("bind_type,value,parse", [
        ("date", date(2024, 2, 29), date.fromisoformat),
        ("time", time(23, 59, 58, 250000), time.fromisoformat),
        ("datetime", datetime(2024, 2, 29, 23, 59, 58, 250000), datetime.fromisoformat),
    ])
    def test_value_reads_back_unchanged(self, executor, select, bind_type, value, parse):
        executor.execute("CREATE TABLE events (id INTEGER PRIMARY KEY, happened TEXT NOT NULL)")
        executor.execute(
            "INSERT INTO events (happened) VALUES (:happened)",
            {"happened": Binding(value, bind_type)},
        )

        stored = select.select_value("SELECT happened FROM events")
        assert parse(stored) == value

    def test_datetime_from_epoch(self, executor, select):
        moment = datetime(2024, 2, 29, 12, 0, 0)
        executor.execute("CREATE TABLE events (id INTEGER PRIMARY KEY, happened TEXT NOT NULL)")
        executor.execute(
            "INSERT INTO events (happened) VALUES (:happened)",
            {"happened": Binding(moment.timestamp(), "datetime")},
        )

        assert datetime.fromisoformat(select.select_value("SELECT happened FROM events")) == moment
