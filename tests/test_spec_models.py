"""Tests for table specs, WHERE clauses and conflict policies (spec/models.py)."""

import pytest

from db_copier.spec.columns import FixedColumn, SourceColumn
from db_copier.spec.models import (
    Columns,
    Constraint,
    DoNothing,
    DoUpdate,
    Multiple,
    OnConflict,
    PrimaryKey,
    Single,
    TableSpec,
    WhereClause,
    merge_key_columns,
)


# ============================================================================
# Test: WhereClause
# ============================================================================


class TestWhereClause:
    """Verify predicate rendering and combination."""

    def test_single_renders_verbatim(self) -> None:
        """A single clause is not parenthesized."""
        assert Single("active = true").sql == "active = true"

    def test_multiple_parenthesizes(self) -> None:
        """Multiple clauses are each parenthesized and ANDed."""
        assert Multiple("a = 1", ("b = 2 OR c = 3",)).sql == "(a = 1) AND (b = 2 OR c = 3)"

    def test_of(self) -> None:
        """WhereClause.of picks Single or Multiple by count."""
        assert WhereClause.of("x") == Single("x")
        assert WhereClause.of("x", "y") == Multiple("x", ("y",))

    def test_of_requires_fragment(self) -> None:
        """An empty clause list is rejected."""
        with pytest.raises(ValueError):
            WhereClause.of()

    def test_and_flattens(self) -> None:
        """and_ keeps a flat list of fragments."""
        combined = Multiple("a", ("b",)).and_(Multiple("c", ("d",)))
        assert combined.clauses == ("a", "b", "c", "d")


# ============================================================================
# Test: OnConflict
# ============================================================================


class TestOnConflict:
    """Verify conflict policy constructors."""

    def test_do_nothing_defaults_to_primary_key(self) -> None:
        """Without columns the target is the primary key."""
        assert OnConflict.do_nothing() == OnConflict(PrimaryKey(), DoNothing())

    def test_do_nothing_on_columns(self) -> None:
        """Named columns become an explicit target."""
        assert OnConflict.do_nothing("email").target == Columns(("email",))

    def test_do_update_all_columns(self) -> None:
        """do_update updates every non-target column."""
        policy = OnConflict.do_update("email")
        assert policy.action == DoUpdate(None)

    def test_do_update_columns(self) -> None:
        """do_update_columns restricts the updated set."""
        policy = OnConflict.do_update_columns(["id"], ["name", "email"])
        assert policy.target == Columns(("id",))
        assert policy.action == DoUpdate(frozenset({"name", "email"}))

    def test_constraint_target(self) -> None:
        """A named constraint can be used as target directly."""
        policy = OnConflict(Constraint("users_email_key"), DoNothing())
        assert policy.target.name == "users_email_key"


# ============================================================================
# Test: TableSpec
# ============================================================================


class TestTableSpec:
    """Verify table spec construction and builders."""

    def test_select_builds_columns(self) -> None:
        """select collects the columns returned by the builder function."""
        spec = TableSpec.select(lambda row: [row["email"], row["notes"].nulled()])
        assert spec.column_names == ["email", "notes"]
        assert spec.columns[1] == FixedColumn("notes", None)

    def test_select_with_known_columns(self) -> None:
        """Unknown names fail when known columns are supplied."""
        with pytest.raises(KeyError):
            TableSpec.select(lambda row: [row["nope"]], known_columns=["id"])

    def test_defaults(self) -> None:
        """A new spec has no filter, no limit and batches of 1000."""
        spec = TableSpec()
        assert spec.where_clause is None
        assert spec.limit is None
        assert spec.batch_size == 1000
        assert spec.on_conflict is None

    def test_where_ands_clauses(self) -> None:
        """Successive where calls are ANDed."""
        spec = TableSpec().where("a = 1").where(Single("b = 2"))
        assert spec.where_clause.sql == "(a = 1) AND (b = 2)"

    def test_builders_do_not_mutate(self) -> None:
        """with_* return new specs."""
        spec = TableSpec()
        limited = spec.with_limit(10).with_batch_size(50)
        assert spec.limit is None
        assert limited.limit == 10
        assert limited.batch_size == 50

    def test_with_on_conflict(self) -> None:
        """The conflict policy is attached."""
        spec = TableSpec().with_on_conflict(OnConflict.do_nothing())
        assert spec.on_conflict.action == DoNothing()

    def test_invalid_batch_size(self) -> None:
        """batch_size must be positive."""
        with pytest.raises(ValueError, match="batch_size"):
            TableSpec(batch_size=0)
        with pytest.raises(ValueError, match="batch_size"):
            TableSpec().with_batch_size(-5)

    def test_negative_limit(self) -> None:
        """A negative limit is rejected; zero is allowed."""
        with pytest.raises(ValueError, match="limit"):
            TableSpec(limit=-1)
        assert TableSpec(limit=0).limit == 0

    def test_missing_columns(self) -> None:
        """missing_columns lists expected names not covered."""
        spec = TableSpec.select(lambda row: [row["a"]])
        assert spec.missing_columns(["a", "b", "c"]) == {"b", "c"}

    def test_columns_stored_as_tuple(self) -> None:
        """A list of columns is frozen into a tuple."""
        spec = TableSpec(columns=[SourceColumn("a")])
        assert spec.columns == (SourceColumn("a"),)


class TestMergeKeyColumns:
    """Verify automatic key passthrough."""

    def test_appends_missing_keys(self) -> None:
        """Keys not in the spec are appended as passthrough columns."""
        spec = TableSpec.select(lambda row: [row["email"]])
        merged = merge_key_columns(spec, ["id", "org_id"])
        assert merged.column_names == ["email", "id", "org_id"]
        assert merged.columns[1] == SourceColumn("id")

    def test_spec_column_wins(self) -> None:
        """A key listed in the spec keeps its transform."""
        spec = TableSpec.select(lambda row: [row["id"].map_string(lambda s: s), row["email"]])
        merged = merge_key_columns(spec, ["id"])
        assert merged is spec

    def test_duplicate_keys_added_once(self) -> None:
        """A column that is both PK and FK is added once."""
        merged = merge_key_columns(TableSpec(), ["id", "id"])
        assert merged.column_names == ["id"]

    def test_preserves_other_fields(self) -> None:
        """Where, limit and batch size carry over."""
        spec = TableSpec().where("x").with_limit(5).with_batch_size(10)
        merged = merge_key_columns(spec, ["id"])
        assert merged.where_clause == Single("x")
        assert merged.limit == 5
        assert merged.batch_size == 10
