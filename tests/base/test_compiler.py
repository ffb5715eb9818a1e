import pytest

from async_query_engine.base.compiler import (
    ConditionParser,
    Predicate,
    SelectStatement,
    columns_for,
    not_deleted,
)
from async_query_engine.base.config import EngineSettings
from async_query_engine.base.dialect import GENERIC, POSTGRES, SQLITE, InValues
from async_query_engine.base.query import Condition, ConditionGroup, OrderBy, Query
from async_query_engine.base.schema import TableSpec
from async_query_engine.base.validation_exceptions import (
    InvalidFieldError,
    MissingRequiredFieldError,
)


@pytest.fixture
def parser():
    return ConditionParser(GENERIC, EngineSettings())


def group(*conditions, operator="AND"):
    return ConditionGroup(tuple(conditions), operator)


# --- Conditions ---
@pytest.mark.parametrize(
    "condition, sql, params",
    [
        (Condition("name", "Ann"), "name = ?", ("Ann",)),
        (Condition("age", 18, ">="), "age >= ?", (18,)),
        (Condition("age", 18, "<>"), "age <> ?", (18,)),
        (Condition("name", "An", "LIKE"), "name LIKE ?", ("%An%",)),
        (Condition("name", "An%", "LIKE"), "name LIKE ?", ("An%",)),
        (Condition("name", "An", "NOT LIKE"), "name NOT LIKE ?", ("%An%",)),
        (Condition("name", "nn", "LEFT LIKE"), "name LIKE ?", ("%nn",)),
        (Condition("name", "An", "RIGHT LIKE"), "name LIKE ?", ("An%",)),
        (Condition("status", None, "IS NULL"), "status IS NULL", ()),
        (Condition("status", None, "IS NOT NULL"), "status IS NOT NULL", ()),
        (Condition("age", [18, 30], "BETWEEN"), "age BETWEEN ? AND ?", (18, 30)),
        (Condition("age", [18, 30], "NOT BETWEEN"), "age NOT BETWEEN ? AND ?", (18, 30)),
        (Condition("users.email", "a@b", "="), "users.email = ?", ("a@b",)),
    ],
)
def test_compile_condition(parser, condition, sql, params):
    predicate = parser.compile_condition(condition)
    assert predicate.sql == sql
    assert predicate.params == params


def test_membership_binds_one_sequence(parser):
    predicate = parser.compile_condition(Condition("id", [1, 2, 3], "IN"))
    assert predicate.sql == "id IN (?)"
    assert predicate.params == (InValues((1, 2, 3)),)


def test_empty_membership(parser):
    assert parser.compile_condition(Condition("id", [], "IN")).sql == "1=0"
    assert parser.compile_condition(Condition("id", [], "NOT IN")).sql == "1=1"


def test_empty_values_are_skipped_except_for_allowed_fields(parser):
    assert parser.compile_condition(Condition("name", "")) is None
    assert parser.compile_condition(Condition("name", None, "LIKE")) is None
    kept = parser.compile_condition(Condition("id", ""))
    assert kept.sql == "id = ?"
    assert kept.params == ("",)


def test_empty_value_allow_list_is_configurable():
    parser = ConditionParser(GENERIC, EngineSettings(empty_value_fields=["code"]))
    assert parser.compile_condition(Condition("id", "")) is None
    assert parser.compile_condition(Condition("code", "")).params == ("",)


def test_zero_and_false_are_not_empty(parser):
    assert parser.compile_condition(Condition("age", 0)).params == (0,)
    assert parser.compile_condition(Condition("active", False)).params == (False,)


# --- Groups and search ---
def test_or_group_is_parenthesized(parser):
    predicate = parser.compile_group(
        group(Condition("name", "Ann"), Condition("name", "Bob"), operator="OR")
    )
    assert predicate.sql == "(name = ? OR name = ?)"
    assert predicate.params == ("Ann", "Bob")


def test_groups_are_anded(parser):
    predicate = parser.compile_search(
        [
            group(Condition("name", "Ann"), Condition("name", "Bob"), operator="OR"),
            group(Condition("age", 18, ">")),
        ]
    )
    assert predicate.sql == "(name = ? OR name = ?) AND (age > ?)"
    assert predicate.params == ("Ann", "Bob", 18)


def test_group_of_skipped_conditions_vanishes(parser):
    predicate = parser.compile_search(
        [group(Condition("name", ""), Condition("email", None)), group(Condition("age", 1))]
    )
    assert predicate.sql == "(age = ?)"


def test_parse_adds_required_predicates(parser):
    query = Query(search=(group(Condition("name", "Ann")),), required=("name",))
    predicate = parser.parse(query)
    assert predicate.sql == "(name = ?) AND name IS NOT NULL AND name != ''"
    assert predicate.params == ("Ann",)


def test_parse_empty_query(parser):
    predicate = parser.parse(Query())
    assert not predicate
    assert predicate.where_clause() == ""


def test_required_field_missing_from_search(parser):
    query = Query(search=(group(Condition("age", 1)),), required=("name",))
    with pytest.raises(MissingRequiredFieldError) as exc_info:
        parser.parse(query)
    assert exc_info.value.field == "name"
    assert exc_info.value.code == "MISSING_REQUIRED_FIELD"


@pytest.mark.parametrize(
    "query",
    [
        Query(filter=("id", "name; drop")),
        Query(search=(group(Condition("na me", 1)),)),
        Query(order_by=(OrderBy("id desc --"),)),
        Query(include=("posts.", )),
    ],
)
def test_validate_rejects_bad_identifiers(parser, query):
    with pytest.raises(InvalidFieldError):
        parser.validate(query)


def test_postgres_required_predicate_casts_to_text():
    parser = ConditionParser(POSTGRES, EngineSettings())
    predicate = parser.compile_required(["age"])
    assert predicate.sql == '"age" IS NOT NULL AND CAST("age" AS TEXT) != \'\''


# --- Predicate ---
def test_raw_predicates_are_parenthesized():
    raw = Predicate.raw(" a = ? OR b = ? ", 1, 2)
    assert raw.sql == "(a = ? OR b = ?)"
    combined = Predicate("c = ?", (3,)).and_(raw)
    assert combined.sql == "c = ? AND (a = ? OR b = ?)"
    assert combined.params == (3, 1, 2)


def test_join_skips_empty_predicates():
    assert Predicate.join([Predicate(), Predicate("x = ?", (1,)), Predicate()]).sql == "x = ?"
    assert not Predicate.join([])


# --- Statements ---
def test_select_statement():
    statement = SelectStatement(
        table="users",
        columns=("id", "name"),
        where=Predicate("(age > ?)", (18,)),
        order_by=(OrderBy("name", "desc"), OrderBy("id")),
        limit=10,
        offset=20,
    )
    sql, params = statement.select_sql(GENERIC)
    assert sql == (
        "SELECT id, name FROM users WHERE (age > ?) ORDER BY name DESC, id ASC LIMIT ? OFFSET ?"
    )
    assert params == (18, 10, 20)


def test_select_all_without_paging():
    sql, params = SelectStatement(table="users").select_sql(SQLITE)
    assert sql == 'SELECT * FROM "users"'
    assert params == ()


def test_first_page_has_no_offset():
    sql, params = SelectStatement(table="users", limit=5, offset=0).select_sql(GENERIC)
    assert sql == "SELECT * FROM users LIMIT ?"
    assert params == (5,)


def test_count_ignores_projection_order_and_paging():
    statement = SelectStatement(
        table="users",
        columns=("id",),
        where=Predicate("(age > ?)", (18,)),
        order_by=(OrderBy("id"),),
        limit=5,
        offset=5,
    )
    assert statement.count_sql(GENERIC) == ("SELECT COUNT(*) FROM users WHERE (age > ?)", (18,))


def test_aggregate_sql_coalesces_null():
    sql, params = SelectStatement(table="users").aggregate_sql(SQLITE, "SUM", "score")
    assert sql == 'SELECT COALESCE(SUM("score"), 0) FROM "users"'
    with pytest.raises(InvalidFieldError):
        SelectStatement(table="users").aggregate_sql(SQLITE, "AVG", "score)")


def test_not_deleted_scope():
    assert not not_deleted(TableSpec("users"), SQLITE)
    scope = not_deleted(TableSpec("users", soft_delete_column="deleted_at"), SQLITE)
    assert scope.sql == '"deleted_at" IS NULL'


def test_columns_for_adds_missing_keys():
    assert columns_for(Query(filter=("name",)), ["id"]) == ("name", "id")
    assert columns_for(Query(filter=("id", "name")), ["id"]) == ("id", "name")
    assert columns_for(Query(), ["id"]) == ()
