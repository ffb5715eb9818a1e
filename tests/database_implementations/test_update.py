# tests/database_implementations/test_update.py
import pytest

from async_query_engine.base.exceptions import (
    KeyAlreadyExistsException,
    ObjectNotFoundException,
)
from async_query_engine.base.query import Query
from async_query_engine.base.update import UpdateBuilder
from async_query_engine.base.validation_exceptions import InvalidFieldError
from tests.conftest import USERS
from tests.models import User


def updater(executor, payload=None, **kwargs):
    return UpdateBuilder(executor, USERS, User, Query.from_dict(payload), **kwargs)


async def test_update_by_id_returns_stored_row(executor, seeded_users, logger):
    updated = await updater(executor, logger=logger).update_by_id(2, {"name": "Robert", "tags": ["x"]})
    assert updated.name == "Robert"
    assert updated.tags == ["x"]
    assert updated.email == "bob@example.com"
    assert updated.updated_at is not None
    assert updated.created_at is None


async def test_model_updates_only_set_fields(executor, seeded_users):
    updated = await updater(executor).update_by_id(1, User(name="Annie"))
    assert updated.name == "Annie"
    assert updated.age == 31
    assert updated.tags == ["admin"]


async def test_primary_key_is_never_written(executor, seeded_users):
    updated = await updater(executor).update_by_id(1, {"id": 77, "age": 32})
    assert updated.id == 1
    assert updated.age == 32
    assert '"id" = ?, ' not in executor.mutations()[0]


async def test_update_by_id_missing_row_issues_no_update(executor, seeded_users):
    with pytest.raises(ObjectNotFoundException) as exc_info:
        await updater(executor).update_by_id(99, {"name": "Ghost"})
    assert exc_info.value.field == "id"
    assert exc_info.value.value == 99
    assert executor.mutations() == []


async def test_update_by_id_honours_query_and_raw_predicates(executor, seeded_users):
    with pytest.raises(ObjectNotFoundException):
        await updater(executor, {"search": [[["status", "banned"]]]}).update_by_id(1, {"age": 1})
    with pytest.raises(ObjectNotFoundException):
        await updater(executor).where("age > ?", 40).update_by_id(1, {"age": 1})
    assert executor.mutations() == []

    updated = await updater(executor).where("age > ?", 40).update_by_id(3, {"age": 43})
    assert updated.age == 43
    update_sql = executor.mutations()[0]
    assert '("id" = ?)' in update_sql
    assert '(age > ?)' in update_sql


async def test_update_by_id_skips_soft_deleted(executor, seeded_users):
    await seeded_users.execute("UPDATE users SET deleted_at = '2024-01-01' WHERE id = 2")
    await seeded_users.commit()
    with pytest.raises(ObjectNotFoundException):
        await updater(executor).update_by_id(2, {"name": "x"})


async def test_update_by_id_with_nothing_to_set(executor, seeded_users):
    updated = await updater(executor).only("email").update_by_id(1, {"name": "ignored"})
    assert updated.name == "Ann"
    assert executor.mutations() == []


async def test_update_where(executor, seeded_users):
    count = await updater(executor, {"search": [[["status", "active"]]]}).update({"status": "idle"})
    assert count == 3
    remaining = await seeded_users.execute("SELECT COUNT(*) FROM users WHERE status = 'idle'")
    assert (await remaining.fetchone())[0] == 3


async def test_update_where_with_raw_predicate_only(executor, seeded_users):
    count = await updater(executor).where("age < ?", 20).update({"status": "minor"})
    assert count == 1


async def test_update_without_filter_is_refused(executor, seeded_users):
    with pytest.raises(ValueError):
        await updater(executor).update({"status": "x"})
    with pytest.raises(ValueError):
        await updater(executor, {"search": [[["name", ""]]]}).update({"status": "x"})
    assert executor.statements == []


async def test_update_with_nothing_to_set_returns_zero(executor, seeded_users):
    count = await updater(executor, {"search": [[["id", 1]]]}).update({"id": 5})
    assert count == 0
    assert executor.statements == []


async def test_update_column_policy(executor, seeded_users):
    updated = await updater(executor).omit("status").update_by_id(
        1, {"status": "admin", "age": 50}
    )
    assert (updated.status, updated.age) == ("active", 50)


async def test_update_unique_excludes_self(executor, seeded_users):
    unique_email = updater(executor).unique("email")
    updated = await unique_email.update_by_id(1, {"email": "ann@example.com", "age": 33})
    assert updated.age == 33
    with pytest.raises(KeyAlreadyExistsException) as exc_info:
        await unique_email.update_by_id(1, {"email": "bob@example.com"})
    assert exc_info.value.field == "email"


async def test_update_rejects_bad_identifiers_before_running(executor, seeded_users):
    with pytest.raises(InvalidFieldError):
        await updater(executor, {"search": [[["id; --", 1]]]}).update({"age": 1})
    with pytest.raises(InvalidFieldError):
        await updater(executor, {"order_by": ["bad col"]}).update_by_id(1, {"age": 1})
    assert executor.statements == []


async def test_update_where_unique_excludes_matched_row(executor, seeded_users):
    unique_email = updater(executor, {"search": [[["id", 1]]]}).unique("email")
    assert await unique_email.update({"email": "ann@example.com", "age": 40}) == 1
    with pytest.raises(KeyAlreadyExistsException) as exc_info:
        await unique_email.update({"email": "bob@example.com"})
    assert exc_info.value.field == "email"


async def test_update_where_unique_value_on_many_rows(executor, seeded_users):
    active = updater(executor, {"search": [[["status", "active"]]]}).unique("email")
    with pytest.raises(KeyAlreadyExistsException):
        await active.update({"email": "shared@example.com"})
    assert executor.mutations() == []


async def test_update_where_unique_counts_rows_outside_filter(executor, seeded_users):
    # Dee has a NULL status, so the filter neither matches nor excludes her
    await seeded_users.execute("UPDATE users SET email = 'dee@example.com' WHERE id = 4")
    await seeded_users.commit()
    unique_email = updater(executor, {"search": [[["status", "banned"]]]}).unique("email")
    with pytest.raises(KeyAlreadyExistsException):
        await unique_email.update({"email": "dee@example.com"})


async def test_update_by_id_unique_together_uses_stored_values(executor, seeded_users):
    pair = updater(executor).unique_together("name", "status")
    with pytest.raises(KeyAlreadyExistsException) as exc_info:
        await pair.update_by_id(1, {"name": "Bob"})
    assert exc_info.value.field == "name,status"
    assert executor.mutations() == []

    updated = await pair.update_by_id(3, {"name": "Bob"})
    assert (updated.name, updated.status) == ("Bob", "banned")


async def test_update_by_id_ignores_rules_it_does_not_touch(executor, seeded_users):
    await seeded_users.execute("UPDATE users SET email = 'ann@example.com' WHERE id = 2")
    await seeded_users.commit()
    updated = await updater(executor).unique("email").update_by_id(2, {"age": 26})
    assert updated.age == 26
