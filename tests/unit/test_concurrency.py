"""Tests for optimistic concurrency, transactions and call context isolation."""

import threading

import pytest
from conftest import REDACTED_TEXT, Person, sample_person

from entitygraph import (
    CallContext,
    Classification,
    ConcurrencyConflictError,
    MessageCatalog,
    Repository,
    current_context,
    current_user,
    use_context,
)


def stale_copies(repo, person_id):
    return repo.get_entity(Person, person_id), repo.get_entity(Person, person_id)


class TestVersionConflicts:
    """Test rejection of writes based on stale versions."""

    def test_stale_update_rejected(self, repo, saved_person):
        """The second writer of the same version gets a conflict."""
        first, second = stale_copies(repo, saved_person.id)
        first.name = "First"
        repo.save_entity(first)

        second.name = "Second"
        with pytest.raises(ConcurrencyConflictError) as exc_info:
            repo.save_entity(second)
        assert exc_info.value.expected_version == 1
        assert exc_info.value.entity_type == "Person"
        assert repo.get_entity(Person, saved_person.id).name == "First"

    def test_update_of_deleted_row_rejected(self, repo, saved_person):
        """Updating a row another caller deleted is a conflict."""
        first, second = stale_copies(repo, saved_person.id)
        first.mark_for_delete()
        repo.save_entity(first)

        second.name = "Too late"
        with pytest.raises(ConcurrencyConflictError):
            repo.save_entity(second)

    def test_stale_delete_rejected(self, repo, saved_person):
        """Deleting a row changed since load is a conflict."""
        first, second = stale_copies(repo, saved_person.id)
        first.name = "First"
        repo.save_entity(first)

        second.mark_for_delete()
        with pytest.raises(ConcurrencyConflictError):
            repo.save_entity(second)
        assert repo.get_entity(Person, saved_person.id) is not None

    def test_sequential_saves_succeed(self, repo, saved_person):
        """Saving the same object repeatedly tracks its own version."""
        for name in ("One", "Two", "Three"):
            saved_person.name = name
            repo.save_entity(saved_person)
        assert saved_person.row_version == 4
        assert repo.get_entity(Person, saved_person.id).row_version == 4

    def test_conflict_details_in_error(self, repo, saved_person):
        """The error names the entity and carries its context."""
        first, second = stale_copies(repo, saved_person.id)
        first.name = "First"
        repo.save_entity(first)
        second.name = "Second"
        with pytest.raises(ConcurrencyConflictError, match="Reload it and retry") as exc_info:
            repo.save_entity(second)
        assert exc_info.value.to_dict()["context"]["entity_id"] == str(saved_person.id)


class TestTransactions:
    """Test that failed saves leave storage untouched."""

    def test_conflict_rolls_back_whole_graph(self, repo, saved_person):
        """Children written before the conflict are rolled back."""
        first, second = stale_copies(repo, saved_person.id)
        first.name = "First"
        repo.save_entity(first)

        second.name = "Second"
        second.address.street = "9 Other St"
        second.phones[0].number = "555-7777"
        with pytest.raises(ConcurrencyConflictError):
            repo.save_entity(second)

        reloaded = repo.get_entity(Person, saved_person.id)
        assert reloaded.address.street == "1 Main St"
        assert reloaded.address.row_version == 1
        assert [p.number for p in reloaded.phones] == ["555-0001", "555-0002"]

    def test_outer_transaction_shared(self, repo):
        """Saves inside one transaction block commit or roll back together."""
        with pytest.raises(RuntimeError):
            with repo.transaction():
                repo.save_entity(Person(name="Ada"))
                repo.save_entity(Person(name="Bo"))
                raise RuntimeError("abort")
        assert repo.get_scalar({"select": "COUNT(*)", "from": "person"}) == 0

    def test_outer_transaction_commits(self, repo):
        """A successful block keeps every save."""
        with repo.transaction():
            repo.save_entity(Person(name="Ada"))
            repo.save_entity(Person(name="Bo"))
        assert repo.get_scalar({"select": "COUNT(*)", "from": "person"}) == 2


class TestCallContext:
    """Test that call contexts stay with their own thread."""

    def test_nested_context_restored(self):
        """Leaving a nested context restores the outer one."""
        with use_context(user_name="inner"):
            assert current_user() == "inner"
        assert current_user() == "tester"

    def test_explicit_context_object(self):
        """A prepared context can be installed as is."""
        ctx = CallContext(user_name="svc", locale="fr")
        with use_context(ctx):
            assert current_context() is ctx

    def test_threads_do_not_share_context(self):
        """Each thread sees only the context it installed."""
        barrier = threading.Barrier(3)
        seen: dict[str, str | None] = {}

        def work(name: str) -> None:
            with use_context(user_name=name):
                barrier.wait(timeout=5)
                seen[name] = current_user()

        threads = [threading.Thread(target=work, args=(n,)) for n in ("alice", "bob", "carol")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        assert seen == {"alice": "alice", "bob": "bob", "carol": "carol"}
        assert current_user() == "tester"

    def test_new_thread_starts_empty(self):
        """Threads without a context get a fresh anonymous one."""
        seen = []

        def work() -> None:
            seen.append(current_user())

        thread = threading.Thread(target=work)
        thread.start()
        thread.join()
        assert seen == [None]

    def test_concurrent_readers_see_own_redaction(self, temp_db_url):
        """Concurrent loads apply the clearance of their own caller."""
        repository = Repository(
            temp_db_url, messages=MessageCatalog({"redacted_text": REDACTED_TEXT})
        )
        try:
            repository.create_tables(Person)
            person_id = repository.save_entity(sample_person()).id
            notes: dict[str, str | None] = {}

            def read(name: str, roles: set[str]) -> None:
                with use_context(user_name=name, roles=roles):
                    notes[name] = repository.get_entity(Person, person_id).notes

            threads = [
                threading.Thread(target=read, args=("rita", {Classification.RESTRICTED})),
                threading.Thread(target=read, args=("sam", {Classification.SECRET})),
            ]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()
        finally:
            repository.close()
        assert notes == {"rita": REDACTED_TEXT, "sam": "secret notes"}


def test_context_values():
    """Context values keep the first setting unless replaced."""
    ctx = current_context()
    ctx.set("batch", 1)
    ctx.set("batch", 2)
    assert ctx.get("batch") == 1
    ctx.set("batch", 3, replace=True)
    assert ctx.get("batch") == 3
    ctx.remove("batch")
    assert ctx.get("batch", "none") == "none"
