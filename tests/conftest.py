"""Shared test fixtures and the sample entity model for entitygraph."""

from __future__ import annotations

import os
from collections.abc import Generator
from typing import Annotated, Any

import pytest
from pydantic import Field
from sqlalchemy import event

from entitygraph import (
    Child,
    ChildList,
    Classification,
    CodeEntity,
    Column,
    Entity,
    External,
    MessageCatalog,
    Redact,
    Repository,
    VersionedEntity,
    table,
    use_context,
)

REDACTED_TEXT = "** redacted **"
TEST_USER = "tester"


# === Sample entity model ===


@table("gender_type")
class Gender(CodeEntity):
    pass


@table("country", cacheable=True, sort="name")
class Country(Entity):
    code: Annotated[str | None, Column(id=True)] = None
    name: Annotated[str | None, Column()] = None


@table("address")
class Address(VersionedEntity):
    id: Annotated[int | None, Column(id=True)] = None
    street: Annotated[str | None, Column()] = None
    city: Annotated[str | None, Column()] = None


@table("phone", sort="number")
class Phone(VersionedEntity):
    id: Annotated[int | None, Column(id=True)] = None
    person_id: Annotated[int | None, Column()] = None
    number: Annotated[str | None, Column()] = None


@table("passport")
class Passport(Entity):
    id: Annotated[int | None, Column(id=True)] = None
    person_id: Annotated[int | None, Column()] = None
    number: Annotated[str | None, Column("passport_number")] = None


@table("skill", sort="name")
class Skill(VersionedEntity):
    id: Annotated[int | None, Column(id=True)] = None
    name: Annotated[str | None, Column()] = None


@table("person_skill")
class PersonSkill(VersionedEntity):
    person_id: Annotated[int | None, Column(id=True)] = None
    skill_id: Annotated[int | None, Column(id=True)] = None


@table("person", sort="name")
class Person(VersionedEntity):
    id: Annotated[int | None, Column(id=True)] = None
    name: Annotated[str | None, Column()] = None
    notes: Annotated[
        str | None, Column(), Redact(Classification.SECRET, message_code="redacted_text")
    ] = None
    classification_code: Annotated[str | None, Column()] = None
    redact_code: Annotated[str | None, Column()] = None
    gender_code: Annotated[str | None, Column()] = None
    address_id: Annotated[int | None, Column()] = None

    gender: Annotated[Gender | None, Child(child_id_field="gender_code", read_only=True)] = None
    address: Annotated[
        Address | None, Child(child_id_field="address_id", cascade_delete=True)
    ] = None
    passport: Annotated[
        Passport | None,
        Child(insert_before_parent=False, parent_id_field="person_id", cascade_delete=True),
        Redact(Classification.CONFIDENTIAL),
    ] = None
    phones: Annotated[
        list[Phone], ChildList(parent_id_field="person_id", cascade_delete=True)
    ] = Field(default_factory=list)
    skills: Annotated[
        list[Skill],
        ChildList(parent_id_field="person_id", child_id_field="skill_id", association=PersonSkill),
    ] = Field(default_factory=list)


@table("employee", sort="name")
class Employee(Entity):
    id: Annotated[int | None, Column(id=True)] = None
    department_id: Annotated[int | None, Column()] = None
    name: Annotated[str | None, Column()] = None


@table("department")
class Department(Entity):
    id: Annotated[int | None, Column(id=True)] = None
    name: Annotated[str | None, Column()] = None
    employees: Annotated[
        list[Employee],
        ChildList(parent_id_field="department_id", read_only=True, cascade_delete=True),
    ] = Field(default_factory=list)


class Watcher(Entity):
    id: Annotated[int | None, Column(id=True)] = None
    ticket_id: Annotated[int | None, Column()] = None
    name: Annotated[str | None, Column()] = None


@table("ticket")
class Ticket(Entity):
    id: Annotated[int | None, Column(id=True)] = None
    title: Annotated[str | None, Column()] = None
    watchers: Annotated[
        list[Watcher],
        ChildList(parent_id_field="ticket_id"),
        External("watchers", load_method="load_watchers", save_method="save_watcher"),
    ] = Field(default_factory=list)


class WatcherService:
    """In-memory delegate owning ticket watchers."""

    def __init__(self) -> None:
        self.loaded_for: list[Any] = []
        self.saved: list[Watcher] = []

    def load_watchers(self, ticket_id: Any) -> list[Watcher]:
        self.loaded_for.append(ticket_id)
        return [Watcher(id=1, ticket_id=ticket_id, name="ops")]

    def save_watcher(self, watcher: Watcher) -> Watcher:
        self.saved.append(watcher)
        return watcher


def sample_person(name: str = "Ada") -> Person:
    """An unsaved person with one of every kind of child."""
    return Person(
        name=name,
        notes="secret notes",
        gender_code="F",
        address=Address(street="1 Main St", city="London"),
        passport=Passport(number="P123"),
        phones=[Phone(number="555-0001"), Phone(number="555-0002")],
        skills=[Skill(name="math")],
    )


# === Statement recording ===


class StatementLog:
    """Records SQL sent to the database through cursor events."""

    WRITE_PREFIXES = ("INSERT", "UPDATE", "DELETE")

    def __init__(self) -> None:
        self.statements: list[str] = []

    def __call__(
        self,
        conn: Any,
        cursor: Any,
        statement: str,
        parameters: Any,
        context: Any,
        executemany: bool,
    ) -> None:
        self.statements.append(" ".join(statement.split()))

    def clear(self) -> None:
        self.statements.clear()

    @property
    def writes(self) -> list[str]:
        return [s for s in self.statements if s.upper().startswith(self.WRITE_PREFIXES)]

    @property
    def selects(self) -> list[str]:
        return [s for s in self.statements if s.upper().startswith("SELECT")]

    def index_of(self, prefix: str) -> int:
        """Position of the first statement starting with ``prefix``."""
        for index, statement in enumerate(self.statements):
            if statement.startswith(prefix):
                return index
        raise AssertionError(f"No statement starting with {prefix!r} in {self.statements}")


# === Fixtures ===


@pytest.fixture(autouse=True)
def call_context() -> Generator[Any, None, None]:
    """Run every test in its own call context as the test user."""
    with use_context(user_name=TEST_USER) as ctx:
        yield ctx


@pytest.fixture
def watcher_service() -> WatcherService:
    return WatcherService()


@pytest.fixture
def repo(watcher_service: WatcherService) -> Generator[Repository, None, None]:
    """Repository over an in-memory SQLite database with the sample tables."""
    repository = Repository(
        "sqlite:///:memory:",
        messages=MessageCatalog({"redacted_text": REDACTED_TEXT}),
    )
    repository.delegates.register("watchers", watcher_service)
    repository.create_tables(Person, Gender, Country, Department, Ticket)
    repository.bulk_update(
        "INSERT INTO gender_type (code, display_value, description, status) VALUES "
        "('F', 'Female#fr:Femme', 'Female#fr:Femme', 'A'), "
        "('M', 'Male#fr:Homme', 'Male#fr:Homme', 'A')"
    )
    yield repository
    repository.close()


@pytest.fixture
def statements(repo: Repository) -> Generator[StatementLog, None, None]:
    """Statement log attached to the repository's engine."""
    log = StatementLog()
    engine = repo.connection.engine
    event.listen(engine, "before_cursor_execute", log)
    yield log
    event.remove(engine, "before_cursor_execute", log)


@pytest.fixture
def saved_person(repo: Repository) -> Person:
    """A sample person graph saved and reloaded from storage."""
    person = repo.save_entity(sample_person())
    assert person is not None
    loaded = repo.get_entity(Person, person.id)
    assert loaded is not None
    return loaded


@pytest.fixture
def temp_db_url(tmp_path: Any) -> str:
    """SQLite database file URL for tests that need several connections."""
    return f"sqlite:///{os.path.join(str(tmp_path), 'entitygraph.db')}"
