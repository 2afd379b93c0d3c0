"""Tests for saving entity graphs."""

import pytest
from conftest import (
    REDACTED_TEXT,
    Address,
    Department,
    Employee,
    Passport,
    Person,
    Phone,
    Skill,
    Ticket,
    Watcher,
    sample_person,
)

from entitygraph import AccessDeniedError, Classification, use_context


def count(repo, table_name: str) -> int:
    return repo.get_scalar({"select": "COUNT(*)", "from": table_name})


class TestInsertOrdering:
    """Test the order rows are written in."""

    def test_new_graph_order(self, repo, statements):
        """Parent-held children insert first, child-held children after."""
        repo.save_entity(sample_person())
        address = statements.index_of("INSERT INTO address ")
        person = statements.index_of("INSERT INTO person ")
        passport = statements.index_of("INSERT INTO passport ")
        phone = statements.index_of("INSERT INTO phone ")
        skill = statements.index_of("INSERT INTO skill ")
        association = statements.index_of("INSERT INTO person_skill ")
        assert address < person < passport
        assert person < phone
        assert person < skill < association

    def test_generated_ids_propagate(self, repo):
        """Generated keys are copied to the parent and children."""
        person = repo.save_entity(sample_person())
        assert person.id is not None
        assert person.address_id == person.address.id
        assert person.passport.person_id == person.id
        assert all(phone.person_id == person.id for phone in person.phones)

    def test_saved_graph_state(self, repo):
        """After a save every node is loaded with no pending action."""
        person = repo.save_entity(sample_person())
        for entity in (person, person.address, person.passport, *person.phones):
            assert entity.is_loaded
            assert entity.entity_action is None
            assert not entity.is_modified()
        assert person.row_version == 1
        assert person.address.row_version == 1

    def test_read_only_code_child_untouched(self, repo, statements):
        """Code children are never written."""
        repo.save_entity(sample_person())
        assert not any("gender_type" in s for s in statements.writes)


class TestUpdates:
    """Test updates of loaded graphs."""

    def test_no_op_save_writes_nothing(self, repo, saved_person, statements):
        """Saving an unchanged graph issues no writes."""
        result = repo.save_entity(saved_person)
        assert result is saved_person
        assert statements.writes == []

    def test_second_save_writes_nothing(self, repo, statements):
        """Saving the same object twice writes only the first time."""
        person = repo.save_entity(sample_person())
        statements.clear()
        repo.save_entity(person)
        assert statements.writes == []

    def test_update_changed_columns(self, repo, saved_person, statements):
        """Changed entities are updated and their version moves on."""
        saved_person.name = "Ada Lovelace"
        saved_person.phones[0].number = "555-9999"
        repo.save_entity(saved_person)
        assert len(statements.writes) == 2
        assert saved_person.row_version == 2
        assert saved_person.phones[0].row_version == 2
        reloaded = repo.get_entity(Person, saved_person.id)
        assert reloaded.name == "Ada Lovelace"
        assert reloaded.row_version == 2
        assert [p.number for p in reloaded.phones] == ["555-0002", "555-9999"]

    def test_add_child_to_loaded_parent(self, repo, saved_person):
        """New children of a loaded parent are inserted with its id."""
        saved_person.phones.append(Phone(number="555-0003"))
        repo.save_entity(saved_person)
        assert saved_person.phones[-1].person_id == saved_person.id
        assert count(repo, "phone") == 3

    def test_replace_one_to_one_child(self, repo, saved_person):
        """A new parent-held child updates the parent's key."""
        old_address_id = saved_person.address_id
        saved_person.address = Address(street="2 High St", city="Leeds")
        repo.save_entity(saved_person)
        assert saved_person.address_id != old_address_id
        reloaded = repo.get_entity(Person, saved_person.id)
        assert reloaded.address.street == "2 High St"
        assert reloaded.change_user == "tester"

    def test_remove_parent_held_child(self, repo, saved_person, statements):
        """Deleting a parent-held child clears the key before the child row goes."""
        saved_person.address.mark_for_delete()
        repo.save_entity(saved_person)
        update = statements.index_of("UPDATE person ")
        delete = statements.index_of("DELETE FROM address ")
        assert update < delete
        assert saved_person.address is None
        assert saved_person.address_id is None
        assert count(repo, "address") == 0

    def test_delete_child_from_list(self, repo, saved_person):
        """Deleted children are removed from the list and storage."""
        saved_person.phones[0].mark_for_delete()
        repo.save_entity(saved_person)
        assert [p.number for p in saved_person.phones] == ["555-0002"]
        assert count(repo, "phone") == 1

    def test_id_copied_over_is_refreshed(self, repo, saved_person):
        """A loaded entity whose id changed is refreshed from storage first."""
        other = repo.save_entity(Person(name="Bo"))
        saved_person.id = other.id
        repo.save_entity(saved_person)
        assert saved_person.name == "Bo"


class TestDelete:
    """Test deleting graphs."""

    def test_cascade_delete(self, repo, saved_person, statements):
        """Cascading children are deleted around the parent row."""
        saved_person.mark_for_delete()
        result = repo.save_entity(saved_person)
        assert result is None
        assert saved_person.is_removed

        person = statements.index_of("DELETE FROM person ")
        assert statements.index_of("DELETE FROM phone ") < person
        assert statements.index_of("DELETE FROM passport ") < person
        assert statements.index_of("DELETE FROM person_skill ") < person
        assert person < statements.index_of("DELETE FROM address ")

        for table_name in ("person", "phone", "passport", "address", "person_skill"):
            assert count(repo, table_name) == 0
        assert count(repo, "skill") == 1

    def test_delete_by_other_user(self, repo, saved_person, statements):
        """A row changed by another user is stamped before it is deleted."""
        with use_context(user_name="bob"):
            person = repo.get_entity(Person, saved_person.id)
            person.mark_for_delete()
            assert repo.save_entity(person) is None
        assert statements.index_of("UPDATE person ") < statements.index_of("DELETE FROM person ")
        assert count(repo, "person") == 0

    def test_read_only_list_not_written(self, repo):
        """Read-only lists are neither inserted nor cascaded."""
        department = repo.save_entity(Department(name="R&D"))
        repo.bulk_update(
            "INSERT INTO employee (id, department_id, name) VALUES (1, :dept, 'Eve')",
            {"dept": department.id},
        )
        department = repo.get_entity(Department, department.id)
        department.employees.append(Employee(name="Mallory"))
        repo.save_entity(department)
        assert count(repo, "employee") == 1

        department.mark_for_delete()
        repo.save_entity(department)
        assert count(repo, "department") == 0
        assert count(repo, "employee") == 1

    def test_disassociate_from_read_only_list(self, repo):
        """Disassociating clears the parent key even on read-only lists."""
        department = repo.save_entity(Department(name="R&D"))
        repo.bulk_update(
            "INSERT INTO employee (id, department_id, name) VALUES (1, :dept, 'Eve')",
            {"dept": department.id},
        )
        department = repo.get_entity(Department, department.id)
        department.employees[0].mark_for_disassociate()
        repo.save_entity(department)
        assert department.employees == []
        assert repo.get_scalar({"select": "department_id", "from": "employee"}) is None
        assert count(repo, "employee") == 1


class TestSecurityOnSave:
    """Test redaction and classification rules when writing."""

    def test_redacted_values_not_written(self, repo, saved_person):
        """Placeholders shown to uncleared callers never overwrite stored values."""
        with use_context(user_name="rita", roles={Classification.RESTRICTED}):
            person = repo.get_entity(Person, saved_person.id)
            assert person.notes == REDACTED_TEXT
            person.name = "Ada King"
            repo.save_entity(person)

        reloaded = repo.get_entity(Person, saved_person.id)
        assert reloaded.name == "Ada King"
        assert reloaded.notes == "secret notes"
        assert reloaded.passport.number == "P123"
        assert reloaded.change_user == "rita"

    def test_classification_change_denied(self, repo):
        """Setting a classification without the change role fails the whole save."""
        person = sample_person()
        person.classification_code = Classification.CONFIDENTIAL
        with use_context(user_name="rita", roles={Classification.SECRET}):
            with pytest.raises(AccessDeniedError):
                repo.save_entity(person)
        assert count(repo, "address") == 0
        assert count(repo, "person") == 0

    def test_classification_change_allowed(self, repo, saved_person):
        """The change role allows reclassifying a row."""
        with use_context(user_name="sec", roles={"ChangeSecClass", Classification.SECRET}):
            person = repo.get_entity(Person, saved_person.id)
            person.classification_code = Classification.SECRET
            repo.save_entity(person)
        with use_context(user_name="rita", roles={Classification.RESTRICTED}):
            assert repo.get_entity(Person, saved_person.id) is None


class TestExternalSave:
    """Test saving children owned by delegates."""

    def test_external_children_saved_by_delegate(self, repo, watcher_service):
        """External children go to the delegate with the parent key set."""
        ticket = Ticket(title="Broken build", watchers=[Watcher(id=7, name="dev")])
        saved = repo.save_entity(ticket)
        assert watcher_service.saved == [saved.watchers[0]]
        assert saved.watchers[0].ticket_id == saved.id
        assert count(repo, "ticket") == 1


def test_save_none(repo):
    """Saving nothing returns nothing."""
    assert repo.save_entity(None) is None


def test_save_passport_directly(repo, saved_person):
    """Children can be saved on their own."""
    passport = repo.get_entity(Passport, saved_person.passport.id)
    passport.number = "P999"
    repo.save_entity(passport)
    assert repo.get_entity(Person, saved_person.id).passport.number == "P999"


def test_skill_update(repo):
    """Versioned entities without children update in place."""
    skill = repo.save_entity(Skill(name="art"))
    skill.name = "music"
    repo.save_entity(skill)
    assert skill.row_version == 2
    assert repo.get_entity(Skill, skill.id).name == "music"
