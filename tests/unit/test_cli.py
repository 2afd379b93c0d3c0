"""CLI command tests for entitygraph."""

import json
import textwrap

import pytest
from conftest import Person, sample_person
from typer.testing import CliRunner

from entitygraph import Repository
from entitygraph.cli.main import app
from entitygraph.cli.parsing import load_entity_type, parse_param, parse_params

runner = CliRunner()

SHOP_MODULE = '''
from typing import Annotated

from pydantic import Field

from entitygraph import ChildList, Column, Entity, table


@table("product_line")
class Line(Entity):
    id: Annotated[int | None, Column(id=True)] = None
    product_id: Annotated[int | None, Column()] = None


@table("product")
class Product(Entity):
    id: Annotated[int | None, Column(id=True)] = None
    name: Annotated[str | None, Column()] = None
    lines: Annotated[list[Line], ChildList(parent_id_field="product_id")] = Field(
        default_factory=list
    )


class Draft(Entity):
    id: Annotated[int | None, Column(id=True)] = None
'''

BROKEN_MODULE = '''
from typing import Annotated

from entitygraph import Child, Column, Entity, table


@table("part")
class Part(Entity):
    id: Annotated[int | None, Column(id=True)] = None


@table("machine")
class Machine(Entity):
    id: Annotated[int | None, Column(id=True)] = None
    part: Annotated[Part | None, Child(child_id_field="part_id")] = None
'''


def write_module(tmp_path, monkeypatch, name: str, source: str) -> str:
    (tmp_path / f"{name}.py").write_text(textwrap.dedent(source))
    monkeypatch.syspath_prepend(str(tmp_path))
    return name


@pytest.fixture
def people_db(temp_db_url: str) -> str:
    """A database file holding one saved sample person."""
    repository = Repository(temp_db_url)
    try:
        repository.create_tables(Person)
        repository.save_entity(sample_person())
    finally:
        repository.close()
    return temp_db_url


class TestVersionCommand:
    """Test the version command."""

    def test_version_output(self) -> None:
        """Test that version command shows version info."""
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "entitygraph v" in result.stdout


class TestDescribeCommand:
    """Test the describe command."""

    def test_describe_json(self) -> None:
        """Metadata is printed as JSON."""
        result = runner.invoke(app, ["--json", "describe", "conftest:Person"])
        assert result.exit_code == 0, result.stdout
        data = json.loads(result.stdout)
        assert data["entity"] == "Person"
        assert data["table"] == "person"
        assert data["sort"] == "name"
        columns = {c["field"]: c for c in data["columns"]}
        assert columns["row_version"]["version"] is True
        assert columns["notes"]["redact"] == "04SEC_Secret"
        children = {c["field"]: c["kind"] for c in data["children"]}
        assert children["skills"] == "many_to_many"
        assert children["phones"] == "one_to_many"

    def test_describe_table(self) -> None:
        """Metadata is printed as tables."""
        result = runner.invoke(app, ["describe", "conftest:Person"])
        assert result.exit_code == 0
        assert "Entity:" in result.stdout
        assert "Person" in result.stdout
        assert "phones" in result.stdout

    def test_describe_missing_class(self) -> None:
        """Unknown classes exit with an error."""
        result = runner.invoke(app, ["--json", "describe", "conftest:Nope"])
        assert result.exit_code == 1
        assert "no attribute 'Nope'" in json.loads(result.stdout)["error"]

    def test_describe_not_an_entity(self) -> None:
        """Classes that are not entities are rejected."""
        result = runner.invoke(app, ["--json", "describe", "conftest:WatcherService"])
        assert result.exit_code == 1
        assert "not an entity class" in json.loads(result.stdout)["error"]

    def test_describe_bad_target(self) -> None:
        """Targets need a module and a class name."""
        result = runner.invoke(app, ["describe", "conftest"])
        assert result.exit_code == 1


class TestCheckCommand:
    """Test the check command."""

    def test_check_valid_module(self) -> None:
        """A module of valid declarations passes."""
        result = runner.invoke(app, ["--json", "check", "conftest"])
        assert result.exit_code == 0, result.stdout
        data = json.loads(result.stdout)
        entities = {row["entity"]: row for row in data}
        assert entities["Person"]["status"] == "ok"
        assert entities["Person"]["table"] == "person"
        assert all(row["status"] == "ok" for row in data)

    def test_check_broken_module(self, tmp_path, monkeypatch) -> None:
        """Misconfigured classes are reported and fail the command."""
        module = write_module(tmp_path, monkeypatch, "broken_entities", BROKEN_MODULE)
        result = runner.invoke(app, ["--json", "check", module])
        assert result.exit_code == 1
        rows = {row["entity"]: row for row in json.loads(result.stdout)}
        assert rows["Part"]["status"] == "ok"
        assert rows["Machine"]["status"] == "error"
        assert "child_id_field 'part_id'" in rows["Machine"]["detail"]

    def test_check_missing_module(self) -> None:
        """Unimportable modules exit with an error."""
        result = runner.invoke(app, ["check", "no_such_entities_module"])
        assert result.exit_code == 1


class TestInitCommand:
    """Test the init command."""

    def test_init_creates_tables(self, tmp_path, monkeypatch, temp_db_url) -> None:
        """Tables are created for declared entities and their children."""
        module = write_module(tmp_path, monkeypatch, "shop_entities", SHOP_MODULE)
        result = runner.invoke(app, ["-d", temp_db_url, "--json", "init", module])
        assert result.exit_code == 0, result.stdout
        data = json.loads(result.stdout)
        assert data["success"] is True
        assert sorted(data["tables"]) == ["product", "product_line"]

        repository = Repository(temp_db_url)
        try:
            assert repository.get_scalar({"select": "COUNT(*)", "from": "product_line"}) == 0
        finally:
            repository.close()

    def test_init_missing_module(self, temp_db_url) -> None:
        """Unimportable modules exit with an error."""
        result = runner.invoke(app, ["-d", temp_db_url, "init", "no_such_entities_module"])
        assert result.exit_code == 1


class TestQueryCommand:
    """Test the query command."""

    def test_query_rows_json(self, people_db: str) -> None:
        """Rows are printed as JSON objects with bound parameters."""
        result = runner.invoke(
            app,
            [
                "-d",
                people_db,
                "--json",
                "query",
                "SELECT name FROM person WHERE name = :name",
                "-p",
                "name=Ada",
            ],
        )
        assert result.exit_code == 0, result.stdout
        assert json.loads(result.stdout) == [{"name": "Ada"}]

    def test_query_numeric_param(self, people_db: str) -> None:
        """Numeric parameters keep their type."""
        result = runner.invoke(
            app,
            ["-d", people_db, "--json", "query", "SELECT :n + 1 AS total", "-p", "n=41"],
        )
        assert result.exit_code == 0, result.stdout
        assert json.loads(result.stdout) == [{"total": 42}]

    def test_query_as_entities(self, people_db: str) -> None:
        """Rows can be mapped to entity graphs."""
        result = runner.invoke(
            app,
            ["-d", people_db, "--json", "query", "SELECT * FROM person", "-e", "conftest:Person"],
        )
        assert result.exit_code == 0, result.stdout
        data = json.loads(result.stdout)
        assert data[0]["name"] == "Ada"
        assert [p["number"] for p in data[0]["phones"]] == ["555-0001", "555-0002"]

    def test_query_table_output(self, people_db: str) -> None:
        """Rows are printed as a table by default."""
        result = runner.invoke(app, ["-d", people_db, "query", "SELECT name FROM person"])
        assert result.exit_code == 0
        assert "Ada" in result.stdout

    def test_query_no_results(self, people_db: str) -> None:
        """Empty results are reported."""
        result = runner.invoke(
            app, ["-d", people_db, "query", "SELECT name FROM person WHERE 1 = 0"]
        )
        assert result.exit_code == 0
        assert "no results" in result.stdout

    def test_query_error(self, people_db: str) -> None:
        """SQL errors exit with the error details."""
        result = runner.invoke(app, ["-d", people_db, "--json", "query", "SELECT * FROM nowhere"])
        assert result.exit_code == 1
        assert json.loads(result.stdout)["error"] == "QueryError"

    def test_query_bad_param(self, people_db: str) -> None:
        """Parameters need a name and a value."""
        result = runner.invoke(app, ["-d", people_db, "query", "SELECT 1", "-p", "oops"])
        assert result.exit_code == 1


class TestParsing:
    """Test CLI input parsing helpers."""

    def test_parse_param_types(self) -> None:
        """Values are read as JSON, falling back to text."""
        assert parse_param("id=5") == ("id", 5)
        assert parse_param("flag=true") == ("flag", True)
        assert parse_param("name=Ada") == ("name", "Ada")
        assert parse_param("expr=a=b") == ("expr", "a=b")

    def test_parse_param_errors(self) -> None:
        """Malformed parameters are rejected."""
        with pytest.raises(ValueError, match="Expected format"):
            parse_param("novalue")
        with pytest.raises(ValueError, match="Name is empty"):
            parse_param("=5")

    def test_parse_params(self) -> None:
        """Repeated parameters become one mapping."""
        assert parse_params(["a=1", "b=x"]) == {"a": 1, "b": "x"}
        assert parse_params(None) == {}

    def test_load_entity_type(self) -> None:
        """Targets resolve to entity classes."""
        assert load_entity_type("conftest:Person") is Person
        with pytest.raises(ValueError, match="Expected format"):
            load_entity_type("conftest:")
