"""Tests for the record mapper."""

import datetime
import uuid
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

import pytest

from typed_rows.backends.memory import MemoryBackend
from typed_rows.errors import ArgumentError, ConfigurationError, ConversionError, UninitializedTypeError
from typed_rows.mapper import RecordMapper
from typed_rows.registry import MetadataRegistry
from typed_rows.schema import TableBuilder, column, extract_metadata, table
from typed_rows.types import DataType


class Status(Enum):
    ACTIVE = 1
    SUSPENDED = 2


@table("person")
@dataclass
class Person:
    id: int | None = column(DataType.INT, primary_key=True)
    first: str | None = column(DataType.NVARCHAR, max_length=64, name="firstname")
    last: str | None = column(DataType.NVARCHAR, max_length=64, name="lastname")
    age: int | None = column(DataType.INT)
    balance: Decimal | None = column(DataType.DECIMAL, max_length=10, precision=2)
    active: bool | None = column(DataType.BOOLEAN)
    status: Status | None = column(DataType.ENUM, max_length=16)
    token: uuid.UUID | None = column(DataType.GUID)
    created: datetime.datetime | None = column(DataType.DATETIME)
    updated: datetime.datetime | None = column(DataType.DATETIMEOFFSET)


@table("keyonly")
@dataclass
class KeyOnly:
    id: int | None = column(DataType.INT, primary_key=True)


class Legacy:
    """Plain class described with a TableBuilder."""

    id: int | None = None
    title: str | None = None


LEGACY = (
    TableBuilder("legacy")
    .column("id", DataType.INT, primary_key=True)
    .column("title", DataType.VARCHAR, max_length=32)
    .column("ghost", DataType.INT)
    .build()
)

@table("person")
@dataclass
class BornPerson:
    id: int | None = column(DataType.INT, primary_key=True)
    first_name: str | None = column(DataType.NVARCHAR, max_length=64, name="firstname")
    born_on: datetime.datetime | None = column(DataType.DATETIME, name="bornon")


TOKEN = uuid.UUID("0f8fad5b-d9cb-469f-a165-70867728950e")


@pytest.fixture
def mapper():
    """Create a mapper with Person, KeyOnly and Legacy registered."""
    registry = MetadataRegistry()
    registry.register(Person, extract_metadata(Person))
    registry.register(KeyOnly, extract_metadata(KeyOnly))
    registry.register(Legacy, LEGACY)
    return RecordMapper(registry, MemoryBackend())


def make_person():
    return Person(
        id=None,
        first="Ada",
        last="Lovelace",
        age=36,
        balance=Decimal("12.50"),
        active=True,
        status=Status.SUSPENDED,
        token=TOKEN,
        created=datetime.datetime(2024, 1, 2, 3, 4, 5),
        updated=datetime.datetime(2024, 1, 2, 3, 4, 5, tzinfo=datetime.timezone.utc),
    )


class TestToValueMap:
    """Tests for turning objects into value maps."""

    def test_person(self, mapper):
        """Every non-key column is present in storage form."""
        values = mapper.to_value_map(make_person())

        assert values == {
            "firstname": "Ada",
            "lastname": "Lovelace",
            "age": 36,
            "balance": Decimal("12.50"),
            "active": 1,
            "status": 2,
            "token": str(TOKEN),
            "created": "2024-01-02 03:04:05.000000",
            "updated": "2024-01-02 03:04:05.000000+00:00",
        }

    def test_primary_key_excluded(self, mapper):
        """The key column is never written, even when set."""
        person = make_person()
        person.id = 5
        assert "id" not in mapper.to_value_map(person)

    def test_nulls_are_explicit(self, mapper):
        """None properties become explicit None entries."""
        values = mapper.to_value_map(Person(first="Ada"))
        assert values["firstname"] == "Ada"
        assert "age" in values
        assert values["age"] is None

    def test_omit_nulls(self, mapper):
        """Nulls can be left out per call or per mapper."""
        assert mapper.to_value_map(Person(first="Ada"), omit_nulls=True) == {"firstname": "Ada"}

        mapper.omit_nulls = True
        assert mapper.to_value_map(Person(age=3)) == {"age": 3}
        assert "first" not in mapper.to_value_map(Person(age=3), omit_nulls=False)
        assert "firstname" in mapper.to_value_map(Person(age=3), omit_nulls=False)

    def test_unregistered_type(self, mapper):
        """Objects of unknown types cannot be mapped."""

        @dataclass
        class Stranger:
            id: int = 0

        with pytest.raises(UninitializedTypeError):
            mapper.to_value_map(Stranger())

    def test_no_writable_columns(self, mapper):
        """A type with only a key column has nothing to write."""
        with pytest.raises(ConfigurationError):
            mapper.to_value_map(KeyOnly(id=1))

    def test_conversion_error_names_column(self, mapper):
        """Bad values fail with the column in the message."""
        person = make_person()
        person.age = 2**40
        with pytest.raises(ConversionError, match="'age'"):
            mapper.to_value_map(person)


class TestFromRow:
    """Tests for building objects from rows."""

    def test_round_trip(self, mapper):
        """A value map plus key reads back to an equal object."""
        person = make_person()
        row = dict(mapper.to_value_map(person), id=1)

        result = mapper.from_row(row, Person)

        person.id = 1
        assert result == person
        assert result is not person

    def test_guid_from_bytes(self, mapper):
        """GUID columns accept raw bytes from the backend."""
        result = mapper.from_row({"id": 1, "token": TOKEN.bytes_le}, Person)
        assert result.token == TOKEN

    def test_extra_row_keys_ignored(self, mapper):
        """Keys that are not columns are skipped."""
        result = mapper.from_row({"id": 1, "firstname": "Ada", "rowversion": 9}, Person)
        assert result.id == 1
        assert result.first == "Ada"
        assert not hasattr(result, "rowversion")

    def test_missing_row_keys_keep_defaults(self, mapper):
        """Columns absent from the row keep the constructor default."""
        result = mapper.from_row({"id": 1}, Person)
        assert result.first is None

    def test_none_row(self, mapper):
        """A None row maps to None."""
        assert mapper.from_row(None, Person) is None

    def test_column_without_property(self, mapper):
        """A column whose property does not exist is an error."""
        with pytest.raises(ArgumentError, match="ghost"):
            mapper.from_row({"id": 1, "ghost": 3}, Legacy)

    def test_builder_type(self, mapper):
        """Builder-described plain classes map like dataclasses."""
        result = mapper.from_row({"id": "4", "title": "Notes"}, Legacy)
        assert isinstance(result, Legacy)
        assert result.id == 4
        assert result.title == "Notes"

    def test_unregistered_type(self, mapper):
        """Rows cannot be mapped to unknown types."""

        class Stranger:
            pass

        with pytest.raises(UninitializedTypeError):
            mapper.from_row({"id": 1}, Stranger)

    def test_from_rows(self, mapper):
        """Each row becomes an object, in order."""
        rows = [{"id": 1, "age": 10}, {"id": 2, "age": 20}]
        result = mapper.from_rows(rows, Person)
        assert [p.age for p in result] == [10, 20]
        assert mapper.from_rows([], Person) == []
        assert mapper.from_rows(None, Person) == []


class TestPersonScenario:
    """Tests for the minimal person table with a nullable birth date."""

    @pytest.fixture
    def scenario_mapper(self):
        """Create a mapper with only BornPerson registered."""
        registry = MetadataRegistry()
        registry.register(BornPerson, extract_metadata(BornPerson))
        return RecordMapper(registry, MemoryBackend())

    def test_to_value_map(self, scenario_mapper):
        """The key is excluded and the null date is explicit."""
        obj = BornPerson(first_name="Ada", born_on=None)
        assert scenario_mapper.to_value_map(obj) == {"firstname": "Ada", "bornon": None}

    def test_from_row(self, scenario_mapper):
        """A row with a null date reads back with a None property."""
        row = {"id": 1, "firstname": "Ada", "bornon": None}
        assert scenario_mapper.from_row(row, BornPerson) == BornPerson(id=1, first_name="Ada", born_on=None)


class Color(Enum):
    RED = "red"
    BLUE = "blue"


@table("sample")
@dataclass
class Sample:
    id: int | None = column(DataType.LONG, primary_key=True)
    code: str | None = column(DataType.VARCHAR, max_length=8)
    label: str | None = column(DataType.NVARCHAR, max_length=32)
    small: int | None = column(DataType.TINYINT)
    count: int | None = column(DataType.INT)
    big: int | None = column(DataType.LONG)
    flag: bool | None = column(DataType.BOOLEAN)
    status: Status | None = column(DataType.ENUM, max_length=16)
    color: Color | None = column(DataType.ENUM, max_length=16)
    shade: Color | None = column(DataType.NVARCHAR, max_length=16)
    price: Decimal | None = column(DataType.DECIMAL, max_length=8, precision=3)
    ratio: float | None = column(DataType.DOUBLE, max_length=12, precision=6)
    seen: datetime.datetime | None = column(DataType.DATETIME)
    seen_at: datetime.datetime | None = column(DataType.DATETIMEOFFSET)
    payload: bytes | None = column(DataType.BLOB)
    token: uuid.UUID | None = column(DataType.GUID)


SAMPLE_VALUES = [
    ("code", "AB-12"),
    ("label", "Grüße"),
    ("small", 255),
    ("small", 0),
    ("count", -(2**31)),
    ("big", 2**62),
    ("flag", True),
    ("flag", False),
    ("status", Status.SUSPENDED),
    ("color", Color.BLUE),
    ("shade", Color.RED),
    ("price", Decimal("12345.678")),
    ("price", Decimal("0")),
    ("ratio", 0.125),
    ("seen", datetime.datetime(2024, 2, 29, 23, 59, 59, 123456)),
    ("seen_at", datetime.datetime(2024, 1, 2, 3, 4, 5, tzinfo=datetime.timezone(datetime.timedelta(hours=2)))),
    ("payload", b"\x00\x01\xfe\xff"),
    ("token", TOKEN),
]


class TestRoundTripAllTypes:
    """Round trips through a value map for every supported data type."""

    @pytest.fixture
    def sample_mapper(self):
        """Create a mapper with only Sample registered."""
        registry = MetadataRegistry()
        registry.register(Sample, extract_metadata(Sample))
        return RecordMapper(registry, MemoryBackend())

    def test_every_data_type_is_covered(self):
        """Sample declares a column of each data type."""
        metadata = extract_metadata(Sample)
        assert {col.data_type for col in metadata.columns} == set(DataType)
        covered = {name for name, _ in SAMPLE_VALUES}
        assert covered == {col.attribute for col in metadata.columns if not col.primary_key}

    @pytest.mark.parametrize("prop,value", SAMPLE_VALUES)
    def test_round_trip(self, sample_mapper, prop, value):
        """A set value reads back equal and every other column as None."""
        obj = Sample(**{prop: value})
        row = dict(sample_mapper.to_value_map(obj), id=7)

        result = sample_mapper.from_row(row, Sample)

        assert getattr(result, prop) == value
        assert type(getattr(result, prop)) is type(value)
        assert result == Sample(id=7, **{prop: value})

    def test_all_values_together(self, sample_mapper):
        """An object with every column set round trips."""
        obj = Sample(**dict(SAMPLE_VALUES))
        row = dict(sample_mapper.to_value_map(obj), id=1)
        assert sample_mapper.from_row(row, Sample) == Sample(id=1, **dict(SAMPLE_VALUES))

    def test_all_nulls(self, sample_mapper):
        """Nullable columns of every type round trip None."""
        values = sample_mapper.to_value_map(Sample())
        assert set(values) == {name for name, _ in SAMPLE_VALUES}
        assert all(v is None for v in values.values())
        assert sample_mapper.from_row(dict(values, id=1), Sample) == Sample(id=1)

    def test_storage_forms(self, sample_mapper):
        """Enums, booleans and GUIDs take their stored forms."""
        obj = Sample(flag=True, status=Status.ACTIVE, color=Color.BLUE, shade=Color.RED, token=TOKEN)
        values = sample_mapper.to_value_map(obj)
        assert values["flag"] == 1
        assert values["status"] == 1
        assert values["color"] == "BLUE"
        assert values["shade"] == "RED"
        assert values["token"] == str(TOKEN)
