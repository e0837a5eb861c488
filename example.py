"""Example usage of the typed_rows library."""

from dataclasses import dataclass
from decimal import Decimal

from typed_rows import (
    ORM,
    DataType,
    Expression,
    MemoryBackend,
    Operator,
    OrderDirection,
    ResultOrder,
    column,
    parse_filter,
    table,
)
from typed_rows.logging_config import configure_logging


# Declare a mapped type with table and column tags
@table("person")
@dataclass
class Person:
    id: int | None = column(DataType.INT, primary_key=True)
    name: str | None = column(DataType.NVARCHAR, max_length=64)
    age: int | None = column(DataType.INT)
    active: bool | None = column(DataType.BOOLEAN)
    balance: Decimal | None = column(DataType.DECIMAL, max_length=10, precision=2)


configure_logging("INFO")

with ORM(MemoryBackend()) as orm:
    orm.register_type(Person)

    people = [
        Person(name="Alice", age=30, active=True, balance=Decimal("12.50")),
        Person(name="Bob", age=25, active=False, balance=Decimal("3.00")),
        Person(name="Charlie", age=35, active=True),
        Person(name="Diana", age=28, active=True, balance=Decimal("40.25")),
        Person(name="Eve", age=22, active=False),
    ]

    print("Inserting people...")
    for person in orm.insert_many(people):
        print(f"  Stored: {person}")

    # Build a filter in code
    over_25 = Expression("age", Operator.GREATER_THAN, 25)
    print("\nOlder than 25, oldest first:")
    for person in orm.select_many(Person, over_25, ResultOrder("age", OrderDirection.DESCENDING)):
        print(f"  {person.name}, age {person.age}")

    # Or parse one from text
    active_filter = parse_filter('active = true and name startswith "D"')
    print(f"\nParsed filter: {active_filter}")
    print(f"  Matches: {[p.name for p in orm.select_many(Person, active_filter)]}")

    print(f"\nTotal balance: {orm.sum(Person, 'balance')}")
    print(f"Active people: {orm.count(Person, Expression('active', Operator.EQUALS, True))}")
