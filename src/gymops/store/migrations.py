"""YAML table definitions for the local store and the SQLite DDL built from them.

The schema file is parsed and checked in full before any statement runs, so a
bad definition never leaves a half-applied database behind.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

TYPE_MAP = {
    "uuid": "TEXT",
    "text": "TEXT",
    "number": "REAL",
    "datetime": "TEXT",
    "date": "TEXT",
    "enum": "TEXT",
    "json": "TEXT",
    "bool": "INTEGER",
}


class SchemaError(RuntimeError):
    pass


@dataclass(frozen=True)
class Field:
    name: str
    type: str
    required: bool = False
    unique: bool = False
    choices: tuple[str, ...] = ()
    ref: tuple[str, str] | None = None

    def sql(self, primary_key: str) -> str:
        parts = [self.name, TYPE_MAP[self.type]]
        if self.required:
            parts.append("NOT NULL")
        if self.name == primary_key:
            parts.append("PRIMARY KEY")
        if self.unique:
            parts.append("UNIQUE")
        if self.choices:
            quoted = ", ".join(f"'{value}'" for value in self.choices)
            parts.append(f"CHECK ({self.name} IS NULL OR {self.name} IN ({quoted}))")
        return " ".join(parts)


@dataclass(frozen=True)
class Table:
    name: str
    primary_key: str
    fields: tuple[Field, ...]
    indexes: tuple[tuple[str, ...], ...] = ()

    def statements(self) -> list[str]:
        columns = [field.sql(self.primary_key) for field in self.fields]
        columns.extend(
            f"FOREIGN KEY ({field.name}) REFERENCES {field.ref[0]}({field.ref[1]})"
            for field in self.fields
            if field.ref
        )
        statements = [f"CREATE TABLE IF NOT EXISTS {self.name} ({', '.join(columns)});"]
        for index in self.indexes:
            statements.append(
                f"CREATE INDEX IF NOT EXISTS idx_{self.name}_{'_'.join(index)} "
                f"ON {self.name} ({', '.join(index)});"
            )
        return statements


@dataclass(frozen=True)
class Schema:
    version: int
    enums: dict[str, tuple[str, ...]]
    tables: dict[str, Table]

    def columns(self, table_name: str) -> list[str]:
        table = self.tables.get(table_name)
        if table is None:
            raise SchemaError(f"Unknown table {table_name}.")
        return [field.name for field in table.fields]


def load_schema(schema_path: Path) -> Schema:
    data = yaml.safe_load(Path(schema_path).read_text(encoding="utf-8")) or {}
    raw_enums = data.get("enums", {})
    raw_tables = data.get("tables", {})
    if not isinstance(raw_enums, dict):
        raise SchemaError("Schema enums must be a mapping.")
    if not isinstance(raw_tables, dict):
        raise SchemaError("Schema tables must be a mapping.")

    enums = {name: tuple(str(value) for value in values or []) for name, values in raw_enums.items()}
    tables = {name: _parse_table(name, spec, enums) for name, spec in raw_tables.items()}
    _check_refs(tables)
    return Schema(version=int(data.get("version", 1)), enums=enums, tables=tables)


def apply_schema(conn, schema_path: Path) -> None:
    schema = load_schema(schema_path)
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute(
        "CREATE TABLE IF NOT EXISTS __schema_meta (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)"
    )
    for table in schema.tables.values():
        for statement in table.statements():
            conn.execute(statement)
    conn.execute(
        "INSERT OR REPLACE INTO __schema_meta (version, applied_at) VALUES (?, datetime('now'))",
        (schema.version,),
    )
    conn.commit()


def _parse_table(name: str, spec: Any, enums: dict[str, tuple[str, ...]]) -> Table:
    if not isinstance(spec, dict) or not isinstance(spec.get("fields"), dict):
        raise SchemaError(f"Table {name} fields must be a mapping.")
    fields = tuple(
        _parse_field(field_name, field_spec or {}, enums)
        for field_name, field_spec in spec["fields"].items()
    )
    names = {field.name for field in fields}

    primary_key = spec.get("primary_key", "id")
    if primary_key not in names:
        raise SchemaError(f"Table {name} primary key {primary_key} is not a field.")

    indexes: list[tuple[str, ...]] = []
    for index in spec.get("indexes") or []:
        if not isinstance(index, list) or not index:
            raise SchemaError(f"Table {name} has an empty or malformed index.")
        missing = [column for column in index if column not in names]
        if missing:
            raise SchemaError(f"Index on {name} names unknown fields: {', '.join(missing)}")
        indexes.append(tuple(index))

    return Table(name=name, primary_key=primary_key, fields=fields, indexes=tuple(indexes))


def _parse_field(name: str, spec: dict[str, Any], enums: dict[str, tuple[str, ...]]) -> Field:
    field_type = spec.get("type")
    if field_type not in TYPE_MAP:
        raise SchemaError(f"Unknown field type {field_type} for {name}.")

    choices: tuple[str, ...] = ()
    if field_type == "enum":
        enum_name = spec.get("enum")
        choices = enums.get(enum_name, ()) if enum_name else ()
        if not choices:
            raise SchemaError(f"Enum field {name} references unknown enum {enum_name}.")

    ref = None
    if spec.get("ref"):
        ref_table, _, ref_field = str(spec["ref"]).partition(".")
        if not ref_field:
            raise SchemaError(f"Field {name} ref must look like table.field.")
        ref = (ref_table, ref_field)

    return Field(
        name=name,
        type=field_type,
        required=bool(spec.get("required", False)),
        unique=bool(spec.get("unique", False)),
        choices=choices,
        ref=ref,
    )


def _check_refs(tables: dict[str, Table]) -> None:
    for table in tables.values():
        for field in table.fields:
            if field.ref is None:
                continue
            target = tables.get(field.ref[0])
            if target is None or field.ref[1] not in {f.name for f in target.fields}:
                raise SchemaError(
                    f"{table.name}.{field.name} references unknown field {'.'.join(field.ref)}."
                )
