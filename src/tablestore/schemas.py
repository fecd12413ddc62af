"""
Column type and schema definitions for tablestore tables.

A table schema is an ordered sequence of ``Field`` definitions. Each field
maps to a PyArrow field for the Parquet data files, and to a JSON type tree
stored in the table's metadata log action.
"""

import json
from dataclasses import dataclass, field as dataclass_field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple, Union

import pyarrow as pa

from tablestore.errors import SchemaDefinitionError, SchemaMismatchError


# Arrow field metadata key holding the JSON type tree of a column
TYPE_METADATA_KEY = b"tablestore.type"

PRIMITIVE_ARROW_TYPES = {
    "string": pa.string(),
    "long": pa.int64(),
    "integer": pa.int32(),
    "double": pa.float64(),
    "float": pa.float32(),
    "boolean": pa.bool_(),
    "timestamp": pa.timestamp("ms"),
    "date": pa.date32(),
    "binary": pa.binary(),
    # Arbitrary JSON values, stored as serialized strings
    "dynamic": pa.string(),
}

# Declared type names accepted by create_table, mapped to canonical kinds
TYPE_ALIASES = {
    "string": "string",
    "str": "string",
    "long": "long",
    "bigint": "long",
    "int": "integer",
    "integer": "integer",
    "double": "double",
    "float": "float",
    "boolean": "boolean",
    "bool": "boolean",
    "timestamp": "timestamp",
    "date": "date",
    "binary": "binary",
    "decimal": "decimal",
    "dynamic": "dynamic",
    "array": "array",
    "list": "array",
    "struct": "struct",
    "map": "map",
}

DEFAULT_DECIMAL_PRECISION = 10
DEFAULT_DECIMAL_SCALE = 0


@dataclass(frozen=True)
class ColumnType:
    """
    Logical column type.

    ``kind`` is a primitive kind (see PRIMITIVE_ARROW_TYPES), "decimal", or one
    of the composite kinds "array", "struct" and "map".
    """

    kind: str
    element: Optional["ColumnType"] = None
    fields: Tuple["Field", ...] = ()
    key: Optional["ColumnType"] = None
    value: Optional["ColumnType"] = None
    precision: int = DEFAULT_DECIMAL_PRECISION
    scale: int = DEFAULT_DECIMAL_SCALE

    @property
    def is_primitive(self) -> bool:
        return self.kind in PRIMITIVE_ARROW_TYPES or self.kind == "decimal"

    def to_arrow(self) -> pa.DataType:
        """Convert to the PyArrow type used in data files."""
        if self.kind in PRIMITIVE_ARROW_TYPES:
            return PRIMITIVE_ARROW_TYPES[self.kind]
        if self.kind == "decimal":
            return pa.decimal128(self.precision, self.scale)
        if self.kind == "array":
            return pa.list_(pa.field("element", self.element.to_arrow(), nullable=True))
        if self.kind == "struct":
            return pa.struct([f.to_arrow() for f in self.fields])
        if self.kind == "map":
            return pa.map_(self.key.to_arrow(), self.value.to_arrow())
        raise SchemaDefinitionError(f"Unknown column kind: {self.kind}")

    def to_json(self) -> Union[str, Dict[str, Any]]:
        """
        Convert to a JSON-serializable type tree.

        Primitive kinds serialize to their name; composite kinds to an object.

        Example:
            >>> array_of(STRING).to_json()
            {'type': 'array', 'elementType': 'string', 'containsNull': True}
        """
        if self.kind == "decimal":
            return f"decimal({self.precision},{self.scale})"
        if self.kind in PRIMITIVE_ARROW_TYPES:
            return self.kind
        if self.kind == "array":
            return {"type": "array", "elementType": self.element.to_json(), "containsNull": True}
        if self.kind == "struct":
            return {"type": "struct", "fields": [f.to_json() for f in self.fields]}
        if self.kind == "map":
            return {
                "type": "map",
                "keyType": self.key.to_json(),
                "valueType": self.value.to_json(),
                "valueContainsNull": True,
            }
        raise SchemaDefinitionError(f"Unknown column kind: {self.kind}")

    @classmethod
    def from_json(cls, data: Union[str, Dict[str, Any]]) -> "ColumnType":
        """Parse a type tree produced by ``to_json``."""
        if isinstance(data, str):
            if data.startswith("decimal(") and data.endswith(")"):
                try:
                    precision, scale = (int(p) for p in data[len("decimal("):-1].split(","))
                except ValueError as e:
                    raise SchemaDefinitionError(f"Invalid decimal type: {data}") from e
                return decimal_of(precision, scale)
            if data not in PRIMITIVE_ARROW_TYPES:
                raise SchemaDefinitionError(f"Unknown primitive type: {data}")
            return cls(data)

        if not isinstance(data, dict) or "type" not in data:
            raise SchemaDefinitionError(f"Invalid type definition: {data!r}")

        kind = data["type"]
        if kind == "array":
            return array_of(cls.from_json(data["elementType"]))
        if kind == "struct":
            return struct_of(Field.from_json(f) for f in data.get("fields", []))
        if kind == "map":
            return map_of(cls.from_json(data["keyType"]), cls.from_json(data["valueType"]))
        raise SchemaDefinitionError(f"Unknown composite type: {kind}")

    @classmethod
    def from_arrow(cls, arrow_type: pa.DataType) -> "ColumnType":
        """
        Derive a column type from a PyArrow type.

        Used for data files that carry no tablestore type metadata.
        """
        if pa.types.is_string(arrow_type) or pa.types.is_large_string(arrow_type):
            return STRING
        if pa.types.is_boolean(arrow_type):
            return BOOLEAN
        if pa.types.is_int64(arrow_type) or pa.types.is_uint32(arrow_type) or pa.types.is_uint64(arrow_type):
            return LONG
        if pa.types.is_integer(arrow_type):
            return INTEGER
        if pa.types.is_float32(arrow_type) or pa.types.is_float16(arrow_type):
            return FLOAT
        if pa.types.is_float64(arrow_type):
            return DOUBLE
        if pa.types.is_timestamp(arrow_type):
            return TIMESTAMP
        if pa.types.is_date(arrow_type):
            return DATE
        if pa.types.is_binary(arrow_type) or pa.types.is_large_binary(arrow_type):
            return BINARY
        if pa.types.is_decimal(arrow_type):
            return decimal_of(arrow_type.precision, arrow_type.scale)
        if pa.types.is_map(arrow_type):
            return map_of(cls.from_arrow(arrow_type.key_type), cls.from_arrow(arrow_type.item_type))
        if pa.types.is_list(arrow_type) or pa.types.is_large_list(arrow_type):
            return array_of(cls.from_arrow(arrow_type.value_type))
        if pa.types.is_struct(arrow_type):
            return struct_of(
                Field(arrow_type.field(i).name, cls.from_arrow(arrow_type.field(i).type))
                for i in range(arrow_type.num_fields)
            )
        raise SchemaDefinitionError(f"Unsupported Arrow type: {arrow_type}")

    def __str__(self) -> str:
        if self.kind == "decimal":
            return f"decimal({self.precision},{self.scale})"
        if self.kind == "array":
            return f"array<{self.element}>"
        if self.kind == "struct":
            return "struct<" + ",".join(f"{f.name}:{f.type}" for f in self.fields) + ">"
        if self.kind == "map":
            return f"map<{self.key},{self.value}>"
        return self.kind


@dataclass(frozen=True)
class Field:
    """A named, typed column definition."""

    name: str
    type: ColumnType
    nullable: bool = True
    metadata: Dict[str, Any] = dataclass_field(default_factory=dict, compare=False, hash=False)

    def to_arrow(self) -> pa.Field:
        return pa.field(
            self.name,
            self.type.to_arrow(),
            nullable=self.nullable,
            metadata={TYPE_METADATA_KEY: json.dumps(self.type.to_json())},
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type.to_json(),
            "nullable": self.nullable,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Field":
        try:
            return cls(
                name=data["name"],
                type=ColumnType.from_json(data["type"]),
                nullable=data.get("nullable", True),
                metadata=data.get("metadata") or {},
            )
        except KeyError as e:
            raise SchemaDefinitionError(f"Field definition missing key {e}: {data!r}") from e

    @classmethod
    def from_arrow(cls, arrow_field: pa.Field) -> "Field":
        """
        Build a field from a PyArrow field, preferring the stored type metadata.
        """
        metadata = arrow_field.metadata or {}
        if TYPE_METADATA_KEY in metadata:
            column_type = ColumnType.from_json(json.loads(metadata[TYPE_METADATA_KEY]))
        else:
            column_type = ColumnType.from_arrow(arrow_field.type)
        return cls(arrow_field.name, column_type, arrow_field.nullable)


STRING = ColumnType("string")
LONG = ColumnType("long")
INTEGER = ColumnType("integer")
DOUBLE = ColumnType("double")
FLOAT = ColumnType("float")
BOOLEAN = ColumnType("boolean")
TIMESTAMP = ColumnType("timestamp")
DATE = ColumnType("date")
BINARY = ColumnType("binary")
DYNAMIC = ColumnType("dynamic")


def array_of(element: ColumnType) -> ColumnType:
    return ColumnType("array", element=element)


def struct_of(fields) -> ColumnType:
    return ColumnType("struct", fields=tuple(fields))


def map_of(key: ColumnType, value: ColumnType) -> ColumnType:
    return ColumnType("map", key=key, value=value)


def decimal_of(precision: int = DEFAULT_DECIMAL_PRECISION, scale: int = DEFAULT_DECIMAL_SCALE) -> ColumnType:
    if not 1 <= precision <= 38 or not 0 <= scale <= precision:
        raise SchemaDefinitionError(f"Invalid decimal precision/scale: ({precision},{scale})")
    return ColumnType("decimal", precision=precision, scale=scale)


@dataclass(frozen=True)
class Schema:
    """Ordered collection of fields describing a table or a record batch."""

    fields: Tuple[Field, ...]

    def __post_init__(self):
        names = [f.name for f in self.fields]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise SchemaDefinitionError(f"Duplicate field names: {duplicates}")

    def __iter__(self) -> Iterator[Field]:
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    @property
    def names(self) -> List[str]:
        return [f.name for f in self.fields]

    def field(self, name: str) -> Optional[Field]:
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def to_arrow(self) -> pa.Schema:
        return pa.schema([f.to_arrow() for f in self.fields])

    def to_json(self) -> Dict[str, Any]:
        return {"type": "struct", "fields": [f.to_json() for f in self.fields]}

    def to_json_string(self) -> str:
        """Serialize as the ``schemaString`` of a metadata action."""
        return json.dumps(self.to_json(), separators=(",", ":"))

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Schema":
        if not isinstance(data, dict) or data.get("type") != "struct":
            raise SchemaDefinitionError(f"Schema must be a struct type tree, got {data!r}")
        return cls(tuple(Field.from_json(f) for f in data.get("fields", [])))

    @classmethod
    def from_json_string(cls, schema_string: str) -> "Schema":
        try:
            data = json.loads(schema_string)
        except json.JSONDecodeError as e:
            raise SchemaDefinitionError(f"Invalid schema string: {e}") from e
        return cls.from_json(data)

    @classmethod
    def from_arrow(cls, arrow_schema: pa.Schema) -> "Schema":
        return cls(tuple(Field.from_arrow(f) for f in arrow_schema))


def _parse_type_name(type_name: str) -> ColumnType:
    """Parse a bare declared type name such as "long" or "decimal(12,2)"."""
    name = type_name.strip().lower()
    if name.startswith("decimal(") and name.endswith(")"):
        return ColumnType.from_json(name)
    kind = TYPE_ALIASES.get(name)
    if kind is None or kind not in PRIMITIVE_ARROW_TYPES and kind != "decimal":
        raise SchemaDefinitionError(
            f"Unknown or incomplete type '{type_name}'. "
            f"Valid types: {sorted(TYPE_ALIASES)}"
        )
    if kind == "decimal":
        return decimal_of()
    return ColumnType(kind)


def parse_type_definition(definition: Union[str, Dict[str, Any]]) -> ColumnType:
    """
    Parse a declared column type.

    Accepts either a bare type name ("string", "long", "decimal(10,2)") or a
    definition object using the create-table vocabulary: ``type`` plus
    ``elementType`` for arrays, ``fields`` for structs, ``keyType`` /
    ``valueType`` for maps and ``precision`` / ``scale`` for decimals.

    Raises:
        SchemaDefinitionError: If the definition is malformed
    """
    if isinstance(definition, str):
        return _parse_type_name(definition)

    if not isinstance(definition, dict) or "type" not in definition:
        raise SchemaDefinitionError(f"Invalid type definition: {definition!r}")

    declared = definition["type"]
    if isinstance(declared, dict):
        return parse_type_definition(declared)

    kind = TYPE_ALIASES.get(str(declared).strip().lower())
    if kind is None:
        return _parse_type_name(str(declared))

    if kind == "array":
        return array_of(parse_type_definition(definition.get("elementType", "string")))
    if kind == "struct":
        if not definition.get("fields"):
            # Parquet cannot store a struct without children
            raise SchemaDefinitionError(f"Struct type requires at least one field: {definition!r}")
        return struct_of(parse_field_definition(f) for f in definition["fields"])
    if kind == "map":
        return map_of(
            parse_type_definition(definition.get("keyType", "string")),
            parse_type_definition(definition.get("valueType", "string")),
        )
    if kind == "decimal":
        return decimal_of(
            definition.get("precision") or DEFAULT_DECIMAL_PRECISION,
            definition.get("scale") or DEFAULT_DECIMAL_SCALE,
        )
    return ColumnType(kind)


def parse_field_definition(definition: Union[Field, Dict[str, Any]]) -> Field:
    """
    Parse one declared field.

    Example:
        >>> parse_field_definition({"name": "tags", "type": "array", "elementType": "string"})
        Field(name='tags', type=ColumnType(kind='array', ...), nullable=True, ...)
    """
    if isinstance(definition, Field):
        return definition
    if not isinstance(definition, dict):
        raise SchemaDefinitionError(f"Field definition must be an object, got {definition!r}")

    name = definition.get("name")
    if not name or not isinstance(name, str):
        raise SchemaDefinitionError(f"Field definition requires a non-empty name: {definition!r}")

    return Field(
        name=name,
        type=parse_type_definition(definition),
        nullable=definition.get("nullable", True) is not False,
    )


def parse_schema_definition(definitions: Union[Schema, Sequence[Union[Field, Dict[str, Any]]]]) -> Schema:
    """
    Parse a declared table schema (a list of field definitions).

    Example:
        >>> schema = parse_schema_definition([
        ...     {"name": "id", "type": "long"},
        ...     {"name": "name", "type": "string"},
        ... ])
        >>> schema.names
        ['id', 'name']
    """
    if isinstance(definitions, Schema):
        return definitions
    if not definitions:
        raise SchemaDefinitionError("Table schema must declare at least one field")
    return Schema(tuple(parse_field_definition(d) for d in definitions))


def resolve_write_schema(
    table_schema: Schema,
    batch_schema: Schema,
    enforce_table_schema: bool = True,
) -> Schema:
    """
    Combine a table's declared schema with the schema inferred for a batch.

    Columns declared by the table keep their declared type, so a batch is
    always encoded with the table's column order and types. Batch columns
    the table does not declare are rejected when ``enforce_table_schema`` is
    set; otherwise they are appended with their inferred type.

    Returns:
        Schema to encode the batch with

    Raises:
        SchemaMismatchError: If the batch has columns the table does not declare
    """
    extra = [name for name in batch_schema.names if table_schema.field(name) is None]
    if extra and enforce_table_schema:
        raise SchemaMismatchError(
            record_index=0,
            expected_fields=sorted(table_schema.names),
            actual_fields=sorted(batch_schema.names),
            message=(
                f"Batch columns {extra} are not part of the table schema. "
                f"Table fields: {', '.join(table_schema.names)}"
            ),
        )

    fields = list(table_schema.fields)
    fields.extend(batch_schema.field(name) for name in extra)
    return Schema(tuple(fields))
