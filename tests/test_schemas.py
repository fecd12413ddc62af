"""
Unit tests for column types and schemas.

Tests type trees, Arrow conversion, declared-schema parsing and write-schema
resolution.
"""

import json
import pytest
import pyarrow as pa

from tablestore.errors import SchemaDefinitionError, SchemaMismatchError
from tablestore.schemas import (
    BOOLEAN,
    DOUBLE,
    DYNAMIC,
    INTEGER,
    LONG,
    STRING,
    TIMESTAMP,
    TYPE_METADATA_KEY,
    ColumnType,
    Field,
    Schema,
    array_of,
    decimal_of,
    map_of,
    parse_schema_definition,
    parse_type_definition,
    resolve_write_schema,
    struct_of,
)


# ============================================================================
# Test Fixtures
# ============================================================================

@pytest.fixture
def nested_schema() -> Schema:
    """Schema with primitive, array, struct and map columns."""
    return Schema((
        Field("id", LONG),
        Field("tags", array_of(STRING)),
        Field("address", struct_of([Field("city", STRING), Field("zip", STRING)])),
        Field("scores", map_of(STRING, DOUBLE)),
        Field("price", decimal_of(12, 2)),
    ))


# ============================================================================
# ColumnType Tests
# ============================================================================

class TestColumnType:
    """Test ColumnType conversions."""

    def test_primitive_arrow_types(self):
        """Test primitive kinds map to their Arrow types."""
        assert LONG.to_arrow() == pa.int64()
        assert INTEGER.to_arrow() == pa.int32()
        assert STRING.to_arrow() == pa.string()
        assert BOOLEAN.to_arrow() == pa.bool_()
        assert TIMESTAMP.to_arrow() == pa.timestamp("ms")
        assert DYNAMIC.to_arrow() == pa.string()

    def test_composite_arrow_types(self):
        """Test composite kinds map to nested Arrow types."""
        assert pa.types.is_list(array_of(LONG).to_arrow())
        assert pa.types.is_struct(struct_of([Field("a", STRING)]).to_arrow())
        assert pa.types.is_map(map_of(STRING, LONG).to_arrow())
        assert decimal_of(12, 2).to_arrow() == pa.decimal128(12, 2)

    def test_string_form(self):
        """Test readable type names."""
        assert str(array_of(STRING)) == "array<string>"
        assert str(struct_of([Field("city", STRING)])) == "struct<city:string>"
        assert str(map_of(STRING, LONG)) == "map<string,long>"
        assert str(decimal_of(12, 2)) == "decimal(12,2)"

    def test_json_tree(self):
        """Test JSON type trees for primitive and composite kinds."""
        assert LONG.to_json() == "long"
        assert array_of(STRING).to_json() == {
            "type": "array",
            "elementType": "string",
            "containsNull": True,
        }
        assert map_of(STRING, LONG).to_json()["valueType"] == "long"

    def test_json_tree_parses_back(self, nested_schema):
        """Test type trees parse back to equal types."""
        for column in nested_schema:
            assert ColumnType.from_json(column.type.to_json()) == column.type

    def test_from_json_unknown_type(self):
        """Test unknown type names are rejected."""
        with pytest.raises(SchemaDefinitionError):
            ColumnType.from_json("varchar")

        with pytest.raises(SchemaDefinitionError):
            ColumnType.from_json({"type": "tuple"})

    def test_from_arrow(self):
        """Test deriving types from plain Arrow types."""
        assert ColumnType.from_arrow(pa.int64()) == LONG
        assert ColumnType.from_arrow(pa.float64()) == DOUBLE
        assert ColumnType.from_arrow(pa.list_(pa.string())) == array_of(STRING)
        assert ColumnType.from_arrow(pa.timestamp("us")) == TIMESTAMP

    def test_invalid_decimal(self):
        """Test decimal precision and scale bounds."""
        with pytest.raises(SchemaDefinitionError):
            decimal_of(0, 0)

        with pytest.raises(SchemaDefinitionError):
            decimal_of(5, 6)


# ============================================================================
# Field and Schema Tests
# ============================================================================

class TestSchema:
    """Test Field and Schema."""

    def test_field_arrow_metadata(self):
        """Test Arrow fields carry the JSON type tree."""
        arrow_field = Field("payload", DYNAMIC).to_arrow()

        assert arrow_field.type == pa.string()
        assert json.loads(arrow_field.metadata[TYPE_METADATA_KEY]) == "dynamic"

    def test_field_from_arrow_prefers_metadata(self):
        """Test dynamic columns survive an Arrow round trip."""
        restored = Field.from_arrow(Field("payload", DYNAMIC).to_arrow())
        assert restored.type == DYNAMIC

    def test_duplicate_names_rejected(self):
        """Test schemas reject duplicate field names."""
        with pytest.raises(SchemaDefinitionError, match="Duplicate"):
            Schema((Field("a", LONG), Field("a", STRING)))

    def test_names_and_lookup(self, nested_schema):
        """Test field names keep declaration order."""
        assert nested_schema.names == ["id", "tags", "address", "scores", "price"]
        assert nested_schema.field("tags").type == array_of(STRING)
        assert nested_schema.field("missing") is None
        assert len(nested_schema) == 5

    def test_schema_string(self, nested_schema):
        """Test schema strings parse back to an equal schema."""
        schema_string = nested_schema.to_json_string()

        assert json.loads(schema_string)["type"] == "struct"
        assert Schema.from_json_string(schema_string) == nested_schema

    def test_invalid_schema_string(self):
        """Test malformed schema strings."""
        with pytest.raises(SchemaDefinitionError):
            Schema.from_json_string("{not json")

        with pytest.raises(SchemaDefinitionError):
            Schema.from_json_string('{"type": "array"}')


# ============================================================================
# Declared Schema Parsing Tests
# ============================================================================

class TestParseDefinitions:
    """Test parsing create-table schema definitions."""

    def test_primitive_fields(self):
        """Test a flat schema with aliases."""
        schema = parse_schema_definition([
            {"name": "id", "type": "long"},
            {"name": "name", "type": "string"},
            {"name": "count", "type": "int"},
            {"name": "active", "type": "bool", "nullable": False},
        ])

        assert schema.names == ["id", "name", "count", "active"]
        assert schema.field("count").type == INTEGER
        assert schema.field("active").nullable is False

    def test_array_field(self):
        """Test array definitions use elementType."""
        column_type = parse_type_definition({"type": "array", "elementType": "long"})
        assert column_type == array_of(LONG)

    def test_struct_field(self):
        """Test struct definitions use nested field definitions."""
        column_type = parse_type_definition({
            "type": "struct",
            "fields": [{"name": "city", "type": "string"}],
        })
        assert column_type == struct_of([Field("city", STRING)])

    def test_empty_struct_rejected(self):
        """Test structs need at least one field."""
        with pytest.raises(SchemaDefinitionError):
            parse_type_definition({"type": "struct", "fields": []})

    def test_map_and_decimal(self):
        """Test map and decimal definitions."""
        assert parse_type_definition({"type": "map", "keyType": "string", "valueType": "long"}) == map_of(STRING, LONG)
        assert parse_type_definition({"type": "decimal", "precision": 12, "scale": 2}) == decimal_of(12, 2)
        assert parse_type_definition("decimal(8,3)") == decimal_of(8, 3)

    def test_nested_type_object(self):
        """Test a field whose type is itself a type tree."""
        schema = parse_schema_definition([
            {"name": "tags", "type": {"type": "array", "elementType": "string"}},
        ])
        assert schema.field("tags").type == array_of(STRING)

    def test_unknown_type(self):
        """Test unknown type names."""
        with pytest.raises(SchemaDefinitionError, match="Unknown"):
            parse_schema_definition([{"name": "x", "type": "varchar"}])

    def test_missing_name(self):
        """Test fields need a name."""
        with pytest.raises(SchemaDefinitionError):
            parse_schema_definition([{"type": "long"}])

    def test_empty_schema(self):
        """Test tables need at least one field."""
        with pytest.raises(SchemaDefinitionError):
            parse_schema_definition([])


# ============================================================================
# Write Schema Resolution Tests
# ============================================================================

class TestResolveWriteSchema:
    """Test combining table and batch schemas."""

    def test_table_types_win(self):
        """Test declared types override inferred ones."""
        table_schema = Schema((Field("id", INTEGER), Field("name", STRING)))
        batch_schema = Schema((Field("name", STRING), Field("id", LONG)))

        resolved = resolve_write_schema(table_schema, batch_schema)

        assert resolved.names == ["id", "name"]
        assert resolved.field("id").type == INTEGER

    def test_missing_columns_kept(self):
        """Test table columns absent from the batch stay in the schema."""
        table_schema = Schema((Field("id", LONG), Field("note", STRING)))
        batch_schema = Schema((Field("id", LONG),))

        assert resolve_write_schema(table_schema, batch_schema).names == ["id", "note"]

    def test_extra_columns_rejected(self):
        """Test batch columns the table does not declare."""
        table_schema = Schema((Field("id", LONG),))
        batch_schema = Schema((Field("id", LONG), Field("extra", STRING)))

        with pytest.raises(SchemaMismatchError) as exc_info:
            resolve_write_schema(table_schema, batch_schema)

        assert "extra" in str(exc_info.value)
        assert exc_info.value.actual_fields == ["extra", "id"]

    def test_extra_columns_allowed_without_enforcement(self):
        """Test extra columns are appended when enforcement is off."""
        table_schema = Schema((Field("id", LONG),))
        batch_schema = Schema((Field("id", LONG), Field("extra", STRING)))

        resolved = resolve_write_schema(table_schema, batch_schema, enforce_table_schema=False)
        assert resolved.names == ["id", "extra"]
