"""Tests for field lookup and partition key resolution."""

import pytest

from cosmos_migration.core.documents import (
    MissingField,
    PartitionKeyPath,
    PartitionKeyValue,
    document_identity,
    lookup_field,
    resolve_partition_key,
    split_field_path,
    stringify_key_component,
    with_canonical_key_fields,
)


class TestLookupField:
    """Tests for lookup_field()."""

    def test_exact_match(self):
        lookup = lookup_field({"tenantId": "t1"}, "tenantId")
        assert lookup.found
        assert lookup.value == "t1"
        assert lookup.exact
        assert lookup.matched_path == ("tenantId",)

    def test_case_insensitive_fallback(self):
        lookup = lookup_field({"TenantID": "t1"}, "/tenantId")
        assert lookup.found
        assert lookup.value == "t1"
        assert not lookup.exact
        assert lookup.matched_path == ("TenantID",)

    def test_exact_match_wins_over_other_casing(self):
        lookup = lookup_field({"TenantId": "upper", "tenantId": "lower"}, "tenantId")
        assert lookup.value == "lower"
        assert lookup.exact

    def test_nested_path(self):
        document = {"address": {"City": "Oslo"}}
        lookup = lookup_field(document, "/address/city")
        assert lookup.found
        assert lookup.value == "Oslo"
        assert lookup.matched_path == ("address", "City")

    def test_missing_field(self):
        lookup = lookup_field({"id": "1"}, "tenantId")
        assert not lookup.found
        assert lookup.is_null

    def test_path_through_non_mapping(self):
        assert not lookup_field({"address": "Main street"}, "address/city").found

    def test_null_value_is_found_but_null(self):
        lookup = lookup_field({"tenantId": None}, "tenantId")
        assert lookup.found
        assert lookup.is_null

    def test_split_field_path(self):
        assert split_field_path("/a/b") == ("a", "b")
        assert split_field_path("a.b") == ("a", "b")
        assert split_field_path("/") == ()


class TestPartitionKeyPath:
    """Tests for PartitionKeyPath."""

    def test_paths_and_fields(self):
        path = PartitionKeyPath(["/tenantId", "userId"])
        assert path.paths == ("/tenantId", "/userId")
        assert path.fields == ("tenantId", "userId")
        assert path.is_hierarchical
        assert len(path) == 2

    def test_single_path_is_not_hierarchical(self):
        assert not PartitionKeyPath(["/id"]).is_hierarchical

    @pytest.mark.parametrize("paths", [[], ["/a", "/b", "/c", "/d"]])
    def test_invalid_length(self, paths):
        with pytest.raises(ValueError):
            PartitionKeyPath(paths)

    def test_empty_segment_rejected(self):
        with pytest.raises(ValueError):
            PartitionKeyPath(["/tenantId", "/"])

    def test_equality(self):
        assert PartitionKeyPath(["tenantId", "id"]) == PartitionKeyPath(["/tenantId", "/id"])
        assert PartitionKeyPath(["/tenantId", "/id"]) != PartitionKeyPath(["/id", "/tenantId"])


class TestResolvePartitionKey:
    """Tests for resolve_partition_key()."""

    def test_components_in_path_order(self):
        path = PartitionKeyPath(["/tenantId", "/userId", "/sessionId"])
        key = resolve_partition_key(path, {"sessionId": "s", "userId": "u", "tenantId": "t"})
        assert isinstance(key, PartitionKeyValue)
        assert key.components == ("t", "u", "s")
        assert len(key.components) == len(path)

    def test_values_are_stringified(self):
        path = PartitionKeyPath(["/tenantId", "/active"])
        key = resolve_partition_key(path, {"tenantId": 42, "active": True})
        assert key.components == ("42", "true")
        assert key.raw_values == (42, True)

    def test_missing_field_reports_first_missing(self):
        path = PartitionKeyPath(["/tenantId", "/userId"])
        result = resolve_partition_key(path, {"id": "1", "other": 1})
        assert isinstance(result, MissingField)
        assert result.field == "tenantId"
        assert result.available_keys == ("id", "other")

    def test_null_value_is_missing(self):
        path = PartitionKeyPath(["/tenantId", "/id"])
        result = resolve_partition_key(path, {"tenantId": "t", "id": None})
        assert isinstance(result, MissingField)
        assert result.field == "id"

    def test_available_keys_limited_to_ten(self):
        document = {f"field{i}": i for i in range(15)}
        result = resolve_partition_key(PartitionKeyPath(["/tenantId"]), document)
        assert len(result.available_keys) == 10

    def test_case_insensitive_key_is_not_exact(self):
        path = PartitionKeyPath(["/tenantId", "/id"])
        key = resolve_partition_key(path, {"TenantId": "t", "id": "1"})
        assert key.components == ("t", "1")
        assert not key.is_exact


class TestCanonicalKeyFields:
    """Tests for with_canonical_key_fields()."""

    def test_exact_key_returns_same_document(self):
        document = {"tenantId": "t", "id": "1"}
        key = resolve_partition_key(PartitionKeyPath(["/tenantId", "/id"]), document)
        assert with_canonical_key_fields(document, key) is document

    def test_fallback_key_adds_canonical_field(self):
        document = {"TenantId": "t", "id": "1"}
        key = resolve_partition_key(PartitionKeyPath(["/tenantId", "/id"]), document)
        body = with_canonical_key_fields(document, key)
        assert body["tenantId"] == "t"
        assert body["TenantId"] == "t"
        assert "tenantId" not in document

    def test_nested_fallback(self):
        document = {"Address": {"City": "Oslo"}, "id": "1"}
        key = resolve_partition_key(PartitionKeyPath(["/address/city"]), document)
        body = with_canonical_key_fields(document, key)
        assert body["address"]["city"] == "Oslo"


class TestDocumentIdentity:
    """Tests for document_identity() and stringify_key_component()."""

    def test_prefers_id(self):
        assert document_identity({"id": "a", "_id": "b"}) == "a"

    def test_falls_back_to_mongo_id(self):
        assert document_identity({"_id": 7}) == "7"

    def test_unknown(self):
        assert document_identity({"name": "x"}) == "unknown"

    def test_stringify(self):
        assert stringify_key_component(False) == "false"
        assert stringify_key_component(3.5) == "3.5"
