"""OpenAPI contract test: implementation vs the reference document.

Validates that the FastAPI-generated OpenAPI schema matches
docs/openapi-wallet-watcher-v1.yaml:

1. Both documents are structurally valid OpenAPI 3.1
2. All reference paths + HTTP methods exist in the implementation
3. All reference component schemas exist in the implementation
4. Per schema: required fields, property keys, property types match
"""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

REFERENCE_PATH = Path(__file__).resolve().parents[1] / "docs" / "openapi-wallet-watcher-v1.yaml"


@pytest.fixture(scope="module")
def reference_schema() -> dict:
    """Load the reference OpenAPI document from YAML."""
    assert REFERENCE_PATH.exists(), f"Reference file not found: {REFERENCE_PATH}"
    with open(REFERENCE_PATH) as f:
        return yaml.safe_load(f)


@pytest.fixture(scope="module")
def impl_schema(tmp_path_factory) -> dict:
    """Get the FastAPI-generated OpenAPI schema."""
    from wallet_watcher.config import Settings
    from wallet_watcher.main import create_app

    settings = Settings(
        db_path=tmp_path_factory.mktemp("contract") / "watchers.db",
        bearer_tokens="test-token",
        reconcile_interval_s=0,
        log_level="WARNING",
    )
    return create_app(settings=settings).openapi()


# ── Structural Validity ──────────────────────────────────────────────────


def test_reference_is_valid_openapi(reference_schema):
    from openapi_spec_validator import validate

    validate(reference_schema)


def test_impl_is_valid_openapi(impl_schema):
    from openapi_spec_validator import validate

    validate(impl_schema)


# ── Paths + Methods ──────────────────────────────────────────────────────

HTTP_METHODS = {"get", "post", "put", "delete", "patch", "head", "options"}


def _extract_path_methods(schema: dict) -> dict[str, set[str]]:
    """Extract {path: {method, ...}} from an OpenAPI schema."""
    result = {}
    for path, path_item in schema.get("paths", {}).items():
        methods = set(path_item.keys()) & HTTP_METHODS
        if methods:
            result[path] = methods
    return result


def test_all_reference_paths_exist_in_implementation(reference_schema, impl_schema):
    ref_paths = _extract_path_methods(reference_schema)
    impl_paths = _extract_path_methods(impl_schema)

    missing = []
    for path, methods in ref_paths.items():
        if path not in impl_paths:
            missing.append(f"  Path missing: {path}")
        else:
            for method in methods:
                if method not in impl_paths[path]:
                    missing.append(f"  Method missing: {method.upper()} {path}")

    assert not missing, "Reference paths/methods missing in implementation:\n" + "\n".join(missing)


def test_no_extra_paths_in_implementation(reference_schema, impl_schema):
    """No unplanned /api/ or /housekeeping/ endpoints."""
    ref_paths = set(reference_schema.get("paths", {}).keys())
    impl_paths = set(impl_schema.get("paths", {}).keys())

    extra = {p for p in impl_paths - ref_paths if p.startswith(("/api/", "/housekeeping/"))}
    assert not extra, f"Extra paths in implementation: {extra}"


# ── Component Schemas ────────────────────────────────────────────────────


def _get_schemas(schema: dict) -> dict:
    return schema.get("components", {}).get("schemas", {})


# Reference uses "Error", implementation uses "ErrorResponse"
_SCHEMA_NAME_MAP = {"Error": "ErrorResponse"}


def test_all_reference_schemas_exist_in_implementation(reference_schema, impl_schema):
    ref_schemas = set(_get_schemas(reference_schema).keys())
    impl_schemas = set(_get_schemas(impl_schema).keys())

    mapped = {_SCHEMA_NAME_MAP.get(s, s) for s in ref_schemas}
    missing = mapped - impl_schemas
    assert not missing, f"Reference schemas missing in implementation: {missing}"


def _resolve_type(prop: dict) -> str | None:
    """Extract the effective type, handling anyOf/oneOf and list types."""
    if "type" in prop:
        t = prop["type"]
        # OpenAPI 3.1 allows type: ['string', 'null']
        if isinstance(t, list):
            for item in t:
                if item != "null":
                    return item
            return t[0] if t else None
        return t
    for key in ("anyOf", "oneOf"):
        if key in prop:
            types = [item.get("type") for item in prop[key] if "type" in item]
            for t in types:
                if t != "null":
                    return t
    if "$ref" in prop:
        return "$ref"
    return None


@pytest.mark.parametrize(
    "schema_name",
    [
        "HealthResponse",
        "WatcherStats",
        "AddWatchersRequest",
        "ReconcileSummary",
        "AddWatchersResponse",
        "CredentialImport",
        "ImportCredentialsRequest",
        "ImportSummary",
        "ImportCredentialsResponse",
        "WatchVcRequest",
        "WatchVcData",
        "WatchVcResponse",
        "WatchCallback",
        "CallbackAck",
        "Error",
    ],
)
def test_schema_properties_match(schema_name, reference_schema, impl_schema):
    ref_s = _get_schemas(reference_schema)[schema_name]
    impl_s = _get_schemas(impl_schema)[_SCHEMA_NAME_MAP.get(schema_name, schema_name)]

    missing_required = set(ref_s.get("required", [])) - set(impl_s.get("required", []))
    assert not missing_required, f"{schema_name}: required in reference but not in impl: {missing_required}"

    ref_props = set(ref_s.get("properties", {}).keys())
    impl_props = set(impl_s.get("properties", {}).keys())
    assert ref_props == impl_props, f"{schema_name}: property mismatch {ref_props ^ impl_props}"

    type_mismatches = []
    for prop_name in ref_props:
        ref_type = _resolve_type(ref_s["properties"][prop_name])
        impl_type = _resolve_type(impl_s["properties"][prop_name])
        if ref_type and impl_type and ref_type != impl_type:
            type_mismatches.append(f"  {prop_name}: reference={ref_type}, impl={impl_type}")

    assert not type_mismatches, f"{schema_name}: type mismatches:\n" + "\n".join(type_mismatches)
