"""Request/response schema types and validators.

This module provides TypedDict definitions for the HTTP payloads and
validation functions that catch accidental renames or type changes.
"""

from __future__ import annotations

from typing import Any, TypedDict


class CompileRequestJson(TypedDict, total=False):
    source_code: str
    file_name: str | None
    address_config: str | None


class CompileResponseJson(TypedDict):
    success: bool
    encoded_modules: list[str]
    module_names: list[str]
    module_sizes: list[int]
    elapsed_ms: int
    error: str | None
    warnings: list[str]
    workspace_path: str | None


class CommandRequestJson(TypedDict):
    command: str


class CommandResponseJson(TypedDict, total=False):
    success: bool
    output: str | None
    error: str | None
    error_kind: str | None
    extracted_identifier: str | None


def _require_optional_str(body: dict[str, Any], field: str) -> str | None:
    value = body.get(field)
    if value is not None and not isinstance(value, str):
        raise ValueError(f"field {field}: expected string or null, got {type(value).__name__}")
    return value


def parse_compile_request(body: Any) -> CompileRequestJson:
    """Validate a compile request body.

    Raises ValueError with a descriptive message if validation fails.
    `address_config` keeps the difference between absent/null and "".
    """
    if not isinstance(body, dict):
        raise ValueError("request body must be a JSON object")
    source = body.get("source_code")
    if not isinstance(source, str):
        raise ValueError("missing required field: source_code")

    out: CompileRequestJson = {"source_code": source}
    out["file_name"] = _require_optional_str(body, "file_name")
    out["address_config"] = _require_optional_str(body, "address_config")
    return out


def parse_command_request(body: Any) -> CommandRequestJson:
    """Validate a deploy/test request body.

    Raises ValueError with a descriptive message if validation fails.
    """
    if not isinstance(body, dict):
        raise ValueError("request body must be a JSON object")
    command = body.get("command")
    if not isinstance(command, str):
        raise ValueError("missing required field: command")
    return {"command": command}


def validate_compile_response(data: dict[str, Any]) -> None:
    """Validate a compile response against schema.

    Raises ValueError with descriptive message if validation fails.
    """
    required_fields = {
        "success": bool,
        "encoded_modules": list,
        "module_names": list,
        "module_sizes": list,
        "elapsed_ms": int,
        "warnings": list,
    }
    for field, expected_type in required_fields.items():
        if field not in data:
            raise ValueError(f"missing required field: {field}")
        if not isinstance(data[field], expected_type):
            raise ValueError(f"field {field}: expected {expected_type.__name__}, got {type(data[field]).__name__}")

    for field in ("error", "workspace_path"):
        if field not in data:
            raise ValueError(f"missing required field: {field}")
        if data[field] is not None and not isinstance(data[field], str):
            raise ValueError(f"field {field}: must be a string or null")

    if len(data["module_names"]) != len(data["module_sizes"]):
        raise ValueError("module_names and module_sizes must have the same length")
    if len(set(data["module_names"])) != len(data["module_names"]):
        raise ValueError("module_names must be unique")
    if not data["success"]:
        if data["encoded_modules"]:
            raise ValueError("failed compile must not carry encoded modules")
        if not data["error"]:
            raise ValueError("failed compile must carry an error message")


def validate_command_response(data: dict[str, Any]) -> None:
    """Validate a deploy/test response against schema.

    Raises ValueError with descriptive message if validation fails.
    """
    if "success" not in data:
        raise ValueError("missing required field: success")
    if not isinstance(data["success"], bool):
        raise ValueError("field success: must be a bool")
    for field in ("output", "error", "error_kind", "extracted_identifier"):
        if data.get(field) is not None and not isinstance(data[field], str):
            raise ValueError(f"field {field}: must be a string or null")
