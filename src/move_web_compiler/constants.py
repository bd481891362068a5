"""
Centralized constants for move-web-compiler.

This module provides single-source-of-truth defaults for values that are used
across multiple modules. Runtime overrides go through `config.Settings`, which
reads the `MWC_*` environment variables once at start-up.
"""

from __future__ import annotations

# =============================================================================
# Workspace Layout
# =============================================================================

# Prefix for per-request workspace directories under the workspace root
WORKSPACE_PREFIX = "move-web-compiler"

MANIFEST_FILE_NAME = "Move.toml"
SOURCES_DIR_NAME = "sources"
BYTECODE_DIR_NAME = "bytecode"
BYTECODE_EXTENSION = ".mv"

DEFAULT_SOURCE_FILE_NAME = "main.move"

# Attempts at allocating a fresh workspace directory before giving up
WORKSPACE_ALLOCATION_ATTEMPTS = 8

# =============================================================================
# Manifest
# =============================================================================

MANIFEST_PACKAGE_NAME = "MoveWebCompile"

# Package identity and dependency sections. The address section is appended
# separately according to the caller's address configuration.
MANIFEST_BASE_TEMPLATE = """[package]
name = "MoveWebCompile"
version = "0.0.1"
edition = "2024.beta"

[dependencies]
Sui = { git = "https://github.com/MystenLabs/sui.git", subdir = "crates/sui-framework/packages/sui-framework", rev = "framework/testnet" }
"""

# Used when the caller supplies no address configuration at all
DEFAULT_ADDRESS_SECTION = """[addresses]
std = "0x1"
sui = "0x2"
examples = "0x0"
hello_world = "0x0"
"""

# =============================================================================
# Artifact Extraction
# =============================================================================

# Weights of the structural size estimate (bytes per definition). The estimate
# is an approximation of module size, not the serialized length.
SIZE_WEIGHT_FUNCTION_DEF = 8
SIZE_WEIGHT_STRUCT_DEF = 16
SIZE_WEIGHT_SIGNATURE = 4
SIZE_WEIGHT_IDENTIFIER = 12

# Size reported for modules that only received a placeholder name
PLACEHOLDER_MODULE_SIZE = 1024

PLACEHOLDER_NAME_PREFIX = "Module_"

DEFAULT_USER_MODULE_PREFIXES = ("examples::",)
DEFAULT_USER_MODULE_SUBSTRINGS = ("hello",)

# =============================================================================
# External CLI
# =============================================================================

SUI_COMMAND_TOKEN = "sui"
DEFAULT_SUI_BIN = "sui"

# Labels that precede the published package address in `sui client publish`
# output (localized and English)
PACKAGE_ID_MARKERS = ("包ID", "Package ID")
HEX_ADDRESS_PREFIX = "0x"

# Sui addresses are 32 bytes
ADDRESS_LENGTH = 32

# =============================================================================
# HTTP Facade
# =============================================================================

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8081
DEFAULT_STATIC_DIR = "./static"
DEFAULT_WORKER_THREADS = 4
DEFAULT_LOG_LEVEL = "INFO"

ENV_PREFIX = "MWC_"
