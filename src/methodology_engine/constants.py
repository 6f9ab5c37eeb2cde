"""Shared constants for the methodology engine."""

from __future__ import annotations

STATE_DIR_NAME = ".methodology_engine"
CONFIG_FILE = "config.yaml"

MANIFEST_FILE = "manifest.json"
METHODOLOGY_FILE_SUFFIX = ".methodology.json"

DEFAULT_MAX_ITERATIONS = 10
DEFAULT_SUGGESTION_LIMIT = 5

# Suggestion scoring weights
DOMAIN_MATCH_WEIGHT = 10
TAG_MATCH_WEIGHT = 5
COMPLEXITY_MATCH_WEIGHT = 3

TASK_COMPLEXITIES = ("simple", "complex")
DEFAULT_TASK_COMPLEXITY = "simple"

TASK_STATUS_PENDING = "pending"
REQUIREMENT_STATUS_PENDING = "pending"
REQUIREMENT_SOURCE_EXPLICIT = "explicit"

HTTP_FETCH_TIMEOUT_SECONDS = 10
