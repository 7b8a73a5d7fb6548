from __future__ import annotations

from functools import lru_cache
from importlib import resources
import json
from typing import Any, Mapping

from jsonschema import Draft202012Validator


def load_schema() -> dict[str, Any]:
    schema_path = resources.files("sofar_bridge").joinpath("schemas/state.schema.json")
    return json.loads(schema_path.read_text(encoding="utf-8"))


@lru_cache(maxsize=1)
def get_validator() -> Draft202012Validator:
    return Draft202012Validator(schema=load_schema())


def validate_envelope(envelope: Mapping[str, Any]) -> list[str]:
    validator = get_validator()
    errors = sorted(validator.iter_errors(dict(envelope)), key=lambda e: [str(part) for part in e.path])
    return [error.message for error in errors]
