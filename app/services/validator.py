# app/services/validator.py
from __future__ import annotations
from typing import Any, Dict, List
from jsonschema import Draft202012Validator, Draft7Validator, Draft201909Validator
from jsonschema.exceptions import ValidationError


# Shape of user.json: [{"username": "...", "password": "..."}, ...]
USERS_FILE_SCHEMA: Dict[str, Any] = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "username": {"type": "string"},
            "password": {"type": "string"},
        },
        "required": ["username", "password"],
    },
}


class JsonValidatorService:
    """
    Check decoded JSON documents against a JSON Schema (default draft 2020-12).
    Used to reject malformed backing files before they replace in-memory state.
    """

    _DRAFTS = {
        "2020-12": Draft202012Validator,
        "2019-09": Draft201909Validator,
        "7": Draft7Validator,
    }

    def __init__(self, draft: str = "2020-12"):
        if draft not in self._DRAFTS:
            raise ValueError(f"Unsupported JSON Schema draft: {draft}")
        self._validator_cls = self._DRAFTS[draft]

    def errors(self, instance: Any, schema: Dict[str, Any]) -> List[Dict[str, str]]:
        validator = self._validator_cls(schema)
        found: List[ValidationError] = sorted(
            validator.iter_errors(instance), key=lambda e: [str(p) for p in e.path]
        )
        return [
            {
                "path": "/" + "/".join(str(p) for p in e.path),
                "keyword": str(e.validator),
                "message": e.message,
            }
            for e in found
        ]

    def validate(self, instance: Any, schema: Dict[str, Any]) -> Dict[str, Any]:
        errs = self.errors(instance, schema)
        return {"valid": not errs, "errors": errs}
