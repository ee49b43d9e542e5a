import ast
import json
import logging
from pathlib import PurePath
from typing import Protocol

import yaml

from diffpatch.engine.models import SyntaxCheck

logger = logging.getLogger(__name__)


class SyntaxValidator(Protocol):
    def validate(self, path: str, text: str) -> SyntaxCheck: ...


class StructuredSyntaxValidator:
    """
    Parses patched text according to its file suffix.

    `.py` goes through `ast`, `.json` through `json` and `.yaml`/`.yml`
    through PyYAML's safe loader. Any other suffix is reported valid.
    """

    def validate(self, path: str, text: str) -> SyntaxCheck:
        suffix = PurePath(path).suffix.lower()

        if suffix == ".py":
            errors = _python_errors(path, text)
        elif suffix == ".json":
            errors = _json_errors(text)
        elif suffix in {".yaml", ".yml"}:
            errors = _yaml_errors(text)
        else:
            return SyntaxCheck(valid=True)

        if errors:
            logger.warning("Syntax check failed for %s: %s", path, errors[0])
        return SyntaxCheck(valid=not errors, errors=errors)


def _python_errors(path: str, text: str) -> list[str]:
    try:
        ast.parse(text, filename=path)
    except SyntaxError as e:
        return [f"line {e.lineno}: {e.msg}"]
    return []


def _json_errors(text: str) -> list[str]:
    try:
        json.loads(text)
    except json.JSONDecodeError as e:
        return [f"line {e.lineno}: {e.msg}"]
    return []


def _yaml_errors(text: str) -> list[str]:
    try:
        yaml.safe_load(text)
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        if mark is not None:
            return [f"line {mark.line + 1}: {getattr(e, 'problem', None) or e}"]
        return [str(e)]
    return []
