import jsonschema
from jsonschema.exceptions import best_match

from tokenprobe.tools.base import ToolSpec, normalize_schema


class ToolValidator:
    @staticmethod
    def validate(tool: ToolSpec, arguments: dict) -> tuple[bool, str | None]:
        """Check *arguments* against the tool's schema; return ``(ok, message)``."""
        validator = jsonschema.Draft202012Validator(normalize_schema(tool.parameters))
        error = best_match(validator.iter_errors(arguments))
        if error is None:
            return True, None
        where = ".".join(str(p) for p in error.absolute_path)
        prefix = f"{tool.name}.{where}" if where else tool.name
        return False, f"{prefix}: {error.message}"
