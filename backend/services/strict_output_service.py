"""
Strict Output Service for SmartSpec
Turns raw LLM text into a validated task tree or a list of errors.

Features:
1. JSON extraction - bare JSON, markdown fences, or JSON embedded in prose
2. Schema validation - Pydantic task schema with enum, range and tree bounds
3. Format instructions - schema hint rendered into the generation prompt
"""
import json
import re
import logging
from typing import Optional, Any, List
from dataclasses import dataclass, field
from pydantic import ValidationError

from models.initiative import Task, TaskTree, TaskKind, TaskPriority

logger = logging.getLogger(__name__)


FORMAT_INSTRUCTIONS = """OUTPUT FORMAT:
- Return ONLY a valid JSON array of tasks, nothing else
- No markdown code fences (no ```json)
- No commentary before or after the JSON
- Use double quotes for all strings
- No trailing commas

SCHEMA (each element of the array):
{schema_hint}

CONSTRAINTS:
- type: one of {kinds}
- priority: one of {priorities}
- storyPoints: integer from 1 to 13
- subtasks: optional array of tasks with the same shape
"""


@dataclass
class ValidationResult:
    """Result of schema validation"""
    valid: bool
    tasks: List[Task] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    raw_response: str = ""


class StrictOutputService:
    """
    Service for ensuring LLM outputs are valid task trees.
    Never returns partially parsed structures: either every task validates or none is returned.
    """

    def _find_balanced(self, text: str, opener: str, closer: str) -> Optional[str]:
        start = text.find(opener)
        if start == -1:
            return None

        depth = 0
        in_string = False
        escaped = False
        for i, char in enumerate(text[start:], start):
            if in_string:
                if escaped:
                    escaped = False
                elif char == '\\':
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == opener:
                depth += 1
            elif char == closer:
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        return None

    def extract_json(self, text: str) -> Optional[Any]:
        """
        Extract JSON from LLM response with multiple strategies.
        Handles markdown code blocks, mixed text, and trailing commas.
        """
        if not text:
            return None

        # Strategy 1: Try direct parse (clean JSON)
        try:
            return json.loads(text.strip())
        except (ValueError, RecursionError):
            pass

        # Strategy 2: Extract from markdown code block
        code_block_match = re.search(r'```(?:json)?\s*\n?(.*?)\n?```', text, re.DOTALL)
        if code_block_match:
            try:
                return json.loads(code_block_match.group(1).strip())
            except (ValueError, RecursionError):
                pass

        # Strategy 3: Outermost balanced array or object, whichever starts first
        candidates = []
        for opener, closer in (('[', ']'), ('{', '}')):
            position = text.find(opener)
            if position != -1:
                candidates.append((position, opener, closer))

        for _, opener, closer in sorted(candidates):
            json_str = self._find_balanced(text, opener, closer)
            if json_str is None:
                continue
            try:
                return json.loads(json_str)
            except (ValueError, RecursionError):
                pass

            # Strategy 4: Fix trailing commas
            json_str = re.sub(r',\s*}', '}', json_str)
            json_str = re.sub(r',\s*]', ']', json_str)
            try:
                return json.loads(json_str)
            except (ValueError, RecursionError):
                continue

        return None

    def normalize_task_payload(self, data: Any) -> Optional[list]:
        """Accept a bare array or an object wrapping the array under 'tasks'"""
        if isinstance(data, list):
            return data
        if isinstance(data, dict) and isinstance(data.get("tasks"), list):
            return data["tasks"]
        return None

    def validate_tasks(self, raw_response: str) -> ValidationResult:
        """Extract and validate a task tree from raw LLM text"""
        result = ValidationResult(valid=False, raw_response=raw_response)

        data = self.extract_json(raw_response)
        if data is None:
            result.errors.append("No valid JSON found in response")
            return result

        payload = self.normalize_task_payload(data)
        if payload is None:
            result.errors.append("Response JSON is not a task array")
            return result

        try:
            tree = TaskTree.model_validate({"tasks": payload})
        except ValidationError as e:
            for err in e.errors():
                loc = ".".join(str(x) for x in err["loc"])
                result.errors.append(f"{loc}: {err['msg']}")
            return result

        result.valid = True
        result.tasks = tree.tasks
        return result

    def build_schema_hint(self) -> str:
        """Build a human-readable schema hint for the task element"""
        schema_dict = Task.model_json_schema(by_alias=True)
        props = schema_dict.get("properties", {})
        required = set(schema_dict.get("required", []))

        hints = []
        for name, prop in props.items():
            req_marker = "*" if name in required else ""
            prop_type = prop.get("type", "any")
            if "$ref" in prop:
                prop_type = prop["$ref"].split("/")[-1]
            description = prop.get("description")
            suffix = f"  // {description}" if description else ""
            hints.append(f"  {name}{req_marker}: {prop_type}{suffix}")

        return "{\n" + ",\n".join(hints) + "\n}\n(* = required)"

    def format_instructions(self) -> str:
        return FORMAT_INSTRUCTIONS.format(
            schema_hint=self.build_schema_hint(),
            kinds=", ".join(k.value for k in TaskKind),
            priorities=", ".join(p.value for p in TaskPriority),
        )
