"""
Benchmark definition and dataset loading.

Benchmarks are YAML or JSON files naming the test cases and models of a run.
Test cases can also come from JSONL datasets or be pulled out of free-form
model text (e.g. a model asked to write test cases for a topic).
"""

import json
import re
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from .errors import DatasetValidationError, ParseError
from .models import BenchmarkConfig, ModelConfig, TestCase
from .logging import get_logger


logger = get_logger(__name__)


_ARRAY_SPAN = re.compile(r"\[\s*\{.*\}\s*\]", re.DOTALL)
_OBJECT_SPAN = re.compile(r"\{\s*\".*\"\s*:.*\}", re.DOTALL)
_NUMBERED_LINE = re.compile(r"^\d+\.\s+")


def _expected_output(data: Dict[str, Any]) -> str:
    value = data.get('expected_output')
    if value is None:
        value = data.get('expectedOutput')
    if value is None:
        return ''
    return value if isinstance(value, str) else json.dumps(value)


def parse_test_case(data: Dict[str, Any], index: int = 0) -> TestCase:
    """
    Build a TestCase from a mapping.

    Raises:
        DatasetValidationError: If the prompt is missing or empty
    """
    if not isinstance(data, dict):
        raise DatasetValidationError(f"Test case {index + 1} is not a mapping")

    prompt = data.get('prompt')
    if not isinstance(prompt, str) or not prompt.strip():
        raise DatasetValidationError(f"Test case {index + 1} has no prompt")

    return TestCase(
        id=str(data.get('id') or uuid.uuid4()),
        prompt=prompt,
        name=data.get('name') or f"Test case {index + 1}",
        category=data.get('category') or None,
        expected_output=_expected_output(data),
    )


def model_config_from_dict(data: Union[str, Dict[str, Any]], index: int = 0) -> ModelConfig:
    """Build a ModelConfig from a mapping or a bare model ID."""
    if isinstance(data, str):
        return ModelConfig(model_id=data)

    if not isinstance(data, dict) or not data.get('model_id'):
        raise DatasetValidationError(f"Model config {index + 1} has no model_id")

    parameters = data.get('parameters') or {}
    if not isinstance(parameters, dict):
        raise DatasetValidationError(f"Model config {index + 1} parameters must be a mapping")

    return ModelConfig(
        model_id=data['model_id'],
        enabled=bool(data.get('enabled', True)),
        parameters=parameters,
    )


def load_benchmark_config(
    file_path: Union[str, Path],
    extra_test_cases: Optional[List[TestCase]] = None
) -> BenchmarkConfig:
    """
    Load a benchmark definition from a YAML or JSON file.

    Args:
        file_path: Path to the benchmark file
        extra_test_cases: Test cases loaded elsewhere (e.g. a JSONL dataset),
            run after the file's own. The file may then omit 'test_cases'.

    Returns:
        BenchmarkConfig

    Raises:
        FileNotFoundError: If the file doesn't exist
        DatasetValidationError: If the file is malformed
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Benchmark file not found: {file_path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            if path.suffix.lower() == '.json':
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise DatasetValidationError(f"Invalid benchmark file {file_path}: {e}")

    if not isinstance(data, dict):
        raise DatasetValidationError("Benchmark file must contain a mapping")

    test_cases_data = data.get('test_cases') or []
    if not isinstance(test_cases_data, list):
        raise DatasetValidationError("Benchmark file 'test_cases' must be a list")

    test_cases = [parse_test_case(item, i) for i, item in enumerate(test_cases_data)]
    test_cases.extend(extra_test_cases or [])
    if not test_cases:
        raise DatasetValidationError("Benchmark file needs a non-empty 'test_cases' list")

    models_data = data.get('model_configs', data.get('models'))
    if not isinstance(models_data, list) or not models_data:
        raise DatasetValidationError("Benchmark file needs a non-empty 'model_configs' list")

    return BenchmarkConfig(
        name=str(data.get('name') or path.stem),
        topic=data.get('topic'),
        test_cases=test_cases,
        model_configs=[model_config_from_dict(item, i) for i, item in enumerate(models_data)],
    )


class DatasetLoader:
    """Loads and validates JSONL test case datasets."""

    def load_dataset(self, file_path: str) -> List[TestCase]:
        """
        Load a JSONL dataset file.

        Each line holds a prompt and optionally id, name, category and
        expected_output.

        Args:
            file_path: Path to the JSONL file

        Returns:
            List of TestCase objects

        Raises:
            DatasetValidationError: If the file format is invalid or a prompt is missing
            FileNotFoundError: If the file doesn't exist
        """
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Dataset file not found: {file_path}")

        items = []
        with open(path, 'r', encoding='utf-8') as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue

                try:
                    data = json.loads(line)
                except json.JSONDecodeError as e:
                    raise DatasetValidationError(f"Invalid JSON on line {line_num}: {e}")

                if not self.validate_format(data):
                    raise DatasetValidationError(f"Invalid format on line {line_num}: missing 'prompt'")

                items.append(parse_test_case(data, len(items)))

        if not items:
            raise DatasetValidationError("Dataset file is empty or contains no valid items")

        return items

    def validate_format(self, data: Dict[str, Any]) -> bool:
        """Check that an item is a mapping with a non-empty string prompt."""
        if not isinstance(data, dict):
            return False

        prompt = data.get('prompt')
        if not isinstance(prompt, str) or not prompt.strip():
            return False

        expected = data.get('expected_output')
        return expected is None or isinstance(expected, str)


def _parse_json_array(text: str) -> Optional[List[Any]]:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict):
        return next((value for value in parsed.values() if isinstance(value, list)), None)

    match = _ARRAY_SPAN.search(text)
    if match:
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            return parsed

    match = _OBJECT_SPAN.search(text)
    if match:
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError:
            return None
        if isinstance(parsed, dict):
            return next((value for value in parsed.values() if isinstance(value, list)), None)

    return None


def _questions_from_lines(text: str, count: Optional[int]) -> List[TestCase]:
    test_cases = []
    for line in text.splitlines():
        line = line.strip()
        if not line or not (line.endswith('?') or _NUMBERED_LINE.match(line)):
            continue

        test_cases.append(TestCase(
            id=str(uuid.uuid4()),
            name=f"Test case {len(test_cases) + 1}",
            prompt=_NUMBERED_LINE.sub('', line),
        ))
        if count is not None and len(test_cases) >= count:
            break
    return test_cases


def extract_test_cases(text: str, count: Optional[int] = None) -> List[TestCase]:
    """
    Recover test cases from free-form model output.

    Tries, in order: the whole text as JSON, the first ``[{...}]`` span, and
    a JSON object holding an array. Entries without a prompt are dropped. If
    no JSON yields a test case, question-like lines (ending in "?" or
    numbered "N. ") become prompts.

    Args:
        text: Model output
        count: Maximum number of test cases to return

    Returns:
        At least one TestCase

    Raises:
        ParseError: If nothing usable can be recovered
    """
    items = _parse_json_array(text) or []

    test_cases = []
    for item in items:
        if isinstance(item, dict) and isinstance(item.get('prompt'), str) and item['prompt'].strip():
            test_cases.append(parse_test_case(item, len(test_cases)))

    if not test_cases:
        logger.warning("No JSON test cases found in text, falling back to line heuristics")
        test_cases = _questions_from_lines(text, count)

    if not test_cases:
        raise ParseError("Could not extract any test cases from text")

    return test_cases[:count] if count is not None else test_cases
