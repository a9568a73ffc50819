"""Tests for benchmark files, datasets and test-case extraction."""

import json

import pytest
import yaml

from llm_benchmark.dataset import DatasetLoader, extract_test_cases, load_benchmark_config, parse_test_case
from llm_benchmark.errors import DatasetValidationError, ParseError


class TestLoadBenchmarkConfig:

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "bench.yaml"
        path.write_text(yaml.safe_dump({
            "name": "ml basics",
            "topic": "machine learning",
            "test_cases": [
                {"id": "q1", "prompt": "What is overfitting?", "expectedOutput": "Fitting noise"},
                {"prompt": "Explain regularization", "category": "conceptual-understanding"},
            ],
            "models": [
                "anthropic.claude-3-sonnet-20240229-v1:0",
                {"model_id": "meta/llama", "enabled": False, "parameters": {"temperature": 0.1}},
            ],
        }))

        config = load_benchmark_config(path)

        assert config.name == "ml basics"
        assert config.topic == "machine learning"
        assert config.test_cases[0].id == "q1"
        assert config.test_cases[0].expected_output == "Fitting noise"
        assert config.test_cases[1].id
        assert config.test_cases[1].name == "Test case 2"
        assert config.test_cases[1].category == "conceptual-understanding"
        assert [m.model_id for m in config.enabled_models()] == ["anthropic.claude-3-sonnet-20240229-v1:0"]
        assert config.model_configs[1].parameters == {"temperature": 0.1}

    def test_json_file(self, tmp_path):
        path = tmp_path / "bench.json"
        path.write_text(json.dumps({
            "test_cases": [{"id": "a", "prompt": "Hi"}],
            "model_configs": [{"model_id": "m1"}],
        }))

        config = load_benchmark_config(path)

        assert config.name == "bench"
        assert config.total_tests == 1

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_benchmark_config(tmp_path / "nope.yaml")

    @pytest.mark.parametrize("data", [
        {"model_configs": ["m1"]},
        {"test_cases": [{"prompt": "Hi"}]},
        {"test_cases": [{"name": "no prompt"}], "model_configs": ["m1"]},
        {"test_cases": [{"prompt": "Hi"}], "model_configs": [{"enabled": True}]},
    ])
    def test_invalid_content(self, tmp_path, data):
        path = tmp_path / "bench.yaml"
        path.write_text(yaml.safe_dump(data))
        with pytest.raises(DatasetValidationError):
            load_benchmark_config(path)

    def test_blank_expected_output_is_empty(self, tmp_path):
        path = tmp_path / "bench.yaml"
        path.write_text("test_cases:\n  - prompt: What is 2+2?\n    expected_output:\nmodel_configs: [m1]\n")

        config = load_benchmark_config(path)

        assert config.test_cases[0].expected_output == ""

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bench.yaml"
        path.write_text("test_cases: [unclosed")
        with pytest.raises(DatasetValidationError):
            load_benchmark_config(path)


class TestDatasetLoader:

    def test_load_jsonl(self, tmp_path):
        path = tmp_path / "cases.jsonl"
        path.write_text(
            '{"id": "1", "prompt": "First?"}\n'
            '\n'
            '{"prompt": "Second?", "expected_output": "yes"}\n'
        )

        cases = DatasetLoader().load_dataset(str(path))

        assert [c.prompt for c in cases] == ["First?", "Second?"]
        assert cases[1].expected_output == "yes"

    def test_invalid_line(self, tmp_path):
        path = tmp_path / "cases.jsonl"
        path.write_text('{"prompt": "ok"}\nnot json\n')
        with pytest.raises(DatasetValidationError, match="line 2"):
            DatasetLoader().load_dataset(str(path))

    def test_empty_file(self, tmp_path):
        path = tmp_path / "cases.jsonl"
        path.write_text("\n")
        with pytest.raises(DatasetValidationError):
            DatasetLoader().load_dataset(str(path))

    def test_null_expected_output_is_empty(self, tmp_path):
        path = tmp_path / "cases.jsonl"
        path.write_text('{"prompt": "What is 2+2?", "expected_output": null}\n')

        cases = DatasetLoader().load_dataset(str(path))

        assert cases[0].expected_output == ""

    def test_validate_format(self):
        loader = DatasetLoader()
        assert loader.validate_format({"prompt": "Hi"})
        assert not loader.validate_format({"prompt": "  "})
        assert not loader.validate_format({"prompt": "Hi", "expected_output": 3})
        assert not loader.validate_format(["prompt"])


class TestExtractTestCases:

    def test_whole_text_array(self):
        text = json.dumps([
            {"name": "A", "prompt": "What is a tensor?", "expectedOutput": "A multi-dimensional array"},
            {"name": "B", "prompt": "What is a gradient?"},
        ])

        cases = extract_test_cases(text)

        assert [c.name for c in cases] == ["A", "B"]
        assert cases[0].expected_output == "A multi-dimensional array"

    def test_array_embedded_in_prose(self):
        text = 'Here you go:\n[{"prompt": "Define recall"}, {"prompt": "Define precision"}]\nEnjoy!'
        assert [c.prompt for c in extract_test_cases(text)] == ["Define recall", "Define precision"]

    def test_object_holding_array(self):
        text = 'Sure! {"testCases": [{"prompt": "What is DNA?"}]}'
        assert extract_test_cases(text)[0].prompt == "What is DNA?"

    def test_entries_without_prompt_are_dropped(self):
        text = json.dumps([{"prompt": "Keep me"}, {"name": "no prompt"}, "junk"])
        assert [c.prompt for c in extract_test_cases(text)] == ["Keep me"]

    def test_line_fallback(self):
        text = "Some questions:\n1. Explain entropy\nWhat is enthalpy?\nThat is all."

        cases = extract_test_cases(text)

        assert [c.prompt for c in cases] == ["Explain entropy", "What is enthalpy?"]
        assert all(c.category is None for c in cases)

    def test_count_limit(self):
        text = "\n".join(f"{i}. Question {i}" for i in range(1, 6))
        assert len(extract_test_cases(text, count=3)) == 3

    def test_nothing_usable(self):
        with pytest.raises(ParseError):
            extract_test_cases("No questions here.")


def test_parse_test_case_defaults():
    case = parse_test_case({"prompt": "Hi", "expected_output": {"answer": 4}}, index=4)
    assert case.name == "Test case 5"
    assert json.loads(case.expected_output) == {"answer": 4}


def test_parse_test_case_null_expected_output():
    assert parse_test_case({"prompt": "What is 2+2?", "expected_output": None}).expected_output == ""
    case = parse_test_case({"prompt": "What is 2+2?", "expected_output": None, "expectedOutput": "4"})
    assert case.expected_output == "4"
