"""Tests for LLM response parsing."""

import pytest

from src.core.response_parser import (
    DEFAULT_BOT_REQUIREMENTS,
    ResponseParseError,
    ensure_node_ids,
    extract_code_files,
    extract_workflow_json,
    find_balanced_object,
)


class TestExtractWorkflowJson:
    """Tests for extract_workflow_json."""

    def test_fenced_json(self):
        """Test a ```json block is preferred."""
        text = 'Sure!\n```json\n{"name": "Fenced"}\n```\nAnything else?'

        assert extract_workflow_json(text) == {"name": "Fenced"}

    def test_bare_fence(self):
        """Test a fence without a language tag."""
        assert extract_workflow_json('```\n{"name": "Bare"}\n```') == {"name": "Bare"}

    def test_plain_json(self):
        """Test a response that is only JSON."""
        assert extract_workflow_json('  {"name": "Plain", "nodes": []}  ') == {
            "name": "Plain",
            "nodes": [],
        }

    def test_embedded_object(self):
        """Test an object surrounded by prose."""
        text = 'Here you go: {"name": "Inline", "settings": {"timezone": "UTC"}} Enjoy.'

        assert extract_workflow_json(text)["settings"] == {"timezone": "UTC"}

    def test_no_json_raises(self):
        """Test prose without an object."""
        with pytest.raises(ResponseParseError) as exc_info:
            extract_workflow_json("I cannot help with that.")

        assert exc_info.value.snippet == "I cannot help with that."

    def test_array_is_not_a_workflow(self):
        """Test a JSON array is rejected."""
        with pytest.raises(ResponseParseError):
            extract_workflow_json("[1, 2, 3]")


class TestFindBalancedObject:
    """Tests for find_balanced_object."""

    def test_braces_inside_strings(self):
        """Test braces in string values do not end the object."""
        text = 'x {"code": "if (a) { return }", "n": 1} y'

        assert find_balanced_object(text) == '{"code": "if (a) { return }", "n": 1}'

    def test_escaped_quotes(self):
        """Test escaped quotes keep the string open."""
        text = '{"text": "say \\"}\\" please"}'

        assert find_balanced_object(text) == text

    def test_unbalanced(self):
        """Test an unterminated object."""
        assert find_balanced_object('{"open": true') is None


class TestEnsureNodeIds:
    """Tests for ensure_node_ids."""

    def test_missing_ids_assigned(self):
        """Test nodes without id get one and existing ids are kept."""
        workflow = {"nodes": [{"name": "A"}, {"id": "keep", "name": "B"}]}

        result = ensure_node_ids(workflow)

        assert result["nodes"][0]["id"]
        assert result["nodes"][1]["id"] == "keep"
        assert "id" not in workflow["nodes"][0]

    def test_without_nodes(self):
        """Test documents without a node list pass through."""
        assert ensure_node_ids({"name": "X"}) == {"name": "X"}


class TestExtractCodeFiles:
    """Tests for extract_code_files."""

    def test_named_blocks(self):
        """Test file names on the fence line."""
        text = (
            "```python # bot.py\nprint('hi')\n```\n"
            "```text # requirements.txt\nrequests\n```"
        )

        files = extract_code_files(text)

        assert [(f.name, f.language) for f in files] == [
            ("bot.py", "python"),
            ("requirements.txt", "text"),
        ]
        assert files[0].content == "print('hi')"

    def test_default_names(self):
        """Test unnamed blocks become main.py or file.<lang>."""
        files = extract_code_files("```python\nx = 1\n```\n```yaml\na: 1\n```")

        assert [f.name for f in files] == ["main.py", "file.yaml"]

    def test_untagged_block_is_python(self):
        """Test a fence without a language is treated as Python."""
        files = extract_code_files("```\nimport os\n```")

        assert files[0].name == "main.py"
        assert files[0].language == "python"

    def test_empty_blocks_skipped(self):
        """Test blocks without content."""
        assert extract_code_files("```python\n   \n```") == []

    def test_telegram_requirements_added(self):
        """Test Telegram projects get default requirements."""
        files = extract_code_files("A Telethon bot:\n```python # main.py\nimport telethon\n```")

        assert files[-1].name == "requirements.txt"
        assert files[-1].content == DEFAULT_BOT_REQUIREMENTS

    def test_telegram_requirements_not_duplicated(self):
        """Test an existing requirements.txt is kept."""
        text = (
            "Telegram bot\n```python # main.py\nimport telethon\n```\n"
            "```text # requirements.txt\ntelethon\n```"
        )

        files = extract_code_files(text)

        assert [f.name for f in files].count("requirements.txt") == 1
        assert files[-1].content == "telethon"
