"""
Unit tests for utility helpers
"""
import time

import pytest

from smartlearn.core.exceptions import DeadlineExceeded
from smartlearn.utils.helpers import (
    call_with_deadline,
    extract_json,
    percentage,
    round_half_up,
    safe_filename,
    slugify,
)


class TestExtractJson:
    """Test cases for extract_json"""

    def test_bare(self):
        assert extract_json('[{"a": 1}]') == [{"a": 1}]

    def test_fenced(self):
        content = 'Sure!\n```json\n{"isCorrect": true}\n```\nDone.'
        assert extract_json(content) == {"isCorrect": True}

    def test_embedded_in_prose(self):
        content = 'The quiz is [{"question": "Q?"}] as requested.'
        assert extract_json(content, expect=list) == [{"question": "Q?"}]

    def test_expected_type(self):
        content = 'Items [1, 2] and verdict {"ok": true}'
        assert extract_json(content, expect=dict) == {"ok": True}
        assert extract_json(content, expect=list) == [1, 2]

    @pytest.mark.parametrize("content", ["", "no json here", "{broken", "42"])
    def test_nothing_usable(self, content):
        assert extract_json(content) is None


class TestScoring:
    """Test cases for rounding helpers"""

    @pytest.mark.parametrize("value,expected", [(62.5, 63), (33.33, 33), (66.67, 67), (0.5, 1), (0, 0)])
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected

    def test_percentage(self):
        assert percentage(2, 3) == 67
        assert percentage(5, 5) == 100
        assert percentage(0, 0) == 0


class TestCallWithDeadline:
    """Test cases for call_with_deadline"""

    def test_inline_without_timeout(self):
        assert call_with_deadline(lambda x: x * 2, 21, timeout=0) == 42

    def test_result_within_deadline(self):
        assert call_with_deadline(lambda: "ok", timeout=1.0) == "ok"

    def test_deadline_exceeded(self):
        with pytest.raises(DeadlineExceeded) as exc_info:
            call_with_deadline(time.sleep, 0.5, timeout=0.05, service="slow-service")
        assert exc_info.value.service == "slow-service"

    def test_errors_propagate(self):
        def fail():
            raise ValueError("bad")

        with pytest.raises(ValueError):
            call_with_deadline(fail, timeout=1.0)


class TestNames:
    """Test cases for filename helpers"""

    def test_slugify(self):
        assert slugify("Biology 101: Cells & Energy!") == "biology-101-cells-energy"

    def test_safe_filename(self):
        assert safe_filename('a/b:c?.pdf') == "a_b_c_.pdf"
