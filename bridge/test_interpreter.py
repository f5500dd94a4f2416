"""
Unit tests for interpreter discovery
"""

import shlex
import subprocess
import sys

import pytest
from unittest.mock import Mock, patch, call

from bridge.errors import NoInterpreterFound
from bridge.interpreter import probe, resolve_interpreter, split_command


class TestProbe:
    """Test suite for the version probe."""

    @pytest.fixture
    def mock_run(self):
        with patch('bridge.interpreter.subprocess.run') as mock_run:
            yield mock_run

    def test_probe_success(self, mock_run):
        """Test probe reports success on exit status 0."""
        mock_run.return_value = Mock(returncode=0)

        assert probe("python3") is True
        args = mock_run.call_args[0][0]
        assert args == ["python3", "-V"]

    def test_probe_splits_multi_word_candidate(self, mock_run):
        """Test 'py -3' becomes two argv entries before the flag."""
        mock_run.return_value = Mock(returncode=0)

        probe("py -3")

        assert mock_run.call_args[0][0] == ["py", "-3", "-V"]

    def test_probe_nonzero_exit(self, mock_run):
        """Test probe fails on non-zero exit status."""
        mock_run.return_value = Mock(returncode=9009)

        assert probe("python") is False

    def test_probe_missing_executable(self, mock_run):
        """Test probe fails when the executable does not exist."""
        mock_run.side_effect = FileNotFoundError("No such file")

        assert probe("python7") is False

    def test_probe_timeout(self, mock_run):
        """Test probe fails when the interpreter hangs."""
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="python", timeout=5)

        assert probe("python", timeout=5) is False
        assert mock_run.call_args[1]['timeout'] == 5

    def test_probe_unparsable_candidate(self, mock_run):
        """Test a candidate with unbalanced quotes is skipped."""
        assert probe('python "3') is False
        mock_run.assert_not_called()

    def test_probe_empty_candidate(self, mock_run):
        """Test an empty candidate is never spawned."""
        assert probe("   ") is False
        mock_run.assert_not_called()

    def test_probe_real_interpreter(self):
        """Test probing the interpreter running this test."""
        assert probe(shlex.quote(sys.executable)) is True


class TestResolveInterpreter:
    """Test suite for interpreter resolution."""

    def test_first_working_candidate_wins(self):
        """Test resolution stops at the first successful probe."""
        with patch('bridge.interpreter.probe', side_effect=[False, True, True]) as mock_probe:
            result = resolve_interpreter(["py -3", "python3", "python"])

        assert result == "python3"
        assert mock_probe.call_count == 2
        assert mock_probe.call_args_list == [
            call("py -3", timeout=5.0),
            call("python3", timeout=5.0),
        ]

    def test_no_candidate_works(self):
        """Test NoInterpreterFound lists every candidate tried."""
        with patch('bridge.interpreter.probe', return_value=False):
            with pytest.raises(NoInterpreterFound) as exc_info:
                resolve_interpreter(["python3", "python"])

        error = exc_info.value
        assert error.status == 500
        assert error.candidates == ["python3", "python"]
        assert error.to_dict() == {"error": "No Python interpreter found (tried python3, python)"}

    def test_no_candidates(self):
        """Test an empty candidate list fails without probing."""
        with patch('bridge.interpreter.probe') as mock_probe:
            with pytest.raises(NoInterpreterFound):
                resolve_interpreter([])
        mock_probe.assert_not_called()

    def test_not_cached(self):
        """Test every call probes again."""
        with patch('bridge.interpreter.probe', return_value=True) as mock_probe:
            resolve_interpreter(["python3"])
            resolve_interpreter(["python3"])

        assert mock_probe.call_count == 2

    def test_probe_timeout_forwarded(self):
        """Test the probe timeout reaches each probe."""
        with patch('bridge.interpreter.probe', return_value=True) as mock_probe:
            resolve_interpreter(["python3"], probe_timeout=1.5)

        mock_probe.assert_called_once_with("python3", timeout=1.5)


def test_split_command():
    """Test invocation strings split shell-style."""
    assert split_command("python3") == ["python3"]
    assert split_command("py -3") == ["py", "-3"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
