"""
Test configuration for the Mava interpreter tests
"""

import sys
from pathlib import Path

import pytest

# Add the project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from interpreter import Interpreter


class Session:
    """Runs source text with captured output and scripted input."""

    def __init__(self, inputs=None):
        self.output = []
        self.inputs = list(inputs or [])
        self.interpreter = None

    def _next_input(self):
        if not self.inputs:
            raise EOFError
        return self.inputs.pop(0)

    def run(self, source, filename="<test>", verbose=False):
        self.output = []
        self.interpreter = Interpreter(
            source=source,
            filename=filename,
            verbose=verbose,
            input_provider=self._next_input,
            output_sink=self.output.append,
        )
        return self.interpreter.run()

    @property
    def text(self):
        return "".join(self.output)


@pytest.fixture
def session():
    return Session()


@pytest.fixture
def run(session):
    """Run source and return (result value, printed text)."""

    def _run(source, **kwargs):
        result = session.run(source, **kwargs)
        return result, session.text

    return _run


@pytest.fixture
def evaluate(session):
    """Evaluate a single expression via a top-level return."""

    def _evaluate(expression):
        return session.run(f"return {expression}")

    return _evaluate
