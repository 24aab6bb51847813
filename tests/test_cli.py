import json

import pytest

from errors import MavaRuntimeError
from interpreter import Interpreter, TracebackFormatter
from mava import EXIT_ASSERTION, EXIT_ERROR, EXIT_OK, run_cli


FAILING_PROGRAM = (
    "def inner(x) {\n"
    "  return x + missing\n"
    "}\n"
    "def outer() {\n"
    "  return inner(1)\n"
    "}\n"
    "outer()\n"
)


def failing_interpreter(verbose=False):
    interp = Interpreter(source=FAILING_PROGRAM, filename="<prog>", verbose=verbose, output_sink=lambda t: None)
    with pytest.raises(MavaRuntimeError) as info:
        interp.run()
    return interp, info.value


class TestTraceback:
    def test_frames_follow_the_call_stack(self):
        interp, error = failing_interpreter()
        frames = TracebackFormatter(interp).build_frames()
        assert [f.name for f in frames] == ["<top-level>", "outer", "inner"]
        assert frames[-1].location.line == 2

    def test_text(self):
        interp, error = failing_interpreter()
        text = TracebackFormatter(interp).format_text(error, verbose=False)
        lines = text.splitlines()
        assert lines[0] == "error[name]: no such variable: missing"
        assert lines[1] == "  --> <prog>:2:14"
        assert lines[2] == "call stack (innermost last):"
        assert lines[3].startswith("  <top-level> at <prog>:7: outer()")
        assert lines[5].startswith("  inner at <prog>:2: return x + missing  [step ")
        assert lines[-1] == "UnboundIdentifierError (rule: IDENT)"
        assert "x = NUMBER:1" not in text

    def test_verbose_text_lists_frame_variables(self):
        interp, error = failing_interpreter(verbose=True)
        text = TracebackFormatter(interp).format_text(error, verbose=True)
        assert "      x = NUMBER:1" in text.splitlines()

    def test_recursive_frames_are_collapsed(self):
        interp = Interpreter(
            source="def down(n) { return n == 0 ? nope : down(n - 1) }\ndown(20)",
            filename="<prog>",
            output_sink=lambda t: None,
        )
        with pytest.raises(MavaRuntimeError) as info:
            interp.run()
        lines = TracebackFormatter(interp).format_text(info.value, verbose=False).splitlines()
        assert "  ... 17 more calls to down" in lines
        assert sum(1 for line in lines if line.startswith("  down at ")) == 2 * TracebackFormatter.RUN_EDGE

    def test_json(self):
        interp, error = failing_interpreter()
        data = json.loads(TracebackFormatter(interp).to_json(error))
        assert data["error"]["type"] == "UnboundIdentifierError"
        assert data["error"]["category"] == "name"
        assert data["error"]["location"]["line"] == 2
        assert data["error"]["step_index"] == error.step_index
        assert [f["name"] for f in data["call_stack"]] == ["<top-level>", "outer", "inner"]


class TestCli:
    def test_source_mode(self, capsys):
        assert run_cli(["-source", "println(1 + 1)"]) == EXIT_OK
        assert capsys.readouterr().out == "2\n"

    def test_file(self, tmp_path, capsys):
        path = tmp_path / "prog.mava"
        path.write_text('for i = 1 to 2 { print(i) }\nprintln("!")\n', encoding="utf-8")
        assert run_cli([str(path)]) == EXIT_OK
        assert capsys.readouterr().out == "12!\n"

    def test_missing_file(self, tmp_path, capsys):
        assert run_cli([str(tmp_path / "none.mava")]) == EXIT_ERROR
        assert "Failed to read" in capsys.readouterr().err

    def test_parse_error(self, capsys):
        assert run_cli(["-source", "x = (1"]) == EXIT_ERROR
        assert capsys.readouterr().err.startswith("ParseError:")

    def test_runtime_error(self, capsys):
        assert run_cli(["-source", "x = nope", "--traceback-json"]) == EXIT_ERROR
        err = capsys.readouterr().err
        assert "error[name]: no such variable: nope" in err
        assert '"type": "UnboundIdentifierError"' in err

    def test_assertion_failure(self, capsys):
        assert run_cli(["-source", "assert(1 > 2)"]) == EXIT_ASSERTION
        assert capsys.readouterr().err.strip() == "Failed Assertion 1>2 line:1"

    def test_source_flag_needs_program(self, capsys):
        assert run_cli(["-source"]) == EXIT_ERROR

    def test_deep_recursion(self, capsys):
        source = "def f(n) { return n <= 0 ? 0 : 1 + f(n - 1) }\nprintln(f(3000))"
        assert run_cli(["-source", source]) == EXIT_OK
        assert capsys.readouterr().out == "3000\n"
