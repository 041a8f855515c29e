import gc
import io
import pytest

from lox import scan, parse, resolve, interpret
from lox.lox_runtime import ScriptRunner
from lox.lox_interpreter import Evaluator, is_truthy, is_equal

# ===================================================================
# Helpers
# ===================================================================

@pytest.fixture
def runner():
    return ScriptRunner(clock=lambda: 42.0)

def run_lox(source: str, runner: ScriptRunner = None):
    runner = runner or ScriptRunner(clock=lambda: 42.0)
    return runner.handle_script(source)

def assert_output(source: str, expected):
    result = run_lox(source)
    assert result.status == 'success', result.format_error()
    assert result.output == expected

def assert_error(source: str, phase: str, message: str):
    result = run_lox(source)
    assert result.status == 'error', f"expected an error, got output {result.output}"
    assert result.phase == phase
    assert message in result.error_message
    return result

# ===================================================================
# Values and operators
# ===================================================================

@pytest.mark.parametrize("expr,expected", [
    ("1 + 2", "3"),
    ("10 - 4 * 2", "2"),
    ("10 / 4", "2.5"),
    ("-(3)", "-3"),
    ("2 * 3.5", "7"),
    ('"foo" + "bar"', "foobar"),
    ("1 < 2", "true"),
    ("2 <= 2", "true"),
    ("3 > 4", "false"),
    ("3 >= 4", "false"),
    ("!nil", "true"),
    ("!0", "false"),
    ('!""', "false"),
    ("1 / 0", "inf"),
    ("-1 / 0", "-inf"),
    ("0 / 0", "nan"),
])
def test_expressions(expr, expected):
    assert_output(f"print {expr};", [expected])

@pytest.mark.parametrize("expr,expected", [
    ("nil == nil", "true"),
    ("nil == false", "false"),
    ("1 == 1", "true"),
    ('"a" == "a"', "true"),
    ('1 == "1"', "false"),
    ("true == 1", "false"),
    ("false == 0", "false"),
    ("true != false", "true"),
    ("0 / 0 == 0 / 0", "false"),
])
def test_equality_never_coerces(expr, expected):
    assert_output(f"print {expr};", [expected])

def test_truthiness():
    assert_output(
        'if (0) print "zero"; if ("") print "empty"; if (nil) print "nil"; else print "no";',
        ["zero", "empty", "no"],
    )

def test_logical_operators_return_operands():
    assert_output(
        'print nil or "x"; print 1 and 2; print false and 1; print "a" or "b";',
        ["x", "2", "false", "a"],
    )

def test_logical_operators_short_circuit():
    source = (
        "var called = false;\n"
        "fun f() { called = true; return true; }\n"
        "print false and f();\n"
        "print true or f();\n"
        "print called;"
    )
    assert_output(source, ["false", "true", "false"])

def test_helpers():
    assert is_truthy(0.0) and is_truthy("") and is_truthy(True)
    assert not is_truthy(None) and not is_truthy(False)
    assert is_equal(None, None)
    assert not is_equal(True, 1.0)
    assert is_equal("a", "a")

# ===================================================================
# Variables, scope and closures
# ===================================================================

def test_shadowing_in_block():
    assert_output("var a = 1; { var a = 2; print a; } print a;", ["2", "1"])

def test_uninitialized_variable_is_nil():
    assert_output("var a; print a;", ["nil"])

def test_assignment_is_an_expression():
    assert_output("var a; var b; a = b = 3; print a; print b; print a = 4;", ["3", "3", "4"])

def test_local_assignment_stores_the_evaluated_value():
    assert_output("{ var a = 1; a = a + 1; print a; }", ["2"])

def test_assignment_to_enclosing_local():
    assert_output("{ var a = 1; { a = 5; } print a; }", ["5"])

def test_counter_closure():
    source = (
        "fun makeCounter() {\n"
        "  var i = 0;\n"
        "  fun count() { i = i + 1; print i; }\n"
        "  return count;\n"
        "}\n"
        "var counter = makeCounter();\n"
        "counter();\n"
        "counter();"
    )
    assert_output(source, ["1", "2"])

def test_closures_capture_independent_frames():
    source = (
        "fun makeAdder(n) { fun add(x) { return x + n; } return add; }\n"
        "var add1 = makeAdder(1);\n"
        "var add10 = makeAdder(10);\n"
        "print add1(5); print add10(5);"
    )
    assert_output(source, ["6", "15"])

def test_closure_binding_is_static():
    source = (
        'var a = "global";\n'
        "{\n"
        "  fun showA() { print a; }\n"
        "  showA();\n"
        '  var a = "block";\n'
        "  showA();\n"
        "}"
    )
    assert_output(source, ["global", "global"])

def test_loop_closures_share_the_loop_variable():
    source = (
        "var first; var second;\n"
        "for (var i = 0; i < 2; i = i + 1) {\n"
        "  fun show() { print i; }\n"
        "  if (i == 0) first = show; else second = show;\n"
        "}\n"
        "first(); second();"
    )
    assert_output(source, ["2", "2"])

def test_loop_closures_capture_a_per_iteration_copy():
    source = (
        "var first; var second;\n"
        "for (var i = 0; i < 2; i = i + 1) {\n"
        "  var j = i;\n"
        "  fun show() { print j; }\n"
        "  if (i == 0) first = show; else second = show;\n"
        "}\n"
        "first(); second();"
    )
    assert_output(source, ["0", "1"])

def test_globals_can_be_referenced_before_definition():
    source = 'fun a() { return b(); } fun b() { return "b"; } print a();'
    assert_output(source, ["b"])

def test_later_local_function_is_not_visible():
    assert_error(
        "{ fun a() { return b(); } fun b() { return 1; } print a(); }",
        "runtime", "Undefined variable 'b'.",
    )

def test_globals_persist_across_scripts(runner):
    assert runner.handle_script("var a = 1; fun inc() { a = a + 1; }").status == 'success'
    runner.handle_script("inc();")
    assert runner.handle_script("print a;").output == ["2"]

# ===================================================================
# Control flow and functions
# ===================================================================

def test_while_loop():
    assert_output("var i = 0; var s = 0; while (i < 5) { s = s + i; i = i + 1; } print s;", ["10"])

def test_for_loop():
    assert_output("for (var i = 0; i < 3; i = i + 1) print i;", ["0", "1", "2"])

def test_recursion():
    source = "fun fib(n) { if (n < 2) return n; return fib(n - 1) + fib(n - 2); } print fib(15);"
    assert_output(source, ["610"])

def test_return_unwinds_nested_blocks_and_loops():
    source = (
        "fun f() {\n"
        "  while (true) { { if (true) { return \"deep\"; } } }\n"
        "}\n"
        "print f();"
    )
    assert_output(source, ["deep"])

def test_return_from_for_loop():
    source = "fun find() { for (var i = 0; ; i = i + 1) { if (i * i > 50) return i; } } print find();"
    assert_output(source, ["8"])

def test_missing_or_bare_return_is_nil():
    assert_output("fun f() { return; } fun g() {} print f(); print g();", ["nil", "nil"])

def test_arguments_are_evaluated_left_to_right():
    source = (
        "fun show(x) { print x; return x; }\n"
        "fun add(a, b) { return a + b; }\n"
        "print add(show(1), show(2));"
    )
    assert_output(source, ["1", "2", "3"])

def test_function_values_print():
    assert_output("fun f() {} print f; print clock;", ["<fn f>", "<native fn>"])

def test_functions_are_first_class():
    source = "fun twice(f, x) { return f(f(x)); } fun inc(n) { return n + 1; } print twice(inc, 1);"
    assert_output(source, ["3"])

def test_clock_is_injectable():
    assert_output("print clock();", ["42"])

def test_default_clock_returns_a_number():
    result = ScriptRunner().handle_script("print clock() > 0;")
    assert result.output == ["true"]

# ===================================================================
# Runtime errors
# ===================================================================

@pytest.mark.parametrize("source,message", [
    ('print 1 + "bar";', "Operands must be two numbers or two strings."),
    ('print "a" + nil;', "Operands must be two numbers or two strings."),
    ('print 1 < "a";', "Operands must be numbers."),
    ('print "a" * 2;', "Operands must be numbers."),
    ('print -"a";', "Operand must be a number."),
    ("print -nil;", "Operand must be a number."),
    ('"abc"();', "Can only call functions and classes."),
    ("nil();", "Can only call functions and classes."),
    ("print x;", "Undefined variable 'x'."),
    ("x = 1;", "Undefined variable 'x'."),
    ("fun f(a, b) {} f(1, 2, 3);", "Expected 2 arguments but got 3."),
    ("fun f(a) {} f();", "Expected 1 arguments but got 0."),
    ("clock(1);", "Expected 0 arguments but got 1."),
])
def test_runtime_errors(source, message):
    result = assert_error(source, "runtime", message)
    assert result.exit_code == 70

def test_runtime_error_reports_line():
    result = assert_error("print 1;\n\nprint 1 + nil;", "runtime", "Operands must be")
    assert result.error_message == "Operands must be two numbers or two strings.\n[line 3]"

def test_runtime_error_stops_execution_but_keeps_prior_output():
    result = assert_error("print 1; print x; print 2;", "runtime", "Undefined variable 'x'.")
    assert result.output == ["1"]

def test_callee_is_checked_after_arguments():
    result = assert_error('var s = "s"; s(undefined);', "runtime", "Undefined variable 'undefined'.")
    assert "Can only call" not in result.error_message

def test_unbounded_recursion_is_a_stack_overflow():
    result = assert_error("fun f() { f(); } f();", "runtime", "Stack overflow.")
    assert result.exit_code == 70

def test_runner_is_usable_after_a_runtime_error(runner):
    assert runner.handle_script("fun f() { f(); } f();").status == 'error'
    assert runner.handle_script("print 1;").output == ["1"]

# ===================================================================
# Static errors stop execution
# ===================================================================

def test_static_error_prevents_any_output():
    result = assert_error(
        'var a = "outer"; print a; { var a = a; }',
        "static", "Can't read local variable in its own initializer.",
    )
    assert result.output == []
    assert result.exit_code == 65

def test_lexical_error_prevents_execution():
    result = assert_error("print 1; @", "static", "Unexpected character.")
    assert result.output == []

def test_all_static_errors_are_reported():
    result = assert_error("@\nprint ;", "static", "Unexpected character.")
    assert [e.line for e in result.errors] == [1, 2]
    assert "Expect expression." in result.error_message

def test_resolver_errors_are_all_reported():
    result = assert_error("return 1;\n{ var a = 1; var a = 2; }", "static", "Can't return")
    assert len(result.errors) == 2

# ===================================================================
# Output and public API
# ===================================================================

def test_stdout_stream_receives_print_lines():
    buf = io.StringIO()
    runner = ScriptRunner(stdout=buf)
    runner.handle_script('print "a"; print 1 + 1;')
    assert buf.getvalue() == "a\n2\n"

def test_side_effects_are_per_script(runner):
    runner.handle_script("print 1;")
    assert runner.handle_script("print 2;").output == ["2"]

def test_execution_is_deterministic():
    source = "var s = 0; for (var i = 1; i <= 10; i = i + 1) s = s + i / 3; print s;"
    assert run_lox(source).output == run_lox(source).output

def test_stage_functions_compose():
    tokens, lex_errors = scan("var a = 2; { var b = a * 3; print b; }")
    statements, parse_errors = parse(tokens)
    locals_, resolve_errors = resolve(statements)
    assert not lex_errors and not parse_errors and not resolve_errors
    buf = io.StringIO()
    assert interpret(statements, locals_, stdout=buf) is None
    assert buf.getvalue() == "6\n"

def test_interpret_returns_the_runtime_error():
    tokens, _ = scan("print nope;")
    statements, _ = parse(tokens)
    locals_, _ = resolve(statements)
    error = interpret(statements, locals_, evaluator=Evaluator())
    assert error is not None
    assert error.message == "Undefined variable 'nope'."
    assert error.token.lexeme == "nope"

def test_interpret_prints_to_stdout_by_default(capsys):
    tokens, _ = scan('print "hello"; print 1 + 1;')
    statements, _ = parse(tokens)
    locals_, _ = resolve(statements)
    assert interpret(statements, locals_) is None
    assert capsys.readouterr().out == "hello\n2\n"

# ===================================================================
# Host limits
# ===================================================================

def test_deep_but_finite_recursion_succeeds():
    source = "fun f(n) { if (n == 0) return 0; return f(n - 1) + 1; } print f(1000);"
    assert_output(source, ["1000"])

def test_deeply_nested_grouping_still_runs():
    depth = 400
    assert_output("print " + "(" * depth + "1" + ")" * depth + ";", ["1"])

def test_grouping_too_deep_to_parse_is_a_static_error():
    depth = 2000
    result = assert_error("print " + "(" * depth + "1" + ")" * depth + ";", "static", "Too much nesting.")
    assert result.exit_code == 65

def test_expression_too_deep_to_evaluate_is_a_runtime_error():
    result = assert_error("print " + " + ".join(["1"] * 15000) + ";", "runtime", "Stack overflow.")
    assert result.errors[0].token.lexeme == "+"
    assert result.exit_code == 70

# ===================================================================
# Distance table lifetime
# ===================================================================

def test_distance_table_releases_finished_top_level_code(runner):
    runner.handle_script("{ var a = 1; print a; }")
    gc.collect()
    assert len(runner.evaluator.locals) == 0

def test_distance_table_keeps_entries_for_live_functions(runner):
    runner.handle_script("fun same(x) { return x; }")
    gc.collect()
    assert len(runner.evaluator.locals) == 1
    assert runner.handle_script("print same(3);").output == ["3"]
