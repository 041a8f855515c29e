import argparse
import sys
from pathlib import Path

from lox.lox_runtime import ScriptRunner, EXIT_OK, EXIT_STATIC_ERROR
from lox.lox_lexer import scan
from lox.lox_parser import parse
from lox.lox_printer import Printer
from lox.lox_serialize import serialize

EXIT_NO_INPUT = 66


# A basic input prompt.
def read_line(prompt: str) -> str:
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return sys.stdin.readline()


def _read_source(file_path: str):
    try:
        return Path(file_path).read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        return None


def dump_source(source: str, what: str, fmt: str = "text") -> int:
    """Print the token stream or the parsed program instead of running it."""
    tokens, errors = scan(source)
    if what == "tokens":
        if fmt == "text":
            for token in tokens:
                print(f"{token.line}:{token.col} {token}")
        else:
            print(serialize(tokens, fmt=fmt))
    else:
        statements, parse_errors = parse(tokens)
        errors = [*errors, *parse_errors]
        if fmt == "text":
            print(Printer().pformat_program(statements))
        else:
            print(serialize(statements, fmt=fmt))
    for err in errors:
        print(err, file=sys.stderr)
    return EXIT_STATIC_ERROR if errors else EXIT_OK


def run_script_file(file_path: str) -> int:
    """Run a Lox script file non-interactively and return the exit status."""
    source = _read_source(file_path)
    if source is None:
        return EXIT_NO_INPUT
    runner = ScriptRunner(stdout=sys.stdout)
    result = runner.handle_script(source)
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
    return result.exit_code


def repl():
    """Read lines and run each through one runner, so globals carry over."""
    print("Lox REPL v0.1")
    print("Type 'exit' or press Ctrl+D to quit.")

    runner = ScriptRunner(stdout=sys.stdout)

    while True:
        try:
            raw = read_line("> ")
            if raw == "":
                raise EOFError
            line = raw.strip()

            if not line:
                continue
            if line == "exit":
                break

            result = runner.handle_script(line)
            if result.status == 'error':
                print(result.format_error(), file=sys.stderr)

        except EOFError:
            print("\nExiting.")
            break
        except Exception as e:
            # Internal failures should not end the session.
            print(f"Error: {e}", file=sys.stderr)


def main(argv=None) -> int:
    """Run a script file when provided, otherwise start the interactive REPL."""
    parser = argparse.ArgumentParser(prog="lox", description="Run Lox scripts or start a REPL.")
    parser.add_argument("script", nargs="?", help="script to run (if omitted, starts the REPL)")
    dump = parser.add_mutually_exclusive_group()
    dump.add_argument("--tokens", action="store_true", help="print the token stream and exit")
    dump.add_argument("--ast", action="store_true", help="print the parsed program and exit")
    parser.add_argument("--format", choices=["text", "json", "yaml"], default="text",
                        help="output format for --tokens/--ast")
    args = parser.parse_args(argv)

    if args.tokens or args.ast:
        if args.script is None:
            parser.error("--tokens and --ast need a script")
        source = _read_source(args.script)
        if source is None:
            return EXIT_NO_INPUT
        return dump_source(source, "tokens" if args.tokens else "ast", args.format)

    if args.script is not None:
        return run_script_file(args.script)

    repl()
    return EXIT_OK


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nExiting.")
