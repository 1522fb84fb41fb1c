import sys
from pathlib import Path
from typing import List, Optional

from minilisp.minilisp_runtime import ScriptRunner
from minilisp.minilisp_printer import Printer


# A basic input prompt.
def read_line(prompt: str) -> str:
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return sys.stdin.readline()


def run_script_file(file_path: str, globals_file: Optional[str] = None):
    """Run a MiniLISP script file non-interactively and exit with appropriate status."""
    runner = ScriptRunner(globals_file=globals_file)
    printer = Printer()
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    result = runner.handle_script(source)
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        raise SystemExit(1)
    if result.value is not None:
        print(printer.pformat(result.value))


def main(argv: Optional[List[str]] = None):
    """Run a script file when provided, otherwise start the interactive REPL.

    Usage: minilisp [script] [--globals FILE]
    """
    args = list(sys.argv[1:] if argv is None else argv)
    globals_file = None
    if "--globals" in args:
        i = args.index("--globals")
        if i + 1 >= len(args):
            print("Error: --globals requires a file argument", file=sys.stderr)
            raise SystemExit(2)
        globals_file = args[i + 1]
        del args[i:i + 2]

    if args and not args[0].startswith("-"):
        run_script_file(args[0], globals_file)
        return

    print("MiniLISP REPL v0.1")
    print("Type 'exit' or press Ctrl+D to quit.")

    runner = ScriptRunner(globals_file=globals_file)
    printer = Printer()

    while True:
        try:
            raw = read_line(">> ")
            if raw == "":
                raise EOFError
            line = raw.strip()

            if not line:
                continue
            if line == "exit":
                break

            result = runner.handle_script(line)

            if result.status == 'error':
                # Location-aware message
                print(result.format_error(), file=sys.stderr)
                continue

            if result.value is not None:
                print(printer.pformat(result.value))

        except EOFError:
            print("\nExiting.")
            break
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\nExiting.")
