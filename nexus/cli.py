"""
NEXUS command line interface.

Runs a script file, a `-c` program string, or an interactive shell.

Examples:
    nexus hello.nx
    nexus -i
    nexus -d program.nx
    nexus -c 'print(1 + 2)'

Author: xwest
"""

import argparse
import logging
import platform
import sys
import time
from typing import Callable, List, Optional, TextIO

from colorama import Fore, Style, just_fix_windows_console

from . import __version__
from .config import InterpreterConfig
from .interpreter import Interpreter, ParseError
from .lexer import Lexer, LexerError, TokenType
from .runtime import NexusRuntimeError

logger = logging.getLogger(__name__)

NEXUS_ERRORS = (LexerError, ParseError, NexusRuntimeError)

REPL_HELP = """Interactive Commands:
  help     - Show this help
  exit     - Exit the shell (also: quit)
  clear    - Clear variables and models
  vars     - Show all variables
  models   - Show all models
"""

OPEN_BRACKETS = (TokenType.LEFT_PAREN, TokenType.LEFT_BRACKET, TokenType.LEFT_BRACE)
CLOSE_BRACKETS = (TokenType.RIGHT_PAREN, TokenType.RIGHT_BRACKET, TokenType.RIGHT_BRACE)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nexus",
        description="NEXUS Programming Language",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    nexus hello.nx              # Run a script
    nexus -i                    # Start the interactive shell
    nexus -d program.nx         # Run with debug logging
    nexus -c 'print(6 * 7)'     # Run a program string
        """
    )

    parser.add_argument('file', nargs='?', help='NEXUS source file (.nx)')
    parser.add_argument('-c', '--command', help='Program passed in as a string')
    parser.add_argument('-i', '--interactive', action='store_true',
                        help='Start interactive REPL')
    parser.add_argument('-d', '--debug', action='store_true',
                        help='Enable debug mode')
    parser.add_argument('-p', '--profile', action='store_true',
                        help='Enable profiling and report execution time')
    parser.add_argument('-o', '--output', metavar='FILE',
                        help='Write program output to FILE')
    parser.add_argument('-v', '--version', action='store_true',
                        help='Show version information')
    return parser


def version_text() -> str:
    return (
        "NEXUS Programming Language\n"
        f"Version: {__version__}\n"
        f"Python: {platform.python_version()} ({platform.python_implementation()})\n"
        f"Platform: {platform.system()}\n"
    )


def format_error(error, color: bool = True) -> str:
    text = str(error).rstrip("\n")
    if color:
        return f"{Fore.RED}{text}{Style.RESET_ALL}"
    return text


def bracket_balance(source: str) -> int:
    """Open minus closed brackets; positive means the input is unfinished."""
    lexer = Lexer(source, "<stdin>")
    balance = 0
    while True:
        token = lexer.next_token()
        if token.type == TokenType.EOF:
            return balance
        if token.type in OPEN_BRACKETS:
            balance += 1
        elif token.type in CLOSE_BRACKETS:
            balance -= 1


def run_source(interpreter: Interpreter, source: str, filename: str,
               profile: bool = False, stderr: Optional[TextIO] = None) -> int:
    """Execute a whole program; returns the process exit status."""
    stderr = stderr or sys.stderr
    start = time.perf_counter()
    try:
        interpreter.execute(source, filename)
    except NEXUS_ERRORS as error:
        stderr.write(format_error(error) + "\n")
        return 1

    if profile:
        elapsed_ms = (time.perf_counter() - start) * 1000
        interpreter.write(f"\nExecution time: {elapsed_ms:.3f}ms\n")
    return 0


def run_repl(interpreter: Interpreter, read_line: Callable[[str], str] = input,
             stdout: Optional[TextIO] = None, stderr: Optional[TextIO] = None) -> int:
    """
    Interactive shell.

    Each entry is executed in the same interpreter, so definitions persist.
    Input with unclosed brackets continues on the next line. Errors are
    reported and the shell keeps going.
    """
    stdout = stdout or sys.stdout
    stderr = stderr or sys.stderr

    stdout.write(f"NEXUS Interactive Shell v{__version__}\n")
    stdout.write("Type 'exit' to quit, 'help' for commands\n\n")

    line_number = 1
    buffer: List[str] = []
    while True:
        prompt = "...> " if buffer else f"nexus:{line_number}> "
        try:
            line = read_line(prompt)
        except EOFError:
            stdout.write("\n")
            break
        except KeyboardInterrupt:
            stdout.write("\n")
            buffer.clear()
            continue

        if not buffer:
            command = line.strip()
            if command in ("exit", "quit"):
                break
            if command == "help":
                stdout.write(REPL_HELP)
                continue
            if command == "clear":
                interpreter.clear_environment()
                stdout.write("Environment cleared.\n")
                continue
            if command == "vars":
                interpreter.print_variables(stdout)
                continue
            if command == "models":
                interpreter.print_models(stdout)
                continue
            if not command:
                continue

        buffer.append(line)
        source = "\n".join(buffer)
        if bracket_balance(source) > 0:
            continue
        buffer.clear()

        try:
            interpreter.execute(source, "<stdin>")
        except NEXUS_ERRORS as error:
            stderr.write(format_error(error) + "\n")
        line_number += 1

    stdout.write("Goodbye!\n")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.version:
        sys.stdout.write(version_text())
        return 0

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s"
    )
    just_fix_windows_console()

    filename = args.file or "<command>"
    config = InterpreterConfig(debug=args.debug, profiling=args.profile, filename=filename)

    output = None
    if args.output:
        try:
            output = open(args.output, 'w', encoding='utf-8')
        except OSError as e:
            sys.stderr.write(format_error(e) + "\n")
            return 1

    try:
        interpreter = Interpreter(config, output=output)

        if args.command is not None:
            status = run_source(interpreter, args.command, "<command>", args.profile)
            if args.interactive and status == 0:
                return run_repl(interpreter)
            return status

        if args.file:
            try:
                with open(args.file, 'r', encoding='utf-8') as f:
                    source = f.read()
            except OSError as e:
                sys.stderr.write(format_error(f"Cannot open file: {args.file} ({e.strerror})") + "\n")
                return 1
            logger.debug("Running %s", args.file)
            status = run_source(interpreter, source, args.file, args.profile)
            if not args.interactive or status != 0:
                return status
        elif not args.interactive:
            sys.stdout.write("No input file provided. Starting interactive mode...\n")
        return run_repl(interpreter)
    finally:
        if output is not None:
            output.close()


if __name__ == '__main__':
    sys.exit(main())
