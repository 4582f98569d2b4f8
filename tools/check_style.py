#!/usr/bin/env python3
"""Check for banned Python constructions in Corral source.

Banned constructions:

    Construction          Reason                            Use instead
    --------------------  --------------------------------  --------------------------
    import shlex          permission bodies are split by    corral.core.bash
    from shlex import     bashlex, in one place             (command_words)
"""

import ast
import os
import sys

BANNED_MODULES = frozenset({"shlex"})
HINT = "use corral.core.bash for word splitting"


def find_python_files(directory):
    """Find all .py files recursively."""
    result = []
    for root, dirs, files in os.walk(directory):
        dirs[:] = [d for d in dirs if d != "__pycache__"]
        for f in files:
            if f.endswith(".py"):
                result.append(os.path.join(root, f))
    result.sort()
    return result


def check_source(source, filename="<source>"):
    """Return (lineno, description) for each banned construction."""
    tree = ast.parse(source, filename)
    errors = []

    for node in ast.walk(tree):
        lineno = getattr(node, "lineno", 0)

        if isinstance(node, ast.Import):
            for alias in node.names:
                if alias.name.split(".")[0] in BANNED_MODULES:
                    errors.append((lineno, f"import {alias.name}: banned, {HINT}"))

        if isinstance(node, ast.ImportFrom):
            if node.module and node.module.split(".")[0] in BANNED_MODULES:
                errors.append((lineno, f"from {node.module} import: banned, {HINT}"))

    return errors


def check_file(filepath):
    with open(filepath) as f:
        return check_source(f.read(), filepath)


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    src_dir = argv[0] if argv else "src"

    if not os.path.isdir(src_dir):
        print(f"Directory not found: {src_dir}")
        return 1

    files = find_python_files(src_dir)
    if not files:
        print(f"No Python files found in: {src_dir}")
        return 1

    all_errors = []
    for filepath in files:
        try:
            for lineno, description in check_file(filepath):
                all_errors.append((filepath, lineno, description))
        except SyntaxError as e:
            print(f"Syntax error in {filepath}: {e}")
            return 1

    if not all_errors:
        return 0

    print(f"Found {len(all_errors)} banned construction(s):")
    for filepath, lineno, description in sorted(all_errors):
        print(f"  {filepath}:{lineno}: {description}")
    return 1


if __name__ == "__main__":
    sys.exit(main())
