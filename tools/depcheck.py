from __future__ import annotations

import argparse
import ast
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

PACKAGE_ROOT = Path(__file__).resolve().parents[1] / "src" / "fulfillment"

_FRAMEWORKS = {
    "fastapi",
    "starlette",
    "sqlalchemy",
    "alembic",
    "redis",
    "stripe",
    "httpx",
    "requests",
    "opentelemetry",
}

LAYER_RULES: dict[str, set[str]] = {
    "domain": _FRAMEWORKS
    | {
        "pydantic",
        "prometheus_client",
        "fulfillment.api",
        "fulfillment.application",
        "fulfillment.infrastructure",
    },
    "application": _FRAMEWORKS | {"fulfillment.api", "fulfillment.infrastructure"},
}

FORBIDDEN_MODULES = LAYER_RULES["domain"]


@dataclass(frozen=True)
class Violation:
    file_path: Path
    line: int
    module: str


def _python_files(root: Path) -> Iterable[Path]:
    if root.is_file() and root.suffix == ".py":
        yield root
        return
    if root.is_dir():
        yield from root.rglob("*.py")


def _matches(module: str, forbidden_modules: set[str]) -> bool:
    return any(module == forbidden or module.startswith(f"{forbidden}.") for forbidden in forbidden_modules)


def _imported_modules(tree: ast.AST) -> Iterable[tuple[int, str]]:
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                yield node.lineno, alias.name
        elif isinstance(node, ast.ImportFrom) and node.module and node.level == 0:
            yield node.lineno, node.module


def _scan_file(file_path: Path, forbidden_modules: set[str]) -> list[Violation]:
    tree = ast.parse(file_path.read_text(encoding="utf-8"), filename=str(file_path))
    return [
        Violation(file_path=file_path, line=line, module=module)
        for line, module in _imported_modules(tree)
        if _matches(module, forbidden_modules)
    ]


def find_violations(
    paths: Sequence[Path],
    forbidden_modules: set[str] = FORBIDDEN_MODULES,
) -> list[Violation]:
    violations: list[Violation] = []
    for path in paths:
        for file_path in _python_files(path):
            violations.extend(_scan_file(file_path, forbidden_modules))
    return violations


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Layer dependency policy check for src/fulfillment (domain and application)."
    )
    parser.add_argument(
        "--path",
        action="append",
        default=[],
        help="Path to scan with the domain rules (repeatable). Defaults to every layer in LAYER_RULES.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    if args.path:
        violations = find_violations([Path(item) for item in args.path])
    else:
        violations = []
        for layer, forbidden_modules in LAYER_RULES.items():
            violations.extend(find_violations([PACKAGE_ROOT / layer], forbidden_modules))

    if not violations:
        print("depcheck passed")
        return 0

    print("depcheck failed: forbidden imports detected")
    for violation in violations:
        print(f"{violation.file_path}:{violation.line} -> {violation.module}")
    return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
