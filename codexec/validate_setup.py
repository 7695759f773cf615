#!/usr/bin/env python3
"""
Validate Setup — Pre-flight checks for the codexec engine.

Run this before starting the server to catch configuration issues early:
    python -m codexec.validate_setup

Checks:
  1. All module imports resolve
  2. Configuration loads from the environment
  3. Docker daemon is reachable and the sandbox image is present
  4. A print('ok') round trip through a real container
  5. Leftover containers from earlier runs are removed

Exit status is 1 if any check failed, 0 otherwise.
"""

import asyncio
import importlib
import sys
import tempfile

REQUIRED_MODULES = [
    "docker",
    "requests",
    "codexec",
    "codexec.models",
    "codexec.models.types",
    "codexec.models.events",
    "codexec.core",
    "codexec.core.config",
    "codexec.core.errors",
    "codexec.core.environment",
    "codexec.core.demux",
    "codexec.core.deadline",
    "codexec.core.harvester",
    "codexec.core.docker_sandbox",
    "codexec.core.sandbox_factory",
]


class Report:
    """Tallies PASS/FAIL/WARN lines as sections run."""

    def __init__(self):
        self.passed = 0
        self.failed = 0
        self.warned = 0

    def section(self, title: str):
        print(f"\n--- {title} ---")

    def check(self, name: str, ok: bool, detail: str = "") -> bool:
        if ok:
            self.passed += 1
            print(f"  [PASS] {name}")
        else:
            self.failed += 1
            print(f"  [FAIL] {name}" + (f": {detail}" if detail else ""))
        return ok

    def warn(self, name: str, detail: str):
        self.warned += 1
        print(f"  [WARN] {name}: {detail}")

    def finish(self) -> int:
        print(f"\nPASS {self.passed}  FAIL {self.failed}  WARN {self.warned}")
        if self.failed:
            print("Fix the failed checks before running the server.")
            return 1
        if self.warned:
            print("Executions will fail until the warnings are resolved.")
        else:
            print("Ready.")
        return 0


def check_imports(report: Report) -> bool:
    report.section("Imports")
    ok = True
    for mod in REQUIRED_MODULES:
        try:
            importlib.import_module(mod)
            report.check(f"import {mod}", True)
        except ImportError as e:
            ok = report.check(f"import {mod}", False, str(e)) and ok
    return ok


def check_round_trip(report: Report, sandbox):
    report.section("Round trip")
    with tempfile.NamedTemporaryFile(suffix=".csv") as f:
        try:
            result = asyncio.run(sandbox.execute("print('ok')", f.name))
        except Exception as e:
            report.check("print('ok') in a container", False, f"{type(e).__name__}: {e}")
            return
    report.check(
        "print('ok') in a container",
        result.success and result.stdout.strip() == "ok",
        f"exit={result.exit_code} stderr={result.stderr.strip()[:200]}",
    )


def main() -> int:
    report = Report()
    if not check_imports(report):
        print("\nImports failed; skipping remaining checks.")
        return report.finish()

    from codexec.core.config import SandboxConfig
    from codexec.core.sandbox_factory import create_sandbox

    report.section("Configuration")
    try:
        config = SandboxConfig.from_env()
    except ValueError as e:
        report.check("SandboxConfig.from_env()", False, str(e))
        return report.finish()
    report.check("SandboxConfig.from_env()", True)
    print(f"         image={config.image}  max_output={config.max_output_bytes}  "
          f"work_root={config.work_root or tempfile.gettempdir()}")

    sandbox = create_sandbox(config)

    report.section("Docker")
    daemon_ok = report.check("daemon reachable", sandbox.environment.ping(), "ping failed")
    image_ok = daemon_ok and report.check(
        f"image {config.image} available", asyncio.run(sandbox.health_check())
    )

    if image_ok:
        check_round_trip(report, sandbox)
    else:
        report.warn("Round trip", "skipped, Docker or image unavailable")

    if daemon_ok:
        asyncio.run(sandbox.cleanup())

    return report.finish()


if __name__ == "__main__":
    sys.exit(main())
