#!/usr/bin/env python3
"""Validate local allocation engine environment readiness."""

from __future__ import annotations

import importlib
import shutil
import sys
import tempfile
from dataclasses import replace
from datetime import date
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from lodging.domain.models import Booking, UnresolvedRoom
from lodging.domain.resolver import AliasTable
from lodging.repository.data_repository import LodgingRepository
from lodging.services.allocation_service import AllocationService, BookingRequest
from lodging.utils.config import get_settings

SEPARATOR_LINE = "=" * 44
EXPECTED_SEED_ROOMS = 12


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="lodging-env-")

    # CHECK 1: Python version >= 3.10
    if sys.version_info >= (3, 10):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.10",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2: Required packages importable with versions
    required_packages = [
        ("fastapi", "fastapi"),
        ("uvicorn", "uvicorn"),
        ("pydantic", "pydantic"),
        ("httpx", "httpx"),
        ("icalendar", "icalendar"),
        ("pytest", "pytest"),
    ]
    import_errors: list[str] = []
    for module_name, dist_name in required_packages:
        try:
            importlib.import_module(module_name)
            version(dist_name)
        except (ImportError, PackageNotFoundError) as exc:
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    try:
        validation_settings = replace(
            get_settings(),
            database_path=Path(temp_dir) / "lodging_validation.db",
        )
        repository = LodgingRepository(validation_settings)

        # CHECK 3: Database initialization
        try:
            repository.initialize_database()
            ok, line = _print_result("Database initialization", True)
        except RuntimeError as exc:
            ok, line = _print_result("Database initialization", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 4: Room catalog seed
        try:
            seeded = repository.seed_room_catalog()
            if seeded != EXPECTED_SEED_ROOMS:
                raise RuntimeError(f"expected {EXPECTED_SEED_ROOMS} rooms, got {seeded}")
            ok, line = _print_result("Room catalog", True, f": {seeded} rooms")
        except (RuntimeError, OSError, ValueError, KeyError) as exc:
            ok, line = _print_result("Room catalog", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 5: Alias table load
        try:
            alias_table = AliasTable.load(validation_settings.room_alias_table_path)
            ok, line = _print_result("Alias table", True, f": version {alias_table.version}")
        except (OSError, ValueError, KeyError) as exc:
            ok, line = _print_result("Alias table", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 6: Resolve and place a booking end to end
        try:
            service = AllocationService(repository=repository, settings=validation_settings)
            resolved = service.resolve_room("Room101", "pueblo")
            if isinstance(resolved, UnresolvedRoom):
                raise RuntimeError(resolved.describe())
            placed = service.place_booking(
                BookingRequest(
                    room_type="dorm1",
                    location="pueblo",
                    check_in=date(2030, 1, 10),
                    check_out=date(2030, 1, 12),
                    guest_name="Validation",
                )
            )
            if not isinstance(placed, Booking):
                raise RuntimeError(f"placement returned {type(placed).__name__}")
            ok, line = _print_result(
                "Booking placement",
                True,
                f": {placed.resolved_room_id} unit {placed.unit_id}",
            )
        except (RuntimeError, ValueError) as exc:
            ok, line = _print_result("Booking placement", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" Lodging Engine Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
