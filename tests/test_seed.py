"""Tests for provider roster seeding."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from src.data.seed import load_providers, seed_providers
from src.models.complaint import Provider
from src.models.enums import Department
from src.services.repository import InMemoryComplaintRepository


def write_roster(tmp_path: Path, entries: list[dict]) -> Path:
    path = tmp_path / "roster.json"
    path.write_text(json.dumps(entries), encoding="utf-8")
    return path


class TestLoadProviders:
    def test_bundled_roster_covers_every_department(self) -> None:
        providers = load_providers()
        assert {p.department for p in providers} == set(Department)

    def test_invalid_entries_skipped(self, tmp_path) -> None:
        path = write_roster(
            tmp_path,
            [
                {"name": "Ravi", "department": "Water Resources"},
                {"name": "Nobody", "department": "Space Agency"},
                {"department": "Electricity"},
            ],
        )
        providers = load_providers(path)
        assert [p.name for p in providers] == ["Ravi"]
        assert providers[0].provider_id

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            load_providers(tmp_path / "absent.json")


class TestSeedProviders:
    async def test_registers_roster(self, tmp_path) -> None:
        repository = InMemoryComplaintRepository()
        path = write_roster(
            tmp_path,
            [
                {"provider_id": "ravi", "name": "Ravi", "department": "Water Resources"},
                {"provider_id": "kavi", "name": "Kavitha", "department": "Sanitation"},
            ],
        )

        added = await seed_providers(repository, path=path)

        assert [p.provider_id for p in added] == ["ravi", "kavi"]
        water = await repository.list_providers(Department.WATER_RESOURCES)
        assert [p.name for p in water] == ["Ravi"]

    async def test_existing_providers_kept(self, tmp_path) -> None:
        repository = InMemoryComplaintRepository()
        await repository.add_provider(
            Provider(provider_id="ravi", name="Ravi Kumar", department=Department.WATER_RESOURCES)
        )
        path = write_roster(tmp_path, [{"provider_id": "ravi", "name": "Ravi", "department": "Water Resources"}])

        assert await seed_providers(repository, path=path) == []
        assert (await repository.get_provider("ravi")).name == "Ravi Kumar"

    async def test_empty_roster(self, tmp_path) -> None:
        repository = InMemoryComplaintRepository()
        assert await seed_providers(repository, path=write_roster(tmp_path, [])) == []
