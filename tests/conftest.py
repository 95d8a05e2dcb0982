"""Shared fixtures for the job pipeline tests."""

from __future__ import annotations

import pytest

from tests.fakes import FakeLedger, FakeStore, InMemoryHeroesRepo, InMemoryJobsRepo, InMemoryProjectsRepo, make_line_art_png


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def jobs_repo() -> InMemoryJobsRepo:
  return InMemoryJobsRepo()


@pytest.fixture
def projects_repo() -> InMemoryProjectsRepo:
  return InMemoryProjectsRepo()


@pytest.fixture
def heroes_repo() -> InMemoryHeroesRepo:
  return InMemoryHeroesRepo()


@pytest.fixture
def ledger() -> FakeLedger:
  return FakeLedger()


@pytest.fixture
def store() -> FakeStore:
  return FakeStore()


@pytest.fixture
def line_art_png() -> bytes:
  return make_line_art_png()
