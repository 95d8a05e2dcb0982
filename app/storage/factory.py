from app.config import Settings
from app.storage.jobs_repo import JobsRepository
from app.storage.postgres_jobs_repo import PostgresJobsRepository
from app.storage.postgres_projects_repo import PostgresHeroesRepository, PostgresProjectsRepository
from app.storage.projects_repo import HeroesRepository, ProjectsRepository


def _require_dsn(settings: Settings) -> None:
  if not settings.pg_dsn:
    raise ValueError("LINEWORK_PG_DSN must be set to enable Postgres persistence.")


def _get_jobs_repo(settings: Settings) -> JobsRepository:
  """Return the active jobs repository."""
  _require_dsn(settings)
  return PostgresJobsRepository()


def _get_projects_repo(settings: Settings) -> ProjectsRepository:
  """Return the active projects repository."""
  _require_dsn(settings)
  return PostgresProjectsRepository()


def _get_heroes_repo(settings: Settings) -> HeroesRepository:
  """Return the active heroes repository."""
  _require_dsn(settings)
  return PostgresHeroesRepository()
