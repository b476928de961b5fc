from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path
from typing import Iterator

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from fulfillment.infrastructure.db import session as db_session
from fulfillment.infrastructure.messaging import redis_publisher

PROJECT_DIR = Path(__file__).resolve().parents[2]


@pytest.fixture(scope="session", autouse=True)
def integration_environment(tmp_path_factory: pytest.TempPathFactory) -> Iterator[None]:
    database_path = tmp_path_factory.mktemp("db") / "fulfillment.sqlite3"
    database_url = f"sqlite:///{database_path}"

    os.environ["DATABASE_URL"] = database_url
    os.environ.pop("REDIS_URL", None)
    os.environ.pop("STRIPE_SECRET_KEY", None)
    os.environ["APP_ENV"] = "test"
    os.environ["ORDER_CURRENCY"] = "ETB"
    os.environ["MOBILE_MONEY_RECIPIENT"] = "+251911000000"
    os.environ.setdefault("OTEL_SERVICE_NAME", "fulfillment-backend-test")
    os.environ.pop("OTEL_EXPORTER_OTLP_ENDPOINT", None)

    db_session.reset_engine_cache()
    redis_publisher._build_client.cache_clear()

    env = os.environ.copy()
    env["PYTHONPATH"] = f"{PROJECT_DIR / 'src'}{os.pathsep}{env.get('PYTHONPATH', '')}".rstrip(os.pathsep)

    subprocess.run(
        [sys.executable, "-m", "alembic", "-c", "alembic.ini", "upgrade", "head"],
        cwd=PROJECT_DIR,
        env=env,
        check=True,
    )
    subprocess.run(
        [sys.executable, "-m", "fulfillment.tools.seed"],
        cwd=PROJECT_DIR,
        env=env,
        check=True,
    )
    yield
    db_session.reset_engine_cache()
