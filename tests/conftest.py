# tests/conftest.py
# 인메모리 SQLite + 정산 정책 YAML 오버라이드 픽스처
import pytest
import yaml
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from openmarket import models  # noqa: F401  (메타데이터 등록)
from openmarket.database import Base, get_db
from openmarket.main import app
from openmarket.policy.params.loader import DEFAULT_POLICY_PATH
from openmarket.policy.runtime import reload_policy_cache


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(session_factory):
    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    # lifespan(create_all) 은 파일 DB 를 건드리므로 with 블록 없이 사용
    yield TestClient(app)
    app.dependency_overrides.pop(get_db, None)


# ---------------------------------------------------------
# 정산 정책 (YAML) 오버라이드
# ---------------------------------------------------------
@pytest.fixture(autouse=True)
def _fresh_policy():
    reload_policy_cache()
    yield
    reload_policy_cache()


@pytest.fixture()
def policy_override(tmp_path, monkeypatch):
    """
    defaults.yaml 을 복사해서 일부 키만 바꾼 YAML 로 정책 캐시를 교체한다.
        policy_override(commission={"resolution_mode": "ITEM_CATEGORY"})
    """
    def _apply(**sections):
        raw = yaml.safe_load(DEFAULT_POLICY_PATH.read_text(encoding="utf-8"))
        for section, values in sections.items():
            raw.setdefault(section, {}).update(values)
        path = tmp_path / "policy.yaml"
        path.write_text(yaml.safe_dump(raw, allow_unicode=True), encoding="utf-8")
        monkeypatch.setenv("SETTLEMENT_POLICY_YAML_PATH", str(path))
        return reload_policy_cache()

    return _apply


@pytest.fixture()
def item_category_mode(policy_override):
    return policy_override(commission={"resolution_mode": "ITEM_CATEGORY"})
