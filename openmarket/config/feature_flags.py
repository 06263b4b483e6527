# openmarket/config/feature_flags.py
# Openmarket Settlement Feature Flags
import os


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


FEATURE_FLAGS = {
    # 500 응답에 예외 이름/메시지/트레이스 마지막 줄 포함 (개발용)
    "DEV_DEBUG_ERRORS": _env_flag("DEV_DEBUG_ERRORS", False),
    # 앱 startup 시 Base.metadata.create_all 실행 (alembic 미사용 환경)
    "AUTO_CREATE_TABLES": _env_flag("AUTO_CREATE_TABLES", True),
    # 정산 계산 시 같은 기간에 이미 정산이 있는 판매자는 건너뜀 (수동 생성분 보호)
    "SKIP_EXISTING_SELLER_SETTLEMENTS": _env_flag("SKIP_EXISTING_SELLER_SETTLEMENTS", True),
}
