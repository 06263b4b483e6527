# openmarket/errors.py
# 정산 도메인 예외: 라우터에서 HTTPException 으로 변환된다 (status_code 보유)


class SettlementError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SettlementValidationError(SettlementError):
    """필수 값 누락/빈 id 목록 등 요청 자체가 잘못된 경우"""
    status_code = 400


class NotFoundError(SettlementError):
    status_code = 404


class InvalidStateError(SettlementError):
    """상태 전이 조건 불충족 (처리 가능한 대상 0건, 이미 처리된 정산 기간 등)"""
    status_code = 400


class SettlementCalculationError(SettlementError):
    status_code = 500
