# openmarket/routers/settlements.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Path, Query, Response
from sqlalchemy.orm import Session

from openmarket import crud, schemas
from openmarket.database import get_db
from openmarket.errors import SettlementError
from openmarket.logic import settlement_lifecycle as lifecycle
from openmarket.logic import settlement_query as query
from openmarket.logic import settlement_report as report
from openmarket.logic.settlement_calc import calculate_settlement
from openmarket.models import SettlementPeriodStatus

router = APIRouter(
    prefix="/settlements",
    tags=["settlements"],
)


# ============================================================
# 공통 에러 변환 헬퍼
# ============================================================
def _xlate(e: Exception):
    # 정산 도메인 예외 → HTTPException (status_code 는 예외가 들고 있음)
    if isinstance(e, SettlementError):
        raise HTTPException(status_code=e.status_code, detail=e.message)
    # 모르는 예외는 그대로 터뜨려서 500
    raise e


def _batch_response(message: str, count_key: str, result: lifecycle.BatchResult) -> dict:
    return {
        "message": message,
        count_key: result.count,
        "settlementIds": result.affected_ids,
        "skippedIds": result.skipped_ids,
    }


# ------------------------------------------------------------
# 📋 목록 / 수동 생성 / 삭제
# ------------------------------------------------------------
@router.get("", response_model=schemas.SettlementListOut, summary="정산 목록 (관리자)")
def api_list_settlements(
    status: str = Query("PENDING", description="정산 상태 (ALL = 전체)"),
    search: Optional[str] = Query(None, description="판매자 이름/이메일 검색"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
):
    try:
        return query.list_settlements(
            db,
            status=status,
            search=search,
            start_date=start_date,
            end_date=end_date,
            page=page,
            limit=limit,
        )
    except Exception as e:
        _xlate(e)


@router.post("", status_code=201, summary="정산 수동 생성")
def api_create_settlement(
    body: schemas.SettlementCreate = Body(...),
    x_actor_id: Optional[int] = Header(None),
    db: Session = Depends(get_db),
):
    try:
        st = crud.create_settlement(db, body, actor_id=x_actor_id)
        return {
            "message": "정산 데이터가 생성되었습니다.",
            "settlement": schemas.SettlementOut.model_validate(st).model_dump(mode="json", by_alias=True),
        }
    except Exception as e:
        _xlate(e)


@router.delete("", summary="정산 삭제 (PENDING/ON_HOLD)")
def api_delete_settlements(
    body: schemas.SettlementBatchRequest = Body(...),
    x_actor_id: Optional[int] = Header(None),
    db: Session = Depends(get_db),
):
    try:
        result = lifecycle.delete_settlements(db, body.settlement_ids, actor_id=x_actor_id)
        return _batch_response(f"{result.count}개의 정산이 삭제되었습니다.", "deletedCount", result)
    except Exception as e:
        _xlate(e)


# ------------------------------------------------------------
# 📊 상태별 요약
# ------------------------------------------------------------
@router.get("/summary", response_model=List[schemas.SettlementStatusSummaryRow], summary="정산 상태별 요약")
def api_settlement_summary(db: Session = Depends(get_db)):
    return report.summarize_settlements_by_status(db)


# ------------------------------------------------------------
# 🔁 상태 전이 (일괄)
# ------------------------------------------------------------
@router.post("/process", summary="정산 처리 (PENDING → CALCULATING)")
def api_process_settlements(
    body: schemas.SettlementProcessRequest = Body(...),
    x_actor_id: Optional[int] = Header(None),
    db: Session = Depends(get_db),
):
    try:
        result = lifecycle.process_settlements(
            db, body.settlement_ids, body.commission_rate, actor_id=x_actor_id
        )
        return _batch_response(f"{result.count}개 정산 항목이 처리되었습니다.", "processedCount", result)
    except Exception as e:
        _xlate(e)


@router.post("/complete", summary="정산 완료 (CALCULATING → COMPLETED)")
def api_complete_settlements(
    body: schemas.SettlementBatchRequest = Body(...),
    x_actor_id: Optional[int] = Header(None),
    db: Session = Depends(get_db),
):
    try:
        result = lifecycle.complete_settlements(db, body.settlement_ids, actor_id=x_actor_id)
        return _batch_response(f"{result.count}개 정산 항목이 완료되었습니다.", "completedCount", result)
    except Exception as e:
        _xlate(e)


@router.post("/hold", summary="정산 보류")
def api_hold_settlements(
    body: schemas.SettlementBatchRequest = Body(...),
    x_actor_id: Optional[int] = Header(None),
    db: Session = Depends(get_db),
):
    try:
        result = lifecycle.hold_settlements(db, body.settlement_ids, body.memo, actor_id=x_actor_id)
        return _batch_response(f"{result.count}개의 정산이 보류되었습니다.", "heldCount", result)
    except Exception as e:
        _xlate(e)


@router.post("/unhold", summary="정산 보류 해제")
def api_unhold_settlements(
    body: schemas.SettlementBatchRequest = Body(...),
    x_actor_id: Optional[int] = Header(None),
    db: Session = Depends(get_db),
):
    try:
        result = lifecycle.unhold_settlements(db, body.settlement_ids, body.memo, actor_id=x_actor_id)
        return _batch_response(f"{result.count}개의 정산 보류가 해제되었습니다.", "unheldCount", result)
    except Exception as e:
        _xlate(e)


@router.post("/cancel", summary="정산 취소 (COMPLETED → CANCELLED)")
def api_cancel_settlements(
    body: schemas.SettlementBatchRequest = Body(...),
    x_actor_id: Optional[int] = Header(None),
    db: Session = Depends(get_db),
):
    try:
        result = lifecycle.cancel_settlements(db, body.settlement_ids, body.memo, actor_id=x_actor_id)
        return _batch_response(f"{result.count}개의 정산이 취소되었습니다.", "cancelledCount", result)
    except Exception as e:
        _xlate(e)


# ------------------------------------------------------------
# 📅 정산 기간 / 계산
# ------------------------------------------------------------
@router.get("/periods", response_model=List[schemas.SettlementPeriodOut], summary="정산 기간 목록")
def api_list_periods(
    status: Optional[SettlementPeriodStatus] = Query(None),
    db: Session = Depends(get_db),
):
    return crud.list_settlement_periods(db, status=status)


@router.post("/periods", status_code=201, summary="정산 기간 생성")
def api_create_period(
    body: schemas.SettlementPeriodCreate = Body(...),
    x_actor_id: Optional[int] = Header(None),
    db: Session = Depends(get_db),
):
    try:
        period = crud.create_settlement_period(db, body, actor_id=x_actor_id)
        return {
            "message": "정산 기간이 생성되었습니다.",
            "period": schemas.SettlementPeriodOut.model_validate(period).model_dump(mode="json", by_alias=True),
        }
    except Exception as e:
        _xlate(e)


@router.get("/periods/{period_id}", response_model=schemas.SettlementPeriodOut, summary="정산 기간 조회")
def api_get_period(
    period_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
):
    try:
        return crud.get_settlement_period(db, period_id)
    except Exception as e:
        _xlate(e)


@router.post(
    "/calculate/{period_id}",
    response_model=schemas.SettlementCalculationOut,
    summary="정산 기간 계산 (주문 집계 → 판매자별 정산 생성)",
)
def api_calculate_period(
    period_id: int = Path(..., ge=1),
    x_actor_id: Optional[int] = Header(None),
    db: Session = Depends(get_db),
):
    try:
        result = calculate_settlement(db, period_id, actor_id=x_actor_id)
        return schemas.SettlementCalculationOut(
            message="정산 계산이 완료되었습니다.",
            period=schemas.SettlementPeriodOut.model_validate(result.period),
            settlement_count=result.settlement_count,
            settlements=[schemas.SettlementWithItemsOut.model_validate(s) for s in result.settlements],
            skipped_seller_ids=result.skipped_seller_ids,
        )
    except Exception as e:
        _xlate(e)


# ------------------------------------------------------------
# 📐 수수료 정책
# ------------------------------------------------------------
@router.get(
    "/commission-policies",
    response_model=List[schemas.CommissionPolicyOut],
    summary="수수료 정책 목록 (활성)",
)
def api_list_commission_policies(db: Session = Depends(get_db)):
    return crud.list_commission_policies(db)


@router.post("/commission-policies", status_code=201, summary="수수료 정책 생성")
def api_create_commission_policy(
    body: schemas.CommissionPolicyCreate = Body(...),
    db: Session = Depends(get_db),
):
    try:
        policy = crud.create_commission_policy(db, body)
        return {
            "message": "수수료 정책이 생성되었습니다.",
            "policy": schemas.CommissionPolicyOut.model_validate(policy).model_dump(mode="json", by_alias=True),
        }
    except Exception as e:
        _xlate(e)


@router.patch("/commission-policies/{policy_id}", summary="수수료 정책 수정")
def api_update_commission_policy(
    policy_id: int = Path(..., ge=1),
    body: schemas.CommissionPolicyUpdate = Body(...),
    db: Session = Depends(get_db),
):
    try:
        policy = crud.update_commission_policy(db, policy_id, body)
        return {
            "message": "수수료 정책이 수정되었습니다.",
            "policy": schemas.CommissionPolicyOut.model_validate(policy).model_dump(mode="json", by_alias=True),
        }
    except Exception as e:
        _xlate(e)


# ------------------------------------------------------------
# 🧑‍💼 판매자 정산 조회 / 리포트
# ------------------------------------------------------------
@router.get("/seller/{seller_id}", response_model=schemas.SellerSettlementsOut, summary="판매자 정산 이력")
def api_seller_settlements(
    seller_id: int = Path(..., ge=1),
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
):
    try:
        return query.list_seller_settlements(db, seller_id, status=status, page=page, limit=limit)
    except Exception as e:
        _xlate(e)


@router.get(
    "/seller/{seller_id}/products",
    response_model=schemas.ProductSettlementsOut,
    summary="판매자 상품별 정산 집계",
)
def api_seller_product_settlements(
    seller_id: int = Path(..., ge=1),
    sort_by: str = Query("salesAmount", alias="sortBy"),
    search: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db),
):
    try:
        return query.aggregate_seller_products(
            db,
            seller_id,
            sort_by=sort_by,
            search=search,
            category=category,
            start_date=start_date,
            end_date=end_date,
            page=page,
            limit=limit,
        )
    except Exception as e:
        _xlate(e)


@router.get(
    "/seller/{seller_id}/products/detail",
    response_model=schemas.ProductSettlementDetailOut,
    summary="판매자 상품 단위 정산 상세",
)
def api_seller_product_detail(
    seller_id: int = Path(..., ge=1),
    product_name: str = Query(..., alias="productName", min_length=1),
    sku_code: Optional[str] = Query(None, alias="skuCode"),
    db: Session = Depends(get_db),
):
    try:
        return query.get_seller_product_detail(db, seller_id, product_name, sku_code)
    except Exception as e:
        _xlate(e)


@router.get("/seller/{seller_id}/report", response_model=schemas.SellerReportOut, summary="판매자 정산 리포트")
def api_seller_report(
    seller_id: int = Path(..., ge=1),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    db: Session = Depends(get_db),
):
    return report.build_seller_report(db, seller_id, start_date=start_date, end_date=end_date)


@router.get(
    "/seller/{seller_id}/report.csv",
    summary="판매자 정산 리포트 CSV 다운로드",
    response_class=Response,
    responses={
        200: {
            "description": "CSV file",
            "content": {"text/csv": {"schema": {"type": "string", "format": "binary"}}},
        },
    },
)
def api_seller_report_csv(
    seller_id: int = Path(..., ge=1),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    db: Session = Depends(get_db),
):
    """
    - build_seller_report 결과를 그대로 CSV 로 변환
    - UTF-8 + BOM (엑셀 한글 깨짐 방지)
    """
    data = report.build_seller_report(db, seller_id, start_date=start_date, end_date=end_date)
    filename = f"settlement_report_{seller_id}_{crud._utcnow().strftime('%Y%m%d%H%M%S')}.csv"
    return Response(
        content=report.render_seller_report_csv(data),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ------------------------------------------------------------
# 🔎 단건 (동적 경로는 마지막에)
# ------------------------------------------------------------
@router.patch("/{settlement_id}/status", summary="[ADMIN] 정산 상태 강제 변경")
def api_force_settlement_status(
    settlement_id: int = Path(..., ge=1),
    body: schemas.SettlementStatusUpdate = Body(...),
    x_actor_id: Optional[int] = Header(None),
    db: Session = Depends(get_db),
):
    """
    - 전이 규칙을 검사하지 않는 운영용 수동 변경
    - settledAt 은 COMPLETED 일 때만 채워짐
    - 이벤트 로그(SETTLEMENT_STATUS_FORCED)에 이전 상태 기록
    """
    try:
        st = lifecycle.force_set_status(db, settlement_id, body.status, body.memo, actor_id=x_actor_id)
        return {
            "message": "정산 상태가 업데이트되었습니다.",
            "settlement": schemas.SettlementOut.model_validate(st).model_dump(mode="json", by_alias=True),
        }
    except Exception as e:
        _xlate(e)


@router.get("/{settlement_id}", response_model=schemas.SettlementDetailOut, summary="정산 상세")
def api_get_settlement(
    settlement_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
):
    try:
        return query.get_settlement_detail(db, settlement_id)
    except Exception as e:
        _xlate(e)
