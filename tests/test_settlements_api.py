# tests/test_settlements_api.py
from openmarket.models import Settlement, SettlementStatus

from factories import (
    make_order,
    make_period,
    make_policy,
    make_product,
    make_seller,
    make_settlement,
)


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


# ---------------------------------------------------------
# 정산 기간
# ---------------------------------------------------------
def test_create_and_get_period(client):
    r = client.post(
        "/settlements/periods",
        json={
            "periodType": "WEEKLY",
            "startDate": "2024-01-01T00:00:00",
            "endDate": "2024-01-07T23:59:59",
            "settlementDate": "2024-01-10T00:00:00",
        },
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["message"] == "정산 기간이 생성되었습니다."
    assert body["period"]["status"] == "PREPARING"
    period_id = body["period"]["id"]

    r = client.get(f"/settlements/periods/{period_id}")
    assert r.status_code == 200
    assert r.json()["periodType"] == "WEEKLY"

    r = client.get("/settlements/periods", params={"status": "PREPARING"})
    assert [p["id"] for p in r.json()] == [period_id]


def test_create_period_validation(client):
    r = client.post("/settlements/periods", json={"periodType": "MONTHLY", "startDate": "2024-01-01T00:00:00"})
    assert r.status_code == 400
    assert r.json()["error"] == "필수 필드가 누락되었습니다."

    r = client.post(
        "/settlements/periods",
        json={
            "periodType": "MONTHLY",
            "startDate": "2024-02-01T00:00:00",
            "endDate": "2024-01-01T00:00:00",
            "settlementDate": "2024-02-10T00:00:00",
        },
    )
    assert r.status_code == 400


def test_get_unknown_period(client):
    r = client.get("/settlements/periods/999")
    assert r.status_code == 404
    assert r.json()["error"] == "정산 기간을 찾을 수 없습니다."


# ---------------------------------------------------------
# 계산 → 처리 → 완료
# ---------------------------------------------------------
def test_calculate_process_complete_flow(client, db):
    seller = make_seller(db)
    product = make_product(db, seller)
    make_policy(db, 8, seller=seller)
    make_order(db, [(product, 1, 10000)])
    period = make_period(db)

    r = client.post(f"/settlements/calculate/{period.id}", headers={"X-Actor-Id": "5"})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["message"] == "정산 계산이 완료되었습니다."
    assert body["settlementCount"] == 1
    assert body["period"]["status"] == "COMPLETED"
    st = body["settlements"][0]
    assert st["totalCommission"] == 800
    assert st["finalSettlementAmount"] == 9200
    assert st["commissionRate"] == 8.0
    assert st["items"][0]["settlementAmount"] == 9200

    r = client.post(f"/settlements/calculate/{period.id}")
    assert r.status_code == 400
    assert r.json()["error"] == "이미 처리된 정산 기간입니다."

    r = client.post("/settlements/process", json={"settlementIds": [st["id"]], "commissionRate": 10})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["processedCount"] == 1
    assert body["message"] == "1개 정산 항목이 처리되었습니다."
    assert body["settlementIds"] == [st["id"]]

    r = client.get(f"/settlements/{st['id']}")
    assert r.status_code == 200
    detail = r.json()
    assert detail["status"] == "CALCULATING"
    assert detail["totalCommission"] == 1000
    assert detail["finalSettlementAmount"] == 9000
    assert detail["seller"]["id"] == seller.id

    r = client.post("/settlements/complete", json={"settlementIds": [st["id"]]})
    assert r.status_code == 200
    assert r.json()["completedCount"] == 1
    detail = client.get(f"/settlements/{st['id']}").json()
    assert detail["status"] == "COMPLETED"
    assert detail["settledAt"] is not None


def test_calculate_unknown_period(client):
    r = client.post("/settlements/calculate/999")
    assert r.status_code == 404
    assert r.json() == {"error": "정산 기간을 찾을 수 없습니다.", "detail": "정산 기간을 찾을 수 없습니다."}


# ---------------------------------------------------------
# 일괄 전이 에러
# ---------------------------------------------------------
def test_batch_errors(client, db):
    period = make_period(db)
    seller = make_seller(db)
    st = make_settlement(db, period, seller)

    r = client.post("/settlements/process", json={})
    assert r.status_code == 400
    assert r.json()["error"] == "처리할 정산 항목을 선택해주세요."

    r = client.post("/settlements/complete", json={"settlementIds": [st.id]})
    assert r.status_code == 400
    assert r.json()["error"] == "완료 처리 가능한 정산 항목이 없습니다."

    r = client.post("/settlements/process", json={"settlementIds": [st.id], "commissionRate": 150})
    assert r.status_code == 400

    r = client.post("/settlements/cancel", json={"settlementIds": []})
    assert r.status_code == 400
    assert r.json()["error"] == "정산 ID 목록이 필요합니다."


def test_hold_unhold_and_delete(client, db):
    period = make_period(db)
    seller = make_seller(db)
    a = make_settlement(db, period, seller)
    b = make_settlement(db, period, seller, status=SettlementStatus.COMPLETED)

    r = client.post("/settlements/hold", json={"settlementIds": [a.id, b.id], "memo": "서류 확인"})
    assert r.status_code == 200
    body = r.json()
    assert body["heldCount"] == 1
    assert body["skippedIds"] == [b.id]
    assert body["message"] == "1개의 정산이 보류되었습니다."

    r = client.post("/settlements/unhold", json={"settlementIds": [a.id]})
    assert r.json()["unheldCount"] == 1

    r = client.request("DELETE", "/settlements", json={"settlementIds": [a.id]})
    assert r.status_code == 200
    assert r.json()["deletedCount"] == 1
    assert client.get(f"/settlements/{a.id}").status_code == 404


# ---------------------------------------------------------
# 목록 / 요약 / 수동 생성
# ---------------------------------------------------------
def test_list_default_pending_and_summary(client, db):
    period = make_period(db)
    seller = make_seller(db)
    pending = make_settlement(db, period, seller)
    make_settlement(db, period, seller, status=SettlementStatus.ON_HOLD)

    r = client.get("/settlements")
    assert r.status_code == 200
    body = r.json()
    assert [s["id"] for s in body["settlements"]] == [pending.id]
    assert body["pagination"] == {"page": 1, "limit": 10, "total": 1, "totalPages": 1}
    assert body["settlements"][0]["sellerName"] == seller.name

    r = client.get("/settlements", params={"status": "ALL"})
    assert r.json()["pagination"]["total"] == 2

    r = client.get("/settlements/summary")
    assert r.status_code == 200
    counts = {row["status"]: row["count"] for row in r.json()}
    assert counts["PENDING"] == 1
    assert counts["ON_HOLD"] == 1


def test_manual_create_settlement(client, db):
    period = make_period(db)
    seller = make_seller(db)

    r = client.post(
        "/settlements",
        json={
            "settlementPeriodId": period.id,
            "sellerId": seller.id,
            "totalOrderAmount": 20000,
            "totalCommission": 1500,
            "totalDeliveryFee": 3000,
            "adjustmentAmount": 500,
        },
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["message"] == "정산 데이터가 생성되었습니다."
    assert body["settlement"]["finalSettlementAmount"] == 20000 - 1500 - 3000 + 500
    assert body["settlement"]["commissionRate"] == 7.5
    assert body["settlement"]["status"] == "PENDING"

    r = client.post("/settlements", json={"sellerId": seller.id, "totalOrderAmount": 0})
    assert r.status_code == 400
    assert r.json()["error"] == "필수 필드가 누락되었습니다."

    r = client.post(
        "/settlements",
        json={"settlementPeriodId": period.id, "sellerId": 999, "totalOrderAmount": 1000, "totalCommission": 0},
    )
    assert r.status_code == 404


def test_manual_create_rejects_commission_over_order_amount(client, db):
    period = make_period(db)
    seller = make_seller(db)

    r = client.post(
        "/settlements",
        json={"settlementPeriodId": period.id, "sellerId": seller.id, "totalOrderAmount": 1, "totalCommission": 100000},
    )
    assert r.status_code == 400
    assert r.json()["error"] == "수수료는 주문 금액을 초과할 수 없습니다."
    assert db.query(Settlement).count() == 0

    # 경계값: 수수료 = 주문 금액 (100%)
    r = client.post(
        "/settlements",
        json={"settlementPeriodId": period.id, "sellerId": seller.id, "totalOrderAmount": 5000, "totalCommission": 5000},
    )
    assert r.status_code == 201, r.text
    assert r.json()["settlement"]["commissionRate"] == 100.0


# ---------------------------------------------------------
# 수수료 정책
# ---------------------------------------------------------
def test_commission_policy_endpoints(client, db):
    seller = make_seller(db)

    r = client.post("/settlements/commission-policies", json={"name": "기본"})
    assert r.status_code == 400
    assert r.json()["error"] == "필수 필드가 누락되었습니다."

    r = client.post(
        "/settlements/commission-policies",
        json={"name": "판매자 특약", "sellerId": seller.id, "commissionRate": 150, "effectiveDate": "2024-01-01T00:00:00"},
    )
    assert r.status_code == 400

    r = client.post(
        "/settlements/commission-policies",
        json={"name": "판매자 특약", "sellerId": seller.id, "commissionRate": 12, "effectiveDate": "2024-01-01T00:00:00"},
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["message"] == "수수료 정책이 생성되었습니다."
    policy_id = body["policy"]["id"]
    assert body["policy"]["commissionRate"] == 12.0

    r = client.patch(f"/settlements/commission-policies/{policy_id}", json={"commissionRate": 9.5})
    assert r.status_code == 200
    assert r.json()["policy"]["commissionRate"] == 9.5

    r = client.get("/settlements/commission-policies")
    assert [p["id"] for p in r.json()] == [policy_id]


# ---------------------------------------------------------
# 강제 상태 변경
# ---------------------------------------------------------
def test_force_status(client, db):
    period = make_period(db)
    seller = make_seller(db)
    st = make_settlement(db, period, seller)

    r = client.patch(f"/settlements/{st.id}/status", json={"status": "COMPLETED"}, headers={"X-Actor-Id": "1"})
    assert r.status_code == 200
    body = r.json()
    assert body["message"] == "정산 상태가 업데이트되었습니다."
    assert body["settlement"]["status"] == "COMPLETED"
    assert body["settlement"]["settledAt"] is not None

    r = client.patch("/settlements/999/status", json={"status": "COMPLETED"})
    assert r.status_code == 404

    r = client.patch(f"/settlements/{st.id}/status", json={"status": "UNKNOWN"})
    assert r.status_code == 400


# ---------------------------------------------------------
# 판매자 조회 / 리포트
# ---------------------------------------------------------
def test_seller_endpoints(client, db):
    seller = make_seller(db)
    product = make_product(db, seller, name="텀블러", sku_code="TB-1")
    make_order(db, [(product, 3, 4000)], order_number="ORD-API-1")
    period = make_period(db)
    client.post(f"/settlements/calculate/{period.id}")

    r = client.get(f"/settlements/seller/{seller.id}")
    assert r.status_code == 200
    body = r.json()
    assert body["pagination"]["total"] == 1
    assert body["settlements"][0]["items"][0]["productName"] == "텀블러"

    r = client.get(f"/settlements/seller/{seller.id}/products", params={"sortBy": "orderCount"})
    assert r.status_code == 200
    row = r.json()["productSettlements"][0]
    assert row["skuCode"] == "TB-1"
    assert row["totalQuantity"] == 3
    assert row["salesAmount"] == 12000
    assert row["avgOrderValue"] == 12000

    r = client.get(f"/settlements/seller/{seller.id}/products", params={"sortBy": "totalPrice"})
    assert r.status_code == 200
    assert r.json()["productSettlements"][0]["skuCode"] == "TB-1"

    r = client.get(
        f"/settlements/seller/{seller.id}/products/detail",
        params={"productName": "텀블러", "skuCode": "TB-1"},
    )
    assert r.status_code == 200
    detail = r.json()
    assert detail["salesAmount"] == 12000
    assert detail["latestStatus"] == "PENDING"
    assert detail["orders"][0]["orderNumber"] == "ORD-API-1"

    r = client.get(f"/settlements/seller/{seller.id}/products/detail", params={"productName": "없는 상품"})
    assert r.status_code == 404
    assert r.json()["error"] == "해당 상품의 정산 데이터를 찾을 수 없습니다."

    r = client.get(f"/settlements/seller/{seller.id}/report")
    assert r.status_code == 200
    assert r.json()["summary"] == {"totalOrders": 1, "totalSales": 12000, "totalCommission": 600, "netAmount": 11400}

    r = client.get(f"/settlements/seller/{seller.id}/report.csv")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert r.content.startswith(b"\xef\xbb\xbf")
    assert "ORD-API-1" in r.content.decode("utf-8-sig")


def test_detail_not_found(client):
    r = client.get("/settlements/999")
    assert r.status_code == 404
    assert r.json()["error"] == "정산 내역을 찾을 수 없습니다."
