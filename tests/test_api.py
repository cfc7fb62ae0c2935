from app.payments.razorpay import RazorpayGateway

from conftest import RAZORPAY_SECRET, STRIPE_SECRET
from fakes import razorpay_event, razorpay_signature, stripe_event, stripe_signature


def slot(**overrides):
    body = {
        "subject_id": "SUB1",
        "faculty_id": "F1",
        "room_id": "R101",
        "day_of_week": "MONDAY",
        "start_time": "09:00",
        "end_time": "10:00",
        "semester": 3,
        "year": 2024,
    }
    body.update(overrides)
    return body


def mark(**overrides):
    body = {
        "student_id": "S1",
        "subject_id": "SUB1",
        "exam_type": "FINAL",
        "max_marks": 100,
        "obtained_marks": 85,
        "semester": 3,
        "year": 2024,
    }
    body.update(overrides)
    return body


# ---------------------------------------------------------------------------
# App shell
# ---------------------------------------------------------------------------
def test_root_and_health(client):
    assert client.get("/").json()["status"] == "running"
    assert client.get("/api/health").json()["status"] == "healthy"


def test_security_headers(client):
    response = client.get("/")
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"
    assert "max-age=31536000" in response.headers["Strict-Transport-Security"]


def test_missing_and_invalid_tokens(client, auth):
    assert client.get("/api/marks").status_code in (401, 403)
    assert client.get("/api/marks", headers=auth("bogus")).status_code == 401


def test_mock_email_token_reads_users_table(client, db, auth):
    db.seed("users", {"id": "S9", "email": "s9@campus.edu", "role": "student", "is_active": True},
            {"id": "S10", "email": "gone@campus.edu", "role": "student", "is_active": False})

    assert client.get("/api/marks", headers=auth("mock-s9@campus.edu")).status_code == 200
    assert client.get("/api/marks", headers=auth("mock-gone@campus.edu")).status_code == 401


# ---------------------------------------------------------------------------
# Timetable
# ---------------------------------------------------------------------------
def test_overlapping_slot_returns_409(client, auth, db):
    first = client.post("/api/timetable", json=slot(), headers=auth("admin-token"))
    assert first.status_code == 200

    clash = client.post("/api/timetable", json=slot(start_time="09:30", end_time="10:30", room_id=None),
                        headers=auth("admin-token"))
    assert clash.status_code == 409
    body = clash.json()
    assert body["code"] == "SCHEDULE_CONFLICT"
    assert len(body["data"]["faculty_conflicts"]) == 1
    assert len(db.rows("timetables")) == 1


def test_back_to_back_slot_is_accepted(client, auth):
    client.post("/api/timetable", json=slot(), headers=auth("admin-token"))
    response = client.post("/api/timetable", json=slot(start_time="10:00", end_time="11:00"),
                           headers=auth("admin-token"))
    assert response.status_code == 200


def test_invalid_slot_is_400(client, auth):
    response = client.post("/api/timetable", json=slot(start_time="10:00", end_time="09:00"),
                           headers=auth("admin-token"))
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_only_admin_schedules(client, auth):
    assert client.post("/api/timetable", json=slot(), headers=auth("faculty-token")).status_code == 403
    assert client.post("/api/timetable/check", json=slot(), headers=auth("student-token")).status_code == 403


def test_conflict_preview_does_not_save(client, auth, db):
    client.post("/api/timetable", json=slot(), headers=auth("admin-token"))

    response = client.post("/api/timetable/check", json=slot(faculty_id="F2", start_time="09:59"),
                           headers=auth("admin-token"))

    data = response.json()["data"]
    assert data["has_conflict"] is True
    assert data["faculty_conflicts"] == []
    assert len(data["room_conflicts"]) == 1
    assert len(db.rows("timetables")) == 1


def test_student_sees_enrolled_subjects_only(client, auth, db):
    db.seed("enrollments", {"student_id": "S1", "course_id": "C1"})
    db.seed("subjects", {"id": "SUB1", "course_id": "C1", "credits": 4},
            {"id": "SUB2", "course_id": "C2", "credits": 3})
    client.post("/api/timetable", json=slot(), headers=auth("admin-token"))
    client.post("/api/timetable", json=slot(subject_id="SUB2", faculty_id="F2", room_id="R102"),
                headers=auth("admin-token"))

    student = client.get("/api/timetable", headers=auth("student-token")).json()["data"]
    assert [e["subject_id"] for e in student] == ["SUB1"]

    admin = client.get("/api/timetable?day_of_week=monday", headers=auth("admin-token")).json()["data"]
    assert len(admin) == 2

    bad_day = client.get("/api/timetable?day_of_week=funday", headers=auth("admin-token"))
    assert bad_day.status_code == 400


def test_delete_entry(client, auth):
    created = client.post("/api/timetable", json=slot(), headers=auth("admin-token")).json()["data"]

    assert client.delete(f"/api/timetable/{created['id']}", headers=auth("admin-token")).status_code == 200
    missing = client.delete(f"/api/timetable/{created['id']}", headers=auth("admin-token"))
    assert missing.status_code == 404
    assert missing.json()["code"] == "NOT_FOUND"


# ---------------------------------------------------------------------------
# Marks
# ---------------------------------------------------------------------------
def test_faculty_records_mark_with_grade(client, auth, db):
    response = client.post("/api/marks", json=mark(), headers=auth("faculty-token"))

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["percentage"] == 85.0
    assert data["grade"] == "A"
    assert db.rows("marks")[0]["faculty_id"] == "F1"


def test_mark_validation(client, auth, db):
    over = client.post("/api/marks", json=mark(obtained_marks=101), headers=auth("faculty-token"))
    negative = client.post("/api/marks", json=mark(obtained_marks=-1), headers=auth("faculty-token"))
    exam = client.post("/api/marks", json=mark(exam_type="VIVA"), headers=auth("faculty-token"))
    zero_max = client.post("/api/marks", json=mark(max_marks=0, obtained_marks=0), headers=auth("faculty-token"))

    for response in (over, negative, exam, zero_max):
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
    assert db.rows("marks") == []


def test_students_cannot_enter_marks(client, auth):
    assert client.post("/api/marks", json=mark(), headers=auth("student-token")).status_code == 403


def test_bulk_marks_partial_success(client, auth, db):
    entries = [mark(), mark(student_id="S2", obtained_marks=120), mark(student_id="S3", exam_type="quiz")]

    response = client.post("/api/marks/bulk", json={"entries": entries}, headers=auth("faculty-token"))

    data = response.json()["data"]
    assert data["saved"] == 2
    assert data["failed"] == 1
    assert data["errors"][0]["index"] == 1
    assert data["errors"][0]["student_id"] == "S2"
    assert sorted(m["exam_type"] for m in db.rows("marks")) == ["FINAL", "QUIZ"]


def test_marks_listing_is_role_scoped(client, auth, db):
    db.seed("marks",
            {**mark(), "faculty_id": "F1"},
            {**mark(student_id="S2"), "faculty_id": "F1"},
            {**mark(subject_id="SUB9"), "faculty_id": "F2"})

    student = client.get("/api/marks", headers=auth("student-token")).json()["data"]
    faculty = client.get("/api/marks", headers=auth("faculty-token")).json()["data"]
    admin = client.get("/api/marks", headers=auth("admin-token")).json()["data"]

    assert {m["student_id"] for m in student} == {"S1"}
    assert len(student) == 2
    assert {m["faculty_id"] for m in faculty} == {"F1"}
    assert len(admin) == 3
    assert all("grade" in m for m in admin)


def test_result_summary(client, auth, db):
    db.seed("subjects", {"id": "SUB1", "credits": 4}, {"id": "SUB2", "credits": 2})
    db.seed("marks",
            {**mark(obtained_marks=92), "faculty_id": "F1"},
            {**mark(subject_id="SUB2", max_marks=50, obtained_marks=33, semester=4), "faculty_id": "F1"})

    response = client.get("/api/marks/summary/S1", headers=auth("student-token"))

    data = response.json()["data"]
    assert data["gpa"] == 9.0
    assert [(s["semester"], s["gpa"]) for s in data["semesters"]] == [(3, 10.0), (4, 7.0)]
    assert data["grade_distribution"]["A+"] == 1
    assert data["grade_distribution"]["C"] == 1


def test_summary_of_another_student_is_forbidden(client, auth):
    assert client.get("/api/marks/summary/S2", headers=auth("student-token")).status_code == 403
    assert client.get("/api/marks/summary/S2", headers=auth("faculty-token")).status_code == 200


def test_grade_distribution_endpoint(client, auth, db):
    db.seed("marks",
            {**mark(obtained_marks=95), "faculty_id": "F1"},
            {**mark(obtained_marks=45), "faculty_id": "F1"},
            {**mark(obtained_marks=72), "faculty_id": "F2"})

    faculty = client.get("/api/marks/distribution", headers=auth("faculty-token")).json()["data"]
    admin = client.get("/api/marks/distribution", headers=auth("admin-token")).json()["data"]

    assert faculty["total"] == 2
    assert faculty["distribution"]["A+"] == 1
    assert faculty["distribution"]["F"] == 1
    assert admin["distribution"]["B"] == 1


# ---------------------------------------------------------------------------
# Attendance
# ---------------------------------------------------------------------------
def test_attendance_summary(client, auth, db):
    statuses = [("SUB1", "PRESENT")] * 3 + [("SUB1", "ABSENT"), ("SUB2", "PRESENT"), ("SUB2", "LATE")]
    db.seed("attendance", *[{"student_id": "S1", "subject_id": s, "status": st} for s, st in statuses])

    data = client.get("/api/attendance/summary/S1", headers=auth("student-token")).json()["data"]

    by_subject = {s["subject_id"]: s for s in data["subjects"]}
    assert by_subject["SUB1"]["percentage"] == 75.0
    assert by_subject["SUB1"]["meets_requirement"] is True
    assert by_subject["SUB2"]["percentage"] == 50.0
    assert by_subject["SUB2"]["meets_requirement"] is False
    assert data["percentage"] == 66.67
    assert data["meets_requirement"] is False
    assert data["threshold"] == 75.0


def test_attendance_of_another_student_is_forbidden(client, auth):
    assert client.get("/api/attendance/summary/S2", headers=auth("student-token")).status_code == 403


# ---------------------------------------------------------------------------
# Fees and payments
# ---------------------------------------------------------------------------
def checkout(client, auth, amount="1500"):
    return client.post("/api/fees/payments", json={"amount": amount, "semester": 3, "year": 2024},
                       headers=auth("student-token"))


def test_fee_checkout_and_webhook_end_to_end(client, auth, gateways):
    response = checkout(client, auth)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["transaction_id"] == "order_0001"
    assert data["order_id"].startswith("FEE-")
    assert data["payment_url"].endswith("/payment/checkout/order_0001")

    fee = gateways.rows("fee_payments")[0]
    assert fee["status"] == "PENDING"
    assert fee["transaction_id"] == "order_0001"

    body = razorpay_event("payment.captured", "order_0001")
    tampered = client.post("/api/payments/webhook/razorpay", content=body,
                           headers={"x-razorpay-signature": razorpay_signature("wrong", body)})
    assert tampered.status_code == 400
    assert tampered.json() == {"error": "Webhook processing failed"}
    assert gateways.rows("fee_payments")[0]["status"] == "PENDING"

    for _ in range(2):
        delivered = client.post("/api/payments/webhook/razorpay", content=body,
                                headers={"x-razorpay-signature": razorpay_signature(RAZORPAY_SECRET, body)})
        assert delivered.status_code == 200
        assert delivered.json() == {"received": True}

    assert gateways.rows("payment_transactions")[0]["status"] == "SUCCESS"
    assert gateways.rows("fee_payments")[0]["status"] == "COMPLETED"
    assert len(gateways.rows("payment_webhooks")) == 1


def test_stripe_webhook_route(client, gateways):
    gateways.seed("payment_transactions", {
        "transaction_id": "cs_test_9", "order_id": "FEE-9", "amount": "20", "currency": "USD",
        "status": "PENDING", "gateway_id": "stripe-main",
    })
    body = stripe_event("checkout.session.completed", {"id": "cs_test_9", "payment_status": "paid"})

    response = client.post("/api/payments/webhook/stripe", content=body,
                           headers={"stripe-signature": stripe_signature(STRIPE_SECRET, body)})

    assert response.json() == {"received": True}
    assert gateways.rows("payment_transactions")[0]["status"] == "SUCCESS"


def test_webhook_for_unknown_provider(client, gateways):
    assert client.post("/api/payments/webhook/paypal", content=b"{}").status_code == 400


def test_signed_webhook_that_is_not_an_object_is_400(client, gateways):
    body = b"[]"
    response = client.post("/api/payments/webhook/razorpay", content=body,
                           headers={"x-razorpay-signature": razorpay_signature(RAZORPAY_SECRET, body)})

    assert response.status_code == 400
    assert response.json() == {"error": "Webhook processing failed"}


def test_webhook_storage_failure_is_400(client, gateways, monkeypatch):
    async def storage_down(self, raw_body, signature, event_id=None):
        raise RuntimeError("connection reset")

    monkeypatch.setattr(RazorpayGateway, "process_webhook", storage_down)
    body = razorpay_event("payment.captured", "order_0001")
    response = client.post("/api/payments/webhook/razorpay", content=body,
                           headers={"x-razorpay-signature": razorpay_signature(RAZORPAY_SECRET, body)})

    assert response.status_code == 400
    assert response.json() == {"error": "Webhook processing failed"}


def test_fee_checkout_provider_failure(client, auth, gateways, provider):
    provider.fail = True
    response = checkout(client, auth)

    assert response.status_code == 502
    body = response.json()
    assert body["code"] == "PROVIDER_ERROR"
    assert gateways.rows("fee_payments")[0]["status"] == "FAILED"
    assert body["data"]["fee_payment_id"] == gateways.rows("fee_payments")[0]["id"]
    assert gateways.rows("payment_transactions") == []


def test_fee_checkout_rejects_non_positive_amount(client, auth, gateways):
    response = checkout(client, auth, amount="0")
    assert response.status_code == 400
    assert gateways.rows("fee_payments") == []


def test_fee_checkout_without_default_gateway(client, auth):
    response = checkout(client, auth)
    assert response.status_code == 404
    assert response.json()["code"] == "NO_DEFAULT_GATEWAY"


def test_only_students_check_out(client, auth, gateways):
    response = client.post("/api/fees/payments", json={"amount": "10", "semester": 3, "year": 2024},
                           headers=auth("admin-token"))
    assert response.status_code == 403


def test_fee_history_is_scoped_to_student(client, auth, db):
    db.seed("fee_payments",
            {"student_id": "S1", "amount": "100", "status": "COMPLETED", "semester": 3, "year": 2024},
            {"student_id": "S2", "amount": "100", "status": "PENDING", "semester": 3, "year": 2024})

    student = client.get("/api/fees/payments?student_id=S2", headers=auth("student-token")).json()["data"]
    staff = client.get("/api/fees/payments?status=pending", headers=auth("staff-token")).json()["data"]

    assert [f["student_id"] for f in student] == ["S1"]
    assert [f["student_id"] for f in staff] == ["S2"]


def test_fee_history_filters_by_several_statuses(client, auth, db):
    db.seed("fee_payments",
            {"student_id": "S1", "amount": "100", "status": "COMPLETED", "semester": 3, "year": 2024},
            {"student_id": "S2", "amount": "100", "status": "PENDING", "semester": 3, "year": 2024},
            {"student_id": "S3", "amount": "100", "status": "FAILED", "semester": 3, "year": 2024})

    rows = client.get("/api/fees/payments?status=pending, failed", headers=auth("admin-token")).json()["data"]
    every = client.get("/api/fees/payments?status=,", headers=auth("admin-token")).json()["data"]

    assert sorted(f["student_id"] for f in rows) == ["S2", "S3"]
    assert len(every) == 3


def test_verify_endpoint_is_read_only(client, auth, gateways, provider):
    transaction_id = checkout(client, auth).json()["data"]["transaction_id"]

    response = client.get(f"/api/payments/{transaction_id}/verify", headers=auth("student-token"))

    data = response.json()["data"]
    assert data["paid"] is True
    assert data["status"] == "PENDING"
    assert gateways.rows("payment_transactions")[0]["status"] == "PENDING"


def test_verify_hides_other_students_transactions(client, gateways, auth):
    gateways.seed("payment_transactions", {
        "transaction_id": "order_other", "order_id": "FEE-X", "amount": "10", "currency": "INR",
        "status": "PENDING", "gateway_id": "rzp-main", "user_id": "S2",
    })
    response = client.get("/api/payments/order_other/verify", headers=auth("student-token"))
    assert response.status_code == 404


def test_refund_endpoint(client, auth, gateways):
    transaction_id = checkout(client, auth, amount="1000").json()["data"]["transaction_id"]

    pending = client.post(f"/api/payments/{transaction_id}/refund", json={"amount": "100"},
                          headers=auth("admin-token"))
    assert pending.status_code == 409
    assert pending.json()["code"] == "INVALID_STATE"

    body = razorpay_event("payment.captured", transaction_id)
    client.post("/api/payments/webhook/razorpay", content=body,
                headers={"x-razorpay-signature": razorpay_signature(RAZORPAY_SECRET, body)})

    assert client.post(f"/api/payments/{transaction_id}/refund", json={"amount": "100"},
                       headers=auth("student-token")).status_code == 403

    refunded = client.post(f"/api/payments/{transaction_id}/refund", json={"amount": "100"},
                           headers=auth("admin-token"))
    assert refunded.status_code == 200
    assert refunded.json()["data"]["status"] == "PARTIAL_REFUND"
    assert gateways.rows("payment_transactions")[0]["status"] == "PARTIAL_REFUND"


def test_refund_provider_failure_is_502(client, auth, gateways, provider):
    gateways.seed("payment_transactions", {
        "transaction_id": "order_paid", "order_id": "FEE-P", "amount": "10", "currency": "INR",
        "status": "SUCCESS", "gateway_id": "rzp-main", "provider_payment_id": "pay_1",
    })
    provider.fail = True

    response = client.post("/api/payments/order_paid/refund", json={"amount": "10"}, headers=auth("admin-token"))

    assert response.status_code == 502
    assert response.json()["code"] == "PROVIDER_ERROR"
    assert gateways.rows("payment_transactions")[0]["status"] == "SUCCESS"


def test_refund_unknown_transaction(client, auth, gateways):
    response = client.post("/api/payments/nope/refund", json={"amount": "10"}, headers=auth("admin-token"))
    assert response.status_code == 404
