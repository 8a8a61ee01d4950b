"""
Tests for operation submission, job status and dead-letter administration.
"""
from tokenops.message_queue import QueueMessage
from tokenops.message_queue.topology import BLOCKCHAIN_EXCHANGE, BLOCKCHAIN_TRANSACTIONS


async def _dead_letter(broker, message: QueueMessage) -> None:
    await broker.publish(BLOCKCHAIN_EXCHANGE, "transaction.mint", message)
    delivery = await broker.get(BLOCKCHAIN_TRANSACTIONS)
    delivery.message.error = "execution reverted"
    await broker.nack(delivery, requeue=False)


class TestAuthentication:

    def test_missing_token_is_401(self, client):
        response = client.post("/api/queue/operations", json={"type": "mint"})

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
        body = response.json()
        assert body["success"] is False
        assert body["error"]["type"] == "AuthenticationError"

    def test_wrong_scheme_is_401(self, client, token):
        response = client.get("/api/queue/stats", headers={"Authorization": f"Basic {token()}"})
        assert response.status_code == 401

    def test_bad_signature_is_401(self, client, token):
        headers = {"Authorization": f"Bearer {token(secret='someone-else')}"}
        assert client.get("/api/queue/stats", headers=headers).status_code == 401


class TestSubmitOperation:
    """Tests for POST /api/queue/operations."""

    def test_returns_202_with_job_id(self, client, auth, container):
        response = client.post(
            "/api/queue/operations",
            json={"type": "mint", "payload": {"to_address": "0xabc", "amount": "5"}},
            headers=auth,
        )

        assert response.status_code == 202
        body = response.json()
        assert body["success"] is True
        data = body["data"]
        assert data["status"] == "queued"
        assert data["priority"] == 6
        assert data["routing_key"] == "transaction.mint"

        delivery = client.portal.call(container.broker.get, BLOCKCHAIN_TRANSACTIONS)
        assert delivery.message.id == data["job_id"]
        # Caller identity is attached to the payload
        assert delivery.message.payload["company_id"] == "company-a"
        assert delivery.message.payload["user_id"] == "user-1"

    def test_user_cannot_submit_for_another_company(self, client, auth, container):
        client.post(
            "/api/queue/operations",
            json={"type": "mint", "payload": {"company_id": "company-b", "user_id": "user-9"}},
            headers=auth,
        )
        delivery = client.portal.call(container.broker.get, BLOCKCHAIN_TRANSACTIONS)
        assert delivery.message.payload["company_id"] == "company-a"
        assert delivery.message.payload["user_id"] == "user-1"

    def test_admin_can_submit_for_another_company(self, client, admin_auth, container):
        client.post(
            "/api/queue/operations",
            json={"type": "mint", "payload": {"company_id": "company-b", "user_id": "user-9"}},
            headers=admin_auth,
        )
        delivery = client.portal.call(container.broker.get, BLOCKCHAIN_TRANSACTIONS)
        assert delivery.message.payload["company_id"] == "company-b"
        assert delivery.message.payload["user_id"] == "user-9"

    def test_priority_out_of_range_is_400(self, client, auth):
        response = client.post(
            "/api/queue/operations", json={"type": "mint", "priority": 11}, headers=auth
        )
        assert response.status_code == 400
        assert response.json()["error"]["type"] == "ValidationError"

    def test_broker_down_is_503(self, client, auth, container):
        client.portal.call(container.broker.close)

        response = client.post("/api/queue/operations", json={"type": "mint"}, headers=auth)

        assert response.status_code == 503
        assert response.json()["error"]["type"] == "BrokerUnavailableError"


class TestJobStatus:

    def test_queued_job(self, client, auth):
        job_id = client.post(
            "/api/queue/operations", json={"type": "deposit", "payload": {}}, headers=auth
        ).json()["data"]["job_id"]

        response = client.get(f"/api/queue/jobs/{job_id}", headers=auth)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["job_id"] == job_id
        assert data["status"] == "queued"

    def test_unknown_job_is_404(self, client, auth):
        response = client.get("/api/queue/jobs/nope", headers=auth)
        assert response.status_code == 404
        assert response.json()["error"]["type"] == "NotFoundError"

    def test_stats(self, client, auth):
        client.post("/api/queue/operations", json={"type": "mint"}, headers=auth)

        data = client.get("/api/queue/stats", headers=auth).json()["data"]

        assert data["queues"][BLOCKCHAIN_TRANSACTIONS]["messages"] == 1
        assert data["tracked_jobs"] == 1


class TestDeadLetters:
    """Tests for the admin-only dead-letter endpoints."""

    def test_requires_admin(self, client, auth):
        response = client.get("/api/queue/dead-letters/blockchain.failed", headers=auth)
        assert response.status_code == 403

    def test_unknown_dead_letter_queue(self, client, admin_auth):
        response = client.get(f"/api/queue/dead-letters/{BLOCKCHAIN_TRANSACTIONS}", headers=admin_auth)
        assert response.status_code == 404

    def test_peek(self, client, admin_auth, container):
        message = QueueMessage(id="job-dead", type="mint", payload={"amount": "1"})
        client.portal.call(_dead_letter, container.broker, message)

        response = client.get("/api/queue/dead-letters/blockchain.failed", headers=admin_auth)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["count"] == 1
        assert data["messages"][0]["id"] == "job-dead"
        assert data["messages"][0]["error"] == "execution reverted"

    def test_retry_requeues_on_original_route(self, client, admin_auth, container):
        message = QueueMessage(id="job-dead", type="mint")
        client.portal.call(_dead_letter, container.broker, message)

        response = client.post(
            "/api/queue/dead-letters/blockchain.failed/job-dead/retry", headers=admin_auth
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data == {"job_id": "job-dead", "status": "queued", "routing_key": "transaction.mint"}
        assert container.jobs.get("job-dead").status == "queued"

        delivery = client.portal.call(container.broker.get, BLOCKCHAIN_TRANSACTIONS)
        assert delivery.message.id == "job-dead"

    def test_retry_unknown_message_is_404(self, client, admin_auth):
        response = client.post(
            "/api/queue/dead-letters/blockchain.failed/missing/retry", headers=admin_auth
        )
        assert response.status_code == 404
