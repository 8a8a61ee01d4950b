"""
Tests for the transaction ledger read API.
"""
import pytest

from tokenops.ledger import TransactionRecord, TransactionStatus, TransactionType


@pytest.fixture
def seeded(client, ledger, addr):
    """Two records for company-a, one for company-b."""
    records = [
        TransactionRecord(company_id="company-a", user_id="user-1", function_name="mint",
                          transaction_type=TransactionType.CONTRACT_CALL),
        TransactionRecord(company_id="company-a", user_id="user-2", function_name="transfer",
                          transaction_type=TransactionType.TRANSFER),
        TransactionRecord(company_id="company-b", user_id="user-9", function_name="mint",
                          transaction_type=TransactionType.CONTRACT_CALL, tx_hash=addr.tx_hash),
    ]
    return [client.portal.call(ledger.create, record) for record in records]


class TestListTransactions:

    def test_requires_token(self, client):
        assert client.get("/api/transactions").status_code == 401

    def test_user_sees_only_own_company(self, client, auth, seeded):
        response = client.get("/api/transactions", params={"company_id": "company-b"}, headers=auth)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["pagination"]["total"] == 2
        assert {item["company_id"] for item in data["items"]} == {"company-a"}

    def test_admin_sees_everything(self, client, admin_auth, seeded):
        data = client.get("/api/transactions", headers=admin_auth).json()["data"]
        assert data["pagination"]["total"] == 3

    def test_admin_filters_by_company_and_type(self, client, admin_auth, seeded):
        data = client.get(
            "/api/transactions",
            params={"company_id": "company-b", "transaction_type": "contract_call"},
            headers=admin_auth,
        ).json()["data"]

        assert [item["company_id"] for item in data["items"]] == ["company-b"]

    def test_pagination(self, client, admin_auth, seeded):
        data = client.get("/api/transactions", params={"page": 2, "limit": 2}, headers=admin_auth).json()["data"]

        assert len(data["items"]) == 1
        assert data["pagination"] == {"total": 3, "page": 2, "limit": 2, "totalPages": 2}

    def test_invalid_status_is_400(self, client, auth):
        response = client.get("/api/transactions", params={"status": "exploded"}, headers=auth)
        assert response.status_code == 400


class TestTransactionDetail:

    def test_get_own_record(self, client, auth, seeded):
        record = seeded[0]
        response = client.get(f"/api/transactions/{record.id}", headers=auth)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["function_name"] == "mint"
        assert data["status"] == TransactionStatus.PENDING.value

    def test_other_company_record_is_hidden(self, client, auth, seeded):
        response = client.get(f"/api/transactions/{seeded[2].id}", headers=auth)
        assert response.status_code == 404

    def test_lookup_by_hash(self, client, admin_auth, seeded, addr):
        response = client.get(f"/api/transactions/hash/{addr.tx_hash}", headers=admin_auth)

        assert response.status_code == 200
        assert response.json()["data"]["company_id"] == "company-b"

    def test_hash_of_other_company_is_hidden(self, client, auth, seeded, addr):
        assert client.get(f"/api/transactions/hash/{addr.tx_hash}", headers=auth).status_code == 404


class TestTransactionStats:

    def test_stats_scoped_to_company(self, client, auth, seeded):
        data = client.get("/api/transactions/stats", headers=auth).json()["data"]

        assert data["total"] == 2
        assert data["by_type"] == {"contract_call": 1, "transfer": 1}
