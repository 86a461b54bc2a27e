"""
Tests for admin authentication and the admin management endpoints.
"""

import pytest
from sqlalchemy import select

from app.models.admin import Admin
from app.models.ai_account import AIAccount, AIAccountStatus, AIAccountTier
from app.models.site_config import SiteConfig
from app.security import create_access_token, get_password_hash
from app.utils.encryption import decrypt, encrypt

VALID_KEY = "sk-" + "x" * 45


class TestAdminAuth:

    async def test_login(self, client, test_admin):
        response = await client.post(
            "/admin/token", data={"username": "root", "password": "AdminPassword123!"}
        )
        assert response.status_code == 200
        assert response.json()["token_type"] == "bearer"

    async def test_wrong_password(self, client, test_admin):
        response = await client.post("/admin/token", data={"username": "root", "password": "nope"})
        assert response.status_code == 401

    async def test_unknown_admin_in_token_is_401(self, client, db_session):
        token = create_access_token(data={"sub": "ghost", "role": "admin"})
        response = await client.get("/admin/plans", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401


class TestAIAccounts:

    async def test_create_encrypts_credentials(self, client, db_session, admin_headers):
        response = await client.post(
            "/admin/ai-accounts",
            json={"account_name": "Main", "provider": "OpenAI", "credentials": VALID_KEY},
            headers=admin_headers,
        )

        assert response.status_code == 201
        body = response.json()
        assert "credentials" not in body
        assert VALID_KEY not in response.text
        assert body["provider"] == "openai"
        assert body["key_preview"].endswith(VALID_KEY[-6:])

        account = (await db_session.execute(select(AIAccount).where(AIAccount.id == body["id"]))).scalar_one()
        assert account.credentials != VALID_KEY
        assert decrypt(account.credentials) == VALID_KEY

    async def test_create_rejects_bad_key(self, client, admin_headers):
        response = await client.post(
            "/admin/ai-accounts",
            json={"account_name": "Main", "provider": "openai", "credentials": "short"},
            headers=admin_headers,
        )
        assert response.status_code == 400

    async def test_plain_admin_cannot_create(self, client, db_session):
        db_session.add(Admin(username="ops", hashed_password=get_password_hash("pw"), role="admin"))
        await db_session.commit()
        token = create_access_token(data={"sub": "ops", "role": "admin"})

        response = await client.post(
            "/admin/ai-accounts",
            json={"account_name": "Main", "provider": "openai", "credentials": VALID_KEY},
            headers={"Authorization": f"Bearer {token}"},
        )
        assert response.status_code == 403

    async def test_list_and_filter(self, client, admin_headers):
        for provider in ("openai", "anthropic"):
            await client.post(
                "/admin/ai-accounts",
                json={"account_name": provider, "provider": provider, "credentials": VALID_KEY},
                headers=admin_headers,
            )

        response = await client.get("/admin/ai-accounts", params={"provider": "anthropic"}, headers=admin_headers)

        assert response.status_code == 200
        assert response.json()["total"] == 1
        assert response.json()["data"][0]["provider"] == "anthropic"

    async def test_get_missing_is_404(self, client, admin_headers):
        response = await client.get("/admin/ai-accounts/missing", headers=admin_headers)
        assert response.status_code == 404


class TestPlans:

    async def test_create_and_update(self, client, admin_headers):
        created = await client.post(
            "/admin/plans",
            json={"id": "team", "name": "team", "price": 49, "duration_days": 30},
            headers=admin_headers,
        )
        assert created.status_code == 201

        updated = await client.put("/admin/plans/team", json={"duration_days": 90}, headers=admin_headers)
        assert updated.status_code == 200
        assert updated.json()["duration_days"] == 90

    async def test_duplicate_is_400(self, client, admin_headers, pro_plan):
        response = await client.post(
            "/admin/plans", json={"id": "pro", "name": "pro2"}, headers=admin_headers
        )
        assert response.status_code == 400

    async def test_update_missing_is_404(self, client, admin_headers):
        response = await client.put("/admin/plans/none", json={"price": 1}, headers=admin_headers)
        assert response.status_code == 404


class TestPaymentConfig:

    async def test_get_masks_secrets(self, client, admin_headers, stripe_config):
        response = await client.get("/admin/payments/config", headers=admin_headers)

        body = response.json()
        assert body["stripeEnabled"] is True
        assert body["stripePublishableKey"] == "pk_test_publishable"
        assert body["stripeSecretKey"] != "sk_test_secret_key_value"
        assert "*" in body["stripeSecretKey"]
        assert "whsec_test_secret" not in response.text

    async def test_update_creates_row(self, client, db_session, admin_headers):
        response = await client.put(
            "/admin/payments/config",
            json={
                "stripeEnabled": True,
                "stripePublishableKey": "pk_live_1",
                "stripeSecretKey": "sk_live_abcdefghijkl",
                "stripeCurrency": "EUR",
            },
            headers=admin_headers,
        )

        assert response.status_code == 200
        config = (await db_session.execute(select(SiteConfig))).scalar_one()
        assert config.stripe_secret_key == "sk_live_abcdefghijkl"
        assert config.stripe_currency == "eur"

    async def test_unknown_field_is_rejected(self, client, admin_headers):
        response = await client.put("/admin/payments/config", json={"epayEnabled": True}, headers=admin_headers)
        assert response.status_code == 422


class TestBillingRecords:

    async def test_lists_records_with_user_email(self, client, db_session, admin_headers, test_user):
        from app.models.billing_record import BillingRecord, BillingStatus

        db_session.add_all([
            BillingRecord(payment_id="pi_a", user_id=test_user.id, amount=1, status=BillingStatus.completed),
            BillingRecord(payment_id="pi_b", user_id=test_user.id, amount=2, status=BillingStatus.failed),
        ])
        await db_session.commit()

        response = await client.get("/admin/billing-records", params={"status": "failed"}, headers=admin_headers)

        assert response.status_code == 200
        rows = response.json()
        assert [r["payment_id"] for r in rows] == ["pi_b"]
        assert rows[0]["user_email"] == test_user.email


async def seed_accounts(db_session, *specs):
    accounts = [
        AIAccount(id=account_id, account_name=account_id, provider=provider, credentials=encrypt(VALID_KEY), **fields)
        for account_id, provider, fields in specs
    ]
    db_session.add_all(accounts)
    await db_session.commit()
    return accounts


async def reload_account(db_session, account_id):
    stmt = select(AIAccount).where(AIAccount.id == account_id).execution_options(populate_existing=True)
    return (await db_session.execute(stmt)).scalar_one_or_none()


class TestAIAccountMaintenance:

    async def test_short_anthropic_key_is_accepted(self, client, admin_headers):
        response = await client.post(
            "/admin/ai-accounts",
            json={"account_name": "Claude", "provider": "anthropic", "credentials": "sk-ant-" + "a" * 30},
            headers=admin_headers,
        )
        assert response.status_code == 201

    async def test_update_fields(self, client, db_session, admin_headers):
        await seed_accounts(db_session, ("a1", "openai", {}))

        response = await client.put(
            "/admin/ai-accounts/a1",
            json={"account_name": "  Renamed  ", "account_status": "maintenance", "tier": "premium", "monthly_cost": 20},
            headers=admin_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["account_name"] == "Renamed"
        assert body["account_status"] == "maintenance"
        assert body["tier"] == "premium"
        assert body["monthly_cost"] == 20.0

    async def test_update_rotates_credentials(self, client, db_session, admin_headers):
        await seed_accounts(db_session, ("a1", "openai", {}))
        rotated = "sk-" + "r" * 45

        response = await client.put(
            "/admin/ai-accounts/a1",
            json={"account_name": "a1", "credentials": rotated},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert rotated not in response.text
        assert response.json()["key_preview"].endswith("rrrrrr")
        account = await reload_account(db_session, "a1")
        assert decrypt(account.credentials) == rotated

    async def test_update_rejects_bad_rotated_key(self, client, db_session, admin_headers):
        await seed_accounts(db_session, ("a1", "openai", {}))

        response = await client.put(
            "/admin/ai-accounts/a1",
            json={"account_name": "a1", "credentials": "short"},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert decrypt((await reload_account(db_session, "a1")).credentials) == VALID_KEY

    async def test_plain_admin_cannot_rotate(self, client, db_session):
        await seed_accounts(db_session, ("a1", "openai", {}))
        db_session.add(Admin(username="ops", hashed_password=get_password_hash("pw"), role="admin"))
        await db_session.commit()
        headers = {"Authorization": f"Bearer {create_access_token(data={'sub': 'ops', 'role': 'admin'})}"}

        rotate = await client.put(
            "/admin/ai-accounts/a1", json={"account_name": "a1", "credentials": "sk-" + "r" * 45}, headers=headers
        )
        rename = await client.put("/admin/ai-accounts/a1", json={"account_name": "ops name"}, headers=headers)

        assert rotate.status_code == 403
        assert rename.status_code == 200

    async def test_update_blank_name_is_400(self, client, db_session, admin_headers):
        await seed_accounts(db_session, ("a1", "openai", {}))
        response = await client.put("/admin/ai-accounts/a1", json={"account_name": "  "}, headers=admin_headers)
        assert response.status_code == 400

    async def test_update_missing_is_404(self, client, admin_headers):
        response = await client.put("/admin/ai-accounts/none", json={"account_name": "x"}, headers=admin_headers)
        assert response.status_code == 404

    async def test_delete(self, client, db_session, admin_headers):
        await seed_accounts(db_session, ("a1", "openai", {}))

        response = await client.delete("/admin/ai-accounts/a1", headers=admin_headers)

        assert response.status_code == 200
        assert await reload_account(db_session, "a1") is None
        assert (await client.delete("/admin/ai-accounts/a1", headers=admin_headers)).status_code == 404

    async def test_batch_delete(self, client, db_session, admin_headers):
        await seed_accounts(db_session, ("a1", "openai", {}), ("a2", "openai", {}), ("a3", "google", {}))

        response = await client.request(
            "DELETE", "/admin/ai-accounts/batch", json={"accountIds": ["a1", "a3", "ghost"]}, headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["requestedCount"] == 3
        assert response.json()["deletedCount"] == 2
        remaining = (await db_session.execute(select(AIAccount.id))).scalars().all()
        assert remaining == ["a2"]

    async def test_batch_delete_nothing_found_is_404(self, client, admin_headers):
        response = await client.request(
            "DELETE", "/admin/ai-accounts/batch", json={"accountIds": ["ghost"]}, headers=admin_headers
        )
        assert response.status_code == 404

    async def test_batch_delete_empty_list_is_400(self, client, admin_headers):
        response = await client.request("DELETE", "/admin/ai-accounts/batch", json={"accountIds": []}, headers=admin_headers)
        assert response.status_code == 400

    async def test_batch_status_change(self, client, db_session, admin_headers):
        await seed_accounts(db_session, ("a1", "openai", {}), ("a2", "openai", {}))

        response = await client.patch(
            "/admin/ai-accounts/batch",
            json={"accountIds": ["a1", "a2"], "updates": {"account_status": "inactive", "max_concurrent_requests": 5}},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["updatedCount"] == 2
        for account_id in ("a1", "a2"):
            account = await reload_account(db_session, account_id)
            assert account.account_status.value == "inactive"
            assert account.max_concurrent_requests == 5

    @pytest.mark.parametrize("updates", [
        {"credentials": "sk-x"},
        {"account_status": "gone"},
        {},
        "inactive",
    ])
    async def test_batch_update_rejects_bad_updates(self, client, db_session, admin_headers, updates):
        await seed_accounts(db_session, ("a1", "openai", {}))

        response = await client.patch(
            "/admin/ai-accounts/batch", json={"accountIds": ["a1"], "updates": updates}, headers=admin_headers
        )

        assert response.status_code == 400

    async def test_stats(self, client, db_session, admin_headers):
        await seed_accounts(
            db_session,
            ("a1", "openai", {"health_score": 90, "tier": AIAccountTier.premium, "total_requests": 10}),
            ("a2", "openai", {"health_score": 70, "is_shared": False, "account_status": AIAccountStatus.inactive}),
            ("a3", "google", {"health_score": 40, "total_requests": 5}),
        )

        response = await client.get("/admin/ai-accounts/stats", headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["summary"] == {
            "total_accounts": 3,
            "active_accounts": 2,
            "shared_accounts": 2,
            "dedicated_accounts": 1,
            "avg_health_score": 60.0,
        }
        openai = next(p for p in body["by_provider"] if p["provider"] == "openai")
        assert openai["avg_health_score"] == 80.0
        assert openai["dedicated_accounts"] == 1
        assert [t["tier"] for t in body["by_tier"]] == ["premium", "basic"]
        assert body["by_tier"][1]["total_requests"] == 5

    async def test_stats_empty(self, client, admin_headers):
        response = await client.get("/admin/ai-accounts/stats", headers=admin_headers)
        assert response.json()["summary"]["avg_health_score"] == 0


class TestPlanUpdateValidation:

    async def test_null_required_field_is_400(self, client, db_session, admin_headers, pro_plan):
        response = await client.put("/admin/plans/pro", json={"duration_days": None}, headers=admin_headers)

        assert response.status_code == 400
        assert "duration_days" in response.json()["detail"]

    async def test_rename_to_existing_name_is_400(self, client, db_session, admin_headers, pro_plan):
        from app.models.plan import Plan

        db_session.add(Plan(id="team", name="team", price=49))
        await db_session.commit()

        response = await client.put("/admin/plans/team", json={"name": "pro"}, headers=admin_headers)

        assert response.status_code == 400

    async def test_keeping_own_name_and_lowercasing_currency(self, client, admin_headers, pro_plan):
        response = await client.put(
            "/admin/plans/pro", json={"name": "pro", "currency": "EUR"}, headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["currency"] == "eur"
