"""Integration tests for the wallet challenge routes."""

from __future__ import annotations

import pytest


@pytest.mark.integration
class TestWalletRoutes:
    async def test_nonce_then_verify(self, client) -> None:
        resp = await client.post("/api/wallet/nonce", json={"address": "0xABC"})
        assert resp.status_code == 200
        nonce = resp.json()["nonce"]

        resp = await client.post("/api/wallet/verify", json={"address": "0xabc", "nonce": nonce})
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok", "address": "0xabc"}

    async def test_replay_rejected(self, client) -> None:
        nonce = (await client.post("/api/wallet/nonce", json={"address": "0xABC"})).json()["nonce"]
        await client.post("/api/wallet/verify", json={"address": "0xABC", "nonce": nonce})
        resp = await client.post("/api/wallet/verify", json={"address": "0xABC", "nonce": nonce})
        assert resp.status_code == 401

    async def test_missing_address_is_400(self, client) -> None:
        resp = await client.post("/api/wallet/nonce", json={"address": "   "})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Missing or invalid address"

    async def test_failure_reasons_are_indistinguishable(self, client, clock) -> None:
        never = await client.post("/api/wallet/verify", json={"address": "0xN", "nonce": "abc"})

        await client.post("/api/wallet/nonce", json={"address": "0xW"})
        wrong = await client.post("/api/wallet/verify", json={"address": "0xW", "nonce": "abc"})

        nonce = (await client.post("/api/wallet/nonce", json={"address": "0xE"})).json()["nonce"]
        clock.advance(minutes=6)
        expired = await client.post("/api/wallet/verify", json={"address": "0xE", "nonce": nonce})

        assert never.status_code == wrong.status_code == expired.status_code == 401
        assert never.json() == wrong.json() == expired.json()

    async def test_new_nonce_invalidates_old(self, client) -> None:
        old = (await client.post("/api/wallet/nonce", json={"address": "0xABC"})).json()["nonce"]
        new = (await client.post("/api/wallet/nonce", json={"address": "0xABC"})).json()["nonce"]

        resp = await client.post("/api/wallet/verify", json={"address": "0xABC", "nonce": old})
        assert resp.status_code == 401
        resp = await client.post("/api/wallet/verify", json={"address": "0xABC", "nonce": new})
        assert resp.status_code == 200
