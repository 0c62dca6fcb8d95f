import pytest
from httpx import AsyncClient
from unittest.mock import AsyncMock, patch

from bridge.auction import AuctionEstimator
from core.exceptions import TransportFailureException
from explorer.entities import PastEventEntity
from explorer.services import ExplorerService


ADDRESS = "0x" + "ab" * 20


class TestWalletCoreAPI:
    """
    Unit tests for the wallet core HTTP surface.

    These tests verify:
    1. Endpoints are reachable and return the documented shapes
    2. Malformed requests are rejected before any node call
    3. Wallet core errors carry their kind and status code

    Node reads are patched on the service classes; no chain is contacted.
    """

    @pytest.mark.asyncio
    async def test_root_endpoint(self, client: AsyncClient):
        """
        Test root endpoint returns application information.

        Parameters
        ----------
        client : AsyncClient
            Test client fixture
        """
        response = await client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Wallet Core Service"
        assert data["endpoints"]["wallet_state"] == "/api/wallet/{wallet_id}/state"
        assert data["endpoints"]["events"] == "/api/explorer/events"

    @pytest.mark.asyncio
    async def test_health_endpoint(self, client: AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_get_contract_address(self, client: AsyncClient):
        """
        Test configured contracts resolve to checksum addresses.

        Parameters
        ----------
        client : AsyncClient
            Test client fixture
        """
        response = await client.get("/api/bridge/contracts/Auctions")
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Auctions"
        assert data["address"].lower() == "0x" + "22" * 20

    @pytest.mark.asyncio
    async def test_get_unknown_contract(self, client: AsyncClient):
        """
        Test unknown contract names return 404 with the InvalidInput kind.

        Parameters
        ----------
        client : AsyncClient
            Test client fixture
        """
        response = await client.get("/api/bridge/contracts/Proceeds")
        assert response.status_code == 404
        data = response.json()
        assert data["status"] == "error"
        assert data["kind"] == "InvalidInput"

    @pytest.mark.asyncio
    async def test_convert_estimate(self, client: AsyncClient):
        """
        Test conversion quotes are returned as ``{"result": str}``.

        Parameters
        ----------
        client : AsyncClient
            Test client fixture
        """
        estimate = AsyncMock(return_value={"result": "2500000000000000000"})
        with patch.object(AuctionEstimator, "get_convert_coin_estimate", estimate):
            response = await client.post("/api/bridge/convert/estimate", json={"value": 10 ** 18})

        assert response.status_code == 200
        assert response.json() == {"result": "2500000000000000000"}
        estimate.assert_awaited_once_with(10 ** 18)

    @pytest.mark.asyncio
    async def test_convert_estimate_rejects_zero_value(self, client: AsyncClient):
        response = await client.post("/api/bridge/convert/estimate", json={"value": 0})
        assert response.status_code == 422
        data = response.json()
        assert data["kind"] == "InvalidInput"
        assert data["errors"][0]["field"] == "value"

    @pytest.mark.asyncio
    async def test_convert_estimate_transport_failure(self, client: AsyncClient):
        """
        Test node failures surface as 502 TransportFailure.

        Parameters
        ----------
        client : AsyncClient
            Test client fixture
        """
        estimate = AsyncMock(side_effect=TransportFailureException("node down"))
        with patch.object(AuctionEstimator, "get_convert_coin_estimate", estimate):
            response = await client.post("/api/bridge/convert/estimate", json={"value": 1})

        assert response.status_code == 502
        assert response.json()["kind"] == "TransportFailure"
        assert response.json()["message"] == "node down"

    @pytest.mark.asyncio
    async def test_auction_gas_limit(self, client: AsyncClient):
        """
        Test gas limit responses use the ``gasLimit`` key.

        Parameters
        ----------
        client : AsyncClient
            Test client fixture
        """
        gas_limit = AsyncMock(return_value={"gasLimit": 120000})
        with patch.object(AuctionEstimator, "get_auction_gas_limit", gas_limit):
            response = await client.post(
                "/api/bridge/auction/gas-limit",
                json={"from": ADDRESS.upper().replace("0X", "0x"), "value": 5}
            )

        assert response.status_code == 200
        assert response.json() == {"gasLimit": 120000}
        gas_limit.assert_awaited_once_with(ADDRESS, 5)

    @pytest.mark.asyncio
    async def test_gas_limit_invalid_address(self, client: AsyncClient):
        response = await client.post(
            "/api/bridge/convert/gas-limit",
            json={"from": "invalid_address", "value": 5}
        )
        assert response.status_code == 422
        assert "errors" in response.json()

    @pytest.mark.asyncio
    async def test_gas_price(self, client: AsyncClient):
        gas_price = AsyncMock(return_value={"gasPrice": "20000000000"})
        with patch.object(ExplorerService, "get_gas_price", gas_price):
            response = await client.get("/api/explorer/gas-price")

        assert response.status_code == 200
        assert response.json() == {"gasPrice": "20000000000"}

    @pytest.mark.asyncio
    async def test_past_events(self, client: AsyncClient):
        """
        Test past events of a fixed range are decoded into the response.

        Parameters
        ----------
        client : AsyncClient
            Test client fixture
        """
        event = PastEventEntity(
            transaction_hash="0x" + "aa" * 32,
            block_number=120,
            log_index=3,
            event_name="Transfer",
            args={"_from": ADDRESS, "_to": ADDRESS, "_value": "7"},
            address="0x" + "11" * 20
        )
        past_events = AsyncMock(return_value=[event])
        with patch.object(ExplorerService, "get_past_events", past_events):
            response = await client.post(
                "/api/explorer/events",
                json={"event": "Transfer", "from_block": 100, "to_block": 200, "filter": {"_to": ADDRESS}}
            )

        assert response.status_code == 200
        data = response.json()
        assert data["total_events"] == 1
        assert data["to_block"] == 200
        assert data["events"][0]["args"]["_value"] == "7"
        assert past_events.await_args.kwargs["filter"] == {"_to": ADDRESS}

    @pytest.mark.asyncio
    async def test_past_events_invalid_range(self, client: AsyncClient):
        response = await client.post(
            "/api/explorer/events",
            json={"event": "Transfer", "from_block": 200, "to_block": 100}
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_wallet_state_not_open(self, client: AsyncClient):
        """
        Test the state of a wallet that was never opened is rejected.

        Parameters
        ----------
        client : AsyncClient
            Test client fixture
        """
        response = await client.get("/api/wallet/unknown-wallet/state")
        assert response.status_code == 400
        data = response.json()
        assert data["kind"] == "InvalidInput"
        assert "error.wallet.not_open" in data["message"]

    @pytest.mark.asyncio
    async def test_wallet_state_open(self, client: AsyncClient):
        """
        Test an opened wallet lists its addresses with empty ledgers.

        Parameters
        ----------
        client : AsyncClient
            Test client fixture
        """
        from core.container import container
        from wallet.tracker import TransactionTracker

        tracker = await container.get(TransactionTracker, component="wallet")
        tracker.open_wallet("wallet-1", [ADDRESS])

        response = await client.get("/api/wallet/wallet-1/state")
        assert response.status_code == 200
        data = response.json()
        assert data["walletId"] == "wallet-1"
        assert data["addresses"][ADDRESS] == {"token": {}, "transactions": []}
