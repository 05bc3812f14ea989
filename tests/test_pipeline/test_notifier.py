"""
Tests for the Run Notifier.
"""

import httpx
import pytest

from sandbox_deployer.models import (
    BroadcastRecord,
    ChainStage,
    DeploymentRecord,
    DeploymentStatus,
    RunSummary,
)
from sandbox_deployer.notifier import (
    NotificationStage,
    Notifier,
    RunStatus,
    determine_status,
    extract_contracts,
)

TOKEN_ADDRESS = "0x" + "a" * 40


def make_summary(with_contract: bool = True, failure_signal: bool = False) -> RunSummary:
    transactions = [{"hash": "0xcall", "transactionType": "CALL"}]
    receipts = [{"transactionHash": "0xcall", "blockNumber": "0x2"}]
    if with_contract:
        transactions.insert(
            0,
            {
                "hash": "0xAB",
                "transactionType": "CREATE",
                "contractName": "Token",
                "contractAddress": TOKEN_ADDRESS,
            },
        )
        receipts.insert(0, {"transactionHash": "0xab", "blockNumber": "0x1"})

    record = DeploymentRecord(
        chain_id=1,
        block_number=100,
        rpc_url="https://node",
        sandbox_id="s-1",
        status=DeploymentStatus.SUCCESS,
        stage=ChainStage.RECORDED,
        broadcast=BroadcastRecord.model_validate(
            {"transactions": transactions, "receipts": receipts}
        ),
        exit_code=0,
    )
    return RunSummary(records=(record,), failure_signal=failure_signal)


@pytest.fixture
def notifier(ci_context, mock_http_client):
    return Notifier(
        url="https://collector.example/hook",
        context=ci_context,
        token="collector-token",
        client=mock_http_client,
    )


class TestExtractContracts:
    """Tests for contract extraction."""

    def test_contracts_with_block_numbers(self):
        contracts = extract_contracts(make_summary())

        assert len(contracts) == 1
        assert contracts[0].name == "Token"
        assert contracts[0].address == TOKEN_ADDRESS
        assert contracts[0].chain_id == 1
        assert contracts[0].block_number == 1

    def test_records_without_broadcast(self):
        summary = RunSummary(records=(
            DeploymentRecord(chain_id=1, status=DeploymentStatus.FAILED, stage=ChainStage.PROVISIONING),
        ))

        assert extract_contracts(summary) == []


class TestDetermineStatus:
    """Tests for status computation and validation escalation."""

    def test_started(self):
        assert determine_status(NotificationStage.STARTED, None) == (RunStatus.STARTED, False)

    def test_completed_with_contracts(self):
        assert determine_status(NotificationStage.COMPLETED, make_summary()) == (RunStatus.SUCCESS, False)

    def test_completed_without_contracts_escalates(self):
        status, escalated = determine_status(NotificationStage.COMPLETED, make_summary(with_contract=False))

        assert status == RunStatus.FAILED
        assert escalated is True

    def test_failure_signal(self):
        summary = make_summary(failure_signal=True)

        assert determine_status(NotificationStage.COMPLETED, summary) == (RunStatus.FAILED, False)

    def test_failed_stage(self):
        assert determine_status(NotificationStage.FAILED, None) == (RunStatus.FAILED, False)


class TestNotify:
    """Tests for delivery."""

    @pytest.mark.asyncio
    async def test_payload(self, notifier, mock_http_client, make_response, ci_context):
        mock_http_client.post.return_value = make_response(json_data={"ok": True})

        result = await notifier.notify(NotificationStage.COMPLETED, make_summary())

        assert result.delivered is True
        assert result.status == RunStatus.SUCCESS

        call = mock_http_client.post.call_args
        assert call.args[0] == "https://collector.example/hook"
        assert call.kwargs["headers"]["Authorization"] == "Bearer collector-token"

        body = call.kwargs["json"]
        assert body["status"] == "success"
        assert "timestamp" in body
        payload = body["payload"]
        assert payload["repositoryName"] == "contracts"
        assert payload["repositoryOwner"] == "acme"
        assert payload["commitHash"] == ci_context.sha
        assert payload["workflow"] == "deploy"
        assert payload["actionUrl"].endswith("/actions/runs/42")
        assert payload["deployments"][0]["contracts"][0]["contractName"] == "Token"

    @pytest.mark.asyncio
    async def test_network_error_swallowed(self, notifier, mock_http_client):
        """Delivery failures are reported, never raised."""
        mock_http_client.post.side_effect = httpx.ConnectError("unreachable")

        result = await notifier.notify(NotificationStage.STARTED)

        assert result.delivered is False
        assert "unreachable" in result.error

    @pytest.mark.asyncio
    async def test_rejected_status_swallowed(self, notifier, mock_http_client, make_response):
        mock_http_client.post.return_value = make_response(status_code=500, json_data={})

        result = await notifier.notify(NotificationStage.STARTED)

        assert result.delivered is False
        assert "500" in result.error

    @pytest.mark.asyncio
    async def test_escalation_survives_delivery_failure(self, notifier, mock_http_client):
        mock_http_client.post.side_effect = httpx.ConnectError("unreachable")

        result = await notifier.notify(NotificationStage.COMPLETED, make_summary(with_contract=False))

        assert result.escalated is True
        assert result.status == RunStatus.FAILED

    @pytest.mark.asyncio
    async def test_disabled(self, ci_context, mock_http_client):
        notifier = Notifier(url=None, context=ci_context, client=mock_http_client)

        result = await notifier.notify(NotificationStage.STARTED)

        assert result.skipped is True
        assert result.delivered is False
        mock_http_client.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_commit_override(self, ci_context, mock_http_client, make_response):
        mock_http_client.post.return_value = make_response(json_data={})
        notifier = Notifier(
            url="https://collector.example",
            context=ci_context,
            commit_hash="cafebabe",
            client=mock_http_client,
        )

        await notifier.notify(NotificationStage.STARTED, message="hello")

        payload = mock_http_client.post.call_args.kwargs["json"]["payload"]
        assert payload["commitHash"] == "cafebabe"
        assert payload["message"] == "hello"
        assert payload["deployments"] == []
