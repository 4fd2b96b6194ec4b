from __future__ import annotations

from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field

from app.domain.errors import MalformedSponsorshipResponseError, SponsorshipApiError
from app.domain.models import Blockchain, TransactionResult
from app.domain.tx_state import TransactionState
from providers.circle import CircleApiClient


class ContractExecutionAck(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    transaction_id: str = Field(..., alias="id")
    state: TransactionState


class SponsorshipClient(CircleApiClient):
    """
    Gas-sponsored contract execution. The wallet signs, the paymaster
    attached to the wallet set pays the network fee.
    """

    error_cls = SponsorshipApiError
    malformed_cls = MalformedSponsorshipResponseError

    async def create_contract_execution(
        self,
        *,
        idempotency_key: str,
        wallet_id: str,
        blockchain: Blockchain,
        contract_address: str,
        abi_function_signature: str,
        abi_parameters: List[Any],
        fee_level: str,
        gas_limit: str,
        amount: str = "0",
    ) -> ContractExecutionAck:
        body = self._signed_body(
            {
                "idempotencyKey": idempotency_key,
                "walletId": wallet_id,
                "blockchain": blockchain.value,
                "contractAddress": contract_address,
                "abiFunctionSignature": abi_function_signature,
                "abiParameters": abi_parameters,
                "amount": amount,
                "feeLevel": fee_level,
                "gasLimit": gas_limit,
            }
        )
        data = await self._request(
            "POST",
            "/v1/w3s/developer/transactions/contractExecution",
            tool_name="circle.transactions.contractExecution",
            json=body,
        )
        return self._validate(ContractExecutionAck, data, what="contract execution response")

    async def get_transaction(self, transaction_id: str) -> TransactionResult:
        data = await self._request(
            "GET",
            f"/v1/w3s/transactions/{transaction_id}",
            tool_name="circle.transactions.get",
        )
        raw = data.get("transaction", data) if data else data
        return self._validate(TransactionResult, raw, what="transaction")
