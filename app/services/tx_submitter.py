from __future__ import annotations

import logging
import uuid
from typing import Any, List, Protocol, Sequence

from app.domain.models import Blockchain, PendingTransaction
from chain.calldata import encode_call
from providers.transactions_api import ContractExecutionAck


class ContractExecutionApi(Protocol):
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
    ) -> ContractExecutionAck: ...


class TransactionSubmitter:
    """
    Submits a sponsored contract call. Each call uses a fresh idempotency key
    and is sent exactly once.
    """

    def __init__(
        self,
        api: ContractExecutionApi,
        *,
        gas_limit: str = "500000",
        fee_level: str = "MEDIUM",
        logger: logging.Logger | None = None,
    ) -> None:
        self._api = api
        self._gas_limit = gas_limit
        self._fee_level = fee_level
        self._logger = logger or logging.getLogger(__name__)

    async def submit(
        self,
        *,
        wallet_id: str,
        contract_address: str,
        function_signature: str,
        parameters: Sequence[Any],
        blockchain: Blockchain,
        value: str = "0",
        gas_limit: str | None = None,
    ) -> PendingTransaction:
        params = list(parameters)
        # fails fast on bad arguments, before anything is sent
        call_data = encode_call(function_signature, params)

        idempotency_key = str(uuid.uuid4())
        ack = await self._api.create_contract_execution(
            idempotency_key=idempotency_key,
            wallet_id=wallet_id,
            blockchain=blockchain,
            contract_address=contract_address,
            abi_function_signature=function_signature,
            abi_parameters=params,
            fee_level=self._fee_level,
            gas_limit=gas_limit or self._gas_limit,
            amount=value,
        )

        self._logger.info(
            "transaction submitted transaction_id=%s state=%s function=%s contract=%s blockchain=%s",
            ack.transaction_id,
            ack.state.value,
            function_signature,
            contract_address,
            blockchain.value,
        )

        return PendingTransaction(
            transaction_id=ack.transaction_id,
            wallet_id=wallet_id,
            contract_address=contract_address,
            function_signature=function_signature,
            encoded_parameters=params,
            call_data=call_data,
            blockchain=blockchain,
            idempotency_key=idempotency_key,
            initial_state=ack.state,
        )
