# tests/test_adapters.py
"""
ValuVault Adapters / Provider / Ledger: Boundary Tests

Signers, the narrowing helpers at the provider boundary, the in-memory FHE
stack and the contract bindings.
"""

import asyncio

import pytest
from cryptography.exceptions import InvalidTag
from eth_account import Account
from eth_account.messages import encode_typed_data
from web3 import AsyncWeb3

from valuvault.adapters import (
    EIP712Domain,
    InMemorySigner,
    LocalAccountSigner,
    NotConnectedError,
    SignatureRejectedError,
    SignerError,
    TransactionRejectedError,
)
from valuvault.config import DeploymentConfig, FhevmConfig
from valuvault.ledger import ZERO_HANDLE, LedgerReceipt, Web3ComparisonContract
from valuvault.provider import (
    Coprocessor,
    Keypair,
    RawEncryptedInput,
    build_user_decrypt_eip712,
    normalize_handle,
    normalize_hex,
    open_sealed,
    seal_to_public_key,
)
from valuvault.provider.mock import MockFhevmRuntime

DOMAIN = EIP712Domain(name="Test", version="1", chain_id=10901, verifying_contract="0x" + "ab" * 20)
TYPES = {"Mail": [{"name": "contents", "type": "string"}]}
MESSAGE = {"contents": "hello"}


def recover(domain, types, message, signature: bytes) -> str:
    signable = encode_typed_data(domain_data=domain.to_dict(), message_types=types, message_data=message)
    return Account.recover_message(signable, signature=signature)


# =============================================================================
# Signers
# =============================================================================

def test_in_memory_signer_signs_recoverably():
    signer = InMemorySigner(chain_id=11155111)
    result = asyncio.run(signer.sign_typed_data(DOMAIN, TYPES, MESSAGE))

    assert len(result.signature) == 65
    assert result.hex.startswith("0x")
    assert recover(DOMAIN, TYPES, MESSAGE, result.signature) == signer.address
    assert len(signer.signatures) == 1


def test_local_account_signer_signs_without_network():
    account = Account.create()
    w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider("http://127.0.0.1:8545"))
    signer = LocalAccountSigner(account, w3, chain_id=11155111)

    result = asyncio.run(signer.sign_typed_data(DOMAIN, TYPES, MESSAGE))
    assert recover(DOMAIN, TYPES, MESSAGE, result.signature) == account.address
    assert signer.chain_id == 11155111


def test_domain_type_must_not_be_signed():
    signer = InMemorySigner(chain_id=1)
    types = dict(TYPES, EIP712Domain=[{"name": "name", "type": "string"}])
    with pytest.raises(SignerError):
        asyncio.run(signer.sign_typed_data(DOMAIN, types, MESSAGE))


def test_signer_rejections():
    signer = InMemorySigner(chain_id=1, decline_signatures=True, decline_transactions=True)
    with pytest.raises(SignatureRejectedError):
        asyncio.run(signer.sign_typed_data(DOMAIN, TYPES, MESSAGE))
    with pytest.raises(TransactionRejectedError):
        asyncio.run(signer.send_transaction({"to": "0x" + "01" * 20}))
    assert signer.transactions == []


def test_disconnected_signer():
    signer = InMemorySigner(chain_id=1)
    signer.disconnect()
    assert not signer.is_connected
    with pytest.raises(NotConnectedError):
        asyncio.run(signer.sign_typed_data(DOMAIN, TYPES, MESSAGE))


def test_transaction_log_and_receipts():
    signer = InMemorySigner(chain_id=1)

    async def scenario():
        first = await signer.send_transaction({"to": "0x" + "01" * 20, "data": "a"})
        second = await signer.send_transaction({"to": "0x" + "01" * 20, "data": "a"})
        return first, second, await signer.wait_for_receipt(second)

    first, second, receipt = asyncio.run(scenario())
    assert first != second
    assert receipt["status"] == 1
    assert receipt["blockNumber"] == 2
    assert [tx["nonce"] for tx in signer.transactions] == [0, 1]

    with pytest.raises(SignerError):
        asyncio.run(signer.wait_for_receipt("0x" + "00" * 32))


def test_domain_round_trip_and_malformed():
    assert EIP712Domain.from_dict(DOMAIN.to_dict()) == DOMAIN
    with pytest.raises(ValueError):
        EIP712Domain.from_dict({"name": "x"})


# =============================================================================
# Provider Boundary
# =============================================================================

def test_normalize_handle():
    raw = bytes(range(32))
    assert normalize_handle(raw) == "0x" + raw.hex()
    assert normalize_handle("0X" + raw.hex().upper()) == "0x" + raw.hex()
    for bad in ["0x1234", "zz" * 32, 42]:
        with pytest.raises(ValueError):
            normalize_handle(bad)


def test_normalize_hex():
    assert normalize_hex("0xABcd") == "abcd"
    assert normalize_hex(b"\x01\x02") == "0102"


def test_raw_encrypted_input_narrowing():
    handle = bytes(range(32))
    raw = RawEncryptedInput.from_response({"handles": [handle], "inputProof": "0x0102"})
    assert raw.handles == ("0x" + handle.hex(),)
    assert raw.input_proof == b"\x01\x02"

    for bad in [{}, {"handles": [handle]}, {"handles": [], "inputProof": "0x01"}, {"handles": [b"\x01"], "inputProof": "0x01"}]:
        with pytest.raises(ValueError):
            RawEncryptedInput.from_response(bad)


def test_keypair_narrowing():
    keypair = Keypair.from_response({"publicKey": "0xAA", "privateKey": "bb"})
    assert keypair == Keypair(public_key="aa", private_key="bb")
    assert "bb" not in repr(keypair).split("private_key=")[1]
    with pytest.raises(ValueError):
        Keypair.from_response({"publicKey": "aa"})


def test_user_decrypt_eip712_structure():
    config = FhevmConfig()
    contract = "0x" + "cd" * 20
    typed = build_user_decrypt_eip712(config, "ab" * 32, [contract], 1_700_000_000, 10)

    assert typed["primaryType"] == "UserDecryptRequestVerification"
    assert typed["domain"]["name"] == "Decryption"
    assert typed["domain"]["chainId"] == config.gateway_chain_id
    assert set(typed["types"]) == {"EIP712Domain", "UserDecryptRequestVerification"}
    assert typed["message"]["publicKey"] == "0x" + "ab" * 32
    assert typed["message"]["durationDays"] == 10

    with pytest.raises(ValueError):
        build_user_decrypt_eip712(config, "ab" * 32, [], 1_700_000_000, 10)
    with pytest.raises(ValueError):
        build_user_decrypt_eip712(config, "ab" * 32, [contract], 1_700_000_000, 0)


# =============================================================================
# In-Memory FHE Stack
# =============================================================================

def test_sealed_value_opens_only_with_matching_key():
    runtime = MockFhevmRuntime()
    signer = InMemorySigner(chain_id=11155111)
    instance = asyncio.run(runtime.create_instance(FhevmConfig(), signer))

    mine = instance.generate_keypair()
    theirs = instance.generate_keypair()
    sealed = seal_to_public_key(mine["publicKey"], b"\x01")

    assert open_sealed(mine["privateKey"], sealed) == b"\x01"
    with pytest.raises(InvalidTag):
        open_sealed(theirs["privateKey"], sealed)


def test_acl_visibility_lag():
    clock = [1000.0]
    coprocessor = Coprocessor(propagation_lag=10.0, clock=lambda: clock[0])
    handle = coprocessor.store(1, "ebool")
    party = "0x" + "ab" * 20

    coprocessor.allow(handle, party)
    assert not coprocessor.is_allowed(handle, party)
    clock[0] += 10.0
    assert coprocessor.is_allowed(handle, party)
    assert not coprocessor.is_allowed(handle, "0x" + "cd" * 20)


def test_compare_gt():
    coprocessor = Coprocessor()
    for value, expected in [(80, 0), (100, 0), (101, 1)]:
        result = coprocessor.compare_gt(coprocessor.store(value), 100)
        assert coprocessor.value_of(result) == expected
        assert coprocessor.type_of(result) == "ebool"


# =============================================================================
# Ledger Bindings
# =============================================================================

def test_ledger_receipt():
    ok = LedgerReceipt.from_receipt("0x01", {"blockNumber": 5, "status": 1})
    assert ok.succeeded and ok.block_number == 5
    assert not LedgerReceipt.from_receipt("0x02", {"blockNumber": None, "status": 0}).succeeded


def test_web3_contract_binding():
    w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider("http://127.0.0.1:8545"))
    address = DeploymentConfig().contract_address
    contract = Web3ComparisonContract(w3, address.lower())

    assert contract.address == address
    assert ZERO_HANDLE == "0x" + "00" * 32


def test_ledger_module_does_not_bind_in_memory_stack():
    import valuvault.ledger.contract as contract_module

    assert not hasattr(contract_module, "Coprocessor")
