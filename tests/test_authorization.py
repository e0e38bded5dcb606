# tests/test_authorization.py
"""
ValuVault Flow: Decryption Authorization Builder Tests
"""

import asyncio

import pytest
from eth_account import Account
from eth_account.messages import encode_typed_data

from valuvault.adapters import InMemorySigner, SignatureRejectedError
from valuvault.config import GATEWAY_CHAIN_ID
from valuvault.errors import AuthorizationError, InitializationError
from valuvault.flow import AuthorizationBuilder, strip_domain_type
from valuvault.flow.authorization import SECONDS_PER_DAY
from valuvault.provider import build_user_decrypt_eip712

NOW = 1_700_000_000


async def grant_for(stack, handle=None, validity_days=10, builder=None):
    session = await stack.session()
    handle = handle or stack.coprocessor.store(1, "ebool")
    builder = builder or AuthorizationBuilder(clock=lambda: NOW)
    grant = await builder.authorize(session, stack.signer, handle, stack.contract.address, validity_days)
    return session, handle, grant


# =============================================================================
# Grant Contents
# =============================================================================

def test_grant_scoped_to_handle_and_contract(stack):
    session, handle, grant = asyncio.run(grant_for(stack))

    assert grant.covers(handle, stack.contract.address)
    assert grant.covers(handle.upper().replace("0X", "0x"), stack.contract.address.lower())
    assert not grant.covers("0x" + "99" * 32, stack.contract.address)
    assert not grant.covers(handle, "0x" + "12" * 20)
    assert grant.contract_addresses == (stack.contract.address,)
    assert grant.user_address == stack.signer.address
    assert grant.session_id == session.session_id
    assert grant.start_timestamp == NOW
    assert grant.duration_days == 10
    assert grant.expires_at == NOW + 10 * SECONDS_PER_DAY


def test_expiry(stack):
    _, _, grant = asyncio.run(grant_for(stack, validity_days=1))
    assert not grant.is_expired(NOW)
    assert not grant.is_expired(NOW + SECONDS_PER_DAY - 1)
    assert grant.is_expired(NOW + SECONDS_PER_DAY)


def test_signature_recovers_to_signer(stack):
    _, _, grant = asyncio.run(grant_for(stack))

    typed = build_user_decrypt_eip712(
        stack.config.fhevm,
        grant.keypair.public_key,
        list(grant.contract_addresses),
        grant.start_timestamp,
        grant.duration_days,
    )
    signable = encode_typed_data(
        domain_data=typed["domain"],
        message_types=strip_domain_type(typed["types"]),
        message_data=typed["message"],
    )
    recovered = Account.recover_message(signable, signature="0x" + grant.signature)
    assert recovered == stack.signer.address


def test_domain_type_stripped_before_signing(stack):
    asyncio.run(grant_for(stack))

    request = stack.signer.signatures[-1]
    assert "EIP712Domain" not in request["types"]
    assert "UserDecryptRequestVerification" in request["types"]
    assert request["domain"].name == "Decryption"
    assert request["domain"].version == "1"
    assert request["domain"].chain_id == GATEWAY_CHAIN_ID
    assert request["message"]["durationDays"] == 10


def test_fresh_keypair_every_call(stack):
    async def scenario():
        _, handle, first = await grant_for(stack)
        _, _, second = await grant_for(stack, handle=handle)
        return first, second

    first, second = asyncio.run(scenario())
    assert first.keypair.public_key != second.keypair.public_key
    assert stack.runtime.instances[0].keypairs_generated == 2


def test_private_key_not_in_repr(stack):
    _, _, grant = asyncio.run(grant_for(stack))
    assert grant.keypair.private_key not in repr(grant)
    assert grant.keypair.private_key not in repr(grant.keypair)
    assert grant.signature not in repr(grant)


# =============================================================================
# Failures
# =============================================================================

def test_signer_declines(stack):
    stack.signer.decline_signatures = True

    with pytest.raises(AuthorizationError) as excinfo:
        asyncio.run(grant_for(stack))
    assert isinstance(excinfo.value.cause, SignatureRejectedError)
    assert stack.signer.signatures == []


def test_invalid_validity(stack):
    with pytest.raises(AuthorizationError):
        asyncio.run(grant_for(stack, validity_days=0))


def test_signer_must_own_session(stack):
    other = InMemorySigner(chain_id=stack.config.chain_id)

    async def scenario():
        session = await stack.session()
        handle = stack.coprocessor.store(1, "ebool")
        await AuthorizationBuilder().authorize(session, other, handle, stack.contract.address)

    with pytest.raises(AuthorizationError):
        asyncio.run(scenario())


def test_closed_session(stack):
    async def scenario():
        session = await stack.session()
        session.close()
        handle = stack.coprocessor.store(1, "ebool")
        await AuthorizationBuilder().authorize(session, stack.signer, handle, stack.contract.address)

    with pytest.raises(InitializationError):
        asyncio.run(scenario())


def test_malformed_handle(stack):
    with pytest.raises(AuthorizationError):
        asyncio.run(grant_for(stack, handle="0x1234"))
