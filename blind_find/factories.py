"""
Factories for tests and demos: random group elements, SMP messages,
registries and complete proof-of-indirect-connection inputs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from .circuits.composition import (
    ProofOfSMPInput,
    ProofSuccessfulSMPInput,
    proof_of_smp_input_from_session,
    proof_successful_smp_input_from_session,
)
from .registry import HubRegistry, HubRegistryTree, SignedJoinMsg
from .security import RandomnessSource
from .signing import Keypair
from .smp.group import Point, base_point
from .smp.proofs import (
    ProofDiscreteLog,
    ProofEqualDiscreteCoordinates,
    ProofEqualDiscreteLogs,
)
from .smp.serialization import (
    SMPMessage,
    SMPMessage1,
    SMPMessage2,
    SMPMessage3,
    SMPMessage4,
)
from .smp.state import SMPStateMachine, TSecret

_rng = RandomnessSource()

DEFAULT_ADMIN_ADDRESS = 0x5E8B1A3C0F2E4D6B7A9C1E3F5A7B9D1C3E5F7A9B


def random_scalar() -> int:
    return _rng.get_random_scalar_mod_order()


def random_point() -> Point:
    return base_point().multiply(random_scalar())


def _dl_proof() -> ProofDiscreteLog:
    return ProofDiscreteLog(c=random_scalar(), d=random_scalar())


def _edl_proof() -> ProofEqualDiscreteLogs:
    return ProofEqualDiscreteLogs(c=random_scalar(), d=random_scalar())


def _edc_proof() -> ProofEqualDiscreteCoordinates:
    return ProofEqualDiscreteCoordinates(
        c=random_scalar(), d0=random_scalar(), d1=random_scalar()
    )


def smp_message_factory(stage: int) -> SMPMessage:
    """A structurally valid message of `stage` with random contents."""
    if stage == 1:
        return SMPMessage1(random_point(), _dl_proof(), random_point(), _dl_proof())
    if stage == 2:
        return SMPMessage2(
            random_point(), _dl_proof(),
            random_point(), _dl_proof(),
            random_point(), random_point(), _edc_proof(),
        )
    if stage == 3:
        return SMPMessage3(
            random_point(), random_point(), _edc_proof(),
            random_point(), _edl_proof(),
        )
    if stage == 4:
        return SMPMessage4(random_point(), _edl_proof())
    raise ValueError(f"no SMP message stage {stage}")


def run_smp(
    secret_initiator: TSecret, secret_responder: TSecret
) -> Tuple[SMPStateMachine, SMPStateMachine]:
    """Run a full exchange in process and return both finished machines."""
    initiator = SMPStateMachine(secret_initiator)
    responder = SMPStateMachine(secret_responder)
    msg1 = initiator.transit(None)
    msg2 = responder.transit(msg1)
    msg3 = initiator.transit(msg2)
    msg4 = responder.transit(msg3)
    initiator.transit(msg4)
    return initiator, responder


def hub_registry_factory(
    hub: Optional[Keypair] = None,
    admin_address: int = DEFAULT_ADMIN_ADDRESS,
) -> HubRegistry:
    return HubRegistry.create(hub or Keypair.generate(), admin_address)


@dataclass
class IndirectConnection:
    """A searcher A finding target C through hub H, ready to prove."""

    keypair_a: Keypair
    keypair_c: Keypair
    keypair_hub: Keypair
    hub_registry: HubRegistry
    tree: HubRegistryTree
    hub_session: SMPStateMachine
    searcher_session: SMPStateMachine
    proof_of_smp_input: ProofOfSMPInput
    proof_successful_smp_input: ProofSuccessfulSMPInput


def indirect_connection_factory(
    levels: int = 4,
    admin_address: int = DEFAULT_ADMIN_ADDRESS,
    other_hubs: int = 1,
) -> IndirectConnection:
    """
    Build every input of a proof of indirect connection.

    The hub and the searcher compare C's public key: the hub knows it
    because C joined the hub, the searcher because it is looking for C.
    """
    keypair_a = Keypair.generate()
    keypair_c = Keypair.generate()
    keypair_hub = Keypair.generate()

    tree = HubRegistryTree(levels)
    for _ in range(other_hubs):
        tree.insert_registry(hub_registry_factory(admin_address=admin_address))
    hub_registry = hub_registry_factory(keypair_hub, admin_address)
    index = tree.insert_registry(hub_registry)

    join_msg = SignedJoinMsg.create(keypair_c, keypair_hub)
    target = keypair_c.public_key.serialize()
    hub_session, searcher_session = run_smp(target, target)

    return IndirectConnection(
        keypair_a=keypair_a,
        keypair_c=keypair_c,
        keypair_hub=keypair_hub,
        hub_registry=hub_registry,
        tree=tree,
        hub_session=hub_session,
        searcher_session=searcher_session,
        proof_of_smp_input=proof_of_smp_input_from_session(
            hub_session, tree.gen_proof(index), hub_registry, join_msg
        ),
        proof_successful_smp_input=proof_successful_smp_input_from_session(
            searcher_session, keypair_a
        ),
    )
