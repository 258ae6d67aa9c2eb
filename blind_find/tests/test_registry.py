"""Tests for hub registrations and the registry Merkle tree."""

from dataclasses import replace

import pytest

from blind_find.exceptions import MalformedInput
from blind_find.factories import DEFAULT_ADMIN_ADDRESS, hub_registry_factory
from blind_find.registry import (
    HubRegistry,
    HubRegistryTree,
    MerkleProof,
    SignedJoinMsg,
    hash_node,
)
from blind_find.signing import Keypair


# ============================================================================
# HUB REGISTRY
# ============================================================================


def test_registry_verifies():
    registry = hub_registry_factory()
    assert registry.verify()


def test_registry_bound_to_admin_address():
    registry = hub_registry_factory()
    forged = replace(registry, admin_address=DEFAULT_ADMIN_ADDRESS + 1)
    assert not forged.verify()


def test_registry_bound_to_pubkey():
    registry = hub_registry_factory()
    forged = replace(registry, pubkey=Keypair.generate().public_key)
    assert not forged.verify()


def test_registry_hash_changes_with_fields():
    registry = hub_registry_factory()
    other = replace(registry, admin_address=registry.admin_address + 1)
    assert registry.hash() != other.hash()


def test_registry_obj_roundtrip():
    registry = hub_registry_factory()
    restored = HubRegistry.from_obj(registry.to_obj())
    assert restored == registry
    assert restored.verify()


def test_registry_from_bad_obj():
    with pytest.raises(MalformedInput):
        HubRegistry.from_obj({"pubkey": ["1", "2"]})


def test_signed_join_msg():
    join_msg = SignedJoinMsg.create(Keypair.generate(), Keypair.generate())
    assert join_msg.verify()
    forged = replace(join_msg, hub_pubkey=Keypair.generate().public_key)
    assert not forged.verify()


# ============================================================================
# MERKLE TREE
# ============================================================================


def test_empty_tree_root_is_zero_subtree():
    tree = HubRegistryTree(levels=2)
    zero1 = hash_node(0, 0)
    assert tree.root == hash_node(zero1, zero1)


def test_single_leaf_root():
    tree = HubRegistryTree(levels=2)
    tree.insert(5)
    assert tree.root == hash_node(hash_node(5, 0), hash_node(0, 0))


@pytest.mark.parametrize("count", [1, 2, 3, 5, 8])
def test_every_leaf_has_a_valid_proof(count):
    tree = HubRegistryTree(levels=3)
    for leaf in range(1, count + 1):
        tree.insert(leaf * 1000)
    for index in range(count):
        proof = tree.gen_proof(index)
        assert proof.root == tree.root
        assert proof.leaf == (index + 1) * 1000
        assert proof.depth == 3
        assert proof.verify()


def test_proof_rejects_wrong_leaf():
    tree = HubRegistryTree(levels=3)
    tree.insert(1)
    tree.insert(2)
    proof = tree.gen_proof(0)
    assert not replace(proof, leaf=2).verify()
    assert not replace(proof, root=proof.root + 1).verify()
    assert not replace(proof, path_indices=[2, 0, 0]).verify()


def test_root_changes_on_insert():
    tree = HubRegistryTree(levels=4)
    tree.insert(1)
    old_root = tree.root
    old_proof = tree.gen_proof(0)
    tree.insert(2)
    assert tree.root != old_root
    assert old_proof.verify()
    assert tree.gen_proof(0).root == tree.root


def test_tree_capacity():
    tree = HubRegistryTree(levels=1)
    tree.insert(1)
    tree.insert(2)
    with pytest.raises(ValueError):
        tree.insert(3)
    with pytest.raises(IndexError):
        tree.gen_proof(2)


def test_default_depth_tree_with_registry():
    tree = HubRegistryTree()
    registry = hub_registry_factory()
    index = tree.insert_registry(registry)
    proof = tree.gen_proof(index)
    assert tree.index_of(registry.hash()) == index
    assert isinstance(proof, MerkleProof)
    assert proof.leaf == registry.hash()
    assert proof.verify()
